"""Configuration management for the Data Slack bot."""
import os
import logging
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Slack
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_APP_TOKEN = os.getenv("SLACK_APP_TOKEN")
SLACK_SIGNING_SECRET = os.getenv("SLACK_SIGNING_SECRET")
SLACK_BOT_USER_NAME = os.getenv("SLACK_BOT_USER_NAME", "data")

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
GOOGLE_CLOUD_PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT_ID")

# Server Configuration
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Model Configuration
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")
CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 1024
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "gpt-image-1")
IMAGE_SIZE = os.getenv("IMAGE_SIZE", "1024x1024")
MODERATION_MODEL = os.getenv("MODERATION_MODEL", "omni-moderation-latest")

# Sensitive data detection (Google Cloud DLP)
DLP_INFO_TYPES = os.getenv(
    "DLP_INFO_TYPES",
    "US_SOCIAL_SECURITY_NUMBER,CREDIT_CARD_NUMBER,EMAIL_ADDRESS,PHONE_NUMBER,"
    "US_BANK_ROUTING_MICR,IBAN_CODE,US_PASSPORT,US_DRIVERS_LICENSE_NUMBER"
).split(",")
DLP_MIN_LIKELIHOOD = os.getenv("DLP_MIN_LIKELIHOOD", "POSSIBLE")

# Telemetry (LangSmith)
LANGSMITH_PROJECT = os.getenv("LANGSMITH_PROJECT", "default")
LANGSMITH_TRACING = os.getenv("LANGSMITH_TRACING", "false").lower() == "true"

# Conversation memory
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
MEMORY_TTL_HOURS = int(os.getenv("MEMORY_TTL_HOURS", "24"))
MEMORY_MAX_KEYS = int(os.getenv("MEMORY_MAX_KEYS", "10000"))  # advisory only
MEMORY_TTL_SECONDS = max(60, MEMORY_TTL_HOURS * 60 * 60)
MEMORY_WINDOW_SIZE = 20  # raw messages, i.e. 10 exchanges
MEMORY_KEY_PREFIX = "chat:"

# Personality
DEFAULT_PERSONALITY = (
    f"You are a Soong type Android named {SLACK_BOT_USER_NAME}. "
    "You are a member of the crew of the USS Enterprise. "
    "You are a member of the science division. "
    "You respond to all inquiries in character as if you were "
    "Lieutenant Commander Data from Star Trek: The Next Generation."
)
BOT_PERSONALITY = os.getenv("BOT_PERSONALITY") or DEFAULT_PERSONALITY

DEFAULT_THINKING_MESSAGE = ":brain: _Accessing neural network pathways... Processing query..._"
THINKING_MESSAGE = os.getenv("THINKING_MESSAGE") or DEFAULT_THINKING_MESSAGE

# Slack section blocks are limited to 3000 characters
MAX_REPLY_CHARS = 2900

REQUIRED_ENV_VARS = [
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "SLACK_BOT_USER_NAME",
    "GROQ_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_CLOUD_PROJECT_ID",
]


def validate_required_env() -> List[str]:
    """Return the names of required environment variables that are not set."""
    return [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]


# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
