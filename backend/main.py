"""Main entry point for the Data Slack bot."""
import logging
import sys

from fastapi import FastAPI, Request
from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from bot import DataBot
from config import (
    LANGSMITH_PROJECT,
    LANGSMITH_TRACING,
    LOG_LEVEL,
    PORT,
    SLACK_APP_TOKEN,
    SLACK_BOT_TOKEN,
    SLACK_SIGNING_SECRET,
    validate_required_env,
)
from logger import setup_logging
from services.canned_replies import CannedReplies
from services.conversation_memory import ConversationMemory
from services.feedback_ledger import FeedbackLedger
from services.guardrail_engine import GuardrailEngine
from services.image_client import ImageClient
from services.image_delivery import ImageDelivery
from services.job_runner import AsyncJobRunner
from services.llm_client import LLMClient
from services.moderation_client import ModerationClient
from services.sensitive_data import SensitiveDataClient
from services.slack_transport import SlackTransport
from services.telemetry import TelemetrySink
from services.turn_processor import TurnProcessor

# Initialize logging
logger = logging.getLogger(__name__)

# Seconds to wait for detached image jobs on shutdown
SHUTDOWN_DRAIN_SECONDS = 30

# Initialize FastAPI app
app = FastAPI(
    title="Data Slack Bot",
    description="Slack chatbot with guardrails, conversation memory and image generation",
    version="1.0.0"
)

# Initialize services (will be done on startup)
slack_app: AsyncApp = None
request_handler: AsyncSlackRequestHandler = None
socket_handler: AsyncSocketModeHandler = None
job_runner: AsyncJobRunner = None
telemetry: TelemetrySink = None
memory: ConversationMemory = None
canned_replies: CannedReplies = None
data_bot: DataBot = None


def build_slack_app() -> AsyncApp:
    # Socket mode does not sign requests; HTTP delivery needs the signing secret
    return AsyncApp(
        token=SLACK_BOT_TOKEN,
        signing_secret=SLACK_SIGNING_SECRET,
        request_verification_enabled=bool(SLACK_SIGNING_SECRET),
    )


def log_tracing_config() -> None:
    """Report whether LangSmith tracing is on."""
    if LANGSMITH_TRACING:
        logger.info(f"LangSmith tracing enabled, project: {LANGSMITH_PROJECT}")
    else:
        logger.info("LangSmith tracing disabled")


@app.on_event("startup")
async def startup_event():
    """Initialize services and connect to Slack."""
    global slack_app, request_handler, socket_handler, job_runner
    global telemetry, memory, canned_replies, data_bot

    logger.info("Initializing Data Slack bot services...")
    log_tracing_config()

    try:
        telemetry = TelemetrySink()

        guardrails = GuardrailEngine(
            sensitive_data=SensitiveDataClient(),
            moderation=ModerationClient(),
            telemetry=telemetry,
        )
        logger.info("Initialized GuardrailEngine")

        memory = ConversationMemory()
        await memory.check_capacity()
        logger.info("Initialized ConversationMemory")

        turn_processor = TurnProcessor(guardrails, memory, LLMClient())
        logger.info("Initialized TurnProcessor")

        slack_app = build_slack_app()
        transport = SlackTransport(slack_app.client)
        job_runner = AsyncJobRunner()
        canned_replies = CannedReplies(transport)

        data_bot = DataBot(
            slack_app,
            transport=transport,
            turn_processor=turn_processor,
            job_runner=job_runner,
            feedback_ledger=FeedbackLedger(telemetry),
            image_client=ImageClient(),
            image_delivery=ImageDelivery(transport),
            canned_replies=canned_replies,
        )
        request_handler = AsyncSlackRequestHandler(slack_app)

        if SLACK_APP_TOKEN:
            socket_handler = AsyncSocketModeHandler(slack_app, SLACK_APP_TOKEN)
            await socket_handler.connect_async()
            logger.info("Connected to Slack in socket mode")

        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Drain detached jobs and close connections."""
    logger.info("Shutting down Data Slack bot...")

    if job_runner is not None:
        await job_runner.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
    if socket_handler is not None:
        await socket_handler.close_async()
    if telemetry is not None:
        await telemetry.flush()
    if memory is not None:
        await memory.close()
    if canned_replies is not None:
        await canned_replies.close()

    logger.info("Shutdown complete")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Data is operational"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "data-slack-bot",
        "version": "1.0.0",
        "socket_mode": socket_handler is not None,
        "pending_jobs": job_runner.pending if job_runner is not None else 0,
    }


@app.post("/slack/events")
async def slack_events(request: Request):
    """HTTP delivery of Slack events, actions, views and commands."""
    return await request_handler.handle(request)


if __name__ == "__main__":
    import uvicorn

    missing = validate_required_env()
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)

    setup_logging(LOG_LEVEL)
    logger.info(f"Starting Data Slack bot on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
