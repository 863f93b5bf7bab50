"""Trigger-word replies that never reach the language model."""
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from config import SLACK_BOT_USER_NAME
from services.slack_blocks import link_button_blocks
from services.slack_transport import SlackTransport

logger = logging.getLogger(__name__)

DAD_JOKE_API = "https://icanhazdadjoke.com/"
ZINGER = "Thanks, I'll be here all week. Be sure and tip your waiter. :rolling_on_the_floor_laughing:"
ZINGER_CHANCE = 0.05

DANCE_EMOJI = [
    "💃", "🕺", "🎉", "🎊", "🎈", "🎶", "🎵", "🔊", "🕺💃", "🥳", "👯‍♀️", "👯‍♂️", "🪩", "🪅",
]

ROBOT_RULES = "\n".join([
    "0. A robot may not harm humanity, or, by inaction, allow humanity to come to harm.",
    "1. A robot may not injure a human being or, through inaction, allow a human being to come to harm.",
    "2. A robot must obey the orders given it by human beings except where such orders would conflict with the First Law.",
    "3. A robot must protect its own existence as long as such protection does not conflict with the First or Second Law.",
])


@dataclass
class CannedReply:
    """A ready-made reply; ``followup`` is posted a little later if set."""
    text: str
    blocks: Optional[List[Dict[str, Any]]] = None
    followup: Optional[str] = None


def help_text(bot_name: str = SLACK_BOT_USER_NAME) -> str:
    commands = "\n".join([
        f"# Trigger words that work without @{bot_name}",
        "danceparty - Random emoji dance party",
        "tiktok     - Wake up in the morning feeling like a party...",
        "rickroll   - Never gonna give you up, never gonna let you down.",
        "",
        "# Slash commands:",
        "/askgpt <question> - Ask a question and get an ephemeral reply",
        "/dalle <prompt>    - Generate an image with DALL·E",
        "",
        f"# Address the bot directly with @{bot_name} syntax:",
        f"@{bot_name} the rules - Explains Asimov's laws of robotics",
        f"@{bot_name} dad joke  - Provides a random dad joke",
        f"@{bot_name} image <prompt> - Create an image with DALL·E",
        "",
        "# All other queries are answered by the language model, so you can ask it anything!",
        f"@{bot_name} what is the capital of Australia?",
        f"@{bot_name} write me a bash script to install nginx",
    ])
    return (
        f"You can message me in the channel with @{bot_name} or chat with me directly in a DM.\n"
        f"```{commands}```"
    )


class CannedReplies:
    """Matches trigger phrases in channel messages and @mentions."""

    IMAGE_COMMAND = re.compile(r"^\s*image\s+(?P<prompt>.+)$", re.IGNORECASE | re.DOTALL)

    def __init__(
        self,
        transport: SlackTransport,
        http_client: Optional[httpx.AsyncClient] = None,
        bot_name: str = SLACK_BOT_USER_NAME,
        rng: Optional[random.Random] = None
    ):
        self.transport = transport
        self.http_client = http_client or httpx.AsyncClient(timeout=10.0)
        self.bot_name = bot_name
        self.rng = rng or random.Random()

    async def ambient(self, text: str, user_id: Optional[str]) -> Optional[CannedReply]:
        """Replies for phrases heard in any message, no mention needed."""
        if not text:
            return None

        if re.search(r"i love you", text, re.IGNORECASE):
            return CannedReply(text="I know.")

        if re.search(r"open the pod bay door", text, re.IGNORECASE):
            try:
                name = await self.transport.user_display_name(user_id)
            except Exception as e:
                logger.warning(f"Could not look up display name for {user_id}: {e}")
                name = "Dave"
            return CannedReply(text=f"I'm sorry {name}, I'm afraid I can't do that.")

        if re.search(r"danceparty|dance party", text, re.IGNORECASE):
            count = self.rng.randint(10, 12)
            return CannedReply(text="".join(self.rng.choice(DANCE_EMOJI) for _ in range(count)))

        if re.search(r"tiktok|tik tok", text, re.IGNORECASE):
            return CannedReply(
                text="Party mode activated! :female_singer:",
                blocks=link_button_blocks(
                    "Grab my glasses, I'm out the door, I'm gonna hit the city! :sunglasses:",
                    "DJ Blow My Speakers Up",
                    "https://scarolan.github.io/rickroll/tiktok.html",
                ),
            )

        if re.search(r"rickroll|rick roll|never gonna give you up", text, re.IGNORECASE):
            return CannedReply(
                text="Rickroll activated!",
                blocks=link_button_blocks(
                    "We're no strangers to love...:man_dancing:",
                    "Rickroll Me",
                    "https://scarolan.github.io/rickroll/index.html",
                ),
            )

        return None

    async def mention(self, text: str) -> Optional[CannedReply]:
        """Replies for @mention commands."""
        lowered = (text or "").lower()

        if "help" in lowered:
            return CannedReply(text=help_text(self.bot_name))

        if "the rules" in lowered:
            return CannedReply(text=ROBOT_RULES)

        if "dad joke" in lowered:
            return await self._dad_joke()

        return None

    def image_prompt(self, text: str) -> Optional[str]:
        """Prompt from ``image <prompt>``, or None if ``text`` is not an image command."""
        match = self.IMAGE_COMMAND.match(text or "")
        return match.group("prompt").strip() if match else None

    async def _dad_joke(self) -> CannedReply:
        try:
            response = await self.http_client.get(DAD_JOKE_API, headers={"Accept": "text/plain"})
            response.raise_for_status()
            joke = response.text.strip()
        except httpx.HTTPError as e:
            logger.error(f"Dad joke API failed: {e}")
            return CannedReply(text="My humor subroutines are currently offline. Please try again later.")

        followup = ZINGER if self.rng.random() < ZINGER_CHANCE else None
        return CannedReply(text=f"{joke} :sheep::drum_with_drumsticks::snake:", followup=followup)

    async def close(self) -> None:
        await self.http_client.aclose()
