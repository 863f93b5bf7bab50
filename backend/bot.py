"""Slack event, action, view and command handlers for the Data bot."""
import asyncio
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from slack_bolt.async_app import AsyncApp

from config import THINKING_MESSAGE
from models.conversation import TurnResult
from services.canned_replies import CannedReplies, CannedReply
from services.feedback_ledger import FeedbackLedger
from services.image_client import ImageClient
from services.image_delivery import ImageDelivery
from services.job_runner import AsyncJobRunner
from services.slack_blocks import (
    FEEDBACK_MODAL_CALLBACK,
    FEEDBACK_NEGATIVE_ACTION,
    FEEDBACK_POSITIVE_ACTION,
    feedback_acknowledged,
    feedback_blocks,
    feedback_modal,
    image_progress_blocks,
    parse_feedback_submission,
    thinking_blocks,
    truncate,
)
from services.slack_transport import SlackTransport
from services.turn_processor import TurnProcessor

logger = logging.getLogger(__name__)

TECHNICAL_DIFFICULTIES = (
    "I apologize, but I am currently experiencing technical difficulties. My neural pathways "
    "appear to be experiencing a temporary malfunction. Please try again later."
)
IMAGE_FAILED = ":x: Image generation failed. Please try again, perhaps with a different prompt."
EMPTY_DALLE_PROMPT = "I need a description to generate an image. Please provide a prompt after the /dalle command."
EMPTY_ASKGPT_QUESTION = "Please include a question after the /askgpt command."
POSITIVE_NOTE = "✅ Thanks for your feedback!"
NEGATIVE_NOTE = "📝 Thanks for your feedback! We'll use this to improve."
ZINGER_DELAY_SECONDS = 10

MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+>")

Notify = Callable[[str], Awaitable[None]]


def strip_mentions(text: Optional[str]) -> str:
    return MENTION_PATTERN.sub("", text or "").strip()


class DataBot:
    """
    Wires the turn pipeline, image jobs and feedback ledger into Slack.

    Example:
        bot = DataBot(slack_app, transport, turn_processor, job_runner,
                      feedback_ledger, image_client, image_delivery, canned_replies)
    """

    def __init__(
        self,
        slack_app: AsyncApp,
        transport: SlackTransport,
        turn_processor: TurnProcessor,
        job_runner: AsyncJobRunner,
        feedback_ledger: FeedbackLedger,
        image_client: ImageClient,
        image_delivery: ImageDelivery,
        canned_replies: CannedReplies,
        thinking_message: str = THINKING_MESSAGE
    ):
        self.slack_app = slack_app
        self.transport = transport
        self.turn_processor = turn_processor
        self.job_runner = job_runner
        self.feedback_ledger = feedback_ledger
        self.image_client = image_client
        self.image_delivery = image_delivery
        self.canned_replies = canned_replies
        self.thinking_message = thinking_message

        self._setup_slack_handlers()
        logger.info("Slack event handlers registered")

    # ------------------------------------------------------------------
    # Chat turns
    # ------------------------------------------------------------------

    async def run_chat_turn(
        self,
        text: str,
        user_id: str,
        channel_id: str,
        channel_kind: str
    ):
        """Reply to ``text`` in ``channel_id`` behind a thinking placeholder."""

        async def post_placeholder():
            return await self.transport.post_message(
                channel_id,
                self.thinking_message,
                blocks=thinking_blocks(self.thinking_message),
            )

        async def clear_placeholder(ts):
            await self.transport.delete_message(channel_id, ts)

        async def work() -> TurnResult:
            return await self.turn_processor.process(text, user_id, channel_kind)

        async def deliver(result: TurnResult):
            reply = truncate(result.reply_text)
            if result.blocked:
                await self.transport.post_message(channel_id, reply)
            else:
                await self.transport.post_message(channel_id, reply, blocks=feedback_blocks(reply, result.turn_id))

        async def deliver_error(_error: BaseException):
            await self.transport.post_message(channel_id, TECHNICAL_DIFFICULTIES)

        return await self.job_runner.run(
            "chat_reply",
            post_placeholder=post_placeholder,
            clear_placeholder=clear_placeholder,
            work=work,
            deliver=deliver,
            deliver_error=deliver_error,
        )

    # ------------------------------------------------------------------
    # Image jobs
    # ------------------------------------------------------------------

    def start_image_job(
        self,
        prompt: str,
        channel_id: str,
        user_id: str,
        respond: Optional[Callable[..., Awaitable[Any]]] = None
    ) -> asyncio.Task:
        """
        Generate and post an image without blocking the caller.

        With ``respond`` (slash commands) the progress placeholder is an
        ephemeral response; otherwise it is a channel message.
        """
        notify = self._notifier(channel_id, user_id, respond)
        progress_text = f":art: Generating image for prompt: \"{prompt}\"..."

        async def post_placeholder():
            if respond is not None:
                await respond(text=progress_text, blocks=image_progress_blocks(prompt), response_type="ephemeral")
                return "response_url"
            return await self.transport.post_message(channel_id, progress_text, blocks=image_progress_blocks(prompt))

        async def clear_placeholder(handle):
            if respond is not None:
                await respond(delete_original=True)
            else:
                await self.transport.delete_message(channel_id, handle)

        async def work() -> bytes:
            return await self.image_client.generate(prompt)

        async def deliver(image: bytes):
            await self.image_delivery.deliver(channel_id, image, prompt, notify_user=notify)

        async def deliver_error(_error: BaseException):
            await notify(IMAGE_FAILED)

        job = self.job_runner.run(
            "image_generation",
            post_placeholder=post_placeholder,
            clear_placeholder=clear_placeholder,
            work=work,
            deliver=deliver,
            deliver_error=deliver_error,
        )
        return self.job_runner.spawn(job, on_error=deliver_error, name=f"image:{user_id}")

    def _notifier(self, channel_id: str, user_id: str, respond) -> Notify:
        async def notify(text: str) -> None:
            if respond is not None:
                await respond(text=text, response_type="ephemeral", replace_original=False)
            else:
                await self.transport.post_ephemeral(channel_id, user_id, text)
        return notify

    # ------------------------------------------------------------------
    # Canned replies
    # ------------------------------------------------------------------

    async def _send_canned(self, channel_id: str, reply: CannedReply) -> None:
        await self.transport.post_message(channel_id, reply.text, blocks=reply.blocks)
        if reply.followup:
            self.job_runner.spawn(
                self._post_later(channel_id, reply.followup),
                on_error=self._log_only,
                name="canned_followup",
            )

    async def _post_later(self, channel_id: str, text: str) -> None:
        await asyncio.sleep(ZINGER_DELAY_SECONDS)
        await self.transport.post_message(channel_id, text)

    @staticmethod
    async def _log_only(error: BaseException) -> None:
        logger.warning(f"Follow-up message failed: {error}")

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def _acknowledge_feedback(self, channel_id: Optional[str], message: Dict[str, Any], note: str) -> None:
        if not channel_id or not message.get("ts"):
            return
        await self.transport.update_message(
            channel_id,
            message["ts"],
            text=message.get("text", ""),
            blocks=feedback_acknowledged(message.get("blocks") or [], note),
        )

    # ------------------------------------------------------------------
    # Handler registration
    # ------------------------------------------------------------------

    @staticmethod
    def _should_ignore(event: Dict[str, Any], bot_user_id: Optional[str]) -> bool:
        if not event:
            return True
        # message_changed, message_deleted, channel_join, ...
        if event.get("subtype") or event.get("bot_id") or event.get("edited"):
            return True
        # Outside DMs, mentions are answered by the app_mention handler
        if event.get("channel_type") != "im" and DataBot._mentions_bot(event, bot_user_id):
            return True
        return False

    @staticmethod
    def _mentions_bot(event: Dict[str, Any], bot_user_id: Optional[str]) -> bool:
        return bool(bot_user_id) and f"<@{bot_user_id}>" in (event.get("text") or "")

    async def _answer_mention(self, event: Dict[str, Any]) -> None:
        """Commands addressed with @bot, falling back to a chat turn."""
        text = strip_mentions(event.get("text"))
        channel_id = event.get("channel")
        user_id = event.get("user")

        canned = await self.canned_replies.mention(text)
        if canned:
            await self._send_canned(channel_id, canned)
            return

        prompt = self.canned_replies.image_prompt(text)
        if prompt:
            self.start_image_job(prompt, channel_id, user_id)
            return

        if not text:
            logger.debug("Ignoring empty direct mention")
            return

        # Thread replies, edits and other bots are not answered
        if event.get("edited") or event.get("thread_ts") or event.get("bot_id") or event.get("bot_profile"):
            return

        await self.run_chat_turn(text, user_id, channel_id, event.get("channel_type") or "channel")

    def _setup_slack_handlers(self) -> None:
        """Register Slack listeners on the Bolt app."""

        @self.slack_app.event("message")
        async def handle_message_event(event, context):
            """Trigger words everywhere; chat turns in DMs and group DMs."""
            bot_user_id = context.get("bot_user_id")
            if self._should_ignore(event, bot_user_id):
                return

            # Slack sends no app_mention for direct messages
            if self._mentions_bot(event, bot_user_id):
                await self._answer_mention(event)
                return

            text = event.get("text") or ""
            channel_id = event.get("channel")

            canned = await self.canned_replies.ambient(text, event.get("user"))
            if canned:
                await self._send_canned(channel_id, canned)
                return

            channel_kind = event.get("channel_type")
            if channel_kind not in ("im", "mpim"):
                return

            if not text.strip():
                logger.debug(f"Ignoring empty {channel_kind} message")
                return

            await self.run_chat_turn(text, event.get("user"), channel_id, channel_kind)

        @self.slack_app.event("app_mention")
        async def handle_mention_event(event):
            if not event or event.get("subtype"):
                return
            await self._answer_mention(event)

        @self.slack_app.action(FEEDBACK_POSITIVE_ACTION)
        async def handle_positive_feedback(ack, body):
            await ack()
            try:
                turn_id = body["actions"][0].get("value")
                user_id = (body.get("user") or {}).get("id")
                await self.feedback_ledger.record_positive(turn_id, user_id)
                await self._acknowledge_feedback(
                    (body.get("channel") or {}).get("id"), body.get("message") or {}, POSITIVE_NOTE
                )
            except Exception as e:
                logger.error(f"Error handling positive feedback: {e}", exc_info=True)

        @self.slack_app.action(FEEDBACK_NEGATIVE_ACTION)
        async def handle_negative_feedback(ack, body):
            await ack()
            turn_id = body["actions"][0].get("value")
            user_id = (body.get("user") or {}).get("id")
            channel_id = (body.get("channel") or {}).get("id")
            message = body.get("message") or {}
            try:
                await self.transport.open_modal(
                    body["trigger_id"], feedback_modal(turn_id, channel_id, message.get("ts"))
                )
            except Exception as e:
                # Without the form, keep the bare negative
                logger.error(f"Could not open feedback modal, recording bare negative: {e}")
                await self.feedback_ledger.record_negative(turn_id, user_id=user_id)
            try:
                await self._acknowledge_feedback(channel_id, message, NEGATIVE_NOTE)
            except Exception as e:
                logger.error(f"Error updating message after negative feedback: {e}")

        @self.slack_app.view(FEEDBACK_MODAL_CALLBACK)
        async def handle_feedback_submission(ack, body, view):
            await ack()
            try:
                submission = parse_feedback_submission(view)
                await self.feedback_ledger.record_negative(
                    submission["turn_id"],
                    categories=submission["categories"],
                    comment=submission["comment"],
                    user_id=(body.get("user") or {}).get("id"),
                )
            except Exception as e:
                logger.error(f"Error handling feedback modal submission: {e}", exc_info=True)

        @self.slack_app.view_closed(FEEDBACK_MODAL_CALLBACK)
        async def handle_feedback_closed(ack, body, view):
            await ack()
            try:
                submission = parse_feedback_submission(view)
                await self.feedback_ledger.record_negative(
                    submission["turn_id"], user_id=(body.get("user") or {}).get("id")
                )
            except Exception as e:
                logger.error(f"Error handling closed feedback modal: {e}", exc_info=True)

        @self.slack_app.command("/dalle")
        async def handle_dalle_command(ack, command, respond):
            # Slack allows three seconds for the acknowledgement
            await ack()
            logger.info(f"/dalle from user {command.get('user_id')} in {command.get('channel_id')}")

            prompt = (command.get("text") or "").strip()
            if not prompt:
                await respond(text=EMPTY_DALLE_PROMPT, response_type="ephemeral")
                return

            self.start_image_job(prompt, command["channel_id"], command["user_id"], respond)

        @self.slack_app.command("/askgpt")
        async def handle_askgpt_command(ack, command, respond):
            await ack()
            question = (command.get("text") or "").strip()
            if not question:
                await respond(text=EMPTY_ASKGPT_QUESTION, response_type="ephemeral")
                return
            try:
                result = await self.turn_processor.process(question, command["user_id"], "slash_command")
                await respond(text=truncate(result.reply_text), response_type="ephemeral")
            except Exception as e:
                logger.error(f"Error handling /askgpt: {e}", exc_info=True)
                await respond(text=TECHNICAL_DIFFICULTIES, response_type="ephemeral")
