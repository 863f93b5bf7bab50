"""Unit tests for the Slack handlers in DataBot."""
import sys
sys.path.insert(0, 'backend')

import asyncio

import pytest
from unittest.mock import AsyncMock, Mock
from bot import DataBot, IMAGE_FAILED, EMPTY_DALLE_PROMPT, POSITIVE_NOTE, TECHNICAL_DIFFICULTIES, strip_mentions
from models.conversation import TurnResult
from services.canned_replies import CannedReply
from services.job_runner import AsyncJobRunner
from services.image_client import ImageGenerationError
from services.image_delivery import ImageDelivery
from services.slack_blocks import (
    FEEDBACK_MODAL_CALLBACK,
    FEEDBACK_NEGATIVE_ACTION,
    FEEDBACK_POSITIVE_ACTION,
    feedback_blocks,
    feedback_modal,
)


class FakeSlackApp:
    """Captures listeners registered through Bolt-style decorators."""

    def __init__(self):
        self.handlers = {}

    def _register(self, kind, key):
        def decorator(fn):
            self.handlers[(kind, key)] = fn
            return fn
        return decorator

    def event(self, name):
        return self._register("event", name)

    def action(self, action_id):
        return self._register("action", action_id)

    def view(self, callback_id):
        return self._register("view", callback_id)

    def view_closed(self, callback_id):
        return self._register("view_closed", callback_id)

    def command(self, name):
        return self._register("command", name)


class TestDataBot:
    """Test suite for DataBot handlers."""

    @pytest.fixture
    def slack_app(self):
        return FakeSlackApp()

    @pytest.fixture
    def transport(self):
        transport = Mock()
        transport.post_message = AsyncMock(side_effect=["ts-placeholder", "ts-reply", "ts-3", "ts-4"])
        transport.delete_message = AsyncMock()
        transport.update_message = AsyncMock()
        transport.open_modal = AsyncMock()
        transport.post_ephemeral = AsyncMock()
        return transport

    @pytest.fixture
    def turn_processor(self):
        processor = Mock()
        processor.process = AsyncMock(return_value=TurnResult(reply_text="Warp drive bends space.", turn_id="run-1"))
        return processor

    @pytest.fixture
    def feedback_ledger(self):
        ledger = Mock()
        ledger.record_positive = AsyncMock()
        ledger.record_negative = AsyncMock()
        return ledger

    @pytest.fixture
    def image_client(self):
        client = Mock()
        client.generate = AsyncMock(return_value=b"png")
        return client

    @pytest.fixture
    def image_delivery(self):
        delivery = Mock()
        delivery.deliver = AsyncMock(return_value="upload_v2")
        return delivery

    @pytest.fixture
    def canned_replies(self):
        replies = Mock()
        replies.ambient = AsyncMock(return_value=None)
        replies.mention = AsyncMock(return_value=None)
        replies.image_prompt = Mock(return_value=None)
        return replies

    @pytest.fixture
    def bot(self, slack_app, transport, turn_processor, feedback_ledger, image_client, image_delivery, canned_replies):
        return DataBot(
            slack_app,
            transport=transport,
            turn_processor=turn_processor,
            job_runner=AsyncJobRunner(),
            feedback_ledger=feedback_ledger,
            image_client=image_client,
            image_delivery=image_delivery,
            canned_replies=canned_replies,
            thinking_message="thinking...",
        )

    def handler(self, slack_app, kind, key):
        return slack_app.handlers[(kind, key)]

    def test_all_listeners_registered(self, bot, slack_app):
        assert set(slack_app.handlers) == {
            ("event", "message"),
            ("event", "app_mention"),
            ("action", FEEDBACK_POSITIVE_ACTION),
            ("action", FEEDBACK_NEGATIVE_ACTION),
            ("view", FEEDBACK_MODAL_CALLBACK),
            ("view_closed", FEEDBACK_MODAL_CALLBACK),
            ("command", "/dalle"),
            ("command", "/askgpt"),
        }

    def test_strip_mentions(self):
        assert strip_mentions("<@U0BOT> what is warp?") == "what is warp?"
        assert strip_mentions(None) == ""

    def test_direct_message_runs_turn(self, bot, slack_app, transport, turn_processor):
        """A DM gets a placeholder, which is deleted before the reply with feedback buttons."""
        handle = self.handler(slack_app, "event", "message")
        event = {"type": "message", "channel": "D1", "channel_type": "im", "user": "U1", "text": "What is warp drive?"}

        asyncio.run(handle(event=event, context={"bot_user_id": "U0BOT"}))

        turn_processor.process.assert_awaited_once_with("What is warp drive?", "U1", "im")
        first, second = transport.post_message.call_args_list
        assert first.args[1] == "thinking..."
        transport.delete_message.assert_awaited_once_with("D1", "ts-placeholder")
        assert second.args[1] == "Warp drive bends space."
        assert second.kwargs["blocks"] == feedback_blocks("Warp drive bends space.", "run-1")

    def test_blocked_reply_has_no_feedback_buttons(self, bot, slack_app, transport, turn_processor):
        turn_processor.process.return_value = TurnResult(reply_text=":warning: no", blocked=True)
        handle = self.handler(slack_app, "event", "message")
        event = {"channel": "D1", "channel_type": "im", "user": "U1", "text": "My SSN is 123-45-6789"}

        asyncio.run(handle(event=event, context={}))

        reply = transport.post_message.call_args_list[-1]
        assert reply.args[1] == ":warning: no"
        assert "blocks" not in reply.kwargs

    def test_turn_failure_sends_apology(self, bot, slack_app, transport, turn_processor):
        turn_processor.process.side_effect = RuntimeError("boom")
        handle = self.handler(slack_app, "event", "message")
        event = {"channel": "D1", "channel_type": "im", "user": "U1", "text": "hello"}

        asyncio.run(handle(event=event, context={}))

        transport.delete_message.assert_awaited_once()
        assert transport.post_message.call_args_list[-1].args[1] == TECHNICAL_DIFFICULTIES

    @pytest.mark.parametrize("event", [
        {"channel": "D1", "channel_type": "im", "user": "U1", "text": "hi", "subtype": "message_changed"},
        {"channel": "D1", "channel_type": "im", "user": "U1", "text": "hi", "bot_id": "B1"},
        {"channel": "C1", "channel_type": "channel", "user": "U1", "text": "<@U0BOT> hi"},
        {"channel": "C1", "channel_type": "channel", "user": "U1", "text": "hi all"},
        {"channel": "D1", "channel_type": "im", "user": "U1", "text": "   "},
    ])
    def test_messages_without_turn(self, bot, slack_app, turn_processor, event):
        handle = self.handler(slack_app, "event", "message")

        asyncio.run(handle(event=event, context={"bot_user_id": "U0BOT"}))

        turn_processor.process.assert_not_called()

    def test_ambient_trigger_in_channel(self, bot, slack_app, transport, canned_replies, turn_processor):
        canned_replies.ambient.return_value = CannedReply(text="I know.")
        handle = self.handler(slack_app, "event", "message")
        event = {"channel": "C1", "channel_type": "channel", "user": "U1", "text": "I love you"}

        asyncio.run(handle(event=event, context={}))

        transport.post_message.assert_awaited_once_with("C1", "I know.", blocks=None)
        turn_processor.process.assert_not_called()

    def test_direct_message_mention_runs_turn(self, bot, slack_app, turn_processor, transport):
        """Slack sends no app_mention in a DM, so the message handler answers it."""
        handle = self.handler(slack_app, "event", "message")
        event = {"channel": "D1", "channel_type": "im", "user": "U1", "text": "<@U0BOT> what is warp drive?"}

        asyncio.run(handle(event=event, context={"bot_user_id": "U0BOT"}))

        turn_processor.process.assert_awaited_once_with("what is warp drive?", "U1", "im")
        assert transport.post_message.call_args_list[-1].args[1] == "Warp drive bends space."

    def test_direct_message_mention_command(self, bot, slack_app, canned_replies, turn_processor, transport):
        canned_replies.mention.return_value = CannedReply(text="The rules.")
        handle = self.handler(slack_app, "event", "message")
        event = {"channel": "D1", "channel_type": "im", "user": "U1", "text": "<@U0BOT> the rules"}

        asyncio.run(handle(event=event, context={"bot_user_id": "U0BOT"}))

        canned_replies.mention.assert_awaited_once_with("the rules")
        transport.post_message.assert_awaited_once_with("D1", "The rules.", blocks=None)
        turn_processor.process.assert_not_called()

    def test_mention_runs_turn_without_mention_text(self, bot, slack_app, turn_processor):
        handle = self.handler(slack_app, "event", "app_mention")
        event = {"channel": "C1", "user": "U1", "text": "<@U0BOT> what is warp drive?"}

        asyncio.run(handle(event=event))

        turn_processor.process.assert_awaited_once_with("what is warp drive?", "U1", "channel")

    def test_mention_in_thread_is_ignored(self, bot, slack_app, turn_processor):
        handle = self.handler(slack_app, "event", "app_mention")
        event = {"channel": "C1", "user": "U1", "text": "<@U0BOT> hello", "thread_ts": "1.1"}

        asyncio.run(handle(event=event))

        turn_processor.process.assert_not_called()

    def test_mention_image_command(self, bot, slack_app, canned_replies, image_delivery, transport):
        canned_replies.image_prompt.return_value = "a starship"
        handle = self.handler(slack_app, "event", "app_mention")
        event = {"channel": "C1", "user": "U1", "text": "<@U0BOT> image a starship"}

        async def scenario():
            await handle(event=event)
            await bot.job_runner.drain()

        asyncio.run(scenario())

        transport.delete_message.assert_awaited_once_with("C1", "ts-placeholder")
        assert image_delivery.deliver.call_args.args[:3] == ("C1", b"png", "a starship")

    def test_dalle_without_prompt(self, bot, slack_app, image_client):
        handle = self.handler(slack_app, "command", "/dalle")
        ack, respond = AsyncMock(), AsyncMock()

        asyncio.run(handle(ack=ack, command={"text": "  ", "user_id": "U1", "channel_id": "C1"}, respond=respond))

        ack.assert_awaited_once()
        respond.assert_awaited_once_with(text=EMPTY_DALLE_PROMPT, response_type="ephemeral")
        image_client.generate.assert_not_called()

    def test_dalle_generates_and_delivers(self, bot, slack_app, image_delivery):
        """The progress message is removed before the image is delivered."""
        handle = self.handler(slack_app, "command", "/dalle")
        ack, respond = AsyncMock(), AsyncMock()
        order = []
        respond.side_effect = lambda **kwargs: order.append(("respond", kwargs.get("delete_original")))
        image_delivery.deliver.side_effect = lambda *args, **kwargs: order.append(("deliver", None))

        async def scenario():
            await handle(ack=ack, command={"text": "a sunset", "user_id": "U1", "channel_id": "C1"}, respond=respond)
            await bot.job_runner.drain()

        asyncio.run(scenario())

        ack.assert_awaited_once()
        assert order == [("respond", None), ("respond", True), ("deliver", None)]

    def test_dalle_failure_notifies_user(self, bot, slack_app, image_client, image_delivery):
        image_client.generate.side_effect = ImageGenerationError("rejected")
        handle = self.handler(slack_app, "command", "/dalle")
        ack, respond = AsyncMock(), AsyncMock()

        async def scenario():
            await handle(ack=ack, command={"text": "a sunset", "user_id": "U1", "channel_id": "C1"}, respond=respond)
            await bot.job_runner.drain()

        asyncio.run(scenario())

        image_delivery.deliver.assert_not_called()
        assert respond.call_args_list[1].kwargs == {"delete_original": True}
        assert respond.call_args_list[-1].kwargs["text"] == IMAGE_FAILED

    def test_askgpt(self, bot, slack_app, turn_processor):
        handle = self.handler(slack_app, "command", "/askgpt")
        ack, respond = AsyncMock(), AsyncMock()

        asyncio.run(handle(ack=ack, command={"text": "What is warp?", "user_id": "U1"}, respond=respond))

        turn_processor.process.assert_awaited_once_with("What is warp?", "U1", "slash_command")
        respond.assert_awaited_once_with(text="Warp drive bends space.", response_type="ephemeral")

    def test_positive_feedback(self, bot, slack_app, feedback_ledger, transport):
        handle = self.handler(slack_app, "action", FEEDBACK_POSITIVE_ACTION)
        body = {
            "actions": [{"value": "run-1"}],
            "user": {"id": "U1"},
            "channel": {"id": "C1"},
            "message": {"ts": "1.2", "text": "Warp", "blocks": feedback_blocks("Warp", "run-1")},
        }

        asyncio.run(handle(ack=AsyncMock(), body=body))

        feedback_ledger.record_positive.assert_awaited_once_with("run-1", "U1")
        blocks = transport.update_message.call_args.kwargs["blocks"]
        assert blocks[-1]["elements"][0]["text"] == POSITIVE_NOTE

    def test_negative_feedback_opens_modal(self, bot, slack_app, feedback_ledger, transport):
        handle = self.handler(slack_app, "action", FEEDBACK_NEGATIVE_ACTION)
        body = {
            "actions": [{"value": "run-1"}],
            "trigger_id": "trig-1",
            "user": {"id": "U1"},
            "channel": {"id": "C1"},
            "message": {"ts": "1.2", "text": "Warp", "blocks": []},
        }

        asyncio.run(handle(ack=AsyncMock(), body=body))

        trigger_id, view = transport.open_modal.call_args.args
        assert trigger_id == "trig-1"
        assert view["callback_id"] == FEEDBACK_MODAL_CALLBACK
        feedback_ledger.record_negative.assert_not_called()

    def test_negative_feedback_without_modal(self, bot, slack_app, feedback_ledger, transport):
        transport.open_modal.side_effect = RuntimeError("expired_trigger_id")
        handle = self.handler(slack_app, "action", FEEDBACK_NEGATIVE_ACTION)
        body = {"actions": [{"value": "run-1"}], "trigger_id": "trig-1", "user": {"id": "U1"}}

        asyncio.run(handle(ack=AsyncMock(), body=body))

        feedback_ledger.record_negative.assert_awaited_once_with("run-1", user_id="U1")

    def test_modal_submission_records_negative(self, bot, slack_app, feedback_ledger):
        handle = self.handler(slack_app, "view", FEEDBACK_MODAL_CALLBACK)
        view = feedback_modal("run-1", "C1", "1.2")
        view["state"] = {"values": {}}

        asyncio.run(handle(ack=AsyncMock(), body={"user": {"id": "U1"}}, view=view))

        feedback_ledger.record_negative.assert_awaited_once_with(
            "run-1", categories=[], comment=None, user_id="U1"
        )


class TestImageJobDelivery:
    """Image jobs driven through the real ImageDelivery fallbacks."""

    @pytest.fixture
    def transport(self):
        transport = Mock()
        transport.upload_file = AsyncMock(side_effect=RuntimeError("method_deprecated"))
        transport.upload_file_legacy = AsyncMock(side_effect=RuntimeError("invalid_arguments"))
        transport.post_message = AsyncMock(return_value="ts-notice")
        transport.delete_message = AsyncMock()
        transport.post_ephemeral = AsyncMock()
        return transport

    @pytest.fixture
    def image_client(self):
        client = Mock()
        client.generate = AsyncMock(return_value=b"png")
        return client

    @pytest.fixture
    def bot(self, transport, image_client):
        return DataBot(
            FakeSlackApp(),
            transport=transport,
            turn_processor=Mock(),
            job_runner=AsyncJobRunner(),
            feedback_ledger=Mock(),
            image_client=image_client,
            image_delivery=ImageDelivery(transport),
            canned_replies=Mock(),
        )

    def run_job(self, bot, respond):
        async def scenario():
            task = bot.start_image_job("a sunset", "C1", "U1", respond)
            await bot.job_runner.drain()
            return task

        return asyncio.run(scenario())

    def test_both_uploads_fail_posts_text_notice(self, bot, transport):
        """The channel is told generation worked and the job finishes cleanly."""
        respond = AsyncMock()

        task = self.run_job(bot, respond)

        assert task.done() and task.exception() is None
        transport.upload_file.assert_awaited_once()
        transport.upload_file_legacy.assert_awaited_once()
        notice = transport.post_message.call_args.kwargs
        assert notice["channel"] == "C1"
        assert "generation was successful" in notice["text"]
        assert IMAGE_FAILED not in [c.kwargs.get("text") for c in respond.call_args_list]

    def test_all_channel_posts_fail_warns_user(self, bot, transport):
        """With no way into the channel, the requester gets an ephemeral warning."""
        transport.post_message.side_effect = RuntimeError("not_in_channel")
        respond = AsyncMock()

        task = self.run_job(bot, respond)

        assert task.done() and task.exception() is None
        warning = respond.call_args_list[-1].kwargs
        assert "failed to upload" in warning["text"]
        assert warning["response_type"] == "ephemeral"
        assert IMAGE_FAILED not in [c.kwargs.get("text") for c in respond.call_args_list]
