"""Block Kit payloads used by the bot."""
import json
from typing import Any, Dict, List, Optional

from config import MAX_REPLY_CHARS, THINKING_MESSAGE

FEEDBACK_BLOCK_ID = "feedback_actions"
FEEDBACK_POSITIVE_ACTION = "feedback_positive"
FEEDBACK_NEGATIVE_ACTION = "feedback_negative"
FEEDBACK_MODAL_CALLBACK = "feedback_modal"
FEEDBACK_CATEGORIES_BLOCK = "feedback_categories"
FEEDBACK_CATEGORIES_ACTION = "categories_select"
FEEDBACK_COMMENT_BLOCK = "feedback_comment"
FEEDBACK_COMMENT_ACTION = "comment_input"
PENDING_TURN_ID = "pending"

FEEDBACK_CATEGORIES = {
    "inaccurate": "Inaccurate or wrong",
    "unhelpful": "Did not answer my question",
    "off_character": "Broke character",
    "inappropriate": "Inappropriate",
    "too_long": "Too long",
    "other": "Other",
}


def truncate(text: str, limit: int = MAX_REPLY_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _mrkdwn(text: str) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": text}


def _button(text: str, action_id: str, value: str, style: Optional[str] = None) -> Dict[str, Any]:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def thinking_blocks(text: str = THINKING_MESSAGE) -> List[Dict[str, Any]]:
    return [{"type": "context", "elements": [_mrkdwn(text)]}]


def feedback_blocks(message_text: str, turn_id: Optional[str]) -> List[Dict[str, Any]]:
    """Reply section followed by 👍/👎 buttons carrying the turn id."""
    value = turn_id or PENDING_TURN_ID
    return [
        {"type": "section", "text": _mrkdwn(message_text)},
        {
            "type": "actions",
            "block_id": FEEDBACK_BLOCK_ID,
            "elements": [
                _button("👍 Helpful", FEEDBACK_POSITIVE_ACTION, value, style="primary"),
                _button("👎 Not Helpful", FEEDBACK_NEGATIVE_ACTION, value),
            ],
        },
    ]


def feedback_acknowledged(blocks: List[Dict[str, Any]], note: str) -> List[Dict[str, Any]]:
    """Replace the feedback button row with a context note."""
    kept = [block for block in blocks if block.get("block_id") != FEEDBACK_BLOCK_ID]
    return kept + [{"type": "context", "elements": [_mrkdwn(note)]}]


def feedback_modal(turn_id: str, channel_id: Optional[str], message_ts: Optional[str]) -> Dict[str, Any]:
    """Modal asking why a reply was not helpful; both inputs are optional."""
    options = [
        {"text": {"type": "plain_text", "text": label}, "value": key}
        for key, label in FEEDBACK_CATEGORIES.items()
    ]
    return {
        "type": "modal",
        "callback_id": FEEDBACK_MODAL_CALLBACK,
        "private_metadata": json.dumps({
            "turn_id": turn_id,
            "channel_id": channel_id,
            "message_ts": message_ts,
        }),
        "title": {"type": "plain_text", "text": "Feedback"},
        "submit": {"type": "plain_text", "text": "Submit"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "notify_on_close": True,
        "blocks": [
            {
                "type": "input",
                "block_id": FEEDBACK_CATEGORIES_BLOCK,
                "optional": True,
                "label": {"type": "plain_text", "text": "What went wrong?"},
                "element": {
                    "type": "multi_static_select",
                    "action_id": FEEDBACK_CATEGORIES_ACTION,
                    "placeholder": {"type": "plain_text", "text": "Pick any that apply"},
                    "options": options,
                },
            },
            {
                "type": "input",
                "block_id": FEEDBACK_COMMENT_BLOCK,
                "optional": True,
                "label": {"type": "plain_text", "text": "Anything else?"},
                "element": {
                    "type": "plain_text_input",
                    "action_id": FEEDBACK_COMMENT_ACTION,
                    "multiline": True,
                },
            },
        ],
    }


def parse_feedback_submission(view: Dict[str, Any]) -> Dict[str, Any]:
    """Pull turn id, message location, categories and comment out of a submitted modal."""
    metadata = json.loads(view.get("private_metadata") or "{}")
    values = (view.get("state") or {}).get("values") or {}

    selected = (values.get(FEEDBACK_CATEGORIES_BLOCK) or {}).get(FEEDBACK_CATEGORIES_ACTION) or {}
    categories = [option["value"] for option in selected.get("selected_options") or []]

    comment_state = (values.get(FEEDBACK_COMMENT_BLOCK) or {}).get(FEEDBACK_COMMENT_ACTION) or {}
    comment = comment_state.get("value")

    return {
        "turn_id": metadata.get("turn_id"),
        "channel_id": metadata.get("channel_id"),
        "message_ts": metadata.get("message_ts"),
        "categories": categories,
        "comment": comment,
    }


def image_progress_blocks(prompt: str) -> List[Dict[str, Any]]:
    return [
        {"type": "section", "text": _mrkdwn(":art: *Generating image with DALL·E*")},
        {"type": "section", "text": _mrkdwn(f"> {prompt}")},
        {"type": "context", "elements": [_mrkdwn(":hourglass_flowing_sand: _This may take a few moments..._")]},
    ]


def link_button_blocks(text: str, button_text: str, url: str) -> List[Dict[str, Any]]:
    return [
        {"type": "section", "text": _mrkdwn(text)},
        {
            "type": "actions",
            "elements": [
                {"type": "button", "text": {"type": "plain_text", "text": button_text}, "url": url}
            ],
        },
    ]
