"""Slack Web API operations used by the bot."""
import logging
from typing import Any, Dict, List, Optional

from slack_sdk.web.async_client import AsyncWebClient

from models.job import UploadResult

logger = logging.getLogger(__name__)


class SlackTransport:
    """
    Narrow wrapper over ``AsyncWebClient``.

    Upload responses come back in several shapes depending on the API
    method and SDK version; they are normalized here into ``UploadResult``
    so callers never probe nested fields.
    """

    def __init__(self, client: AsyncWebClient):
        self.client = client

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
        thread_ts: Optional[str] = None
    ) -> Optional[str]:
        """Post a message and return its ts."""
        response = await self.client.chat_postMessage(
            channel=channel,
            text=text,
            blocks=blocks,
            thread_ts=thread_ts,
        )
        return response.get("ts")

    async def update_message(
        self,
        channel: str,
        ts: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        await self.client.chat_update(channel=channel, ts=ts, text=text, blocks=blocks)

    async def post_ephemeral(self, channel: str, user: str, text: str) -> None:
        await self.client.chat_postEphemeral(channel=channel, user=user, text=text)

    async def delete_message(self, channel: str, ts: str) -> None:
        await self.client.chat_delete(channel=channel, ts=ts)

    async def open_modal(self, trigger_id: str, view: Dict[str, Any]) -> None:
        await self.client.views_open(trigger_id=trigger_id, view=view)

    async def user_display_name(self, user_id: str) -> str:
        response = await self.client.users_info(user=user_id)
        user = response.get("user") or {}
        profile = user.get("profile") or {}
        return profile.get("display_name") or user.get("real_name") or "Dave"

    async def upload_file(
        self,
        channel: str,
        content: bytes,
        filename: str,
        title: str,
        initial_comment: str,
        alt_text: str
    ) -> UploadResult:
        """Upload through ``files.getUploadURLExternal`` (files_upload_v2)."""
        response = await self.client.files_upload_v2(
            channel=channel,
            file=content,
            filename=filename,
            title=title,
            initial_comment=initial_comment,
            alt_txt=alt_text,
        )
        return UploadResult(file_id=self._extract_file_id(response.data), method="files_upload_v2")

    async def upload_file_legacy(
        self,
        channel: str,
        content: bytes,
        filename: str,
        title: str,
        initial_comment: str
    ) -> UploadResult:
        """Upload through the deprecated ``files.upload`` method."""
        response = await self.client.files_upload(
            channels=channel,
            file=content,
            filename=filename,
            filetype=filename.rsplit(".", 1)[-1],
            title=title,
            initial_comment=initial_comment,
        )
        return UploadResult(file_id=self._extract_file_id(response.data), method="files_upload")

    @staticmethod
    def _extract_file_id(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None

        file_info = data.get("file")
        if isinstance(file_info, dict):
            if file_info.get("id"):
                return file_info["id"]
            nested = file_info.get("file")
            if isinstance(nested, dict) and nested.get("id"):
                return nested["id"]

        files = data.get("files")
        if isinstance(files, list) and files:
            first = files[0]
            if isinstance(first, dict):
                if first.get("id"):
                    return first["id"]
                inner = first.get("files")
                if isinstance(inner, list) and inner and isinstance(inner[0], dict):
                    return inner[0].get("id")
        return None
