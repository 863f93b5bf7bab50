"""Delivery of generated images to a Slack channel with tiered fallbacks."""
import logging
from typing import Awaitable, Callable, Optional

from services.slack_transport import SlackTransport

logger = logging.getLogger(__name__)

IMAGE_FILENAME = "dalle-image.png"

Notify = Callable[[str], Awaitable[None]]


class ImageDelivery:
    """
    Posts a generated image, falling back one tier at a time.

    1. files_upload_v2
    2. legacy files.upload
    3. a text notice in the channel that generation worked but upload did not
    4. an ephemeral warning to the requesting user

    Each tier is attempted at most once.
    """

    def __init__(self, transport: SlackTransport):
        self.transport = transport

    async def deliver(
        self,
        channel_id: str,
        image: bytes,
        prompt: str,
        notify_user: Optional[Notify] = None
    ) -> str:
        """
        Deliver ``image`` to ``channel_id``.

        Args:
            channel_id: Channel the command was issued in
            image: PNG bytes
            prompt: Prompt the image was generated from
            notify_user: Ephemeral message to the requesting user

        Returns:
            Name of the tier that succeeded ("upload_v2", "upload_legacy",
            "text_notice", "ephemeral_notice" or "none")
        """
        comment = f"Here's the DALL·E image for: \"{prompt}\""

        try:
            result = await self.transport.upload_file(
                channel=channel_id,
                content=image,
                filename=IMAGE_FILENAME,
                title=prompt,
                initial_comment=comment,
                alt_text=f"DALL-E generated image for: {prompt}",
            )
            if result.ok:
                logger.info(f"Image uploaded with files_upload_v2, file id: {result.file_id}")
            else:
                # Upload may still have landed; re-uploading would risk duplicates
                logger.warning("files_upload_v2 returned no file id, not re-uploading")
                await self._notify(
                    notify_user,
                    f"I generated the image for: \"{prompt}\", but Slack returned an unexpected upload "
                    "response. If you don't see it in the channel, please try the command again."
                )
            return "upload_v2"
        except Exception as e:
            logger.error(f"files_upload_v2 failed: {e}")

        try:
            result = await self.transport.upload_file_legacy(
                channel=channel_id,
                content=image,
                filename=IMAGE_FILENAME,
                title=prompt,
                initial_comment=comment,
            )
            logger.info(f"Legacy image upload successful, file id: {result.file_id}")
            return "upload_legacy"
        except Exception as e:
            logger.error(f"Both upload methods failed: {e}")

        try:
            await self.transport.post_message(
                channel=channel_id,
                text=(
                    f"Here's the DALL·E image for: \"{prompt}\" (I had trouble uploading the image "
                    "as a file, but the generation was successful)"
                ),
            )
            logger.info("Posted fallback message about the image")
            return "text_notice"
        except Exception as e:
            logger.error(f"All posting methods failed: {e}")

        if await self._notify(
            notify_user,
            f":warning: Generated image for \"{prompt}\" but failed to upload it. "
            "The generation succeeded, but delivery did not. Please try again later."
        ):
            return "ephemeral_notice"
        return "none"

    @staticmethod
    async def _notify(notify_user: Optional[Notify], text: str) -> bool:
        if notify_user is None:
            return False
        try:
            await notify_user(text)
            return True
        except Exception as e:
            logger.error(f"Failed to notify user about image delivery: {e}")
            return False
