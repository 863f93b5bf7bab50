"""Image generation with the OpenAI images API."""
import base64
import logging
from typing import Any, Dict, Optional

from langsmith import traceable
from openai import AsyncOpenAI

from config import OPENAI_API_KEY, IMAGE_MODEL, IMAGE_SIZE

logger = logging.getLogger(__name__)

# Slack rejects very large uploads
LARGE_IMAGE_BYTES = 5 * 1024 * 1024


def _trace_prompt(inputs: Dict[str, Any]) -> Dict[str, Any]:
    """Image prompts are not screened, so traces only get their length."""
    return {"prompt_length": len(inputs.get("prompt") or "")}


class ImageGenerationError(Exception):
    """Raised when an image cannot be produced for a prompt."""


class ImageClient:
    """Generates a single PNG for a text prompt."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = IMAGE_MODEL,
        size: str = IMAGE_SIZE,
        client: Optional[AsyncOpenAI] = None
    ):
        self.api_key = api_key or OPENAI_API_KEY
        if not self.api_key and client is None:
            raise ValueError("OPENAI_API_KEY must be provided or set in environment")

        self.model = model
        self.size = size
        self.client = client or AsyncOpenAI(api_key=self.api_key)
        logger.info(f"ImageClient initialized with model {self.model}")

    @traceable(name="generate_image", process_inputs=_trace_prompt, tags=["dalle", "image-generation"], metadata={"model": IMAGE_MODEL, "size": IMAGE_SIZE})
    async def generate(self, prompt: str) -> bytes:
        """
        Generate an image.

        Args:
            prompt: Text description of the image

        Returns:
            Raw PNG bytes

        Raises:
            ImageGenerationError: on an empty prompt, an API failure or an unusable response
        """
        if not prompt or not prompt.strip():
            raise ImageGenerationError("Empty prompt provided for image generation")

        logger.info(f"Generating image: model={self.model}, size={self.size}, prompt_length={len(prompt)}")
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,
            )
        except Exception as e:
            raise ImageGenerationError(f"Image generation request failed: {e}") from e

        if not response or not response.data or not response.data[0].b64_json:
            raise ImageGenerationError("Received invalid response from image generation API")

        image = base64.b64decode(response.data[0].b64_json)
        size_kb = len(image) / 1024
        logger.info(f"Image generated successfully, size: {size_kb:.2f}KB")
        if len(image) > LARGE_IMAGE_BYTES:
            logger.warning(f"Generated image is very large ({size_kb:.2f}KB), may exceed Slack limits")
        return image
