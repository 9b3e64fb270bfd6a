import asyncio
from typing import Any, Callable, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from .config import ScannerConfig
from .image_utils import normalize_to_icon, resize_image
from .models import AIExtraction
from .post_process import find_image, find_stats
from .prompts import CHARACTER_EXTRACTION_PROMPT
from .utils import get_logger

LOGGER = get_logger(__name__)

ProgressSink = Callable[[str], None]
ClientFactory = Callable[[str], Any]

# Failures that mean "the remote service gave us nothing usable".
REMOTE_ERRORS = (openai.APIError, ValueError, OverflowError, TypeError, AttributeError, KeyError)


def _ignore_progress(_: str) -> None:
    return None


def build_messages(image_data_url: str) -> List[Dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": CHARACTER_EXTRACTION_PROMPT},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ],
        }
    ]


def response_to_dict(response: Any) -> Dict[str, Any]:
    """Return the reply as plain data, keeping provider-specific extra fields."""
    if isinstance(response, dict):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump()
    raise TypeError(f"Unexpected response type from remote API: {type(response).__name__}")


class RemoteVisionExtractor:
    """Ask a multimodal chat model for the card stats and a character portrait."""

    def __init__(
        self,
        credential: Callable[[], Optional[str]],
        config: Optional[ScannerConfig] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.credential = credential
        self.config = config or ScannerConfig()
        self.client_factory = client_factory or self._default_client

    def _default_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.api_url,
            default_headers=self.config.headers,
            timeout=self.config.request_timeout,
            max_retries=0,
        )

    async def _request(self, api_key: str, image_data_url: str) -> Dict[str, Any]:
        client = self.client_factory(api_key)
        response = await client.chat.completions.create(
            model=self.config.model,
            messages=build_messages(image_data_url),
        )
        return response_to_dict(response)

    async def extract(self, image_data_url: str, on_progress: Optional[ProgressSink] = None) -> AIExtraction:
        progress = on_progress or _ignore_progress
        api_key = self.credential()
        if not api_key:
            LOGGER.warning("No API key set; skipping AI extraction")
            return AIExtraction()

        try:
            progress("Sending to AI for analysis...")
            payload = await asyncio.to_thread(resize_image, image_data_url, self.config.transmit_max_width)
            reply = await self._request(api_key, payload)
            stats = find_stats(reply)
            image = find_image(reply)
        except openai.APIStatusError as exc:
            LOGGER.error("Remote API error %s: %s", exc.status_code, exc.message)
            progress("AI extraction failed...")
            return AIExtraction()
        except REMOTE_ERRORS as exc:
            LOGGER.error("AI extraction failed: %s", exc)
            progress("AI extraction failed...")
            return AIExtraction()

        if stats is not None:
            LOGGER.info("AI extracted stats: %s", stats.model_dump())
            progress("AI extracted stats successfully!")

        if image:
            progress("Resizing character icon...")
            image = await asyncio.to_thread(normalize_to_icon, image, self.config.icon_size)
            progress("AI character generated successfully!")

        return AIExtraction(stats=stats, image=image)
