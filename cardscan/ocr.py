"""Local text recognition for card photos.

:class:`TesseractEngine` is an explicit handle around ``pytesseract``; it is
opened once and reused for every scan until closed. :class:`LocalOCRExtractor`
owns an engine, opens it lazily, shrinks photos before recognition and puts a
hard deadline on each call. The deadline is handed to tesseract, which kills
its subprocess when it runs over; the awaiting side also stops waiting at the
deadline and abandons the worker thread. Either way :class:`OCRTimeoutError`
propagates so the caller can fall back.
"""
from __future__ import annotations

import asyncio
import io
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol

import pytesseract
from PIL import Image

from .image_utils import DECODE_ERRORS, decode_data_url, resize_image
from .utils import ScanError, get_logger

LOGGER = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WIDTH = 800


class OCREngineError(ScanError):
    """Raised when the recognition engine is unavailable or fails."""


class OCRTimeoutError(ScanError):
    """Raised when recognition does not finish before the deadline."""


class RecognitionEngine(Protocol):
    def open(self) -> None: ...

    def recognize(self, data_url: str, timeout: Optional[float] = None) -> str: ...

    def close(self) -> None: ...


class TesseractEngine:
    """Synchronous wrapper around the tesseract binary."""

    def __init__(self, lang: str = "eng", config: str = "") -> None:
        self.lang = lang
        self.config = config
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def open(self) -> None:
        if self._ready:
            return
        try:
            version = pytesseract.get_tesseract_version()
        except (pytesseract.TesseractNotFoundError, OSError) as exc:
            raise OCREngineError(f"tesseract is not available: {exc}") from exc
        LOGGER.info("Tesseract %s ready (lang=%s)", version, self.lang)
        self._ready = True

    def recognize(self, data_url: str, timeout: Optional[float] = None) -> str:
        """Recognize text; tesseract itself is killed once ``timeout`` seconds pass."""
        if not self._ready:
            raise OCREngineError("engine used before open()")
        try:
            with Image.open(io.BytesIO(decode_data_url(data_url))) as img:
                return pytesseract.image_to_string(
                    img, lang=self.lang, config=self.config, timeout=timeout or 0
                )
        except pytesseract.TesseractError as exc:
            raise OCREngineError(f"recognition failed: {exc}") from exc
        except RuntimeError as exc:
            # pytesseract signals a killed subprocess with a bare RuntimeError
            raise OCRTimeoutError(f"tesseract killed after {timeout}s") from exc
        except DECODE_ERRORS as exc:
            raise OCREngineError(f"could not decode image: {exc}") from exc

    def close(self) -> None:
        self._ready = False

    def __enter__(self) -> "TesseractEngine":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class LocalOCRExtractor:
    """Deadline-bound OCR over an owned engine and a private worker thread.

    The worker pool belongs to the extractor, not to the event loop, so a
    recognition abandoned at the deadline never holds up ``asyncio.run``
    shutting down; :meth:`close` releases the pool without waiting for it.
    """

    def __init__(
        self,
        engine: Optional[RecognitionEngine] = None,
        *,
        max_width: int = DEFAULT_MAX_WIDTH,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.engine = engine if engine is not None else TesseractEngine()
        self.max_width = max_width
        self.timeout = timeout
        self._opened = False
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_open(self) -> bool:
        return self._opened

    def _run(self, func, *args) -> asyncio.Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cardscan-ocr")
        return asyncio.get_running_loop().run_in_executor(self._executor, func, *args)

    async def open(self) -> None:
        """Initialize the engine on first use; later calls are no-ops."""
        if self._opened:
            return
        try:
            await self._run(self.engine.open)
        except OCREngineError:
            raise
        except Exception as exc:
            raise OCREngineError(f"engine failed to start: {exc}") from exc
        self._opened = True

    async def recognize_text(self, data_url: str, timeout: Optional[float] = None) -> str:
        await self.open()
        resized = await asyncio.to_thread(resize_image, data_url, self.max_width)
        deadline = self.timeout if timeout is None else timeout

        try:
            text = await asyncio.wait_for(self._run(self.engine.recognize, resized, deadline), deadline)
        except asyncio.TimeoutError as exc:
            raise OCRTimeoutError(f"OCR timeout after {deadline:g}s") from exc
        except (OCREngineError, OCRTimeoutError):
            raise
        except Exception as exc:
            raise OCREngineError(f"recognition failed: {exc}") from exc

        LOGGER.debug("OCR text: %r", text)
        return text or ""

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if self._opened:
            self.engine.close()
            self._opened = False
