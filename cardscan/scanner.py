"""Coordinate remote and local extraction into a single ScanResult.

The fallback chain is: remote vision service (when a credential exists),
then local OCR for any stat the service did not supply, then a center crop
of the photo for the portrait. Every failure degrades to the next tier and
ultimately to randomized demo values, so :meth:`CardScanner.scan` never
raises.
"""
from __future__ import annotations

import asyncio
import os
import random
from typing import Callable, Dict, List, Optional

from .client import RemoteVisionExtractor
from .config import API_KEY_ENV, ScannerConfig
from .image_utils import center_crop
from .models import AIExtraction, ExtractedStats, ScanResult
from .ocr import LocalOCRExtractor, OCREngineError, OCRTimeoutError
from .stats_parser import parse_stats
from .storage import CardStore
from .utils import get_logger

LOGGER = get_logger(__name__)

# (lowest value, number of possible values)
DEMO_ATTACK = (30, 40)
DEMO_HEALTH = (80, 40)


class ProgressReporter:
    """Forward stage updates to an optional sink and remember their order."""

    def __init__(self, sink: Optional[Callable[[str], None]] = None) -> None:
        self.sink = sink
        self.history: List[str] = []

    def __call__(self, status: str) -> None:
        self.history.append(status)
        LOGGER.info(status)
        if self.sink is None:
            return
        try:
            self.sink(status)
        except Exception as exc:  # a broken progress display must not abort a scan
            LOGGER.warning("Progress sink raised: %s", exc)


class CardScanner:
    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        *,
        store: Optional[CardStore] = None,
        ocr: Optional[LocalOCRExtractor] = None,
        remote: Optional[RemoteVisionExtractor] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or ScannerConfig.from_env()
        self.store = store or CardStore(
            self.config.state_dir,
            card_filename=self.config.card_filename,
            credential_filename=self.config.credential_filename,
        )
        self.ocr = ocr or LocalOCRExtractor(
            max_width=self.config.ocr_max_width,
            timeout=self.config.ocr_timeout,
        )
        self.remote = remote or RemoteVisionExtractor(self.get_api_key, self.config)
        self._rng = rng or random.Random()
        self._api_key: Optional[str] = None
        # One scan at a time: the OCR engine handle is shared and not thread safe.
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "CardScanner":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.ocr.close()

    # ------------------------------------------------------------------
    # Credential

    def set_api_key(self, key: str) -> None:
        self._api_key = key

    def save_api_key(self, key: str) -> None:
        self._api_key = key
        self.store.save_credential(key)

    def get_api_key(self) -> Optional[str]:
        if not self._api_key:
            self._api_key = self.store.load_credential() or os.environ.get(API_KEY_ENV) or None
        return self._api_key

    def has_api_key(self) -> bool:
        return self.get_api_key() is not None

    # ------------------------------------------------------------------
    # Saved card

    def has_saved_card(self) -> bool:
        return self.store.exists()

    def load_saved_card(self) -> Optional[ScanResult]:
        return self.store.load()

    def clear_saved_card(self) -> None:
        self.store.clear()

    # ------------------------------------------------------------------
    # Scanning

    def demo_values(self) -> ScanResult:
        """Randomized stats for quick play without a scan."""
        return ScanResult(
            attack=DEMO_ATTACK[0] + self._rng.randrange(DEMO_ATTACK[1]),
            health=DEMO_HEALTH[0] + self._rng.randrange(DEMO_HEALTH[1]),
            character_image=None,
        )

    async def scan(
        self,
        image_data_url: Optional[str],
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> ScanResult:
        progress = on_progress if isinstance(on_progress, ProgressReporter) else ProgressReporter(on_progress)
        if not image_data_url:
            return self.demo_values()

        async with self._lock:
            try:
                result = await self._scan(image_data_url, progress)
            except Exception as exc:  # every failure ends in demo values
                LOGGER.error("Card scanning failed: %s", exc, exc_info=True)
                progress("Scan failed, using default values...")
                return self.demo_values()

        progress("Scan complete!")
        return result

    async def _scan(self, image_data_url: str, progress: ProgressReporter) -> ScanResult:
        if self.has_api_key():
            progress("Analyzing card with AI...")
            extraction = await self.remote.extract(image_data_url, progress)
            if extraction.usable:
                return await self._assemble_ai_result(image_data_url, extraction, progress)

        progress("Using OCR fallback...")
        stats = await self._ocr_stats(image_data_url, progress)
        portrait = await asyncio.to_thread(center_crop, image_data_url, self.config.crop_size)
        result = ScanResult(attack=stats["attack"], health=stats["health"], character_image=portrait)
        self.store.save(result)
        return result

    async def _assemble_ai_result(
        self, image_data_url: str, extraction: AIExtraction, progress: ProgressReporter
    ) -> ScanResult:
        stats = extraction.stats or ExtractedStats()
        # Zero counts as missing, same as an absent field.
        attack = stats.attack or None
        health = stats.health or None

        if attack is None or health is None:
            progress("Extracting stats with OCR...")
            ocr_stats = await self._ocr_stats(image_data_url, progress)
            attack = attack or ocr_stats["attack"]
            health = health or ocr_stats["health"]

        portrait = extraction.image
        if portrait is None and self.config.crop_when_ai_image_missing:
            portrait = await asyncio.to_thread(center_crop, image_data_url, self.config.crop_size)

        result = ScanResult(attack=attack, health=health, character_image=portrait, name=stats.name)
        self.store.save(result)
        return result

    async def _ocr_stats(self, image_data_url: str, progress: ProgressReporter) -> Dict[str, int]:
        try:
            if not self.ocr.is_open:
                progress("Initializing OCR engine...")
            text = await self.ocr.recognize_text(image_data_url, self.config.ocr_timeout)
        except (OCRTimeoutError, OCREngineError) as exc:
            LOGGER.error("OCR extraction failed: %s", exc)
            text = ""
        return parse_stats(text)
