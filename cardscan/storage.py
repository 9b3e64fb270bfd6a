"""Persist the last scanned card and the remote-service credential."""
from __future__ import annotations

import json
import pathlib
from typing import Optional

from pydantic import ValidationError

from .models import ScanResult, StoredCardData
from .utils import ensure_directory, get_logger

LOGGER = get_logger(__name__)

CARD_FILENAME = "scanned_card.json"
CREDENTIAL_FILENAME = "api_key"

# Read/write failures that only mean "no saved data".
STORAGE_ERRORS = (OSError, ValueError, ValidationError)


class CardStore:
    """Durable two-key store backed by files in ``state_dir``.

    Every operation is best effort: failures are logged and swallowed, since
    a lost cache only means the player scans again or uses demo values.
    """

    def __init__(
        self,
        state_dir: str | pathlib.Path,
        card_filename: str = CARD_FILENAME,
        credential_filename: str = CREDENTIAL_FILENAME,
    ) -> None:
        self.state_dir = pathlib.Path(state_dir).expanduser()
        self.card_path = self.state_dir / card_filename
        self.credential_path = self.state_dir / credential_filename

    def save(self, result: ScanResult) -> None:
        payload = StoredCardData.from_result(result).model_dump()
        try:
            ensure_directory(self.state_dir)
            with self.card_path.open("w", encoding="utf8") as handle:
                json.dump(payload, handle, ensure_ascii=False)
                handle.write("\n")
            LOGGER.info("Card data saved to %s", self.card_path)
        except STORAGE_ERRORS as exc:
            LOGGER.error("Failed to save card data: %s", exc)

    def load(self) -> Optional[ScanResult]:
        try:
            if not self.card_path.exists():
                return None
            with self.card_path.open("r", encoding="utf8") as handle:
                stored = StoredCardData.model_validate(json.load(handle))
        except STORAGE_ERRORS as exc:
            LOGGER.error("Failed to load card data: %s", exc)
            return None
        LOGGER.debug("Loaded card data saved at %s", stored.timestamp)
        return stored.to_result()

    def exists(self) -> bool:
        try:
            return self.card_path.is_file()
        except OSError as exc:
            LOGGER.error("Failed to check for saved card: %s", exc)
            return False

    def clear(self) -> None:
        try:
            self.card_path.unlink(missing_ok=True)
            LOGGER.info("Card data cleared")
        except OSError as exc:
            LOGGER.error("Failed to clear card data: %s", exc)

    def save_credential(self, key: str) -> None:
        try:
            ensure_directory(self.state_dir)
            self.credential_path.write_text(key, encoding="utf8")
        except OSError as exc:
            LOGGER.error("Failed to save API key: %s", exc)

    def load_credential(self) -> Optional[str]:
        try:
            if not self.credential_path.exists():
                return None
            key = self.credential_path.read_text(encoding="utf8").strip()
        except OSError as exc:
            LOGGER.error("Failed to load API key: %s", exc)
            return None
        return key or None
