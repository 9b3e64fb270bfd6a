import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from .storage import CARD_FILENAME, CREDENTIAL_FILENAME

API_KEY_ENV = "OPENROUTER_API_KEY"


@dataclass
class ScannerConfig:
    """Configuration values for :class:`~cardscan.scanner.CardScanner`."""

    api_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash-image"
    request_timeout: float = 120.0
    headers: Dict[str, str] = field(
        default_factory=lambda: {
            "HTTP-Referer": "https://boboiboy-card-game.local",
            "X-Title": "BoBoiBoy Card Game",
        }
    )

    ocr_timeout: float = 10.0
    ocr_max_width: int = 800
    transmit_max_width: int = 1024
    icon_size: int = 200
    crop_size: int = 100

    state_dir: Path = field(default_factory=lambda: Path("~/.cardscan").expanduser())
    card_filename: str = CARD_FILENAME
    credential_filename: str = CREDENTIAL_FILENAME

    # When the AI returns stats but no portrait, also derive one by cropping
    # the photo instead of leaving the character image empty.
    crop_when_ai_image_missing: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "ScannerConfig":
        env: Dict[str, object] = {}
        if os.environ.get("CARDSCAN_STATE_DIR"):
            env["state_dir"] = Path(os.environ["CARDSCAN_STATE_DIR"]).expanduser()
        if os.environ.get("CARDSCAN_MODEL"):
            env["model"] = os.environ["CARDSCAN_MODEL"]
        if os.environ.get("CARDSCAN_API_URL"):
            env["api_url"] = os.environ["CARDSCAN_API_URL"]
        if os.environ.get("CARDSCAN_OCR_TIMEOUT"):
            env["ocr_timeout"] = float(os.environ["CARDSCAN_OCR_TIMEOUT"])
        env.update(overrides)
        return cls(**env)
