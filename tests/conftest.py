import base64
import io
import threading
from typing import List, Optional

import pytest
from PIL import Image


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in ("OPENROUTER_API_KEY", "CARDSCAN_STATE_DIR", "CARDSCAN_MODEL", "CARDSCAN_API_URL", "CARDSCAN_OCR_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


def make_data_url(size=(400, 600), color=(200, 40, 40), fmt="PNG") -> str:
    img = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    mime = "image/png" if fmt == "PNG" else "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(buffer.getvalue()).decode('ascii')}"


def open_data_url(data_url: str) -> Image.Image:
    payload = data_url.split(",", 1)[1]
    img = Image.open(io.BytesIO(base64.b64decode(payload)))
    img.load()
    return img


class FakeEngine:
    """Stands in for TesseractEngine; records calls and returns canned text."""

    def __init__(self, text: str = "", error: Optional[Exception] = None, block: bool = False):
        self.text = text
        self.error = error
        self.block = block
        self.release = threading.Event()
        self.opened = 0
        self.closed = 0
        self.seen: List[str] = []
        self.timeouts: List[Optional[float]] = []

    def open(self) -> None:
        self.opened += 1

    def recognize(self, data_url: str, timeout: Optional[float] = None) -> str:
        self.seen.append(data_url)
        self.timeouts.append(timeout)
        if self.block:
            self.release.wait(timeout=0.5)
        if self.error is not None:
            raise self.error
        return self.text

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def card_photo() -> str:
    return make_data_url()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
