import asyncio
import random
from types import SimpleNamespace

import pytest

from cardscan.client import RemoteVisionExtractor
from cardscan.config import ScannerConfig
from cardscan.models import AIExtraction, ExtractedStats
from cardscan.ocr import LocalOCRExtractor
from cardscan.scanner import CardScanner, ProgressReporter
from conftest import FakeEngine, make_data_url, open_data_url

AI_IMAGE = make_data_url((200, 200), (0, 128, 0))


class FakeRemote:
    def __init__(self, extraction=None, error=None):
        self.extraction = extraction or AIExtraction()
        self.error = error
        self.calls = 0

    async def extract(self, image_data_url, on_progress=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.extraction


def _scanner(tmp_path, engine=None, remote=None, api_key="sk-or-test", **config):
    cfg = ScannerConfig(state_dir=tmp_path, **config)
    scanner = CardScanner(
        cfg,
        ocr=LocalOCRExtractor(engine or FakeEngine(), timeout=cfg.ocr_timeout),
        remote=remote or FakeRemote(),
        rng=random.Random(7),
    )
    if api_key:
        scanner.set_api_key(api_key)
    return scanner


def _scan(scanner, image):
    progress = ProgressReporter()
    result = asyncio.run(scanner.scan(image, progress))
    return result, progress.history


def test_no_image_returns_demo_values(tmp_path):
    scanner = _scanner(tmp_path)

    for _ in range(50):
        result = asyncio.run(scanner.scan(None))
        assert 30 <= result.attack <= 70
        assert 80 <= result.health <= 120
        assert result.character_image is None
    assert not scanner.has_saved_card()


def test_without_credential_uses_ocr_and_center_crop(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 55 Health: 120")
    remote = FakeRemote()
    scanner = _scanner(tmp_path, engine=engine, remote=remote, api_key=None)

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (55, 120)
    assert open_data_url(result.character_image).size == (100, 100)
    assert remote.calls == 0
    assert stages == ["Using OCR fallback...", "Initializing OCR engine...", "Scan complete!"]
    assert scanner.load_saved_card() == result


def test_ai_values_take_precedence_field_by_field(tmp_path, card_photo):
    engine = FakeEngine(text="HP 80")
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=65, name="Fang"), image=AI_IMAGE))
    scanner = _scanner(tmp_path, engine=engine, remote=remote)

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (65, 80)
    assert result.name == "Fang"
    assert result.character_image == AI_IMAGE
    assert stages.index("Analyzing card with AI...") < stages.index("Extracting stats with OCR...")


def test_complete_ai_result_skips_ocr(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 1 Health: 1")
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=70, health=140), image=AI_IMAGE))
    scanner = _scanner(tmp_path, engine=engine, remote=remote)

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (70, 140)
    assert engine.opened == 0
    assert "Extracting stats with OCR..." not in stages
    assert scanner.has_saved_card()


def test_zero_from_ai_counts_as_missing(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 33 Health: 99")
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=0, health=150)))
    scanner = _scanner(tmp_path, engine=engine, remote=remote)

    result, _ = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (33, 150)


def test_ai_stats_without_image_leave_portrait_empty_by_default(tmp_path, card_photo):
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=50, health=100)))
    scanner = _scanner(tmp_path, remote=remote)

    result, _ = _scan(scanner, card_photo)

    assert result.character_image is None


def test_ai_stats_without_image_can_fall_back_to_crop(tmp_path, card_photo):
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=50, health=100)))
    scanner = _scanner(tmp_path, remote=remote, crop_when_ai_image_missing=True)

    result, _ = _scan(scanner, card_photo)

    assert open_data_url(result.character_image).size == (100, 100)


def test_image_only_ai_result_fills_stats_from_ocr(tmp_path, card_photo):
    engine = FakeEngine(text="12 345")
    remote = FakeRemote(AIExtraction(image=AI_IMAGE))
    scanner = _scanner(tmp_path, engine=engine, remote=remote)

    result, _ = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (12, 345)
    assert result.character_image == AI_IMAGE


def test_unusable_ai_result_falls_back_to_ocr(tmp_path, card_photo):
    engine = FakeEngine(text="only 77 here")
    remote = FakeRemote(AIExtraction())
    scanner = _scanner(tmp_path, engine=engine, remote=remote)

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (77, 100)
    assert result.character_image is not None
    assert remote.calls == 1
    assert stages[:2] == ["Analyzing card with AI...", "Using OCR fallback..."]


def test_ai_values_are_clamped(tmp_path, card_photo):
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=9999, health=1)))
    scanner = _scanner(tmp_path, remote=remote)

    result, _ = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (200, 20)


def test_ocr_timeout_yields_default_stats(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 99", block=True)
    scanner = _scanner(tmp_path, engine=engine, api_key=None, ocr_timeout=0.05)

    try:
        result, stages = _scan(scanner, card_photo)
    finally:
        engine.release.set()

    assert (result.attack, result.health) == (45, 100)
    assert stages[-1] == "Scan complete!"


def test_unexpected_failure_returns_demo_values(tmp_path, card_photo):
    scanner = _scanner(tmp_path, remote=FakeRemote(error=RuntimeError("kaboom")))

    result, stages = _scan(scanner, card_photo)

    assert 30 <= result.attack <= 70
    assert 80 <= result.health <= 120
    assert result.character_image is None
    assert stages[-1] == "Scan failed, using default values..."
    assert not scanner.has_saved_card()


def test_broken_progress_sink_does_not_abort_scan(tmp_path, card_photo):
    def sink(status):
        raise ValueError("display gone")

    scanner = _scanner(tmp_path, engine=FakeEngine(text="Attack: 60"), api_key=None)

    result = asyncio.run(scanner.scan(card_photo, sink))

    assert result.attack == 60


def test_api_key_persists_across_scanners(tmp_path):
    first = _scanner(tmp_path, api_key=None)
    assert not first.has_api_key()

    first.save_api_key("sk-or-saved")

    second = _scanner(tmp_path, api_key=None)
    assert second.get_api_key() == "sk-or-saved"


def test_api_key_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-env")

    assert _scanner(tmp_path, api_key=None).get_api_key() == "sk-or-env"


def test_saved_card_helpers(tmp_path, card_photo):
    scanner = _scanner(tmp_path, engine=FakeEngine(text="Attack: 40 Health: 90"), api_key=None)
    result, _ = _scan(scanner, card_photo)

    assert scanner.has_saved_card()
    assert scanner.load_saved_card() == result

    scanner.clear_saved_card()
    assert scanner.load_saved_card() is None


def test_context_manager_closes_engine(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 40")
    scanner = _scanner(tmp_path, engine=engine, api_key=None)

    async def run():
        async with scanner:
            await scanner.scan(card_photo)

    asyncio.run(run())

    assert engine.opened == 1
    assert engine.closed == 1


def test_concurrent_scans_are_serialized(tmp_path, card_photo):
    engine = FakeEngine(text="Attack: 40 Health: 90")
    scanner = _scanner(tmp_path, engine=engine, api_key=None)

    async def run():
        return await asyncio.gather(scanner.scan(card_photo), scanner.scan(card_photo))

    results = asyncio.run(run())

    assert [(r.attack, r.health) for r in results] == [(40, 90), (40, 90)]
    assert engine.opened == 1


@pytest.mark.parametrize("attack, health", [(-5, -5), (10_000, 10_000), (10, 20), (200, 500)])
def test_results_always_within_bounds(tmp_path, card_photo, attack, health):
    remote = FakeRemote(AIExtraction(stats=ExtractedStats(attack=attack, health=health)))
    scanner = _scanner(tmp_path, remote=remote)

    result, _ = _scan(scanner, card_photo)

    assert 10 <= result.attack <= 200
    assert 20 <= result.health <= 500


def _scanner_with_reply(tmp_path, content, engine):
    """Scanner whose remote extractor talks to a canned chat-completions reply."""

    async def create(**_):
        return {"choices": [{"message": {"content": content}}]}

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    cfg = ScannerConfig(state_dir=tmp_path)
    remote = RemoteVisionExtractor(lambda: "sk-or-test", cfg, client_factory=lambda _key: client)
    scanner = CardScanner(cfg, ocr=LocalOCRExtractor(engine), remote=remote, rng=random.Random(7))
    scanner.set_api_key("sk-or-test")
    return scanner


def test_raw_reply_with_attack_only_is_completed_by_ocr(tmp_path, card_photo):
    scanner = _scanner_with_reply(tmp_path, 'Here you go: {"attack": 65, "name": "Fang"}', FakeEngine(text="HP 80"))

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (65, 80)
    assert result.name == "Fang"
    assert result.character_image is None
    assert "AI extracted stats successfully!" in stages
    assert scanner.load_saved_card() == result


@pytest.mark.parametrize("health", ["NaN", "1e999", "Infinity"])
def test_non_finite_reply_number_falls_back_to_ocr(tmp_path, card_photo, health):
    engine = FakeEngine(text="Attack: 33 Health: 99")
    scanner = _scanner_with_reply(tmp_path, f'{{"health": {health}, "attack": 60}}', engine)

    result, stages = _scan(scanner, card_photo)

    assert (result.attack, result.health) == (60, 99)
    assert "Scan failed, using default values..." not in stages
    assert scanner.has_saved_card()
