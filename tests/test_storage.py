import json

from cardscan.models import ScanResult
from cardscan.storage import CardStore


def test_save_then_load_round_trips(tmp_path):
    store = CardStore(tmp_path / "state")
    result = ScanResult(attack=55, health=120, character_image="data:image/png;base64,QUJD", name="Gopal")

    store.save(result)

    assert store.exists()
    assert store.load() == result
    stored = json.loads(store.card_path.read_text(encoding="utf8"))
    assert stored["timestamp"] > 0


def test_load_without_saved_card(tmp_path):
    store = CardStore(tmp_path)

    assert store.load() is None
    assert not store.exists()


def test_corrupt_card_file_reads_as_missing(tmp_path):
    store = CardStore(tmp_path)
    store.card_path.write_text("{not json", encoding="utf8")

    assert store.load() is None


def test_invalid_card_payload_reads_as_missing(tmp_path):
    store = CardStore(tmp_path)
    store.card_path.write_text(json.dumps({"attack": "many"}), encoding="utf8")

    assert store.load() is None


def test_clear_removes_card(tmp_path):
    store = CardStore(tmp_path)
    store.save(ScanResult(attack=50, health=100))

    store.clear()
    store.clear()

    assert not store.exists()


def test_save_failure_is_swallowed(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf8")
    store = CardStore(blocker / "nested")

    store.save(ScanResult(attack=50, health=100))
    store.save_credential("sk-or-1")

    assert store.load() is None
    assert store.load_credential() is None


def test_credential_round_trip(tmp_path):
    store = CardStore(tmp_path)
    assert store.load_credential() is None

    store.save_credential("sk-or-abc")
    assert store.load_credential() == "sk-or-abc"

    store.save_credential("sk-or-new")
    assert store.load_credential() == "sk-or-new"


def test_scan_result_is_clamped_on_construction():
    result = ScanResult(attack=0, health=9999)

    assert (result.attack, result.health) == (10, 500)
