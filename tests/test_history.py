import json

from constants import HISTORY_KEY, HISTORY_LIMIT
from history import Exchange, HistoryLedger, JsonFileStore, MemoryStore


class FrozenClock:
    def __init__(self, t: float = 1_700_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def test_ledger_is_bounded_and_evicts_oldest():
    ledger = HistoryLedger(MemoryStore())
    for i in range(HISTORY_LIMIT + 25):
        ledger.record(f"text {i}", "hi", f"t{i}")
        assert len(ledger) <= HISTORY_LIMIT

    entries = ledger.all()
    assert len(entries) == HISTORY_LIMIT
    assert entries[0].source_text == f"text {HISTORY_LIMIT + 24}"
    assert entries[-1].source_text == "text 25"


def test_ids_are_unique_and_increasing_within_same_millisecond():
    ledger = HistoryLedger(MemoryStore(), clock=FrozenClock())
    ids = [ledger.record("x", "fr", "y").id for _ in range(5)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 5


def test_ids_continue_above_rehydrated_entries():
    store = MemoryStore()
    clock = FrozenClock()
    first = HistoryLedger(store, clock=clock)
    for _ in range(3):
        first.record("a", "de", "b")
    top = first.all()[0].id

    clock.t -= 3600   # 時鐘倒退
    second = HistoryLedger(store, clock=clock)
    assert second.record("c", "de", "d").id > top


def test_every_mutation_is_persisted():
    store = MemoryStore()
    ledger = HistoryLedger(store)
    ledger.record("hello", "hi", "namaste")
    saved = json.loads(store.get(HISTORY_KEY))
    assert saved[0]["src"] == "hello"
    assert saved[0]["translated"] == "namaste"
    assert saved[0]["target"] == "hi"

    ledger.clear()
    assert json.loads(store.get(HISTORY_KEY)) == []


def test_round_trip_through_file_store(tmp_path):
    path = tmp_path / "store.json"
    ledger = HistoryLedger(JsonFileStore(str(path)))
    for i in range(7):
        ledger.record(f"src {i}", "ja", f"dst {i}")
    before = ledger.all()

    rehydrated = HistoryLedger(JsonFileStore(str(path)))
    assert rehydrated.all() == before


def test_invalid_stored_value_yields_empty_ledger():
    for raw in ["{not json", '{"a": 1}', '[{"id": "x"}]', "[1, 2]", ""]:
        ledger = HistoryLedger(MemoryStore({HISTORY_KEY: raw}))
        assert ledger.all() == []


def test_corrupt_store_file_yields_empty_ledger(tmp_path):
    path = tmp_path / "store.json"
    path.write_bytes(b"\x00\xff garbage")
    ledger = HistoryLedger(JsonFileStore(str(path)))
    assert ledger.all() == []

    # 之後仍可正常寫入
    ledger.record("ok", "es", "vale")
    assert HistoryLedger(JsonFileStore(str(path))).all()[0].translated_text == "vale"


def test_file_store_keeps_other_keys(tmp_path):
    store = JsonFileStore(str(tmp_path / "nested" / "store.json"))
    store.set("other", "keep me")
    HistoryLedger(store).record("a", "it", "b")
    assert store.get("other") == "keep me"
    assert store.get("missing") is None


def test_legacy_entries_load():
    legacy = [{"id": 1700000000000, "src": "hello", "target": "hi",
               "translated": "नमस्ते", "at": "2024-01-01T00:00:00.000Z"}]
    ledger = HistoryLedger(MemoryStore({HISTORY_KEY: json.dumps(legacy)}))
    [entry] = ledger.all()
    assert entry == Exchange(1700000000000, "hello", "hi", "नमस्ते", "2024-01-01T00:00:00.000Z")


def test_export_is_indented_json(tmp_path):
    ledger = HistoryLedger(MemoryStore())
    ledger.record("one", "fr", "un")
    path = tmp_path / "out.json"
    ledger.export(str(path))
    text = path.read_text(encoding="utf-8")
    assert text.startswith("[\n  {")
    assert json.loads(text)[0]["translated"] == "un"
