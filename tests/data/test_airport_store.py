from __future__ import annotations

import threading
from pathlib import Path

import pytest

from airportsync.core.models import Airport
from airportsync.data.store import AirportStore
from airportsync.errors import StoreError


def _ap(code: str, lat: float = 37.0, lon: float = -122.0, rwy: int | None = 5000) -> Airport:
    return Airport(
        code=code,
        icao=f"http://x/{code.lower()}",
        name=f"{code} Field",
        city="Somewhere",
        state="CA",
        latitude=lat,
        longitude=lon,
        runway_length=rwy,
    )


def test_insert_and_query(store: AirportStore) -> None:
    store.insert(_ap("SJC"))
    store.insert(_ap("OAK", rwy=None))
    got = store.query_all()
    assert [a.code for a in got] == ["OAK", "SJC"]
    assert got[0].runway_length is None
    assert store.count() == 2
    assert store.get("SJC") == _ap("SJC")
    assert store.get("NOPE") is None


def test_clear_all(store: AirportStore) -> None:
    store.insert(_ap("SFO"))
    store.clear_all()
    assert store.query_all() == []


def test_duplicate_insert_raises(store: AirportStore) -> None:
    store.insert(_ap("SFO"))
    with pytest.raises(StoreError):
        store.insert(_ap("SFO"))


def test_writes_are_durable(tmp_path: Path) -> None:
    path = str(tmp_path / "nested" / "airports.sqlite")
    with AirportStore(path) as s:
        s.insert(_ap("SFO"))
    with AirportStore(path) as s2:
        assert [a.code for a in s2.query_all()] == ["SFO"]


def test_replace_all_swaps_contents(store: AirportStore) -> None:
    store.replace_all([_ap("SFO"), _ap("OAK")])
    n = store.replace_all([_ap("LAX")], meta={"last_status": 200})
    assert n == 1
    assert [a.code for a in store.query_all()] == ["LAX"]
    assert store.meta("last_status") == "200"
    assert store.meta("missing") is None


def test_replace_all_is_idempotent(store: AirportStore) -> None:
    batch = [_ap("SFO"), _ap("OAK"), _ap("SJC")]
    store.replace_all(batch)
    first = store.query_all()
    store.replace_all(batch)
    assert store.query_all() == first
    assert store.count() == 3


def test_replace_all_rolls_back_on_failure(store: AirportStore) -> None:
    store.replace_all([_ap("SFO"), _ap("OAK")], meta={"last_status": 200})
    with pytest.raises(StoreError):
        # Duplicate key mid-batch fails after the clear already ran
        store.replace_all([_ap("LAX"), _ap("LAX")], meta={"last_status": 201})
    assert [a.code for a in store.query_all()] == ["OAK", "SFO"]
    assert store.meta("last_status") == "200"


def test_transaction_rolls_back_on_exception(store: AirportStore) -> None:
    store.insert(_ap("SFO"))
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.clear_all()
            store.insert(_ap("LAX"))
            raise RuntimeError("boom")
    assert [a.code for a in store.query_all()] == ["SFO"]


def test_nested_transaction_joins_outer(store: AirportStore) -> None:
    with store.transaction():
        store.insert(_ap("SFO"))
        with store.transaction():
            store.insert(_ap("OAK"))
    assert store.count() == 2


def test_reader_blocks_until_commit(store: AirportStore) -> None:
    store.replace_all([_ap("SFO")])
    seen: list[list[str]] = []
    started = threading.Event()

    def reader() -> None:
        started.set()
        seen.append([a.code for a in store.query_all()])

    with store.transaction():
        store.clear_all()
        t = threading.Thread(target=reader)
        t.start()
        started.wait(timeout=2.0)
        # reader must not see the cleared, half-written state
        t.join(timeout=0.1)
        assert t.is_alive()
        store.insert(_ap("LAX"))
    t.join(timeout=2.0)
    assert seen == [["LAX"]]


def test_nearest(store: AirportStore) -> None:
    store.replace_all(
        [
            _ap("SFO", 37.6188, -122.3750),
            _ap("OAK", 37.7213, -122.2208),
            _ap("LAX", 33.9425, -118.4081),
        ]
    )
    near = store.nearest(37.62, -122.38, max_nm=50.0, k=3)
    assert [a.code for a in near] == ["SFO", "OAK"]
    assert store.nearest(37.62, -122.38, max_nm=50.0, k=1)[0].code == "SFO"
    assert store.nearest(0.0, 0.0, max_nm=10.0) == []


def test_memory_store() -> None:
    with AirportStore(":memory:") as s:
        s.insert(_ap("SFO"))
        assert s.count() == 1


def test_oversized_integer_raises_store_error(store: AirportStore) -> None:
    store.replace_all([_ap("SFO")])
    with pytest.raises(StoreError):
        store.insert(_ap("OAK", rwy=10**20))
    with pytest.raises(StoreError):
        store.replace_all([_ap("LAX"), _ap("BIG", rwy=10**20)])
    assert [a.code for a in store.query_all()] == ["SFO"]
