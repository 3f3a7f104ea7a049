"""Tests for the FastAPI surface."""

import pytest
from fastapi.testclient import TestClient

from ifrates.api import app, get_store
from ifrates.store import InMemoryColumnStore, InterfaceTable, StoreUnavailable


@pytest.fixture
def client(memory_store):
    app.dependency_overrides[get_store] = lambda: memory_store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestApi:
    """Tests for the HTTP endpoints."""

    def test_health(self, client) -> None:
        assert client.get("/health").json() == {"status": "ok"}

    def test_cycle_then_rows(self, client, memory_store) -> None:
        memory_store.put_row(InterfaceTable.IF_X_TABLE, "1", octets_in=10, octets_out=20, speed=100, discontinuity="")
        memory_store.set_duplex("1", 3)
        memory_store.set_restart_flag(InterfaceTable.IF_X_TABLE)

        response = client.post("/tables/ifxtable/cycle")

        assert response.status_code == 200
        assert response.json() == {
            "table": "ifxtable",
            "processed": 1,
            "failed_keys": [],
            "restart_flag_cleared": True,
        }

        rows = client.get("/tables/ifxtable/rows").json()
        assert rows == [
            {
                "table": "ifxtable",
                "if_index": "1",
                "bitrate_in": 0.0,
                "bitrate_out": 0.0,
                "utilization": 0.0,
            }
        ]

    def test_timeout(self, client, memory_store) -> None:
        memory_store.put_row(InterfaceTable.IF_TABLE, "1", octets_in=10)

        response = client.post("/tables/iftable/timeout")

        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert memory_store.tables[InterfaceTable.IF_TABLE]["1"]["rate_data"]

    def test_unknown_table(self, client) -> None:
        assert client.get("/tables/nosuchtable/rows").status_code == 422

    def test_store_unavailable_is_503(self, client, memory_store, monkeypatch) -> None:
        def broken(table):
            raise StoreUnavailable("down")

        monkeypatch.setattr(memory_store, "read_outputs", broken)

        assert client.get("/tables/iftable/rows").status_code == 503


class TestInMemoryStore:
    """Sanity checks of the in-memory store used above."""

    def test_outputs_before_any_cycle(self) -> None:
        store = InMemoryColumnStore()
        store.put_row(InterfaceTable.IF_TABLE, 5, octets_in=1)

        [out] = store.read_outputs(InterfaceTable.IF_TABLE)

        assert out.key == "5"
        assert out.bitrate_in is None
