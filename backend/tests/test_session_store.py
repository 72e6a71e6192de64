"""
Tests for the client-side session store and its HTTP wrapper.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from ledger.client import SessionDataStore, TravelDataAPI, TravelDataAPIError
from ledger.client.api import normalize_record
from ledger.client.session_store import STATE_KEY

SESSION = "session-delta"


@pytest_asyncio.fixture
async def api(client, auth_headers):
    token = auth_headers["Authorization"].split(" ", 1)[1]
    async with TravelDataAPI(client=client, token=token) as api:
        yield api


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "state" / "client.json"


async def seed(api, count=2, session_id=SESSION):
    return [await api.create({"session_id": session_id, "voucher": f"JV-{i}"}) for i in range(count)]


class FakeAPI:
    """List endpoint stand-in whose responses are released by the test."""

    def __init__(self):
        self.calls = []
        self.gates = {}

    async def list_page(self, session_id, page=1, page_size=50):
        self.calls.append(session_id)
        gate = self.gates.setdefault(session_id, asyncio.Event())
        await gate.wait()
        return {"data": [{"_id": f"{session_id}-row"}], "total": 1}


class TestNormalizeRecord:
    """Test record id normalization."""

    def test_copies_object_id(self):
        assert normalize_record({"_id": "abc"}) == {"_id": "abc", "id": "abc"}

    def test_keeps_existing_id(self):
        assert normalize_record({"id": "x", "_id": "y"})["id"] == "x"


class TestTravelDataAPI:
    """Test the HTTP wrapper against the app."""

    @pytest.mark.asyncio
    async def test_crud(self, api):
        created = await api.create({"session_id": SESSION, "pnr": "AB12CD"})
        updated = await api.update(created["id"], {"pnr": "QW34ER"})
        page = await api.list_page(SESSION)
        await api.delete(created["id"])

        assert updated["pnr"] == "QW34ER"
        assert page["data"][0]["id"] == created["id"]
        assert (await api.list_page(SESSION))["total"] == 0

    @pytest.mark.asyncio
    async def test_errors_carry_status_and_message(self, api):
        with pytest.raises(TravelDataAPIError) as exc_info:
            await api.delete("00000000-0000-0000-0000-000000000000")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Travel data not found"

    @pytest.mark.asyncio
    async def test_borrowed_client_is_not_closed(self, client, api):
        await api.aclose()
        assert not client.is_closed


class TestSessionState:
    """Test persistence of the current session id."""

    @pytest.mark.asyncio
    async def test_session_id_survives_restart(self, api, state_path):
        store = SessionDataStore(api, state_path)
        store.set_session_id(SESSION)
        await store.close()

        assert json.loads(state_path.read_text())[STATE_KEY] == SESSION
        assert SessionDataStore(api, state_path).current_session_id == SESSION

    @pytest.mark.asyncio
    async def test_clearing_removes_only_the_session_key(self, api, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text(json.dumps({STATE_KEY: SESSION, "theme": "dark"}))

        store = SessionDataStore(api, state_path)
        assert store.set_session_id(None) is None

        assert json.loads(state_path.read_text()) == {"theme": "dark"}
        assert store.current_session_id is None

    def test_unreadable_state_is_ignored(self, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text("{not json")

        assert SessionDataStore(FakeAPI(), state_path).current_session_id is None


class TestLoading:
    """Test initial load, refetch and cancellation."""

    @pytest.mark.asyncio
    async def test_open_loads_persisted_session(self, api, state_path):
        created = await seed(api)
        state_path.parent.mkdir(parents=True)
        state_path.write_text(json.dumps({STATE_KEY: SESSION}))

        store = SessionDataStore(api, state_path)
        await store.open()

        assert [r["id"] for r in store.records] == [created[1]["id"], created[0]["id"]]
        assert not store.is_loading
        assert store.error is None

    @pytest.mark.asyncio
    async def test_open_without_session_does_nothing(self, api, state_path):
        assert SessionDataStore(api, state_path).open() is None

    @pytest.mark.asyncio
    async def test_loaded_records_are_not_fetched_again(self, api, state_path):
        await seed(api, count=1)
        api.list_page = AsyncMock(wraps=api.list_page)
        store = SessionDataStore(api, state_path)

        await store.set_session_id(SESSION)
        await store.ensure_loaded()
        assert api.list_page.await_count == 1

        store.records = []
        await store.ensure_loaded()
        assert api.list_page.await_count == 2
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_reopen_after_cancelled_load(self, state_path):
        state_path.parent.mkdir(parents=True)
        state_path.write_text(json.dumps({STATE_KEY: "A"}))
        fake = FakeAPI()
        store = SessionDataStore(fake, state_path)

        first = store.open()
        await asyncio.sleep(0)
        await store.close()
        fake.gates["A"].set()
        await store.open()

        assert first.cancelled()
        assert fake.calls == ["A", "A"]
        assert store.records == [{"_id": "A-row", "id": "A-row"}]

    @pytest.mark.asyncio
    async def test_reselecting_loading_session_still_loads(self, state_path):
        fake = FakeAPI()
        store = SessionDataStore(fake, state_path)

        first = store.set_session_id("A")
        await asyncio.sleep(0)
        second = store.set_session_id("A")
        await asyncio.sleep(0)
        fake.gates["A"].set()
        await second

        assert first.cancelled()
        assert store.records == [{"_id": "A-row", "id": "A-row"}]

    @pytest.mark.asyncio
    async def test_existing_records_skip_load(self, api, state_path):
        api.list_page = AsyncMock()
        store = SessionDataStore(api, state_path)
        store.set_records([{"_id": "local"}])

        await store.set_session_id(SESSION)

        api.list_page.assert_not_awaited()
        assert store.records == [{"_id": "local", "id": "local"}]

    @pytest.mark.asyncio
    async def test_initial_load_failure_is_recorded(self, client, state_path):
        anonymous = TravelDataAPI(client=client)
        store = SessionDataStore(anonymous, state_path)

        await store.set_session_id(SESSION)

        assert store.records == []
        assert "Authentication required" in store.error
        assert not store.is_loading

    @pytest.mark.asyncio
    async def test_refetch_raises_and_reloads(self, api, client, state_path):
        store = SessionDataStore(TravelDataAPI(client=client), state_path)
        store.current_session_id = SESSION
        with pytest.raises(TravelDataAPIError):
            await store.refetch()

        await seed(api, count=3)
        store.api = api
        await store.refetch()

        assert len(store.records) == 3
        assert store.error is None

    @pytest.mark.asyncio
    async def test_switching_sessions_discards_stale_load(self, state_path):
        fake = FakeAPI()
        store = SessionDataStore(fake, state_path)

        first = store.set_session_id("first")
        await asyncio.sleep(0)
        second = store.set_session_id("second")
        await asyncio.sleep(0)
        fake.gates["first"].set()
        fake.gates["second"].set()
        await second

        assert first.cancelled()
        assert store.records == [{"_id": "second-row", "id": "second-row"}]
        store.remove_item("second-row")
        assert store.records == []

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight_loads(self, state_path):
        fake = FakeAPI()
        store = SessionDataStore(fake, state_path)

        task = store.set_session_id("slow")
        await asyncio.sleep(0)
        await store.close()

        assert task.cancelled()
        assert store.records == []


class TestMutations:
    """Test local mutators and confirmed mutations."""

    def test_local_mutators(self, state_path):
        store = SessionDataStore(FakeAPI(), state_path)
        store.set_records([{"_id": "a", "profit": 0}, {"id": "b", "profit": 0}])

        store.update_item("a", {"profit": 10})
        store.add_item({"_id": "c"})
        store.remove_item("b")
        store.set_upload_response({"sessionId": "s"})

        assert [r["id"] for r in store.records] == ["c", "a"]
        assert store.records[1]["profit"] == 10
        assert store.upload_response == {"sessionId": "s"}

    def test_unknown_ids_are_ignored(self, state_path):
        store = SessionDataStore(FakeAPI(), state_path)
        store.set_records([{"id": "a"}])

        store.update_item("zzz", {"profit": 1})
        store.remove_item("zzz")

        assert store.records == [{"id": "a"}]

    @pytest.mark.asyncio
    async def test_confirmed_mutations(self, api, state_path):
        store = SessionDataStore(api, state_path)
        store.current_session_id = SESSION

        created = await store.create_item({"session_id": SESSION, "voucher": "JV-1"})
        saved = await store.save_item(created["id"], {"profit": 42})

        assert store.records[0]["profit"] == 42
        assert store.records[0]["updated_at"] == saved["updated_at"]

        await store.delete_item(created["id"])
        assert store.records == []

    @pytest.mark.asyncio
    async def test_rejected_change_leaves_local_state(self, api, state_path):
        store = SessionDataStore(api, state_path)
        created = await store.create_item({"session_id": SESSION})

        with pytest.raises(TravelDataAPIError):
            await store.save_item(created["id"], {"profit": None})

        assert store.records == [created]
