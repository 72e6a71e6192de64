"""
Client-side view of the current upload session.

``SessionDataStore`` holds the records of one session for display. Its
mutators only touch local state; callers confirm a change with the server
first (through ``TravelDataAPI`` or the ``*_item`` helpers) and then apply
the confirmed result here.

The current session id survives restarts in a small JSON state file.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from .api import TravelDataAPI, normalize_record

logger = logging.getLogger(__name__)

STATE_KEY = "currentSessionId"
INITIAL_PAGE = 1
INITIAL_PAGE_SIZE = 50


class SessionDataStore:
    """
    Records of the current upload session.

    A load runs whenever a session is opened or selected while the local
    list is empty; ``refetch()`` always goes to the server.
    """

    def __init__(self, api: TravelDataAPI, state_path: Union[str, Path]):
        self.api = api
        self.state_path = Path(state_path)
        self.current_session_id: Optional[str] = self._read_state()
        self.records: List[Dict[str, Any]] = []
        self.upload_response: Optional[Dict[str, Any]] = None
        self.is_loading = False
        self.error: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()

    # State file

    def _read_state(self) -> Optional[str]:
        if not self.state_path.exists():
            return None
        try:
            state = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session state {self.state_path}: {e}")
            return None
        session_id = state.get(STATE_KEY) if isinstance(state, dict) else None
        return session_id or None

    def _write_state(self, session_id: Optional[str]) -> None:
        state: Dict[str, Any] = {}
        if self.state_path.exists():
            try:
                loaded = json.loads(self.state_path.read_text(encoding="utf-8"))
                if isinstance(loaded, dict):
                    state = loaded
            except (OSError, ValueError):
                state = {}
        if session_id:
            state[STATE_KEY] = session_id
        else:
            state.pop(STATE_KEY, None)
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(state), encoding="utf-8")

    # Lifecycle

    def open(self) -> Optional[asyncio.Task]:
        """Start loading the persisted session, if there is one."""
        return self._schedule_load()

    async def close(self) -> None:
        """Cancel in-flight loads; their results are discarded."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _schedule_load(self) -> Optional[asyncio.Task]:
        if not self.current_session_id:
            return None
        task = asyncio.ensure_future(self.ensure_loaded())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Session selection and loading

    def set_session_id(self, session_id: Optional[str]) -> Optional[asyncio.Task]:
        """
        Switch to another session (or none) and persist the choice.

        Loads still running for the previous session are cancelled. Returns
        the task loading the new session, if one was started.
        """
        for task in list(self._tasks):
            task.cancel()
        self.current_session_id = session_id or None
        self._write_state(self.current_session_id)
        return self._schedule_load()

    async def ensure_loaded(self) -> None:
        """Fetch the first page of the current session if nothing is shown yet."""
        session_id = self.current_session_id
        if not session_id or self.records:
            return
        try:
            await self._fetch(session_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Initial load of session {session_id} failed: {e}")

    async def refetch(self) -> None:
        """
        Reload the first page of the current session.

        Raises:
            TravelDataAPIError: The server rejected the request
            httpx.HTTPError: The request did not complete
        """
        if self.current_session_id:
            await self._fetch(self.current_session_id)

    async def _fetch(self, session_id: str) -> None:
        self.is_loading = True
        try:
            body = await self.api.list_page(session_id, page=INITIAL_PAGE, page_size=INITIAL_PAGE_SIZE)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.error = str(e) or "Fetch failed"
            raise
        finally:
            self.is_loading = False

        if session_id != self.current_session_id:
            return
        self.records = [normalize_record(record) for record in body["data"]]
        self.error = None

    # Local mutators

    def set_records(self, records: List[Dict[str, Any]]) -> None:
        self.records = [normalize_record(record) for record in records]

    def set_upload_response(self, response: Optional[Dict[str, Any]]) -> None:
        self.upload_response = response

    def update_item(self, record_id: str, updates: Dict[str, Any]) -> None:
        self.records = [
            {**record, **updates} if record.get("id") == record_id else record
            for record in self.records
        ]

    def remove_item(self, record_id: str) -> None:
        self.records = [record for record in self.records if record.get("id") != record_id]

    def add_item(self, record: Dict[str, Any]) -> None:
        self.records = [normalize_record(record)] + self.records

    # Confirmed mutations

    async def create_item(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Create on the server, then show the stored record first."""
        record = await self.api.create(fields)
        self.add_item(record)
        return record

    async def save_item(self, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Patch on the server, then merge the stored record locally."""
        record = await self.api.update(record_id, changes)
        self.update_item(record_id, record)
        return record

    async def delete_item(self, record_id: str) -> None:
        """Delete on the server, then drop the record locally."""
        await self.api.delete(record_id)
        self.remove_item(record_id)
