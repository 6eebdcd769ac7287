"""Per-call conversation state with injectable storage and per-call locking.

Every mutation goes through a ``SessionTransaction``: the store takes the
call's lock, stages a deep copy of the session, lets the caller apply named
mutations to the copy, and writes it back only if the block exits cleanly.
Single-shot helpers such as ``append_message`` are one-operation
transactions. The orchestrator holds one transaction for a whole turn, so
turns for the same call id serialize and a failed turn leaves nothing behind.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import redis.asyncio as aioredis

from supervisor.schemas.session import (
    ActionRecord,
    ConversationMessage,
    ConversationState,
    DecisionRecord,
    MessageRole,
)

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "qc:session:"

# Fields callers may not overwrite through update()
PROTECTED_FIELDS = frozenset(
    {"session_id", "call_id", "timestamp_start", "timestamp_last_update"}
)


class SessionNotFoundError(KeyError):
    """Raised when a non-creating operation targets an unknown call id."""

    def __init__(self, call_id: str) -> None:
        super().__init__(call_id)
        self.call_id = call_id

    def __str__(self) -> str:
        return f"Session not found: {self.call_id}"


class SessionExistsError(Exception):
    """Raised by create() when the call id already has a live session."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Session already exists: {call_id}")
        self.call_id = call_id


# === Storage backends ===


class SessionStorage(Protocol):
    """Key-value persistence for sessions, keyed by call id."""

    async def get(self, call_id: str) -> ConversationState | None: ...

    async def put(self, session: ConversationState) -> None: ...

    async def delete(self, call_id: str) -> bool: ...

    async def list_all(self) -> list[ConversationState]: ...


class InMemorySessionStorage:
    """Process-local storage. Returns copies so callers never alias stored state."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationState] = {}

    async def get(self, call_id: str) -> ConversationState | None:
        session = self._sessions.get(call_id)
        return session.model_copy(deep=True) if session else None

    async def put(self, session: ConversationState) -> None:
        self._sessions[session.call_id] = session.model_copy(deep=True)

    async def delete(self, call_id: str) -> bool:
        return self._sessions.pop(call_id, None) is not None

    async def list_all(self) -> list[ConversationState]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]


class RedisSessionStorage:
    """Stores each session as a JSON document under ``qc:session:<call_id>``.

    With ``ttl_seconds`` set, every write refreshes the key's expiry, so idle
    sessions age out in Redis itself.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key_prefix: str = REDIS_KEY_PREFIX,
        ttl_seconds: int | None = None,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, call_id: str) -> str:
        return f"{self.key_prefix}{call_id}"

    async def get(self, call_id: str) -> ConversationState | None:
        raw = await self.client.get(self._key(call_id))
        if raw is None:
            return None
        return ConversationState.model_validate_json(raw)

    async def put(self, session: ConversationState) -> None:
        await self.client.set(
            self._key(session.call_id), session.model_dump_json(), ex=self.ttl_seconds
        )

    async def delete(self, call_id: str) -> bool:
        return bool(await self.client.delete(self._key(call_id)))

    async def list_all(self) -> list[ConversationState]:
        sessions: list[ConversationState] = []
        async for key in self.client.scan_iter(match=f"{self.key_prefix}*"):
            raw = await self.client.get(key)
            if raw is not None:
                sessions.append(ConversationState.model_validate_json(raw))
        return sessions


# === Transactions ===


class SessionTransaction:
    """Staged copy of one session exposing the named mutations.

    Every mutation bumps ``timestamp_last_update``; the bump never moves the
    timestamp backwards even if the wall clock does.
    """

    def __init__(self, session: ConversationState) -> None:
        self.session = session.model_copy(deep=True)

    def _touch(self) -> None:
        now = datetime.now(UTC)
        self.session.timestamp_last_update = max(now, self.session.timestamp_last_update)

    def update(self, **changes: Any) -> ConversationState:
        """Merge field changes into the session."""
        protected = PROTECTED_FIELDS.intersection(changes)
        if protected:
            raise ValueError(f"Cannot update protected fields: {sorted(protected)}")
        unknown = set(changes) - set(ConversationState.model_fields)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        data = self.session.model_dump()
        data.update(changes)
        self.session = ConversationState.model_validate(data)
        self._touch()
        return self.session

    def append_message(self, role: MessageRole, content: str) -> None:
        self.session.conversation_history.append(ConversationMessage(role=role, content=content))
        self._touch()

    def append_action(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        result: dict[str, Any] | None,
    ) -> None:
        self.session.actions_executed.append(
            ActionRecord(tool_name=tool_name, parameters=parameters, result=result)
        )
        self._touch()

    def append_decision(self, step: int, decision: str) -> None:
        self.session.decision_history.append(DecisionRecord(step=step, decision=decision))
        self._touch()

    def merge_measurements(self, measurements: dict[str, Any]) -> None:
        self.session.measurements = {**self.session.measurements, **measurements}
        self._touch()


# === Store ===


@dataclass
class _CallLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class SessionStore:
    """Repository of conversation sessions keyed by call id."""

    def __init__(
        self,
        storage: SessionStorage | None = None,
        *,
        default_worker_name: str = "Jake",
        default_station: str = "Line 3 - Quality Control",
    ) -> None:
        self.storage: SessionStorage = storage or InMemorySessionStorage()
        self.default_worker_name = default_worker_name
        self.default_station = default_station
        self._locks: dict[str, _CallLock] = {}

    @asynccontextmanager
    async def hold(self, call_id: str) -> AsyncIterator[None]:
        """Hold the lock that serializes writers for ``call_id``.

        The lock entry lives while any task holds or waits on it, so every
        contender for a call id queues on the same lock.
        """
        entry = self._locks.get(call_id)
        if entry is None:
            entry = self._locks[call_id] = _CallLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[call_id]

    def is_busy(self, call_id: str) -> bool:
        """True while a writer holds or waits on the call's lock."""
        return call_id in self._locks

    def _new_session(
        self,
        call_id: str,
        worker_name: str | None,
        station: str | None,
    ) -> ConversationState:
        return ConversationState(
            call_id=call_id,
            worker_name=worker_name or self.default_worker_name,
            station=station or self.default_station,
        )

    @asynccontextmanager
    async def transaction(self, call_id: str) -> AsyncIterator[SessionTransaction]:
        """Hold the call's lock and commit the staged session on clean exit.

        Raises:
            SessionNotFoundError: If no session exists for ``call_id``.
        """
        async with self.hold(call_id):
            session = await self.storage.get(call_id)
            if session is None:
                raise SessionNotFoundError(call_id)
            txn = SessionTransaction(session)
            yield txn
            await self.storage.put(txn.session)

    # --- Creation / lookup ---

    async def create(
        self,
        call_id: str,
        worker_name: str | None = None,
        station: str | None = None,
    ) -> ConversationState:
        """Create a session for a new call.

        Raises:
            SessionExistsError: If the call id already has a session.
        """
        async with self.hold(call_id):
            if await self.storage.get(call_id) is not None:
                raise SessionExistsError(call_id)
            session = self._new_session(call_id, worker_name, station)
            await self.storage.put(session)
        logger.info("Session created: call_id=%s, session_id=%s", call_id, session.session_id)
        return session

    async def get(self, call_id: str) -> ConversationState | None:
        return await self.storage.get(call_id)

    async def get_or_create(
        self,
        call_id: str,
        worker_name: str | None = None,
        station: str | None = None,
    ) -> ConversationState:
        """Return the call's session, creating it with defaults if missing."""
        async with self.hold(call_id):
            existing = await self.storage.get(call_id)
            if existing is not None:
                return existing
            session = self._new_session(call_id, worker_name, station)
            await self.storage.put(session)
        logger.info("Session created: call_id=%s, session_id=%s", call_id, session.session_id)
        return session

    async def list_all(self) -> list[ConversationState]:
        return await self.storage.list_all()

    # --- Single-shot mutations ---

    async def update(self, call_id: str, **changes: Any) -> ConversationState:
        async with self.transaction(call_id) as txn:
            txn.update(**changes)
        return txn.session

    async def append_message(self, call_id: str, role: MessageRole, content: str) -> None:
        async with self.transaction(call_id) as txn:
            txn.append_message(role, content)

    async def append_action(
        self,
        call_id: str,
        tool_name: str,
        parameters: dict[str, Any],
        result: dict[str, Any] | None,
    ) -> None:
        async with self.transaction(call_id) as txn:
            txn.append_action(tool_name, parameters, result)

    async def append_decision(self, call_id: str, step: int, decision: str) -> None:
        async with self.transaction(call_id) as txn:
            txn.append_decision(step, decision)

    async def merge_measurements(self, call_id: str, measurements: dict[str, Any]) -> None:
        async with self.transaction(call_id) as txn:
            txn.merge_measurements(measurements)

    # --- Removal ---

    async def delete(self, call_id: str) -> bool:
        async with self.hold(call_id):
            deleted = await self.storage.delete(call_id)
        if deleted:
            logger.info("Session deleted: call_id=%s", call_id)
        return deleted

    async def reap_expired(
        self,
        max_idle_seconds: float,
        now: datetime | None = None,
    ) -> list[str]:
        """Delete sessions idle for longer than ``max_idle_seconds``.

        The listing only nominates candidates. Each one is re-read under its
        call's lock, so a turn that committed during the scan keeps its session.

        Returns:
            Call ids of the reaped sessions.
        """
        cutoff = (now or datetime.now(UTC)) - timedelta(seconds=max_idle_seconds)
        reaped: list[str] = []
        for candidate in await self.storage.list_all():
            call_id = candidate.call_id
            if candidate.timestamp_last_update >= cutoff or self.is_busy(call_id):
                continue
            async with self.hold(call_id):
                current = await self.storage.get(call_id)
                if current is None or current.timestamp_last_update >= cutoff:
                    continue
                await self.storage.delete(call_id)
            reaped.append(call_id)
        if reaped:
            logger.info("Reaped %d idle sessions: %s", len(reaped), reaped)
        return reaped


async def run_session_reaper(
    store: SessionStore,
    ttl_seconds: float,
    interval_seconds: float,
) -> None:
    """Periodically reap idle sessions until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await store.reap_expired(ttl_seconds)
        except Exception:
            logger.exception("Session reaper pass failed")
