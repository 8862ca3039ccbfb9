"""Client session tracking.

Sessions are keyed by an opaque id. A session is live while it is active and
its idle time is strictly below the timeout; reaching the timeout counts as
expired. Expired sessions drop out of lookups and are deactivated either on
the next lookup or by the background sweep.

Snapshots written with ``persist_session`` survive deactivation and can be
read back for ``recovery_window`` seconds, after which they are evicted on the
next read.

All table mutations go through ``_lock``; nothing outside this class touches
the tables.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from typing import Any, Literal, TypedDict

from sdd_mcp.config import RECOVERY_WINDOW_SECONDS, SESSION_TIMEOUT_SECONDS, SWEEP_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

CapabilityName = Literal["tools", "resources", "prompts", "logging"]

_UNSET: Any = object()


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ClientInfo:
    name: str | None = None
    version: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"name": self.name, "version": self.version}


@dataclass(frozen=True)
class SessionCapabilities:
    tools: bool = True
    resources: bool = False
    prompts: bool = False
    logging: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class SessionContext:
    current_project: str | None = None
    working_directory: str | None = None
    preferences: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_project": self.current_project,
            "working_directory": self.working_directory,
            "preferences": dict(self.preferences),
        }


@dataclass
class ClientSession:
    id: str
    client_info: ClientInfo
    capabilities: SessionCapabilities
    context: SessionContext
    created_at: datetime
    last_activity: datetime
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_info": self.client_info.to_dict(),
            "capabilities": self.capabilities.to_dict(),
            "context": self.context.to_dict(),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Project state persisted for recovery across reconnects."""

    session_id: str
    project_state: dict[str, Any]
    context: dict[str, Any]
    timestamp: datetime


class SessionStats(TypedDict):
    total: int
    active: int
    expired: int
    by_client: dict[str, int]


def _client_info(raw: ClientInfo | Mapping[str, Any] | None) -> ClientInfo:
    if raw is None:
        return ClientInfo()
    if isinstance(raw, ClientInfo):
        return raw
    name = raw.get("name")
    version = raw.get("version")
    return ClientInfo(
        name=name if isinstance(name, str) else None,
        version=version if isinstance(version, str) else None,
    )


class SessionManager:
    """Owns the live session table, the snapshot store and the idle sweep."""

    def __init__(
        self,
        *,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        recovery_window: float = RECOVERY_WINDOW_SECONDS,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.session_timeout = session_timeout
        self.sweep_interval = sweep_interval
        self.recovery_window = recovery_window
        self._clock = clock
        self._sessions: dict[str, ClientSession] = {}
        self._snapshots: dict[str, SessionSnapshot] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task[None] | None = None

    # -- Validity -----------------------------------------------------------

    def _idle_seconds(self, session: ClientSession, now: datetime) -> float:
        return (now - session.last_activity).total_seconds()

    def _is_valid(self, session: ClientSession, now: datetime) -> bool:
        return session.is_active and self._idle_seconds(session, now) < self.session_timeout

    def _deactivate_locked(self, session: ClientSession, now: datetime, *, reason: str) -> None:
        session.is_active = False
        duration = (now - session.created_at).total_seconds()
        logger.info(
            "session_deactivated",
            extra={"session_id": session.id, "data": {"duration_s": round(duration, 3), "reason": reason}},
        )

    # -- Lifecycle ----------------------------------------------------------

    def create_session(self, client_info: ClientInfo | Mapping[str, Any] | None = None) -> ClientSession:
        now = self._clock()
        session = ClientSession(
            id=str(uuid.uuid4()),
            client_info=_client_info(client_info),
            capabilities=SessionCapabilities(),
            context=SessionContext(),
            created_at=now,
            last_activity=now,
        )
        with self._lock:
            self._sessions[session.id] = session
        logger.info("session_created", extra={"session_id": session.id, "data": session.client_info.to_dict()})
        return session

    def get_session(self, session_id: str) -> ClientSession | None:
        """Return the live session and refresh its activity, or None.

        A session found past its idle timeout is deactivated as a side effect.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            now = self._clock()
            if not self._is_valid(session, now):
                if session.is_active:
                    self._deactivate_locked(session, now, reason="idle_timeout")
                return None
            # Activity only moves forward, even if the clock steps back.
            session.last_activity = max(session.last_activity, now)
            return session

    def deactivate_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and session.is_active:
                self._deactivate_locked(session, self._clock(), reason="explicit")

    def remove_session(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._snapshots.pop(session_id, None)
        logger.info("session_removed", extra={"session_id": session_id})

    # -- Mutation -----------------------------------------------------------

    def update_session_capabilities(self, session_id: str, capabilities: Mapping[str, bool]) -> bool:
        """Shallow-merge capability flags. Unknown flag names are ignored."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            known = {f.name for f in fields(SessionCapabilities)}
            updates = {k: bool(v) for k, v in capabilities.items() if k in known}
            session.capabilities = replace(session.capabilities, **updates)
            session.last_activity = max(session.last_activity, self._clock())
            caps = session.capabilities.to_dict()
        logger.info("session_capabilities_updated", extra={"session_id": session_id, "data": caps})
        return True

    def update_session_context(
        self,
        session_id: str,
        *,
        current_project: str | None = _UNSET,
        working_directory: str | None = _UNSET,
        preferences: Mapping[str, Any] | None = None,
    ) -> bool:
        """Merge into the session context.

        Only the fields passed are replaced; ``preferences`` is merged key by key.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            ctx = session.context
            if current_project is not _UNSET:
                ctx.current_project = current_project
            if working_directory is not _UNSET:
                ctx.working_directory = working_directory
            if preferences:
                ctx.preferences = {**ctx.preferences, **preferences}
            session.last_activity = max(session.last_activity, self._clock())
        logger.debug("session_context_updated", extra={"session_id": session_id})
        return True

    def set_current_project(self, session_id: str, project_id: str) -> bool:
        return self.update_session_context(session_id, current_project=project_id)

    def get_current_project(self, session_id: str) -> str | None:
        session = self.get_session(session_id)
        return session.context.current_project if session else None

    def supports_capability(self, session_id: str, capability: CapabilityName) -> bool:
        session = self.get_session(session_id)
        if session is None:
            return False
        return bool(getattr(session.capabilities, capability, False))

    # -- Persistence --------------------------------------------------------

    def persist_session(self, session_id: str, project_state: Mapping[str, Any]) -> bool:
        """Snapshot project state for later recovery. False if the session is not live."""
        session = self.get_session(session_id)
        if session is None:
            return False
        snapshot = SessionSnapshot(
            session_id=session_id,
            project_state=dict(project_state),
            context=session.context.to_dict(),
            timestamp=self._clock(),
        )
        with self._lock:
            self._snapshots[session_id] = snapshot
        logger.debug("session_persisted", extra={"session_id": session_id, "data": {"keys": sorted(project_state)}})
        return True

    def restore_session(self, session_id: str) -> SessionSnapshot | None:
        """Read back a snapshot younger than the recovery window; evict it otherwise."""
        with self._lock:
            snapshot = self._snapshots.get(session_id)
            if snapshot is None:
                return None
            age = (self._clock() - snapshot.timestamp).total_seconds()
            if age > self.recovery_window:
                del self._snapshots[session_id]
                logger.info("session_snapshot_expired", extra={"session_id": session_id})
                return None
        logger.info("session_restored", extra={"session_id": session_id, "data": {"timestamp": snapshot.timestamp.isoformat()}})
        return snapshot

    # -- Views --------------------------------------------------------------

    def get_active_sessions(self) -> list[ClientSession]:
        now = self._clock()
        with self._lock:
            return [s for s in self._sessions.values() if self._is_valid(s, now)]

    def get_session_stats(self) -> SessionStats:
        now = self._clock()
        with self._lock:
            sessions = list(self._sessions.values())
            active = [s for s in sessions if self._is_valid(s, now)]
        by_client: dict[str, int] = {}
        for session in active:
            client = session.client_info.name or "unknown"
            by_client[client] = by_client.get(client, 0) + 1
        return SessionStats(
            total=len(sessions),
            active=len(active),
            expired=len(sessions) - len(active),
            by_client=by_client,
        )

    # -- Sweep --------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Deactivate every active session past its idle timeout. Returns the count."""
        now = self._clock()
        with self._lock:
            expired = [s for s in self._sessions.values() if s.is_active and not self._is_valid(s, now)]
            for session in expired:
                self._deactivate_locked(session, now, reason="idle_timeout")
        if expired:
            logger.info("sessions_reaped", extra={"data": {"expired_count": len(expired)}})
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception:
                logger.error("session_sweep_failed", exc_info=True)

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop(), name="sdd-session-sweep")
        logger.debug("session_sweep_started", extra={"data": {"interval_s": self.sweep_interval}})

    async def shutdown(self) -> None:
        """Stop the periodic sweep."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("session_sweep_stopped")
