from typing import Callable, Dict, List, Optional
from datetime import datetime, timedelta, timezone
import asyncio

import structlog

from fusion_agent.domain.models.memory import (
    MemoryStats, MemorySummary, Message, MessageRole, Session
)
from fusion_agent.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionMemoryStore:
    """Bounded rolling message log per session with idle-session eviction.

    The store is the only long-lived mutable state of the agent. It is owned
    by the composition root, which calls ``start()`` to launch the periodic
    eviction task and ``stop()`` on shutdown. Callers only ever receive
    copies of sessions and messages.
    """

    def __init__(
        self,
        max_messages: int = 10,
        eviction_age_minutes: int = 1440,
        cleanup_interval_seconds: float = 3600.0,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        self.max_messages = max_messages
        self.eviction_age_minutes = eviction_age_minutes
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self._clock = clock or _utc_now
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    async def append(self, session_id: str, role: MessageRole, content: str) -> Message:
        """Append a message, creating the session on first use"""

        async with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)

            if session is None:
                session = Session(
                    session_id=session_id,
                    created_at=now,
                    last_accessed=now,
                    max_messages=self.max_messages
                )
                self._sessions[session_id] = session

            message = Message(role=MessageRole(role), content=content, timestamp=now)
            session.messages.append(message)
            session.last_accessed = now

            # Keep only the most recent messages
            if len(session.messages) > session.max_messages:
                session.messages = session.messages[-session.max_messages:]

            return message

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a copy of the session, touching its last-accessed time"""

        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None

            session.last_accessed = self._clock()
            return session.model_copy(update={"messages": list(session.messages)})

    async def snapshot(self, session_id: str) -> List[Message]:
        """Ordered messages currently retained for the session"""

        async with self._lock:
            session = self._sessions.get(session_id)
            return list(session.messages) if session else []

    async def summarize(self, session_id: str, count: int = 2) -> MemorySummary:
        """Most recent messages plus totals; zero-valued for unknown sessions"""

        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return MemorySummary()

            last_messages = session.messages[-count:] if count > 0 else []
            age = self._clock() - session.created_at

            return MemorySummary(
                last_messages=list(last_messages),
                total_messages=len(session.messages),
                session_age_minutes=int(age.total_seconds() // 60)
            )

    async def clear(self, session_id: str) -> None:
        """Remove a session entirely"""

        async with self._lock:
            if self._sessions.pop(session_id, None) is not None:
                agent_logger.log_context_update(session_id, "memory", "cleared")

    async def evict_older_than(self, max_age_minutes: Optional[int] = None) -> int:
        """Remove sessions idle for longer than max_age_minutes and return how many"""

        if max_age_minutes is None:
            max_age_minutes = self.eviction_age_minutes

        async with self._lock:
            cutoff = self._clock() - timedelta(minutes=max_age_minutes)
            expired = [
                session_id for session_id, session in self._sessions.items()
                if session.last_accessed < cutoff
            ]

            for session_id in expired:
                del self._sessions[session_id]
                agent_logger.log_context_update(session_id, "memory", "evicted", {"max_age_minutes": max_age_minutes})

            metrics.set_gauge("memory.sessions", len(self._sessions))

        if expired:
            logger.info("Evicted idle sessions", count=len(expired), max_age_minutes=max_age_minutes)

        return len(expired)

    async def stats(self) -> MemoryStats:
        async with self._lock:
            return MemoryStats(
                session_count=len(self._sessions),
                total_message_count=sum(len(s.messages) for s in self._sessions.values())
            )

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def start(self) -> None:
        """Launch the periodic eviction task on the running event loop"""

        if self.running:
            return

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "Session memory eviction started",
            interval_seconds=self.cleanup_interval_seconds,
            max_age_minutes=self.eviction_age_minutes
        )

    async def stop(self) -> None:
        """Cancel the eviction task and wait for it to finish"""

        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.info("Session memory eviction stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            try:
                await self.evict_older_than(self.eviction_age_minutes)
            except Exception as e:
                logger.error("Session eviction failed", error=str(e))
