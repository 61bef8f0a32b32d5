"""
Search-as-you-type ordering: each query issues a cancellation token, a newer
query for the same session cancels the older one (including its in-flight
upstream call), and only the result for the latest token is returned.
"""
import asyncio
import itertools
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_SESSIONS = 1000


class CancellationToken:
    _seq = itertools.count(1)

    def __init__(self, session: str):
        self.session = session
        self.seq = next(self._seq)
        self.cancelled = False
        self._task: asyncio.Task | None = None

    def bind(self, task: asyncio.Task) -> None:
        self._task = task
        if self.cancelled:
            task.cancel()

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


class QueryGate:
    """Tracks the most recently issued token per session."""

    def __init__(self, max_sessions: int = MAX_SESSIONS):
        self._latest: dict[str, CancellationToken] = {}
        self._max_sessions = max_sessions

    def issue(self, session: str) -> CancellationToken:
        previous = self._latest.get(session)
        if previous is not None:
            previous.cancel()
        elif len(self._latest) >= self._max_sessions:
            oldest = min(self._latest, key=lambda k: self._latest[k].seq)
            self._latest.pop(oldest).cancel()
        token = CancellationToken(session)
        self._latest[session] = token
        return token

    def is_current(self, token: CancellationToken) -> bool:
        return not token.cancelled and self._latest.get(token.session) is token

    def release(self, token: CancellationToken) -> None:
        if self._latest.get(token.session) is token:
            del self._latest[token.session]

    def __len__(self) -> int:
        return len(self._latest)


async def debounced_search(
    gate: QueryGate,
    session: str,
    search: Callable[[], Awaitable[T]],
    debounce_seconds: float,
) -> T | None:
    """
    Wait out the debounce, then run search. Returns None when a newer query for
    the same session superseded this one at any point (stale results are dropped).
    """
    token = gate.issue(session)
    try:
        await asyncio.sleep(debounce_seconds)
        if not gate.is_current(token):
            return None
        task = asyncio.ensure_future(search())
        token.bind(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if token.cancelled:
                logger.info("telemetry search_superseded session=%s seq=%s", session, token.seq)
                return None
            raise
        if not gate.is_current(token):
            return None
        return result
    finally:
        gate.release(token)
