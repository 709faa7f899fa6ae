from __future__ import annotations

import asyncio
import json as _json
from typing import Any, AsyncIterator, Awaitable, Callable

from loguru import logger

from marketseg.config import settings
from marketseg.services.status_store import StatusStore


def heartbeat(session_id: str) -> dict[str, Any]:
    return {"type": "heartbeat", "sessionId": session_id}


def status_update(store: StatusStore, session_id: str) -> dict[str, Any]:
    """Latest ``{phase, message, progress, costs}`` for one session."""
    return store.snapshot(session_id)


def _sse(data: dict[str, Any]) -> dict[str, str]:
    return {"data": _json.dumps(data)}


async def status_events(
    session_id: str,
    store: StatusStore,
    *,
    interval: float | None = None,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    max_updates: int | None = None,
) -> AsyncIterator[dict[str, str]]:
    """Heartbeat first, then a status update every ``interval`` seconds.

    Runs until the client disconnects (or ``max_updates`` is reached). Closing
    the stream never cancels the run that feeds the store.
    """
    poll = settings.status_poll_interval_seconds if interval is None else interval
    yield _sse(heartbeat(session_id))

    sent = 0
    last_phase: str | None = None
    while max_updates is None or sent < max_updates:
        if is_disconnected is not None and await is_disconnected():
            logger.debug(f"[SSE] Client disconnected from {session_id}")
            break
        payload = status_update(store, session_id)
        if payload.get("phase") and payload.get("phase") != last_phase:
            last_phase = payload["phase"]
            logger.info(f"[SSE] Sending update for {session_id}: {last_phase} - {payload.get('message')}")
        yield _sse(payload)
        sent += 1
        if max_updates is not None and sent >= max_updates:
            break
        await asyncio.sleep(poll)
