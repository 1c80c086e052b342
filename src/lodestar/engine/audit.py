"""Audit event emission shared by engine components."""

import logging
import sqlite3
from typing import Any

from lodestar.contracts.events import EventKind
from lodestar.store.event_log import EventLogWriter

logger = logging.getLogger(__name__)


def record(
    event_log: EventLogWriter | None,
    stream_id: str,
    kind: EventKind,
    payload: dict[str, Any] | None = None,
) -> None:
    """Append an audit event if an event log is configured.

    Audit writes are best effort: a failure is logged and the engine carries on.
    """
    if event_log is None:
        return
    try:
        event_log.emit(stream_id, kind, payload)
    except sqlite3.Error as e:
        logger.warning(f"Audit event {kind.value} for {stream_id} not recorded: {e}")
