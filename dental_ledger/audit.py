"""Audit trail for ledger mutations."""
from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Protocol
from uuid import uuid4

from dental_ledger.models import AuditEntry
from dental_ledger.redaction import redact_text

LOGGER = logging.getLogger(__name__)

DEFAULT_ACTOR = "System"


class AuditSink(Protocol):
    """Receives one record per successful ledger mutation."""

    def emit(
        self,
        *,
        action: str,
        account_id: str,
        actor_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> AuditEntry:
        ...


class InMemoryAuditLog:
    """Bounded audit log keeping the newest ``max_entries`` records."""

    def __init__(self, max_entries: int = 2000) -> None:
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def emit(
        self,
        *,
        action: str,
        account_id: str,
        actor_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=str(uuid4()),
            timestamp=datetime.utcnow(),
            action=action,
            account_id=account_id,
            actor_id=actor_id or DEFAULT_ACTOR,
            detail=redact_text(detail) if detail else None,
        )
        with self._lock:
            self._entries.append(entry)
        LOGGER.info(
            "audit action=%s account=%s actor=%s detail=%s",
            entry.action,
            entry.account_id,
            entry.actor_id,
            entry.detail or "",
        )
        return entry

    def entries(
        self,
        *,
        account_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditEntry]:
        """Return matching entries, newest first."""
        with self._lock:
            selected = list(self._entries)
        if account_id:
            selected = [entry for entry in selected if entry.account_id == account_id]
        if action:
            selected = [entry for entry in selected if entry.action == action]
        selected.reverse()
        if limit:
            selected = selected[:limit]
        return selected


__all__ = ["AuditSink", "InMemoryAuditLog", "DEFAULT_ACTOR"]
