"""
Audit Log
=========
Append-only trail of invoice transitions.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict

from ln_imagegen.schemas.models import AuditLogEntry


class IAuditLog(ABC):
    """Audit log interface"""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> None:
        pass

    @abstractmethod
    async def get_by_invoice(self, invoice_id: str) -> list[AuditLogEntry]:
        pass


class InMemoryAuditLog(IAuditLog):
    """Append-only audit log"""

    def __init__(self):
        self._by_invoice: dict[str, list[AuditLogEntry]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def append(self, entry: AuditLogEntry) -> None:
        async with self._lock:
            self._by_invoice[entry.invoice_id].append(entry)

    async def get_by_invoice(self, invoice_id: str) -> list[AuditLogEntry]:
        async with self._lock:
            return list(self._by_invoice.get(invoice_id, []))
