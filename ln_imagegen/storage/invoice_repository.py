"""
Invoice Repository
==================
Persistence for invoices with an atomic compare-and-set, so that concurrent
job tasks (and redelivered webhooks) can race on one invoice and exactly one
of them wins each transition.

- InMemoryInvoiceRepository: asyncio.Lock guarded dict (tests, single process)
- RedisInvoiceRepository: WATCH/MULTI optimistic transactions

pip install pydantic redis
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import WatchError

from ln_imagegen.schemas.models import Invoice, InvoiceStatus

logger = structlog.get_logger().bind(component="invoice_repository")

# (stored, updated) - updated is None when the mutation was refused
CasResult = tuple[Optional[Invoice], Optional[Invoice]]
Mutation = Callable[[Invoice], Optional[Invoice]]


def _status_mutation(
    expected: frozenset[InvoiceStatus],
    new_status: InvoiceStatus,
    changes: dict,
) -> Mutation:
    def mutate(current: Invoice) -> Optional[Invoice]:
        if current.status not in expected:
            return None
        return current.transition_to(new_status, **changes)
    return mutate


class IInvoiceRepository(ABC):
    """Invoice storage interface"""

    @abstractmethod
    async def get(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_payment_hash(self, payment_hash: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def save(self, invoice: Invoice) -> Invoice:
        """Insert a new invoice"""
        pass

    @abstractmethod
    async def atomic_update(self, invoice_id: str, mutate: Mutation) -> CasResult:
        """Atomically read, mutate and write one invoice"""
        pass

    async def compare_and_set(
        self,
        invoice_id: str,
        expected: Iterable[InvoiceStatus],
        new_status: InvoiceStatus,
        **changes,
    ) -> CasResult:
        """Move to new_status only if the stored status is one of expected."""
        return await self.atomic_update(
            invoice_id, _status_mutation(frozenset(expected), new_status, changes)
        )

    async def update_fields(self, invoice_id: str, **changes) -> Optional[Invoice]:
        """Update mutable fields without touching the status"""
        _, updated = await self.atomic_update(invoice_id, lambda current: current.with_changes(**changes))
        return updated


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

class InMemoryInvoiceRepository(IInvoiceRepository):
    """Thread-safe in-memory invoice repository"""

    def __init__(self):
        self._invoices: dict[str, Invoice] = {}
        self._by_hash: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, invoice_id: str) -> Optional[Invoice]:
        async with self._lock:
            return self._invoices.get(invoice_id)

    async def get_by_payment_hash(self, payment_hash: str) -> Optional[Invoice]:
        async with self._lock:
            invoice_id = self._by_hash.get(payment_hash)
            return self._invoices.get(invoice_id) if invoice_id else None

    async def save(self, invoice: Invoice) -> Invoice:
        async with self._lock:
            self._invoices[invoice.invoice_id] = invoice
            self._by_hash[invoice.payment_hash] = invoice.invoice_id
            return invoice

    async def atomic_update(self, invoice_id: str, mutate: Mutation) -> CasResult:
        async with self._lock:
            current = self._invoices.get(invoice_id)
            if current is None:
                return None, None
            updated = mutate(current)
            if updated is not None:
                self._invoices[invoice_id] = updated
            return current, updated


# =============================================================================
# REDIS IMPLEMENTATION
# =============================================================================

class RedisInvoiceRepository(IInvoiceRepository):
    """
    Redis-backed repository.

    Keys:
        invoice:{invoice_id}        -> Invoice JSON
        invoice:hash:{payment_hash} -> invoice_id
    """

    KEY_PREFIX = "invoice:"
    HASH_PREFIX = "invoice:hash:"

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisInvoiceRepository":
        return cls(redis.from_url(url))

    def _key(self, invoice_id: str) -> str:
        return f"{self.KEY_PREFIX}{invoice_id}"

    async def get(self, invoice_id: str) -> Optional[Invoice]:
        raw = await self._redis.get(self._key(invoice_id))
        return Invoice.model_validate_json(raw) if raw else None

    async def get_by_payment_hash(self, payment_hash: str) -> Optional[Invoice]:
        invoice_id = await self._redis.get(f"{self.HASH_PREFIX}{payment_hash}")
        if not invoice_id:
            return None
        if isinstance(invoice_id, bytes):
            invoice_id = invoice_id.decode()
        return await self.get(invoice_id)

    async def save(self, invoice: Invoice) -> Invoice:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(invoice.invoice_id), invoice.model_dump_json())
            pipe.set(f"{self.HASH_PREFIX}{invoice.payment_hash}", invoice.invoice_id)
            await pipe.execute()
        return invoice

    async def atomic_update(self, invoice_id: str, mutate: Mutation) -> CasResult:
        key = self._key(invoice_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return None, None
                    current = Invoice.model_validate_json(raw)
                    updated = mutate(current)
                    if updated is None:
                        return current, None
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json())
                    await pipe.execute()
                    return current, updated
                except WatchError:
                    logger.debug("invoice_cas_retry", invoice_id=invoice_id)
                    continue

    async def close(self):
        await self._redis.aclose()
