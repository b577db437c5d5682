"""Tests for the in-memory repositories and session store."""

import asyncio
from datetime import timedelta

from ln_imagegen.schemas.models import (
    ChatMessageRef,
    Invoice,
    InvoiceStatus,
    PromptSession,
    SessionState,
    utcnow,
)
from ln_imagegen.storage import InMemoryUserDirectory, RedisUserDirectory


def _invoice(alice) -> Invoice:
    return Invoice(
        payment_hash="hash-1",
        payment_request="lnbc1000n1fake1",
        amount=1000,
        memo="DALLE2 @alice",
        payer=alice,
        payload="a fox",
    )


class TestInvoiceRepository:

    def test_lookup_by_id_and_hash(self, repository, alice):
        invoice = asyncio.run(repository.save(_invoice(alice)))
        assert asyncio.run(repository.get(invoice.invoice_id)) == invoice
        assert asyncio.run(repository.get_by_payment_hash("hash-1")) == invoice
        assert asyncio.run(repository.get_by_payment_hash("other")) is None

    def test_compare_and_set_refuses_unexpected_status(self, repository, alice):
        invoice = asyncio.run(repository.save(_invoice(alice)))
        stored, updated = asyncio.run(repository.compare_and_set(
            invoice.invoice_id, [InvoiceStatus.PAID], InvoiceStatus.SUBMITTED
        ))
        assert stored.status == InvoiceStatus.CREATED
        assert updated is None

    def test_update_fields_keeps_status(self, repository, alice):
        invoice = asyncio.run(repository.save(_invoice(alice)))

        async def scenario():
            await repository.compare_and_set(invoice.invoice_id, [InvoiceStatus.CREATED], InvoiceStatus.PAID)
            return await repository.update_fields(
                invoice.invoice_id, invoice_message=ChatMessageRef(chat_id=42, message_id=9)
            )

        updated = asyncio.run(scenario())
        assert updated.status == InvoiceStatus.PAID
        assert updated.invoice_message.message_id == 9

    def test_update_fields_on_missing_invoice(self, repository):
        assert asyncio.run(repository.update_fields("missing", job_id="x")) is None


class TestSessionStore:

    def test_missing_session_is_idle(self, sessions):
        assert asyncio.run(sessions.get("42")).state == SessionState.IDLE

    def test_session_round_trip_and_clear(self, sessions):
        async def scenario():
            await sessions.set(PromptSession(
                user_id="42",
                state=SessionState.AWAITING_PROMPT,
                expires_at=utcnow() + timedelta(minutes=5),
            ), ttl_seconds=300)
            before = await sessions.get("42")
            await sessions.clear("42")
            after = await sessions.get("42")
            return before, after

        before, after = asyncio.run(scenario())
        assert before.is_awaiting()
        assert after.state == SessionState.IDLE

    def test_expired_session_reads_idle(self, sessions):
        async def scenario():
            await sessions.set(PromptSession(
                user_id="42",
                state=SessionState.AWAITING_PROMPT,
                expires_at=utcnow() - timedelta(seconds=1),
            ), ttl_seconds=300)
            return await sessions.get("42")

        assert asyncio.run(scenario()).state == SessionState.IDLE


class TestUserDirectory:

    def test_register_and_get(self, alice):
        directory = InMemoryUserDirectory()
        asyncio.run(directory.register(alice))
        assert asyncio.run(directory.get("42")) == alice
        assert asyncio.run(directory.get("nobody")) is None


class FakeRedis:
    """The get/set subset of redis.asyncio.Redis used by the user directory"""

    def __init__(self):
        self.data: dict[str, bytes] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value.encode() if isinstance(value, str) else value
        return True


class TestRedisUserDirectory:

    def test_records_written_by_the_ledger_are_found(self, alice):
        client = FakeRedis()
        client.data["user:42"] = alice.model_dump_json().encode()
        directory = RedisUserDirectory(client)

        found = asyncio.run(directory.get("42"))

        assert found.wallet == alice.wallet
        assert asyncio.run(directory.get("7")) is None

    def test_registered_user_is_found(self, walletless):
        directory = RedisUserDirectory(FakeRedis())
        asyncio.run(directory.register(walletless))
        assert asyncio.run(directory.get("7")) == walletless
