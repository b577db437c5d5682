"""Tests for the httpx clients against mocked transports."""

import asyncio
import io
import json

import httpx
import pytest

from ln_imagegen.errors import ChatTransportError, PaymentProviderError, PaymentSetupError, ProviderError
from ln_imagegen.schemas.models import ChatMessageRef, JobStatus, Wallet
from ln_imagegen.services.generation_client import GenerationClient
from ln_imagegen.services.lnbits_client import LNbitsClient
from ln_imagegen.services.qr import QrRenderer
from ln_imagegen.services.telegram_transport import TelegramTransport

WALLET = Wallet(wallet_id="w1", admin_key="admin-key", invoice_key="invoice-key")


# ---------------------------------------------------------------------------
# Generation provider
# ---------------------------------------------------------------------------


def _task(status: str, ids=()) -> dict:
    return {
        "id": "task-abc",
        "object": "task",
        "status": status,
        "generations": {"data": [{"id": i, "task_id": "task-abc"} for i in ids]},
    }


class TestGenerationClient:

    def test_empty_key_fails_construction(self):
        with pytest.raises(ProviderError):
            GenerationClient(api_key="", base_url="https://labs.example.com/api/labs")

    def test_submit_sends_text2im_task(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_task("pending"))

        client = GenerationClient("sk-test", "https://labs.example.com/api/labs",
                                  batch_size=4, transport=httpx.MockTransport(handler))
        job = asyncio.run(client.submit("a fox"))

        assert job.job_id == "task-abc"
        assert job.status == JobStatus.PENDING
        assert seen["url"] == "https://labs.example.com/api/labs/tasks"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"task_type": "text2im", "prompt": {"caption": "a fox", "batch_size": 4}}

    def test_status_parses_generations(self):
        def handler(request):
            assert request.url.path.endswith("/tasks/task-abc")
            return httpx.Response(200, json=_task("succeeded", ["gen-1", "gen-2"]))

        client = GenerationClient("sk-test", "https://labs.example.com/api/labs",
                                  transport=httpx.MockTransport(handler))
        job = asyncio.run(client.get_status("task-abc"))

        assert job.status == JobStatus.SUCCEEDED
        assert [a.artifact_id for a in job.artifacts] == ["gen-1", "gen-2"]

    def test_unknown_status_is_pending(self):
        client = GenerationClient("sk-test", "https://labs.example.com",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(200, json=_task("queued"))))
        assert asyncio.run(client.get_status("task-abc")).status == JobStatus.PENDING

    def test_http_error_is_provider_error(self):
        client = GenerationClient("sk-test", "https://labs.example.com",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(401, json={})))
        with pytest.raises(ProviderError):
            asyncio.run(client.submit("a fox"))

    @pytest.mark.parametrize("body", [
        {"status": "pending"},
        ["task-abc"],
        {"id": "task-abc", "generations": {"data": [{"task_id": "task-abc"}]}},
        {"id": "task-abc", "generations": "none"},
    ])
    def test_unreadable_task_is_provider_error(self, body):
        def client():
            return GenerationClient("sk-test", "https://labs.example.com",
                                    transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body)))

        with pytest.raises(ProviderError):
            asyncio.run(client().submit("a fox"))
        with pytest.raises(ProviderError):
            asyncio.run(client().get_status("task-abc"))

    def test_download_streams_bytes(self):
        image = b"\x89PNG" + bytes(range(200))

        def handler(request):
            assert request.url.path.endswith("/generations/gen-1/download")
            return httpx.Response(200, content=image)

        client = GenerationClient("sk-test", "https://labs.example.com",
                                  transport=httpx.MockTransport(handler))

        async def scenario():
            chunks = []
            async with client.download("gen-1") as stream:
                async for chunk in stream:
                    chunks.append(chunk)
            await client.aclose()
            return b"".join(chunks)

        assert asyncio.run(scenario()) == image

    def test_download_error_is_provider_error(self):
        client = GenerationClient("sk-test", "https://labs.example.com",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(404)))

        async def scenario():
            async with client.download("gen-1"):
                pass

        with pytest.raises(ProviderError):
            asyncio.run(scenario())


# ---------------------------------------------------------------------------
# LNbits
# ---------------------------------------------------------------------------


class TestLNbitsClient:

    def test_create_invoice(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers["X-Api-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"payment_hash": "ph", "payment_request": "lnbc1"})

        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(handler))
        invoice = asyncio.run(client.create_invoice(WALLET, 1000, "DALLE2 @alice", webhook="https://hook"))

        assert invoice.payment_hash == "ph"
        assert seen["key"] == "invoice-key"
        assert seen["body"] == {"out": False, "amount": 1000, "memo": "DALLE2 @alice", "webhook": "https://hook"}

    def test_pay_uses_admin_key(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers["X-Api-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"payment_hash": "ph", "checking_id": "c1"})

        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(handler))
        result = asyncio.run(client.pay(WALLET, "lnbc1"))

        assert result.payment_hash == "ph"
        assert seen == {"key": "admin-key", "body": {"out": True, "bolt11": "lnbc1"}}

    def test_balance_is_converted_to_sat(self):
        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"id": "w1", "name": "alice", "balance": 2_500_999})
        ))
        assert asyncio.run(client.get_balance(WALLET)) == 2500

    def test_is_paid(self):
        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"paid": True})
        ))
        assert asyncio.run(client.is_paid(WALLET, "ph")) is True

    def test_error_carries_status_code(self):
        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(
            lambda r: httpx.Response(520, json={"detail": "Insufficient balance."})
        ))
        with pytest.raises(PaymentProviderError) as info:
            asyncio.run(client.pay(WALLET, "lnbc1"))
        assert info.value.status_code == 520

    @pytest.mark.parametrize("body", [{"checking_id": "x"}, ["ph"], {"payment_hash": None}])
    def test_unexpected_body_is_payment_provider_error(self, body):
        def client():
            return LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(
                lambda r: httpx.Response(201, json=body)
            ))

        with pytest.raises(PaymentProviderError):
            asyncio.run(client().create_invoice(WALLET, 1000, "Refund for /generate"))
        with pytest.raises(PaymentProviderError):
            asyncio.run(client().pay(WALLET, "lnbc1"))

    def test_unreadable_balance_is_payment_provider_error(self):
        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(
            lambda r: httpx.Response(200, json={"balance": "lots"})
        ))
        with pytest.raises(PaymentProviderError):
            asyncio.run(client.get_balance(WALLET))

    def test_transport_error_is_payment_provider_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = LNbitsClient("https://lnbits.example.com", transport=httpx.MockTransport(handler))
        with pytest.raises(PaymentProviderError):
            asyncio.run(client.get_balance(WALLET))


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramTransport:

    def test_send_message_with_force_reply(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 5}})

        transport = TelegramTransport("123:abc", "https://api.telegram.org", transport=httpx.MockTransport(handler))
        ref = asyncio.run(transport.send_message(42, "⌨️ Enter image prompt.", force_reply=True))

        assert ref == ChatMessageRef(chat_id=42, message_id=5)
        assert seen["path"] == "/bot123:abc/sendMessage"
        assert seen["body"]["reply_markup"] == {"force_reply": True}

    def test_send_photo_uploads_multipart(self):
        seen = {}

        def handler(request):
            seen["type"] = request.headers["content-type"]
            seen["content"] = request.content
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 6}})

        transport = TelegramTransport("123:abc", transport=httpx.MockTransport(handler))
        photo = io.BytesIO(b"\x89PNGimage-bytes")
        asyncio.run(transport.send_photo(42, photo, caption="lnbc1"))

        assert seen["type"].startswith("multipart/form-data")
        assert b"\x89PNGimage-bytes" in seen["content"]
        assert b"lnbc1" in seen["content"]

    def test_refused_call_raises(self):
        transport = TelegramTransport("123:abc", transport=httpx.MockTransport(
            lambda r: httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})
        ))
        with pytest.raises(ChatTransportError):
            asyncio.run(transport.edit_message(ChatMessageRef(chat_id=1, message_id=2), "try later"))


# ---------------------------------------------------------------------------
# QR
# ---------------------------------------------------------------------------


class TestQrRenderer:

    def test_renders_png(self):
        png = QrRenderer().render("lnbc10u1pjexample").read()
        assert png.startswith(b"\x89PNG")

    def test_empty_request_is_rejected(self):
        with pytest.raises(PaymentSetupError):
            QrRenderer().render("")
