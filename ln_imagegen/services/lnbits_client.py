# services/lnbits_client.py
# ============================================================================
# LN IMAGEGEN - LNBITS WALLET CLIENT
# ============================================================================
# Wallet operations used by the invoice gate and the refund compensator:
# - create_invoice   POST /api/v1/payments {"out": false}   (invoice key)
# - pay              POST /api/v1/payments {"out": true}    (admin key)
# - get_balance      GET  /api/v1/wallet                    (msat -> sat)
# - is_paid          GET  /api/v1/payments/{payment_hash}
#
# Transport failures, error statuses and bodies that do not match the
# expected shape all raise PaymentProviderError.
# ============================================================================

from abc import ABC, abstractmethod
from typing import Any, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ln_imagegen.config import Settings, settings
from ln_imagegen.errors import PaymentProviderError
from ln_imagegen.schemas.models import Wallet

logger = structlog.get_logger().bind(component="lnbits_client")

ModelT = TypeVar("ModelT", bound=BaseModel)


class LNbitsInvoice(BaseModel):
    payment_hash: str
    payment_request: str


class PaymentResult(BaseModel):
    payment_hash: str
    checking_id: Optional[str] = None


class IPaymentProvider(ABC):
    """Payment provider interface"""

    @abstractmethod
    async def create_invoice(
        self,
        wallet: Wallet,
        amount: int,
        memo: str,
        webhook: Optional[str] = None,
    ) -> LNbitsInvoice:
        pass

    @abstractmethod
    async def pay(self, wallet: Wallet, payment_request: str) -> PaymentResult:
        pass

    @abstractmethod
    async def get_balance(self, wallet: Wallet) -> int:
        """Spendable balance in satoshis"""
        pass

    @abstractmethod
    async def is_paid(self, wallet: Wallet, payment_hash: str) -> bool:
        pass


class LNbitsClient(IPaymentProvider):
    """httpx client for the LNbits wallet API"""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "LNbitsClient":
        config = config or settings
        return cls(base_url=config.LNBITS_URL, timeout_seconds=config.LNBITS_HTTP_TIMEOUT)

    async def _request(self, method: str, url: str, api_key: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(
                method, url, headers={"X-Api-Key": api_key}, **kwargs
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:200]
            raise PaymentProviderError(
                f"{method} {url} returned {e.response.status_code}: {detail}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentProviderError(f"{method} {url} failed: {e}") from e

        if not isinstance(data, dict):
            raise PaymentProviderError(f"{method} {url} returned a non-object body")
        return data

    @staticmethod
    def _parse(model: type[ModelT], data: dict, method: str, url: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise PaymentProviderError(
                f"{method} {url} returned an unexpected body: {e.error_count()} invalid field(s)"
            ) from e

    async def create_invoice(
        self,
        wallet: Wallet,
        amount: int,
        memo: str,
        webhook: Optional[str] = None,
    ) -> LNbitsInvoice:
        body: dict[str, Any] = {"out": False, "amount": amount, "memo": memo}
        if webhook:
            body["webhook"] = webhook
        data = await self._request("POST", "/api/v1/payments", wallet.invoice_key, json=body)
        invoice = self._parse(LNbitsInvoice, data, "POST", "/api/v1/payments")
        logger.info("invoice_created",
                    wallet_id=wallet.wallet_id,
                    amount=amount,
                    payment_hash=invoice.payment_hash)
        return invoice

    async def pay(self, wallet: Wallet, payment_request: str) -> PaymentResult:
        data = await self._request(
            "POST",
            "/api/v1/payments",
            wallet.admin_key,
            json={"out": True, "bolt11": payment_request},
        )
        result = self._parse(PaymentResult, data, "POST", "/api/v1/payments")
        logger.info("invoice_paid", wallet_id=wallet.wallet_id, payment_hash=result.payment_hash)
        return result

    async def get_balance(self, wallet: Wallet) -> int:
        data = await self._request("GET", "/api/v1/wallet", wallet.invoice_key)
        try:
            return int(data.get("balance", 0)) // 1000
        except (TypeError, ValueError) as e:
            raise PaymentProviderError(f"GET /api/v1/wallet returned an unreadable balance: {e}") from e

    async def is_paid(self, wallet: Wallet, payment_hash: str) -> bool:
        data = await self._request("GET", f"/api/v1/payments/{payment_hash}", wallet.invoice_key)
        return bool(data.get("paid"))

    async def aclose(self) -> None:
        await self._client.aclose()
