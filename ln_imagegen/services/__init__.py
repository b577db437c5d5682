# services/__init__.py
# ============================================================================
# LN IMAGEGEN - OUTBOUND SERVICES
# ============================================================================
# httpx clients for the generation provider, LNbits and Telegram, plus QR
# rendering for payment requests
# ============================================================================

from ln_imagegen.services.generation_client import GenerationClient, IGenerationProvider
from ln_imagegen.services.lnbits_client import (
    IPaymentProvider,
    LNbitsClient,
    LNbitsInvoice,
    PaymentResult,
)
from ln_imagegen.services.qr import QrRenderer
from ln_imagegen.services.telegram_transport import IChatTransport, TelegramTransport

__all__ = [
    "GenerationClient",
    "IGenerationProvider",
    "IPaymentProvider",
    "LNbitsClient",
    "LNbitsInvoice",
    "PaymentResult",
    "QrRenderer",
    "IChatTransport",
    "TelegramTransport",
]
