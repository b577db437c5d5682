# pipeline/__init__.py
# ============================================================================
# LN IMAGEGEN - PAYMENT-GATED GENERATION PIPELINE
# ============================================================================
# prompt capture -> invoice -> payment confirmation -> job -> delivery/refund
# ============================================================================

from ln_imagegen.pipeline.delivery import Deliverer
from ln_imagegen.pipeline.dispatcher import IEventPublisher, PaymentEventDispatcher
from ln_imagegen.pipeline.invoice_gate import InvoiceGate
from ln_imagegen.pipeline.orchestrator import JobOrchestrator
from ln_imagegen.pipeline.payments import PaymentListener
from ln_imagegen.pipeline.polling import PollPolicy
from ln_imagegen.pipeline.prompt_collector import PromptCollector
from ln_imagegen.pipeline.refund import RefundCompensator
from ln_imagegen.pipeline.service import ImageGenService
from ln_imagegen.pipeline.state_machine import ALLOWED_TRANSITIONS, InvoiceStateMachine

__all__ = [
    "Deliverer",
    "IEventPublisher",
    "PaymentEventDispatcher",
    "InvoiceGate",
    "JobOrchestrator",
    "PaymentListener",
    "PollPolicy",
    "PromptCollector",
    "RefundCompensator",
    "ImageGenService",
    "ALLOWED_TRANSITIONS",
    "InvoiceStateMachine",
]
