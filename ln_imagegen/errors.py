"""
Error Taxonomy
==============
Every failure the payment-gated job lifecycle can produce.

- UserInputError: rejected before any funds move
- PaymentSetupError: invoice could not be issued or paid internally
- PaymentProviderError: LNbits transport/API failure
- ProviderError: generation provider failure (includes deadline cancellation)
- RefundError: compensating payment could not be completed
- ChatTransportError: chat API refused or dropped a message
"""


class ImageGenError(Exception):
    """Base class for all service errors"""


class UserInputError(ImageGenError):
    """No wallet, empty prompt, or other bad input from the chat user"""


class PaymentSetupError(ImageGenError):
    """Invoice or payment-request creation failed"""


class PaymentProviderError(ImageGenError):
    """LNbits request failed"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderError(ImageGenError):
    """Generation provider request failed"""


class RefundError(ImageGenError):
    """Compensating payment failed"""


class InvalidTransitionError(ImageGenError):
    """Requested invoice transition is not part of the state machine"""


class ChatTransportError(ImageGenError):
    """Chat message could not be sent or edited"""
