# pipeline/messages.py
# ============================================================================
# LN IMAGEGEN - USER-FACING TEXT
# ============================================================================

ENTER_PROMPT = "⌨️ Enter image prompt."
NO_WALLET = "You don't have a wallet yet. Use /start to create one."
EMPTY_PROMPT = "Please send a non-empty image prompt."

INVOICE_COMING = "Please pay the invoice below to start generating your images."
INVOICE_TRY_LATER = "Could not create a payment request. Please try later."
PAYMENT_FAILED = "Payment could not be set up. Please try later."
PAID_INTERNALLY = "Paid {amount} sat from your wallet."

GENERATING = "Your images are being generated. Please wait..."
DELIVERY_PARTIAL = "{failed} of {total} images could not be delivered."

GENERATION_FAILED_REFUNDED = "Image generation failed. {amount} sat have been refunded to your wallet."
GENERATION_FAILED_NO_REFUND = (
    "Image generation failed and the refund of {amount} sat could not be issued. "
    "Please contact support."
)
