"""
ln_imagegen
===========
Lightning-paid image generation for a Telegram bot.
"""

__version__ = "1.0.0"
