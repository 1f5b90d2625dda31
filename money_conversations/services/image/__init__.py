"""Image processing services package."""

from money_conversations.services.image.processor import ImageProcessor

__all__ = ["ImageProcessor"]
