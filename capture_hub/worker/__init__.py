"""Reference external capture worker (``python -m capture_hub.worker``)."""

from .screenshot_service import ScreenshotService, main, save_image

__all__ = ["ScreenshotService", "main", "save_image"]
