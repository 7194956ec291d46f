"""Reference capture worker speaking the supervisor line protocol.

Reads commands on stdin and answers with ``TAG:message`` lines on stdout.
Every monitor is grabbed into one combined image with Pillow.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Optional, TextIO

import PIL
from PIL import Image, ImageGrab

Grabber = Callable[[], Image.Image]

JPEG_FORMATS = ("jpg", "jpeg")


def grab_all_screens() -> Image.Image:
    return ImageGrab.grab(all_screens=True)


def save_image(image: Image.Image, folder: str, timestamp: str, image_format: str, quality: int) -> Path:
    """Save ``image`` as ``<folder>/<timestamp>_combined.<ext>`` and return the path."""
    if image_format.lower() in JPEG_FORMATS:
        path = Path(folder) / f"{timestamp}_combined.jpg"
        image.convert("RGB").save(path, "JPEG", quality=quality)
    else:
        path = Path(folder) / f"{timestamp}_combined.png"
        image.save(path, "PNG")
    return path


class ScreenshotService:

    def __init__(
        self,
        stdin: TextIO = sys.stdin,
        stdout: TextIO = sys.stdout,
        grabber: Grabber = grab_all_screens,
    ):
        self.stdin = stdin
        self.stdout = stdout
        self.grabber = grabber

    def emit(self, tag: str, message: str) -> None:
        self.stdout.write(f"{tag}:{message}\n")
        self.stdout.flush()

    def _read_line(self) -> Optional[str]:
        line = self.stdin.readline()
        if not line:
            return None
        return line.rstrip("\r\n")

    def run(self) -> int:
        self.emit("INIT", f"Pillow {PIL.__version__} screen grabber")
        self.emit("READY", "Screenshot service started")

        while True:
            command = self._read_line()
            if command is None:
                return 0
            command = command.strip()

            if command == "exit":
                self.emit("EXITING", "Shutting down screenshot service")
                return 0
            elif command == "capture":
                if not self._capture():
                    return 0
            elif command:
                self.emit("ERROR", f"Unknown command: {command}")

    def _capture(self) -> bool:
        fields = []
        for _ in range(4):
            value = self._read_line()
            if value is None:
                return False
            fields.append(value)
        timestamp, folder, image_format, quality_text = fields

        self.emit("CAPTURING", "Starting screenshot capture")
        try:
            quality = int(quality_text)
            image = self.grabber()
            self.emit("INFO", f"Creating combined screenshot: {image.width} x {image.height} pixels")
            path = save_image(image, folder, timestamp, image_format, quality)
        except Exception as e:
            self.emit("ERROR", str(e) or type(e).__name__)
        else:
            self.emit("SUCCESS", f"Screenshot saved to {path.as_posix()}")
        return True


def main() -> int:
    return ScreenshotService().run()


__all__ = ["ScreenshotService", "grab_all_screens", "main", "save_image"]
