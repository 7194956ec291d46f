"""Unit tests for the reference screenshot worker."""

import io

from PIL import Image

from capture_hub.core.commands import WorkerEventType, decode_line
from capture_hub.worker import ScreenshotService, save_image


def _fake_screen() -> Image.Image:
    return Image.new("RGB", (64, 32), color=(10, 120, 200))


def _run(commands: str, grabber=_fake_screen):
    stdout = io.StringIO()
    service = ScreenshotService(stdin=io.StringIO(commands), stdout=stdout, grabber=grabber)
    code = service.run()
    events = [decode_line(line) for line in stdout.getvalue().splitlines()]
    return code, events


class TestSaveImage:

    def test_png(self, tmp_path):
        path = save_image(_fake_screen(), str(tmp_path), "2024-01-02_03-04-05", "png", 90)
        assert path == tmp_path / "2024-01-02_03-04-05_combined.png"
        with Image.open(path) as image:
            assert image.format == "PNG"
            assert image.size == (64, 32)

    def test_jpeg_extension_normalized(self, tmp_path):
        path = save_image(_fake_screen(), str(tmp_path), "tag", "jpeg", 50)
        assert path.name == "tag_combined.jpg"
        with Image.open(path) as image:
            assert image.format == "JPEG"

    def test_rgba_saved_as_jpeg(self, tmp_path):
        image = Image.new("RGBA", (8, 8), color=(0, 0, 0, 0))
        path = save_image(image, str(tmp_path), "tag", "jpg", 80)
        assert path.exists()


class TestScreenshotService:

    def test_announces_readiness(self):
        code, events = _run("")
        assert code == 0
        assert [event.type for event in events] == [WorkerEventType.INIT, WorkerEventType.READY]

    def test_capture_success(self, tmp_path):
        commands = f"capture\n2024-01-02_03-04-05\n{tmp_path.as_posix()}\npng\n90\nexit\n"
        code, events = _run(commands)

        assert code == 0
        types = [event.type for event in events]
        assert types[2:5] == [
            WorkerEventType.CAPTURING,
            WorkerEventType.INFO,
            WorkerEventType.SUCCESS,
        ]
        assert events[3].message == "Creating combined screenshot: 64 x 32 pixels"
        assert events[4].message.endswith("2024-01-02_03-04-05_combined.png")
        assert (tmp_path / "2024-01-02_03-04-05_combined.png").exists()
        assert events[-1].raw.startswith("EXITING:")

    def test_grab_failure_reported(self, tmp_path):
        def broken_grabber():
            raise OSError("X connection failed")

        commands = f"capture\ntag\n{tmp_path.as_posix()}\npng\n90\n"
        code, events = _run(commands, grabber=broken_grabber)

        assert code == 0
        assert events[-1].type is WorkerEventType.ERROR
        assert events[-1].message == "X connection failed"

    def test_missing_folder_reported(self, tmp_path):
        commands = f"capture\ntag\n{(tmp_path / 'absent').as_posix()}\npng\n90\n"
        _, events = _run(commands)
        assert events[-1].type is WorkerEventType.ERROR

    def test_unknown_command(self):
        _, events = _run("selfie\n")
        assert events[-1].type is WorkerEventType.ERROR
        assert events[-1].message == "Unknown command: selfie"

    def test_truncated_request_ends_service(self, tmp_path):
        code, events = _run(f"capture\ntag\n{tmp_path.as_posix()}\n")
        assert code == 0
        assert events[-1].type is WorkerEventType.READY

    def test_serves_multiple_captures(self, tmp_path):
        folder = tmp_path.as_posix()
        commands = f"capture\na\n{folder}\npng\n90\ncapture\nb\n{folder}\njpg\n60\n"
        _, events = _run(commands)

        successes = [event for event in events if event.type is WorkerEventType.SUCCESS]
        assert len(successes) == 2
        assert (tmp_path / "a_combined.png").exists()
        assert (tmp_path / "b_combined.jpg").exists()
