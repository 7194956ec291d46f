"""Allow ``python -m capture_hub`` to launch the dashboard server."""

from capture_hub import run


if __name__ == "__main__":
    run()
