import sys

from .screenshot_service import main


if __name__ == "__main__":
    sys.exit(main())
