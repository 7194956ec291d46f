"""Centralized path constants for the Capture Hub."""

from __future__ import annotations

import os
from pathlib import Path


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

# Configuration (resolved against the working directory, like the output folder)
_CONFIG_ENV = os.environ.get("CAPTURE_HUB_CONFIG")
CONFIG_PATH = Path(_CONFIG_ENV).expanduser() if _CONFIG_ENV else Path("config.json")

# Logging
LOGS_DIR = Path("logs")
MASTER_LOG_FILE = LOGS_DIR / "capture_hub.log"

# Static dashboard assets
PUBLIC_DIR = PACKAGE_ROOT / "public"

# TLS material (provisioned externally)
CERTS_DIR = Path("certs")
CERT_FILE = CERTS_DIR / "cert.pem"
KEY_FILE = CERTS_DIR / "key.pem"


__all__ = [
    'PACKAGE_ROOT',
    'CONFIG_PATH',
    'LOGS_DIR',
    'MASTER_LOG_FILE',
    'PUBLIC_DIR',
    'CERTS_DIR',
    'CERT_FILE',
    'KEY_FILE',
]
