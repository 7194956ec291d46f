"""Loading of externally provisioned TLS certificates."""

from __future__ import annotations

import ssl
from pathlib import Path
from typing import Optional

from capture_hub.core.logging_utils import get_module_logger


logger = get_module_logger("TLS")


def load_ssl_context(cert_file: Path, key_file: Path) -> Optional[ssl.SSLContext]:
    """Build a server SSL context, or return None when certificates are absent.

    Unreadable or mismatched certificates are logged and also yield None so
    the dashboard still comes up over plain HTTP.
    """
    cert_file = Path(cert_file)
    key_file = Path(key_file)

    if not (cert_file.is_file() and key_file.is_file()):
        logger.info("Certificate files not found, will use HTTP only")
        logger.info("Expected files:")
        logger.info("  - %s", cert_file)
        logger.info("  - %s", key_file)
        return None

    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    except (ssl.SSLError, OSError) as e:
        logger.error("Certificate error: %s", e)
        return None

    logger.info("Found certificate files:")
    logger.info("  cert: %s", cert_file)
    logger.info("  key:  %s", key_file)
    return context


__all__ = ["load_ssl_context"]
