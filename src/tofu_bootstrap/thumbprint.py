"""
tofu_bootstrap.thumbprint: GitHub OIDC issuer certificate fingerprint.

The IAM OIDC provider's ThumbprintList must match the issuer's current
certificate. GitHub rotates that certificate, so the value is read from a live
TLS handshake on every run and never hard-coded.
"""

from __future__ import annotations

import hashlib
import logging
import socket
import ssl

from tofu_bootstrap.config import DEFAULT_OIDC_HOST
from tofu_bootstrap.exceptions import TrustFactUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def fetch_leaf_certificate(host: str, port: int = 443, *, timeout: float) -> bytes:
    """Return the DER-encoded leaf certificate presented by host:port."""
    context = ssl.create_default_context()
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as tls:
            der = tls.getpeercert(binary_form=True)
    if not der:
        raise ssl.SSLError(f"{host} presented no certificate")
    return der


def certificate_fingerprint(der: bytes) -> str:
    """SHA-1 fingerprint as lower-case hex without colons."""
    return hashlib.sha1(der, usedforsecurity=False).hexdigest()


def resolve_oidc_thumbprint(
    host: str = DEFAULT_OIDC_HOST,
    port: int = 443,
    *,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """Resolve the thumbprint used by the OIDC provider's trust configuration."""
    try:
        der = fetch_leaf_certificate(host, port, timeout=timeout)
    except (OSError, ssl.SSLError) as exc:
        raise TrustFactUnavailable(
            f"Could not retrieve certificate from {host}:{port}: {exc}"
        ) from exc

    thumbprint = certificate_fingerprint(der)
    logger.info("Resolved OIDC thumbprint for %s: %s", host, thumbprint)
    return thumbprint
