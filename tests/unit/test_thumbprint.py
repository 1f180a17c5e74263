from __future__ import annotations

import hashlib
import ssl

import pytest

from tofu_bootstrap import thumbprint
from tofu_bootstrap.exceptions import TrustFactUnavailable


def test_certificate_fingerprint_is_lowercase_sha1_hex() -> None:
    der = b"\x30\x82\x01\x0a-fake-certificate"
    fingerprint = thumbprint.certificate_fingerprint(der)

    assert fingerprint == hashlib.sha1(der).hexdigest()
    assert len(fingerprint) == 40
    assert fingerprint == fingerprint.lower()
    assert ":" not in fingerprint


def test_resolve_oidc_thumbprint_uses_live_certificate(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def _fetch(host: str, port: int = 443, *, timeout: float) -> bytes:
        seen.update(host=host, port=port, timeout=timeout)
        return b"certificate-bytes"

    monkeypatch.setattr(thumbprint, "fetch_leaf_certificate", _fetch)

    result = thumbprint.resolve_oidc_thumbprint(timeout=3.0)

    assert result == hashlib.sha1(b"certificate-bytes").hexdigest()
    assert seen == {"host": "token.actions.githubusercontent.com", "port": 443, "timeout": 3.0}


@pytest.mark.parametrize(
    "error",
    [ConnectionRefusedError("refused"), TimeoutError("timed out"), ssl.SSLError("bad cert")],
)
def test_resolve_oidc_thumbprint_failure(
    monkeypatch: pytest.MonkeyPatch, error: Exception
) -> None:
    def _fetch(host: str, port: int = 443, *, timeout: float) -> bytes:
        raise error

    monkeypatch.setattr(thumbprint, "fetch_leaf_certificate", _fetch)

    with pytest.raises(TrustFactUnavailable, match="token.actions.githubusercontent.com:443"):
        thumbprint.resolve_oidc_thumbprint()
