"""HMAC-signed, expiring links for sharing generated PDFs.

A link proves that the holder was given access to one exact path until a
fixed moment, without any server-side session:

    <path>?exp=<unix seconds>&sig=<base64url(HMAC-SHA256(secret, "<path>:<exp>"))>

Freshness and integrity are checked independently so the HTTP layer can tell
an expired link apart from a forged one.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable


LOGGER = logging.getLogger(__name__)


def _compute_signature(path: str, expires_at: int, secret: str) -> str:
    message = f"{path}:{int(expires_at)}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def sign_url(path: str, expires_at: int, secret: str) -> str:
    """Return *path* with ``exp`` and ``sig`` query parameters appended."""

    signature = _compute_signature(path, expires_at, secret)
    return f"{path}?exp={int(expires_at)}&sig={signature}"


def validate_signature(path: str, expires_at: int, signature: str, secret: str) -> bool:
    """Return ``True`` when *signature* authenticates *path* and *expires_at*.

    Only integrity is checked here; callers compare *expires_at* with the
    clock themselves.
    """

    expected = _compute_signature(path, expires_at, secret)
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))


class LinkStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"


@dataclass(frozen=True)
class SharedLink:
    url: str
    expires_at: int


class ShareService:
    """Issue and verify signed ``/pdf/<id>`` links."""

    def __init__(
        self,
        secret: str,
        base_url: str,
        ttl_seconds: int,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._base_url = base_url.rstrip("/")
        self._ttl_seconds = int(ttl_seconds)
        self._clock = clock

    def issue(self, target_id: str) -> SharedLink:
        expires_at = int(self._clock()) + self._ttl_seconds
        signed_path = sign_url(f"/pdf/{target_id}", expires_at, self._secret)
        LOGGER.debug("Issued share link for %s expiring at %s", target_id, expires_at)
        return SharedLink(url=f"{self._base_url}{signed_path}", expires_at=expires_at)

    def validate(self, path: str, expires_at: int, signature: str) -> bool:
        return validate_signature(path, expires_at, signature, self._secret)

    def check(self, path: str, expires_at: int, signature: str) -> LinkStatus:
        """Classify a presented link; expiry is reported before signature errors."""

        if expires_at < int(self._clock()):
            return LinkStatus.EXPIRED
        if not self.validate(path, expires_at, signature):
            LOGGER.info("Rejected share link with invalid signature for %s", path)
            return LinkStatus.INVALID_SIGNATURE
        return LinkStatus.VALID


__all__ = [
    "LinkStatus",
    "ShareService",
    "SharedLink",
    "sign_url",
    "validate_signature",
]
