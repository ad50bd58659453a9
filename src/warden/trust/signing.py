"""
Template Signer for Warden.

Produces and checks HMAC-SHA256 signatures over template content. There
is one algorithm tag, "HMAC-SHA256"; any other tag is rejected before the
content is hashed.

Verification results are cached per (content, signature) pair for
cache_ttl_seconds. The cache key is derived from a SHA-256 digest of the
content together with the full provided signature, so a signature that
differs in any position never hits another signature's cached result.
Only the boolean outcome and the time it was stored are cached.

Expired entries are swept whenever a new result is stored.

Comparison uses hmac.compare_digest on the decoded bytes. Anything other
than exactly 64 hex characters compares unequal.
"""

import hashlib
import hmac
import json
import logging
import re
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from warden.config import SignerConfig
from warden.schema import SignatureVerificationResult, TemplateDocument, TemplateSignature

logger = logging.getLogger(__name__)

SIGNATURE_ALGORITHM = "HMAC-SHA256"

# Hex characters of the SHA-256 digest used as the cache key
_CACHE_KEY_LENGTH = 32

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{64}")


class TemplateSigner:
    """
    Signs template content and verifies signatures.

    Usage:
        signer = TemplateSigner(secret_key)
        sig = signer.create_signature(content, "release-bot")
        result = signer.verify_signature(content, sig)
        if not result.valid:
            print(result.error)
    """

    def __init__(
        self,
        secret_key: str | bytes,
        config: SignerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the signer.

        Args:
            secret_key: Shared HMAC key; text keys are UTF-8 encoded
            config: Cache settings (defaults if None)
            clock: Monotonic seconds source used for cache expiry
            log: Logger to use instead of the module logger
        """
        self._key = secret_key.encode("utf-8") if isinstance(secret_key, str) else secret_key
        self.config = config or SignerConfig()
        self._clock = clock
        self._log = log or logger
        self._cache: dict[str, tuple[bool, float]] = {}
        self._cache_lock = threading.Lock()
        self._log.debug(
            "TemplateSigner initialized",
            extra={
                "cache_enabled": self.config.cache_enabled,
                "cache_ttl_seconds": self.config.cache_ttl_seconds,
            },
        )

    def create_signature(
        self,
        content: str,
        signer: str,
        public_key_fingerprint: str | None = None,
    ) -> TemplateSignature:
        """Sign content and return the signature metadata."""
        start = time.perf_counter()
        signature = TemplateSignature(
            algorithm=SIGNATURE_ALGORITHM,
            signature=self._compute(content),
            timestamp=datetime.now(UTC).isoformat(),
            signer=signer,
            public_key_fingerprint=public_key_fingerprint,
        )
        self._log.info(
            "Template signature created",
            extra={"signer": signer, "duration_ms": _elapsed_ms(start)},
        )
        return signature

    def verify_signature(
        self,
        content: str,
        signature: TemplateSignature,
    ) -> SignatureVerificationResult:
        """
        Check a signature against content.

        Never raises; unexpected failures come back as an invalid result
        carrying the error text.
        """
        start = time.perf_counter()
        try:
            if signature.algorithm != SIGNATURE_ALGORITHM:
                self._log.warning(
                    "Unsupported signature algorithm",
                    extra={"algorithm": signature.algorithm},
                )
                return SignatureVerificationResult(
                    valid=False,
                    error=f"Unsupported algorithm: {signature.algorithm}",
                )

            cache_key = self._cache_key(content, signature.signature)
            cached = self._cache_get(cache_key)
            if cached is not None:
                self._log.debug("Signature verification cache hit")
                return self._result(cached, signature)

            valid = _hex_equal(self._compute(content), signature.signature)
            self._cache_put(cache_key, valid)
            self._log.info(
                "Template signature verified",
                extra={
                    "valid": valid,
                    "signer": signature.signer,
                    "duration_ms": _elapsed_ms(start),
                },
            )
            return self._result(valid, signature)
        except Exception as e:
            self._log.error(
                "Signature verification error",
                extra={"error": str(e), "duration_ms": _elapsed_ms(start)},
            )
            return SignatureVerificationResult(valid=False, error=str(e) or type(e).__name__)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
        self._log.debug("Signature verification cache cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        with self._cache_lock:
            size = len(self._cache)
        return {
            "size": size,
            "enabled": self.config.cache_enabled,
            "ttl_seconds": self.config.cache_ttl_seconds,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _compute(self, content: str) -> str:
        return hmac.new(self._key, content.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def _cache_key(content: str, provided: str) -> str:
        digest = hashlib.sha256()
        digest.update(content.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(provided.encode("utf-8"))
        return digest.hexdigest()[:_CACHE_KEY_LENGTH]

    def _cache_get(self, key: str) -> bool | None:
        if not self.config.cache_enabled:
            return None
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            valid, stored_at = entry
            if self._clock() - stored_at >= self.config.cache_ttl_seconds:
                del self._cache[key]
                return None
            return valid

    def _cache_put(self, key: str, valid: bool) -> None:
        if not self.config.cache_enabled:
            return
        now = self._clock()
        ttl = self.config.cache_ttl_seconds
        with self._cache_lock:
            expired = [k for k, (_, stored_at) in self._cache.items() if now - stored_at >= ttl]
            for k in expired:
                del self._cache[k]
            self._cache[key] = (valid, now)

    @staticmethod
    def _result(valid: bool, signature: TemplateSignature) -> SignatureVerificationResult:
        if valid:
            return SignatureVerificationResult(valid=True, signature=signature)
        return SignatureVerificationResult(valid=False, error="Signature verification failed")


def _hex_equal(computed: str, provided: str) -> bool:
    # bytes.fromhex skips whitespace, so the shape is checked first
    if not _HEX_DIGEST.fullmatch(provided):
        return False
    return hmac.compare_digest(bytes.fromhex(computed), bytes.fromhex(provided))


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


def template_signing_content(template: TemplateDocument) -> str:
    """
    Canonical text of a template for signing.

    The embedded signature is left out, so a template can carry its own
    signature. Keys are sorted and null fields dropped, so YAML formatting
    and key order do not change the signed text.
    """
    data = template.model_dump(mode="json", exclude_none=True)
    security = data.get("security")
    if isinstance(security, dict):
        security.pop("signature", None)
        if not security:
            del data["security"]
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
