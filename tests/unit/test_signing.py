"""
Unit tests for the Template Signer.

Tests cover:
- Signature creation
- Verification (valid, tampered content, malformed signatures)
- Algorithm rejection
- Verification cache and TTL
- Canonical template content
"""

import hashlib
import hmac

import pytest

from warden.config import SignerConfig
from warden.schema import TemplateDocument, TemplateSignature
from warden.trust.signing import SIGNATURE_ALGORITHM, TemplateSigner, template_signing_content

KEY = "unit-test-key"
CONTENT = "id: demo\nsteps: []\n"


@pytest.fixture
def signer(monotonic) -> TemplateSigner:
    return TemplateSigner(KEY, clock=monotonic)


class TestCreateSignature:
    """Tests for create_signature."""

    def test_signature_is_hmac_sha256(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "release-bot")
        expected = hmac.new(KEY.encode(), CONTENT.encode(), hashlib.sha256).hexdigest()
        assert sig.algorithm == SIGNATURE_ALGORITHM == "HMAC-SHA256"
        assert sig.signature == expected
        assert sig.signer == "release-bot"
        assert sig.public_key_fingerprint is None
        assert sig.timestamp

    def test_fingerprint_recorded(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot", public_key_fingerprint="ab:cd")
        assert sig.public_key_fingerprint == "ab:cd"

    def test_bytes_and_text_keys_agree(self) -> None:
        text = TemplateSigner("k").create_signature(CONTENT, "a")
        raw = TemplateSigner(b"k").create_signature(CONTENT, "a")
        assert text.signature == raw.signature


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_valid_signature(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        result = signer.verify_signature(CONTENT, sig)
        assert result.valid is True
        assert result.signature == sig
        assert result.error is None

    def test_tampered_content(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        result = signer.verify_signature(CONTENT + "# extra\n", sig)
        assert result.valid is False
        assert result.error == "Signature verification failed"
        assert result.signature is None

    def test_other_key_fails(self, signer: TemplateSigner) -> None:
        sig = TemplateSigner("other-key").create_signature(CONTENT, "bot")
        assert signer.verify_signature(CONTENT, sig).valid is False

    @pytest.mark.parametrize("bad", ["", "zz", "abc", "00" * 16, "not hex at all"])
    def test_malformed_signature(self, signer: TemplateSigner, bad: str) -> None:
        sig = TemplateSignature(algorithm=SIGNATURE_ALGORITHM, signature=bad, timestamp="", signer="x")
        result = signer.verify_signature(CONTENT, sig)
        assert result.valid is False
        assert result.error == "Signature verification failed"

    @pytest.mark.parametrize("separator", [" ", "\n", "\t"])
    def test_whitespace_separated_digest_rejected(self, signer: TemplateSigner, separator: str) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        pairs = [sig.signature[i:i + 2] for i in range(0, len(sig.signature), 2)]
        spaced = sig.model_copy(update={"signature": separator.join(pairs)})
        assert signer.verify_signature(CONTENT, spaced).valid is False

    def test_padded_digest_rejected(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        padded = sig.model_copy(update={"signature": f" {sig.signature} "})
        assert signer.verify_signature(CONTENT, padded).valid is False

    def test_uppercase_digest_accepted(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        upper = sig.model_copy(update={"signature": sig.signature.upper()})
        assert signer.verify_signature(CONTENT, upper).valid is True

    def test_unsupported_algorithm(self, signer: TemplateSigner) -> None:
        good = signer.create_signature(CONTENT, "bot")
        forged = good.model_copy(update={"algorithm": "RSA-SHA256"})
        result = signer.verify_signature(CONTENT, forged)
        assert result.valid is False
        assert result.error == "Unsupported algorithm: RSA-SHA256"
        assert signer.get_cache_stats()["size"] == 0


class TestCache:
    """Tests for the verification cache."""

    def test_results_cached(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        signer.verify_signature(CONTENT, sig)
        signer.verify_signature(CONTENT, sig)
        assert signer.get_cache_stats() == {"size": 1, "enabled": True, "ttl_seconds": 300.0}

    def test_cached_valid_never_serves_other_signature(self, signer: TemplateSigner) -> None:
        """A one-character change misses the cache and fails."""
        sig = signer.create_signature(CONTENT, "bot")
        assert signer.verify_signature(CONTENT, sig).valid is True

        last = "0" if sig.signature[-1] != "0" else "1"
        flipped = sig.model_copy(update={"signature": sig.signature[:-1] + last})
        assert signer.verify_signature(CONTENT, flipped).valid is False

    def test_ttl_expiry(self, monotonic) -> None:
        signer = TemplateSigner(KEY, SignerConfig(cache_ttl_seconds=10), clock=monotonic)
        sig = signer.create_signature(CONTENT, "bot")
        signer.verify_signature(CONTENT, sig)
        assert signer.get_cache_stats()["size"] == 1

        monotonic.advance(11)
        assert signer.verify_signature(CONTENT, sig).valid is True
        assert signer.get_cache_stats()["size"] == 1

    def test_expired_entries_swept_on_store(self, monotonic) -> None:
        signer = TemplateSigner(KEY, SignerConfig(cache_ttl_seconds=10), clock=monotonic)
        sig = signer.create_signature(CONTENT, "bot")
        for n in range(5):
            signer.verify_signature(f"{CONTENT}# {n}\n", sig)
        assert signer.get_cache_stats()["size"] == 5

        monotonic.advance(11)
        signer.verify_signature(CONTENT, sig)
        assert signer.get_cache_stats()["size"] == 1

    def test_cache_disabled(self) -> None:
        signer = TemplateSigner(KEY, SignerConfig(cache_enabled=False))
        sig = signer.create_signature(CONTENT, "bot")
        assert signer.verify_signature(CONTENT, sig).valid is True
        assert signer.get_cache_stats()["size"] == 0

    def test_clear_cache(self, signer: TemplateSigner) -> None:
        sig = signer.create_signature(CONTENT, "bot")
        signer.verify_signature(CONTENT, sig)
        signer.clear_cache()
        assert signer.get_cache_stats()["size"] == 0


class TestTemplateSigningContent:
    """Tests for the canonical signing form of a template."""

    def test_embedded_signature_excluded(self) -> None:
        base = {"id": "t", "steps": [{"commands": ["echo hi"]}]}
        signed = {
            **base,
            "security": {
                "signature": {
                    "algorithm": "HMAC-SHA256",
                    "signature": "ab",
                    "timestamp": "",
                    "signer": "x",
                },
            },
        }
        plain_text = template_signing_content(TemplateDocument.model_validate(base))
        signed_text = template_signing_content(TemplateDocument.model_validate(signed))
        assert plain_text == signed_text

    def test_key_order_irrelevant(self) -> None:
        a = TemplateDocument.model_validate({"id": "t", "name": "n", "custom": {"b": 1, "a": 2}})
        b = TemplateDocument.model_validate({"custom": {"a": 2, "b": 1}, "name": "n", "id": "t"})
        assert template_signing_content(a) == template_signing_content(b)

    def test_publisher_kept(self) -> None:
        doc = TemplateDocument.model_validate({
            "id": "t",
            "security": {"publisher": {"id": "acme", "trust_level": "verified"}},
        })
        assert '"acme"' in template_signing_content(doc)
