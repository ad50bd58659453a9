"""
Trusted Publisher Registry for Warden.

Keeps the publishers a host knows about and answers trust questions
about them. Trust levels are ordered:

    untrusted < community < verified < official

Trust rules:
    - Unknown publishers are trusted only when allow_untrusted is set
    - Known "untrusted" publishers follow the same flag
    - Every other known level is trusted
    - A template inherits its publisher's level only when the publisher
      is verified and the template claims the same level; in strict mode an
      unverified publisher is capped at "community"

Registry input errors (empty id or name, unknown trust level) raise.
Trust answers never do.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from warden.config import RegistryConfig
from warden.errors import InvalidTrustLevelError, PublisherValidationError, WardenError
from warden.schema import TRUST_HIERARCHY, PublisherEntry, PublisherInfo, TrustLevel

logger = logging.getLogger(__name__)


def _coerce_trust_level(value: TrustLevel | str, publisher_id: str = "") -> TrustLevel:
    try:
        return TrustLevel(value)
    except ValueError as e:
        raise InvalidTrustLevelError(publisher_id=publisher_id, trust_level=str(value)) from e


class TrustedPublisherRegistry:
    """
    In-memory registry of template publishers keyed by id.

    Persistence is left to the host through export() and
    import_publishers().

    Usage:
        registry = TrustedPublisherRegistry()
        registry.add_publisher("acme", "Acme Corp", "verified", public_key="...")
        if registry.is_trusted("acme"):
            ...
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config or RegistryConfig()
        self._log = log or logger
        self._publishers: dict[str, PublisherEntry] = {}
        self._log.debug(
            "TrustedPublisherRegistry initialized",
            extra={
                "allow_untrusted": self.config.allow_untrusted,
                "default_trust_level": self.config.default_trust_level.value,
                "strict_mode": self.config.strict_mode,
            },
        )

    def __len__(self) -> int:
        return len(self._publishers)

    def __contains__(self, publisher_id: object) -> bool:
        return publisher_id in self._publishers

    # =========================================================================
    # Mutation
    # =========================================================================

    def add_publisher(
        self,
        id: str,
        name: str,
        trust_level: TrustLevel | str,
        public_key: str | None = None,
        verified: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> PublisherEntry:
        """
        Register a publisher, replacing any entry with the same id.

        Raises:
            PublisherValidationError: If id or name is empty
            InvalidTrustLevelError: If trust_level is not a known level
        """
        entry = self._build_entry({
            "id": id,
            "name": name,
            "trust_level": trust_level,
            "public_key": public_key,
            "verified": verified,
            "metadata": metadata,
        })
        self._publishers[entry.id] = entry
        self._log.info(
            "Publisher added to registry",
            extra={
                "publisher_id": entry.id,
                "publisher_name": entry.name,
                "trust_level": entry.trust_level.value,
            },
        )
        return entry

    def remove_publisher(self, publisher_id: str) -> bool:
        removed = self._publishers.pop(publisher_id, None) is not None
        if removed:
            self._log.info("Publisher removed from registry", extra={"publisher_id": publisher_id})
        return removed

    def update_trust_level(self, publisher_id: str, trust_level: TrustLevel | str) -> bool:
        """
        Change a publisher's level. Returns False for unknown publishers.

        Raises:
            InvalidTrustLevelError: If trust_level is not a known level
        """
        level = _coerce_trust_level(trust_level, publisher_id)
        publisher = self._publishers.get(publisher_id)
        if publisher is None:
            return False

        old_level = publisher.trust_level
        self._publishers[publisher_id] = publisher.model_copy(update={"trust_level": level})
        self._log.info(
            "Publisher trust level updated",
            extra={
                "publisher_id": publisher_id,
                "old_level": old_level.value,
                "new_level": level.value,
            },
        )
        return True

    def verify_publisher(self, publisher_id: str, signature: str) -> bool:
        """
        Mark a publisher as verified.

        Fails for unknown publishers and publishers without a public key.
        Otherwise any non-empty signature is accepted; no cryptographic
        check is made against public_key.
        """
        publisher = self._publishers.get(publisher_id)
        if publisher is None:
            return False

        if publisher.public_key is None:
            self._log.warning("Publisher has no public key", extra={"publisher_id": publisher_id})
            return False

        # TODO: check signature against public_key once an asymmetric scheme is chosen
        verified = len(signature) > 0

        if verified and not publisher.verified:
            self._publishers[publisher_id] = publisher.model_copy(update={"verified": True})
            self._log.info("Publisher verified", extra={"publisher_id": publisher_id})

        return verified

    def clear(self) -> None:
        self._log.info("Clearing publisher registry")
        self._publishers.clear()

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_publisher(self, publisher_id: str) -> PublisherEntry | None:
        return self._publishers.get(publisher_id)

    def get_all_publishers(self) -> list[PublisherEntry]:
        return list(self._publishers.values())

    def get_trust_level(self, publisher_id: str) -> TrustLevel:
        """Stored level, or the configured default for unknown publishers."""
        publisher = self._publishers.get(publisher_id)
        return publisher.trust_level if publisher else self.config.default_trust_level

    def is_trusted(self, publisher_id: str) -> bool:
        publisher = self._publishers.get(publisher_id)
        if publisher is None or publisher.trust_level is TrustLevel.UNTRUSTED:
            return self.config.allow_untrusted
        return True

    def query(
        self,
        trust_level: TrustLevel | str | None = None,
        verified: bool | None = None,
        name: str | None = None,
    ) -> list[PublisherEntry]:
        """Filter publishers; all given filters must match."""
        results = list(self._publishers.values())

        if trust_level is not None:
            level = _coerce_trust_level(trust_level)
            results = [p for p in results if p.trust_level is level]

        if verified is not None:
            results = [p for p in results if p.verified == verified]

        if name:
            needle = name.lower()
            results = [p for p in results if needle in p.name.lower()]

        return results

    def inherit_trust(self, publisher_info: PublisherInfo) -> TrustLevel:
        """Trust level a template gets from the publisher it names."""
        if publisher_info.id is None:
            return self.config.default_trust_level

        publisher = self._publishers.get(publisher_info.id)
        if publisher is None:
            return self.config.default_trust_level

        if publisher.verified and publisher_info.trust_level is publisher.trust_level:
            return publisher.trust_level

        if self.config.strict_mode and not publisher.verified:
            return TrustLevel.COMMUNITY

        return publisher.trust_level

    # =========================================================================
    # Hierarchy
    # =========================================================================

    def get_trust_hierarchy(self) -> list[TrustLevel]:
        return list(TRUST_HIERARCHY)

    def compare_trust_levels(self, level1: TrustLevel | str, level2: TrustLevel | str) -> int:
        """Positive when level1 ranks above level2, zero when equal."""
        return TRUST_HIERARCHY.index(_coerce_trust_level(level1)) - TRUST_HIERARCHY.index(
            _coerce_trust_level(level2)
        )

    def requires_trust_level(self, publisher_id: str, required: TrustLevel | str) -> bool:
        """Whether the publisher's level meets the required level."""
        return self.compare_trust_levels(self.get_trust_level(publisher_id), required) >= 0

    def get_statistics(self) -> dict[str, Any]:
        by_trust_level: dict[str, int] = {}
        for publisher in self._publishers.values():
            key = publisher.trust_level.value
            by_trust_level[key] = by_trust_level.get(key, 0) + 1

        return {
            "total": len(self._publishers),
            "verified": sum(1 for p in self._publishers.values() if p.verified),
            "by_trust_level": by_trust_level,
        }

    def get_config(self) -> RegistryConfig:
        return self.config

    # =========================================================================
    # Persistence
    # =========================================================================

    def export(self) -> list[dict[str, Any]]:
        """JSON-serializable copy of every entry."""
        return [p.model_dump(mode="json") for p in self._publishers.values()]

    def import_publishers(
        self,
        entries: Iterable[Mapping[str, Any] | PublisherEntry],
        skip_invalid: bool = False,
    ) -> int:
        """
        Load exported entries. Returns the number imported.

        By default every entry is validated first and nothing is imported
        if any is invalid. With skip_invalid, bad entries are logged and
        left out.

        Raises:
            PublisherValidationError: If an entry is invalid (default mode)
            InvalidTrustLevelError: If an entry has an unknown trust level
        """
        entries = list(entries)
        self._log.info("Importing publishers", extra={"count": len(entries)})

        valid: list[PublisherEntry] = []
        for raw in entries:
            data = raw.model_dump() if isinstance(raw, PublisherEntry) else dict(raw)
            try:
                valid.append(self._build_entry(data))
            except WardenError as e:
                if not skip_invalid:
                    raise
                self._log.warning(
                    "Failed to import publisher",
                    extra={"publisher_id": data.get("id"), "error": e.message},
                )

        for entry in valid:
            self._publishers[entry.id] = entry
        return len(valid)

    @staticmethod
    def _build_entry(data: dict[str, Any]) -> PublisherEntry:
        publisher_id = data.get("id") or ""
        if not isinstance(publisher_id, str) or not publisher_id:
            raise PublisherValidationError(publisher_id=str(publisher_id), field_name="ID")

        name = data.get("name") or ""
        if not isinstance(name, str) or not name:
            raise PublisherValidationError(publisher_id=publisher_id, field_name="name")

        fields = {
            **data,
            "trust_level": _coerce_trust_level(data.get("trust_level", ""), publisher_id),
        }
        fields = {k: v for k, v in fields.items() if v is not None or k == "public_key"}
        try:
            return PublisherEntry.model_validate(fields)
        except ValidationError as e:
            raise PublisherValidationError(
                publisher_id=publisher_id,
                message=f"Invalid publisher entry {publisher_id!r}: {e}",
            ) from e
