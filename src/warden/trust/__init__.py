"""Publisher trust and template signatures."""

from warden.trust.publishers import TrustedPublisherRegistry
from warden.trust.signing import SIGNATURE_ALGORITHM, TemplateSigner

__all__ = [
    "SIGNATURE_ALGORITHM",
    "TemplateSigner",
    "TrustedPublisherRegistry",
]
