"""
Verification layer: request handler that composes the trust score calculator
and fingerprint matcher, plus the write-through trust score cache.
"""

from backend_deviceid.verification.cache import TrustScoreCache
from backend_deviceid.verification.handler import (
    FingerprintVerification,
    TrustScoreResponse,
    VerificationHandler,
    VerificationReport,
    blend_confidence,
)

__all__ = [
    "FingerprintVerification",
    "TrustScoreCache",
    "TrustScoreResponse",
    "VerificationHandler",
    "VerificationReport",
    "blend_confidence",
]
