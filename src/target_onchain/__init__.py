"""target_onchain — Storefront frames with onchain attestation-based recommendations."""

from target_onchain.config import Settings, get_settings
from target_onchain.core import (
    Attestation, Frame, Product, MatchingCriteria,
    VerificationResult, Recommendation,
    TargetOnchainError, InvalidSignature, MalformedRequest, FrameNotFound,
    UpstreamUnavailable, UnknownCriteria, NoProductsAvailable, MalformedPayload,
)
from target_onchain.codec import SchemaDecoder
from target_onchain.attestations import AttestationClient
from target_onchain.verification import VerificationRegistry, VerificationStrategy
from target_onchain.recommendation import RecommendationPolicy
from target_onchain.frame_message import FrameMessage, FrameMessageValidator
from target_onchain.handler import FrameInteractionHandler, FrameResponse

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "Attestation",
    "Frame",
    "Product",
    "MatchingCriteria",
    "VerificationResult",
    "Recommendation",
    "TargetOnchainError",
    "InvalidSignature",
    "MalformedRequest",
    "FrameNotFound",
    "UpstreamUnavailable",
    "UnknownCriteria",
    "NoProductsAvailable",
    "MalformedPayload",
    "SchemaDecoder",
    "AttestationClient",
    "VerificationRegistry",
    "VerificationStrategy",
    "RecommendationPolicy",
    "FrameMessage",
    "FrameMessageValidator",
    "FrameInteractionHandler",
    "FrameResponse",
]
