"""
target_onchain.core — Domain types shared by the verification and
recommendation engine: attestations, frames, products, results, errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


# ─── Errors ────────────────────────────────────────────────────────

class TargetOnchainError(Exception):
    """Base class for every error raised by this package."""


class InvalidSignature(TargetOnchainError):
    """Inbound frame interaction failed signature validation."""


class MalformedRequest(TargetOnchainError):
    """Request could not be parsed (e.g. non-numeric frame id)."""


class FrameNotFound(TargetOnchainError):
    def __init__(self, frame_id: int):
        self.frame_id = frame_id
        super().__init__(f"Frame {frame_id} not found")


class UpstreamUnavailable(TargetOnchainError):
    """The attestation index failed or answered with a malformed body."""


class UnknownCriteria(TargetOnchainError):
    """No verification strategy is registered for a matching criteria."""


class NoProductsAvailable(TargetOnchainError):
    def __init__(self, shop: str):
        self.shop = shop
        super().__init__(f"No products available for shop {shop!r}")


class MalformedPayload(TargetOnchainError):
    """Encoded attestation data does not match the declared schema."""


# ─── Matching criteria ─────────────────────────────────────────────

class MatchingCriteria(str, Enum):
    """Policy key stored on a frame; selects strategy and heuristic."""
    RECEIPTS_XYZ_ALL_TIME_RUNNING = "RECEIPTS_XYZ_ALL_TIME_RUNNING"
    COINBASE_ONCHAIN_VERIFICATIONS_COUNTRY = "COINBASE_ONCHAIN_VERIFICATIONS_COUNTRY"
    COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT = "COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT"
    COINBASE_ONCHAIN_VERIFICATIONS_ONE = "COINBASE_ONCHAIN_VERIFICATIONS_ONE"
    POAPS_OWNED = "POAPS_OWNED"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: Any) -> Optional["MatchingCriteria"]:
        """Return the member for ``value`` or None if it is not a known key."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None


# ─── Attestation ───────────────────────────────────────────────────

@dataclass
class Attestation:
    """An attestation record as returned by the EAS index."""
    recipient: str
    attester: str = ""
    schema_id: str = ""
    revocation_time: int = 0
    expiration_time: int = 0
    revoked: bool = False
    data: str = "0x"
    ref_uid: str = ""
    id: str = ""

    @property
    def is_valid(self) -> bool:
        """Only permanent, non-expiring, non-revoked attestations count."""
        return (
            self.revocation_time == 0
            and self.expiration_time == 0
            and not self.revoked
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Attestation":
        """Build from a GraphQL ``attestations`` item."""
        schema = data.get("schema") or {}
        return cls(
            recipient=data.get("recipient", ""),
            attester=data.get("attester", ""),
            schema_id=schema.get("id", "") if isinstance(schema, dict) else str(schema),
            revocation_time=int(data.get("revocationTime") or 0),
            expiration_time=int(data.get("expirationTime") or 0),
            revoked=bool(data.get("revoked", False)),
            data=data.get("data") or "0x",
            ref_uid=data.get("refUID", ""),
            id=data.get("id", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "attester": self.attester,
            "schema": {"id": self.schema_id},
            "revocationTime": self.revocation_time,
            "expirationTime": self.expiration_time,
            "revoked": self.revoked,
            "data": self.data,
            "refUID": self.ref_uid,
        }


# ─── Frames and products ───────────────────────────────────────────

@dataclass
class Frame:
    """A storefront frame configuration."""
    id: int
    shop: str
    title: str
    image: str = ""
    button: str = "Show"
    matching_criteria: Optional[str] = None
    creator: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def criteria(self) -> Optional[MatchingCriteria]:
        return MatchingCriteria.parse(self.matching_criteria)

    @classmethod
    def from_row(cls, row: dict) -> "Frame":
        return cls(
            id=int(row["id"]),
            shop=row["shop"],
            title=row["title"],
            image=row.get("image") or "",
            button=row.get("button") or "Show",
            matching_criteria=row.get("matching_criteria"),
            creator=row.get("creator"),
            created_at=_str_or_none(row.get("created_at")),
            updated_at=_str_or_none(row.get("updated_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop": self.shop,
            "title": self.title,
            "image": self.image,
            "button": self.button,
            "matching_criteria": self.matching_criteria,
            "creator": self.creator,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class Product:
    """A storefront product, read-only to the recommendation engine."""
    shop: str
    title: str
    description: str = ""
    image: str = ""
    handle: str = ""
    variant_id: Optional[str] = None
    variant_formatted_price: str = ""
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "Product":
        variant = row.get("variant_id")
        return cls(
            id=row.get("id"),
            shop=row["shop"],
            title=row["title"],
            description=row.get("description") or "",
            image=row.get("image") or "",
            handle=row.get("handle") or "",
            variant_id=str(variant) if variant else None,
            variant_formatted_price=row.get("variant_formatted_price") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop": self.shop,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "handle": self.handle,
            "variant_id": self.variant_id,
            "variant_formatted_price": self.variant_formatted_price,
        }


# ─── Transient results ─────────────────────────────────────────────

@dataclass
class VerificationResult:
    """Outcome of running a frame's verification strategy for an address."""
    valid: bool
    explanation: str = ""
    data: Optional[dict] = None

    @classmethod
    def not_found(cls) -> "VerificationResult":
        return cls(valid=False, explanation="", data=None)


@dataclass
class Recommendation:
    """The product chosen for one interaction, with its image and reasoning."""
    product: Product
    image_src: str
    explanation: str
    matched: bool = False


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
