"""
target_onchain.verification — Per-criteria attestation checks.

Each implemented MatchingCriteria maps to exactly one VerificationStrategy
(schema + attester pair, a count threshold, and success/failure narratives).
The table is closed: POAPS_OWNED and ALL are declared criteria without a
strategy and resolve to "not valid" like any unknown key.

Usage:
    registry = VerificationRegistry.from_settings(settings, client)
    result = await registry.run_verification(frame.matching_criteria, address)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from target_onchain.attestations import AttestationClient
from target_onchain.config import Settings
from target_onchain.core import MatchingCriteria, UnknownCriteria, VerificationResult

__all__ = ["PayloadKind", "VerificationStrategy", "VerificationRegistry"]

logger = logging.getLogger(__name__)


class PayloadKind(str, Enum):
    """What a strategy hands to the recommendation policy."""
    COUNT = "count"
    FIRST_ATTESTATION = "attestation"


@dataclass(frozen=True)
class VerificationStrategy:
    criteria: MatchingCriteria
    schema_id: str
    attester_id: str
    min_count: int
    payload: PayloadKind
    success_template: str
    failure_template: str

    @property
    def configured(self) -> bool:
        return bool(self.schema_id)

    def success_message(self, address: str) -> str:
        return self.success_template.format(address=address)

    def failure_message(self, address: str) -> str:
        return self.failure_template.format(address=address)

    async def verify(self, client: AttestationClient, address: str) -> tuple[bool, dict[str, Any]]:
        """Return ``(valid, data)`` for ``address``."""
        attestations = await client.fetch_valid_attestations(
            address, self.schema_id, self.attester_id or None,
        )
        valid = len(attestations) >= self.min_count
        if self.payload is PayloadKind.COUNT:
            return valid, {"count": len(attestations)}
        return valid, {"attestation": attestations[0] if attestations else None}


def _strategies(settings: Settings) -> dict[MatchingCriteria, VerificationStrategy]:
    return {
        MatchingCriteria.RECEIPTS_XYZ_ALL_TIME_RUNNING: VerificationStrategy(
            criteria=MatchingCriteria.RECEIPTS_XYZ_ALL_TIME_RUNNING,
            schema_id=settings.receipts_xyz_all_time_running_schema,
            attester_id=settings.receipts_xyz_attester,
            min_count=10,
            payload=PayloadKind.COUNT,
            success_template=(
                "10 or more attestations found on Receipts.xyz for {address}. "
                "A special product is recommended."
            ),
            failure_template=(
                "Not more than 10 attestations found on Receipts.xyz for {address}. "
                "A random product is recommended."
            ),
        ),
        MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_COUNTRY: VerificationStrategy(
            criteria=MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_COUNTRY,
            schema_id=settings.coinbase_country_residence_schema,
            attester_id=settings.coinbase_attester,
            min_count=1,
            payload=PayloadKind.FIRST_ATTESTATION,
            success_template=(
                "Country of residence verified for {address} on Coinbase Onchain. "
                "A product based on the country is recommended."
            ),
            failure_template=(
                "Country of residence not verified for {address} on Coinbase Onchain. "
                "A random product is recommended."
            ),
        ),
        MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT: VerificationStrategy(
            criteria=MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT,
            schema_id=settings.coinbase_account_schema,
            attester_id=settings.coinbase_attester,
            min_count=1,
            payload=PayloadKind.FIRST_ATTESTATION,
            success_template=(
                "Coinbase account member attestation for {address}. "
                "A special product is recommended."
            ),
            failure_template=(
                "No Coinbase account member attestation for {address}. "
                "A random product is recommended."
            ),
        ),
        MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ONE: VerificationStrategy(
            criteria=MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ONE,
            schema_id=settings.coinbase_one_schema,
            attester_id=settings.coinbase_attester,
            min_count=1,
            payload=PayloadKind.FIRST_ATTESTATION,
            success_template=(
                "Coinbase One account member attestation for {address}. "
                "A special product is recommended."
            ),
            failure_template=(
                "No Coinbase One account member attestation for {address}. "
                "A random product is recommended."
            ),
        ),
    }


class VerificationRegistry:
    """Dispatch from a frame's matching criteria to its strategy."""

    def __init__(self, client: AttestationClient,
                 strategies: dict[MatchingCriteria, VerificationStrategy]):
        self.client = client
        self._strategies = dict(strategies)

    @classmethod
    def from_settings(cls, settings: Settings, client: AttestationClient) -> "VerificationRegistry":
        return cls(client, _strategies(settings))

    def lookup(self, criteria: Any) -> VerificationStrategy:
        """Return the strategy for ``criteria``. Raises UnknownCriteria."""
        key = MatchingCriteria.parse(criteria)
        strategy = self._strategies.get(key) if key else None
        if strategy is None or not strategy.configured:
            raise UnknownCriteria(f"No verification strategy for {criteria!r}")
        return strategy

    def resolve(self, criteria: Any) -> Optional[VerificationStrategy]:
        try:
            return self.lookup(criteria)
        except UnknownCriteria:
            return None

    async def run_verification(self, criteria: Any, address: str) -> VerificationResult:
        """Verify ``address`` under ``criteria``.

        Unknown or unconfigured criteria are "not valid" with an empty
        explanation. UpstreamUnavailable from the index propagates.
        """
        strategy = self.resolve(criteria)
        if strategy is None:
            logger.info("No strategy for matching criteria",
                        extra={"criteria": str(criteria), "address": address})
            return VerificationResult.not_found()

        valid, data = await strategy.verify(self.client, address)
        explanation = strategy.success_message(address) if valid else strategy.failure_message(address)
        logger.info("Verification finished", extra={
            "criteria": strategy.criteria.value, "address": address, "valid": valid,
        })
        return VerificationResult(valid=valid, explanation=explanation, data=data)
