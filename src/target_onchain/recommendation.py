"""
target_onchain.recommendation — Choose a product from a shop's catalog.

Criteria-specific heuristics apply only to valid verifications. Whenever
they find nothing, a uniformly random catalog product is recommended, so a
non-empty catalog always yields a product. An empty catalog raises
NoProductsAvailable.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Any, Optional, Sequence

from target_onchain.codec import COUNTRY_SCHEMA, SchemaDecoder
from target_onchain.core import (
    Attestation, MalformedPayload, MatchingCriteria, NoProductsAvailable,
    Product, Recommendation,
)
from target_onchain.rendering import og_image_url, product_image_url

__all__ = ["RecommendationPolicy", "RANDOM_SUFFIX"]

logger = logging.getLogger(__name__)

RUNNING_PATTERN = re.compile(r"Run|Running|Jog", re.IGNORECASE)
SPECIAL_PATTERN = re.compile(r"Special", re.IGNORECASE)
RANDOM_SUFFIX = "A random product is recommended."


def _first_matching(products: Sequence[Product], pattern: re.Pattern) -> Optional[Product]:
    return next((p for p in products if pattern.search(p.description)), None)


class RecommendationPolicy:
    """Product selection for one interaction.

    ``rng`` is the random source for the fallback pick; pass a seeded
    ``random.Random`` for deterministic results.
    """

    def __init__(self, base_url: str, rng: Optional[random.Random] = None):
        self.base_url = base_url
        self.rng = rng or random.Random()
        self._country_decoder = SchemaDecoder(COUNTRY_SCHEMA)

    def recommend(self, criteria: Any, valid: bool, data: Optional[dict],
                  products: Sequence[Product], address: str,
                  explanation: str = "", shop: str = "") -> Recommendation:
        """Pick the product to show ``address``.

        ``explanation`` is the verification narrative; it is kept when a
        heuristic matches and replaced by the fallback message otherwise.
        """
        if not products:
            raise NoProductsAvailable(shop)

        key = MatchingCriteria.parse(criteria)
        note = None
        if valid and key is not None:
            recommendation, note = self._by_criteria(key, data or {}, products, address, explanation)
            if recommendation is not None:
                return recommendation
        return self._random(products, address, note)

    # ── heuristics ────────────────────────────────────────────────

    def _by_criteria(self, key: MatchingCriteria, data: dict,
                     products: Sequence[Product], address: str,
                     explanation: str) -> tuple[Optional[Recommendation], Optional[str]]:
        if key is MatchingCriteria.RECEIPTS_XYZ_ALL_TIME_RUNNING:
            product = _first_matching(products, RUNNING_PATTERN)
            if product is None:
                return None, None
            image = og_image_url(
                self.base_url,
                title="Congrats on your +10th run!",
                subtitle="You're now eligible to buy:",
                content=product.title,
                url=product.image,
            )
            return Recommendation(product=product, image_src=image,
                                  explanation=explanation, matched=True), None

        if key is MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_COUNTRY:
            return self._by_country(data.get("attestation"), products, address)

        if key in (MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT,
                   MatchingCriteria.COINBASE_ONCHAIN_VERIFICATIONS_ONE):
            product = _first_matching(products, SPECIAL_PATTERN)
            if product is None:
                return None, None
            return Recommendation(product=product,
                                  image_src=product_image_url(self.base_url, product),
                                  explanation=explanation, matched=True), None
        return None, None

    def decode_country(self, attestation: Optional[Attestation]) -> Optional[str]:
        """Return the ``verifiedCountry`` value or None if it cannot be decoded."""
        if attestation is None:
            return None
        try:
            country = self._country_decoder.decode(attestation.data).get("verifiedCountry")
        except MalformedPayload as e:
            logger.warning("Could not decode country attestation: %s", e,
                           extra={"attestation": attestation.id})
            return None
        if not isinstance(country, str):
            return None
        return country.strip() or None

    def _by_country(self, attestation: Optional[Attestation], products: Sequence[Product],
                    address: str) -> tuple[Optional[Recommendation], Optional[str]]:
        country = self.decode_country(attestation)
        if not country:
            return None, None
        needle = country.lower()
        product = next((p for p in products if needle in p.description.lower()), None)
        if product is None:
            note = (f"Product not found for country of residence verified as {country} "
                    f"for {address} on Coinbase Onchain.")
            logger.info(note, extra={"country": country, "address": address})
            return None, note
        return Recommendation(
            product=product,
            image_src=product_image_url(self.base_url, product),
            explanation=f"Country of residence verified as {country} for {address} on Coinbase Onchain",
            matched=True,
        ), None

    def _random(self, products: Sequence[Product], address: str,
                note: Optional[str] = None) -> Recommendation:
        product = products[self.rng.randrange(len(products))]
        reason = note or f"No onchain data or matching product found for {address}."
        return Recommendation(
            product=product,
            image_src=product_image_url(self.base_url, product),
            explanation=f"{reason} {RANDOM_SUFFIX}",
        )
