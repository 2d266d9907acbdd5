"""
target_onchain.attestations — Client for the EAS GraphQL attestation index.

One POST per lookup, no retries and no pagination: the result is whatever
the first response page holds. Failures surface as UpstreamUnavailable.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

from target_onchain.config import Settings
from target_onchain.core import Attestation, UpstreamUnavailable

__all__ = ["AttestationClient", "build_attestations_query"]

logger = logging.getLogger(__name__)

_ATTESTATION_FIELDS = """
        id
        attester
        recipient
        refUID
        revocable
        revocationTime
        revoked
        expirationTime
        data
        schema {
          id
        }"""


def _insensitive(field: str, value: str) -> str:
    return f"{field}: {{ equals: {json.dumps(value)}, mode: insensitive }}"


def build_attestations_query(address: str, schema_id: Optional[str] = None,
                             attester_id: Optional[str] = None) -> str:
    """Build the ``attestations(where: ...)`` GraphQL query."""
    filters = [_insensitive("recipient", address)]
    if schema_id:
        filters.append(_insensitive("schemaId", schema_id))
    if attester_id:
        filters.append(_insensitive("attester", attester_id))
    return (
        "query Attestations {\n"
        f"  attestations(where: {{ {', '.join(filters)} }}) {{"
        f"{_ATTESTATION_FIELDS}\n"
        "  }\n"
        "}\n"
    )


class AttestationClient:
    """Fetch valid attestations for a recipient from the EAS index."""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.url = settings.eas_graphql_url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.http_timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _query(self, query: str) -> list[dict]:
        try:
            resp = await self._http.post(
                self.url,
                json={"query": query},
                headers={"Content-Type": "application/json"},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Attestation index request failed: %s", e,
                           extra={"event": "eas_error", "url": self.url})
            raise UpstreamUnavailable(f"Attestation index request failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable("Attestation index returned a non-JSON body") from e

        data = body.get("data") if isinstance(body, dict) else None
        items = data.get("attestations") if isinstance(data, dict) else None
        if not isinstance(items, list):
            errors = body.get("errors") if isinstance(body, dict) else None
            logger.warning("Attestation index returned no data",
                           extra={"event": "eas_malformed", "errors": errors})
            raise UpstreamUnavailable("Attestation index response is missing 'data.attestations'")
        return items

    async def fetch_valid_attestations(self, address: str,
                                       schema_id: Optional[str] = None,
                                       attester_id: Optional[str] = None) -> list[Attestation]:
        """Return permanent, unrevoked attestations for ``address``.

        The schema is filtered both in the query and again on the returned
        records.
        """
        query = build_attestations_query(address, schema_id, attester_id)
        items = await self._query(query)

        attestations = []
        for item in items:
            if not isinstance(item, dict):
                continue
            att = Attestation.from_dict(item)
            if not att.is_valid:
                continue
            if schema_id and att.schema_id.lower() != schema_id.lower():
                continue
            attestations.append(att)

        logger.debug("Fetched attestations", extra={
            "address": address, "schema": schema_id,
            "returned": len(items), "valid": len(attestations),
        })
        return attestations
