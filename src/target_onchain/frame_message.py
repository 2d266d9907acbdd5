"""
target_onchain.frame_message — Validate signed frame interactions.

Signature checking is delegated to Neynar's ``frame/validate`` endpoint;
this module only forwards the trusted message bytes and maps the answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from target_onchain.config import Settings

__all__ = ["FrameMessage", "FrameValidation", "FrameMessageValidator"]

logger = logging.getLogger(__name__)


@dataclass
class FrameMessage:
    """The parts of a validated interaction this service reads."""
    input: Optional[str] = None
    verified_accounts: list[str] = field(default_factory=list)
    button: Optional[int] = None
    fid: Optional[int] = None
    state: Optional[str] = None

    @property
    def dev_mode(self) -> bool:
        """An explicit text input marks a test/dev interaction."""
        return bool(self.input)

    @property
    def address(self) -> str:
        """Explicit input wins over the interactor's first verified account."""
        if self.input:
            return self.input
        if self.verified_accounts:
            return self.verified_accounts[0]
        return ""

    @classmethod
    def from_action(cls, action: dict) -> "FrameMessage":
        """Map a Neynar ``action`` object."""
        interactor = action.get("interactor") or {}
        verifications = interactor.get("verifications")
        if not verifications:
            verified = interactor.get("verified_addresses") or {}
            verifications = verified.get("eth_addresses") or []
        text = (action.get("input") or {}).get("text")
        return cls(
            input=text or None,
            verified_accounts=[v for v in verifications if isinstance(v, str)],
            button=(action.get("tapped_button") or {}).get("index"),
            fid=interactor.get("fid"),
            state=(action.get("state") or {}).get("serialized"),
        )


@dataclass
class FrameValidation:
    is_valid: bool
    message: Optional[FrameMessage] = None


class FrameMessageValidator:
    """Validate an inbound frame request body against Neynar."""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.url = f"{settings.neynar_api_url}/v2/farcaster/frame/validate"
        self.api_key = settings.neynar_api_key
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.http_timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def validate(self, body: dict) -> FrameValidation:
        trusted = body.get("trustedData") if isinstance(body, dict) else None
        message_bytes = trusted.get("messageBytes") if isinstance(trusted, dict) else None
        if not message_bytes:
            logger.info("Frame request has no trustedData.messageBytes")
            return FrameValidation(is_valid=False)

        try:
            resp = await self._http.post(
                self.url,
                json={"message_bytes_in_hex": message_bytes},
                headers={"accept": "application/json", "api_key": self.api_key},
            )
            resp.raise_for_status()
            result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Frame validation call failed: %s", e, extra={"event": "neynar_error"})
            return FrameValidation(is_valid=False)

        if not isinstance(result, dict) or not result.get("valid") or not result.get("action"):
            return FrameValidation(is_valid=False)
        return FrameValidation(is_valid=True, message=FrameMessage.from_action(result["action"]))
