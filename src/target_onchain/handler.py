"""
target_onchain.handler — The frame interaction pipeline.

For every POST to ``/api/frame/{id}/action``:

    validate signature → resolve address → parse frame id → load frame
    → run verification → load products → recommend → build buttons → render

Every stage short-circuits to the default error frame; nothing is retried
and no state survives the request.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import unquote

from target_onchain.config import Settings
from target_onchain.core import (
    Frame, FrameNotFound, InvalidSignature, MalformedRequest,
    NoProductsAvailable, Product, Recommendation, UpstreamUnavailable,
)
from target_onchain.frame_message import FrameMessage, FrameMessageValidator
from target_onchain.recommendation import RecommendationPolicy
from target_onchain.rendering import (
    APP_TITLE, FrameButton, default_error_frame, no_products_frame,
    og_image_url, render_frame_html,
)
from target_onchain.verification import VerificationRegistry

__all__ = ["FrameStore", "FrameResponse", "FrameInteractionHandler", "parse_frame_id"]

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"[0-9]+")


class FrameStore(Protocol):
    """Read side of the persistence layer used by the handler."""

    async def get_frame(self, frame_id: int) -> Optional[Frame]: ...

    async def get_products_by_shop(self, shop: str) -> list[Product]: ...


@dataclass
class FrameResponse:
    html: str
    error: Optional[str] = None
    recommendation: Optional[Recommendation] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_frame_id(raw: str) -> int:
    """Parse a path segment as a positive frame id. Raises MalformedRequest."""
    text = (raw or "").strip()
    if not _DIGITS.fullmatch(text) or int(text) <= 0:
        raise MalformedRequest(f"Invalid frame id: {raw!r}")
    return int(text)


class FrameInteractionHandler:
    def __init__(self, settings: Settings, validator: FrameMessageValidator,
                 registry: VerificationRegistry, policy: RecommendationPolicy,
                 store: FrameStore):
        self.base_url = settings.base_url
        self.validator = validator
        self.registry = registry
        self.policy = policy
        self.store = store

    def _error(self, error: str) -> FrameResponse:
        return FrameResponse(html=default_error_frame(self.base_url), error=error)

    async def _validated_message(self, body: dict) -> FrameMessage:
        validation = await self.validator.validate(body)
        if not validation.is_valid or validation.message is None:
            raise InvalidSignature("Message not valid")
        return validation.message

    async def _load_frame(self, frame_id: int) -> Frame:
        frame = await self.store.get_frame(frame_id)
        if frame is None:
            raise FrameNotFound(frame_id)
        return frame

    async def handle(self, frame_id_part: str, body: dict) -> FrameResponse:
        """Process one signed interaction and return the response document."""
        address = ""
        frame: Optional[Frame] = None
        try:
            message = await self._validated_message(body)
            address = message.address
            frame_id = parse_frame_id(frame_id_part)
            frame = await self._load_frame(frame_id)

            verification = await self.registry.run_verification(frame.matching_criteria, address)
            products = await self.store.get_products_by_shop(frame.shop)
            recommendation = self.policy.recommend(
                frame.matching_criteria, verification.valid, verification.data,
                products, address, explanation=verification.explanation, shop=frame.shop,
            )
        except InvalidSignature:
            logger.info("Message not valid")
            return self._error("invalid_signature")
        except MalformedRequest:
            logger.info("Invalid ID", extra={"id_part": frame_id_part, "address": address})
            return self._error("malformed_request")
        except FrameNotFound as e:
            logger.info("Frame not found", extra={"frame_id": e.frame_id, "address": address})
            return self._error("frame_not_found")
        except UpstreamUnavailable as e:
            logger.warning("Attestation index unavailable: %s", e, extra={
                "frame_id": frame.id if frame else None,
                "criteria": frame.matching_criteria if frame else None,
                "address": address,
            })
            return self._error("upstream_unavailable")
        except NoProductsAvailable as e:
            logger.warning("No products available", extra={
                "frame_id": frame.id if frame else None, "shop": e.shop, "address": address,
            })
            return FrameResponse(html=no_products_frame(self.base_url, e.shop),
                                 error="no_products")

        return FrameResponse(
            html=self._render(frame, message, recommendation),
            recommendation=recommendation,
        )

    def _buttons(self, frame: Frame, product: Product, dev: bool) -> list[FrameButton]:
        buttons = [FrameButton(label="View", action="link",
                               target=f"https://{frame.shop}/products/{product.handle}")]
        if product.variant_id:
            buttons.append(FrameButton(label="Buy", action="link",
                                       target=f"https://{frame.shop}/cart/{product.variant_id}:1"))
        if dev:
            buttons.append(FrameButton(label="Explain", action="post",
                                       target=f"{self.base_url}/api/frame/{frame.id}/explain"))
        return buttons

    def _render(self, frame: Frame, message: FrameMessage,
                recommendation: Recommendation) -> str:
        dev = message.dev_mode
        return render_frame_html(
            buttons=self._buttons(frame, recommendation.product, dev),
            image=recommendation.image_src,
            og_title=APP_TITLE,
            og_description=recommendation.product.title,
            post_url=f"{self.base_url}/api/frame",
            state={"description": recommendation.explanation} if dev else None,
        )

    # ── auxiliary frames ──────────────────────────────────────────

    async def explain(self, frame_id_part: str, body: dict) -> FrameResponse:
        """Show the explanation carried in the frame state as an image."""
        try:
            message = await self._validated_message(body)
            frame_id = parse_frame_id(frame_id_part)
        except InvalidSignature:
            logger.info("Message not valid")
            return self._error("invalid_signature")
        except MalformedRequest:
            logger.info("Invalid ID", extra={"id_part": frame_id_part})
            return self._error("malformed_request")

        description = _state_description(message.state)
        image = og_image_url(self.base_url, title="Why this product?",
                             content=description or "No explanation available.")
        html = render_frame_html(
            buttons=[FrameButton(label="Back", action="post",
                                 target=f"{self.base_url}/api/frame/{frame_id}/action")],
            image=image,
            og_description=description,
            post_url=f"{self.base_url}/api/frame/{frame_id}/action",
            input_text="Wallet address",
        )
        return FrameResponse(html=html)

    async def initial_frame(self, frame_id_part: str, dev: bool = False) -> FrameResponse:
        """The first frame shown for a stored frame, before any interaction."""
        try:
            frame = await self._load_frame(parse_frame_id(frame_id_part))
        except MalformedRequest:
            logger.info("Invalid ID", extra={"id_part": frame_id_part})
            return self._error("malformed_request")
        except FrameNotFound as e:
            logger.info("Frame not found", extra={"frame_id": e.frame_id})
            return self._error("frame_not_found")

        html = render_frame_html(
            buttons=[FrameButton(label=frame.button or "Show", action="post")],
            image=frame.image,
            og_title=frame.title,
            og_description=frame.title,
            post_url=f"{self.base_url}/api/frame/{frame.id}/action",
            input_text="Wallet address" if dev else None,
        )
        return FrameResponse(html=html)


def _state_description(serialized: Optional[str]) -> str:
    if not serialized:
        return ""
    try:
        state = json.loads(unquote(serialized))
    except ValueError:
        return ""
    if not isinstance(state, dict):
        return ""
    return str(state.get("description") or "")
