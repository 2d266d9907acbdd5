"""
target_onchain.rendering — Frame response documents and share-image URLs.

Frames are plain HTML documents whose ``fc:frame`` meta tags describe the
image, buttons, post URL and optional state. Images are not rendered here;
only the URL of the templated image generator is built.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from html import escape
from typing import Optional
from urllib.parse import quote, urlencode

from target_onchain.core import Product

__all__ = [
    "FrameButton", "og_image_url", "product_image_url",
    "render_frame_html", "error_frame", "default_error_frame",
    "no_products_frame", "APP_TITLE",
]

APP_TITLE = "Target Onchain"
IMAGE_WIDTH = 600
MAX_BUTTONS = 4


@dataclass(frozen=True)
class FrameButton:
    label: str
    action: str = "post"   # post | link | post_redirect | mint | tx
    target: Optional[str] = None


def og_image_url(base_url: str, *, title: str = "", subtitle: str = "",
                 content: str = "", url: str = "", width: int = IMAGE_WIDTH) -> str:
    """URL of the templated share-image endpoint."""
    params = {
        "title": title,
        "subtitle": subtitle,
        "content": content,
        "url": url,
        "width": width,
    }
    return f"{base_url}/api/og?{urlencode(params, quote_via=quote)}"


def product_image_url(base_url: str, product: Product) -> str:
    return og_image_url(
        base_url,
        title=product.title,
        subtitle=product.description,
        content=product.variant_formatted_price,
        url=product.image,
    )


def _meta(prop: str, content: str) -> str:
    return f'<meta property="{prop}" content="{escape(content, quote=True)}" />'


def render_frame_html(*, buttons: list[FrameButton], image: str,
                      og_title: str = APP_TITLE, og_description: str = "",
                      post_url: Optional[str] = None, state: Optional[dict] = None,
                      input_text: Optional[str] = None,
                      aspect_ratio: Optional[str] = None) -> str:
    """Build the frame HTML document. At most four buttons are allowed."""
    if len(buttons) > MAX_BUTTONS:
        raise ValueError(f"A frame supports at most {MAX_BUTTONS} buttons, got {len(buttons)}")

    tags = [
        _meta("og:description", og_description),
        _meta("og:title", og_title),
        _meta("fc:frame", "vNext"),
    ]
    for i, button in enumerate(buttons, start=1):
        tags.append(_meta(f"fc:frame:button:{i}", button.label))
        tags.append(_meta(f"fc:frame:button:{i}:action", button.action))
        if button.target:
            tags.append(_meta(f"fc:frame:button:{i}:target", button.target))
    tags.append(_meta("fc:frame:image", image))
    tags.append(_meta("og:image", image))
    if aspect_ratio:
        tags.append(_meta("fc:frame:image:aspect_ratio", aspect_ratio))
    if input_text:
        tags.append(_meta("fc:frame:input:text", input_text))
    if post_url:
        tags.append(_meta("fc:frame:post_url", post_url))
    if state:
        tags.append(_meta("fc:frame:state", quote(json.dumps(state, separators=(",", ":")))))

    head = "\n    ".join(tags)
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head>\n"
        f"    {head}\n"
        "  </head>\n"
        "</html>\n"
    )


def error_frame(base_url: str, title: str, subtitle: str = "") -> str:
    return render_frame_html(
        buttons=[FrameButton(label="Try again", action="post")],
        image=og_image_url(base_url, title=title, subtitle=subtitle),
        og_description=title,
        post_url=f"{base_url}/api/frame",
    )


def default_error_frame(base_url: str) -> str:
    """Response document returned on every failed interaction."""
    return error_frame(base_url, "Something went wrong", "Please try again later.")


def no_products_frame(base_url: str, shop: str) -> str:
    return error_frame(base_url, "No products available", f"{shop} has no products yet.")
