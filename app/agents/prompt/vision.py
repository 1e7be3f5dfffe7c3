from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional

import httpx
from langchain_core.messages import HumanMessage

from app.agents.prompt.context import ImageReference
from app.agents.prompt.prompts import image_marker
from app.logging import get_logger

logger = get_logger("vision")

DEFAULT_MIME = "image/jpeg"


@dataclass(frozen=True)
class EncodedImage:
    reference: ImageReference
    mime_type: str
    data: str  # base64

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


async def encode_image(client: httpx.AsyncClient, ref: ImageReference) -> Optional[EncodedImage]:
    """Fetch and base64-encode one reference. Any failure returns None."""
    try:
        resp = await client.get(ref.url, follow_redirects=True)
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(f"image fetch failed | status={resp.status_code} url={ref.url}")
            return None
        if not resp.content:
            logger.warning(f"image fetch returned no bytes | url={ref.url}")
            return None
        mime = (resp.headers.get("content-type") or DEFAULT_MIME).split(";")[0].strip() or DEFAULT_MIME
        return EncodedImage(
            reference=ref,
            mime_type=mime,
            data=base64.b64encode(resp.content).decode("ascii"),
        )
    except Exception as e:
        logger.warning(f"image encode failed | url={ref.url} error={e!r}")
        return None


async def encode_images(
    refs: list[ImageReference],
    client: httpx.AsyncClient,
) -> list[EncodedImage]:
    # Sequential keeps the request order identical to the context order.
    encoded: list[EncodedImage] = []
    for ref in refs:
        img = await encode_image(client, ref)
        if img is not None:
            encoded.append(img)
    return encoded


def build_human_message(text: str, images: list[EncodedImage]) -> HumanMessage:
    """One user message: each image followed by its role marker, then the instructions."""
    if not images:
        return HumanMessage(content=text)

    content: list[dict] = []
    for img in images:
        ref = img.reference
        content.append({"type": "image_url", "image_url": {"url": img.data_url}})
        content.append({"type": "text", "text": image_marker(ref.role.value, ref.alt_label, ref.note)})
    content.append({"type": "text", "text": text})

    return HumanMessage(content=content)
