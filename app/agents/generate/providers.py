from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote, urlencode

import httpx

from app.agents.prompt.context import ImageReference
from app.agents.prompt.prompts import image_marker
from app.agents.prompt.vision import encode_images

POLLINATIONS_BASE_URL = "https://image.pollinations.ai/prompt"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True)
class ImageResult:
    url: str  # http(s) URL or data: URI
    prompt: str


@dataclass
class ProviderOutcome:
    provider: str
    images: list[ImageResult] = field(default_factory=list)
    error: Optional[str] = None
    # Reference images that actually reached the provider.
    references_sent: int = 0

    @property
    def ok(self) -> bool:
        return bool(self.images)


class ImageProvider:
    """One strategy in the generation fallback chain. ``generate`` must not raise."""

    name = "image"
    supports_references = False

    async def generate(self, prompt: str, references: list[ImageReference]) -> ProviderOutcome:
        raise NotImplementedError("Subclasses must implement generate().")


class PollinationsProvider(ImageProvider):
    """Keyless text-to-image. The image URL itself is the result; nothing is fetched."""

    name = "pollinations"

    def __init__(
        self,
        width: int = 1024,
        height: int = 1024,
        model: str = "flux",
        base_url: str = POLLINATIONS_BASE_URL,
        rng: Optional[random.Random] = None,
    ):
        self.width = width
        self.height = height
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.rng = rng or random.Random()

    def build_url(self, prompt: str, seed: int) -> str:
        query = urlencode(
            {
                "width": self.width,
                "height": self.height,
                "seed": seed,
                "model": self.model,
                "nologo": "true",
            }
        )
        return f"{self.base_url}/{quote(prompt, safe='')}?{query}"

    async def generate(self, prompt: str, references: list[ImageReference]) -> ProviderOutcome:
        if not prompt:
            return ProviderOutcome(provider=self.name, error="empty_prompt")
        seed = self.rng.randint(0, 999999)
        return ProviderOutcome(
            provider=self.name,
            images=[ImageResult(url=self.build_url(prompt, seed), prompt=prompt)],
        )


class GeminiImageProvider(ImageProvider):
    """Credentialed multimodal provider: text plus inline reference images in, inline images out."""

    name = "gemini"
    supports_references = True

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash-exp",
        timeout: float = 45.0,
        base_url: str = GEMINI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client

    def instruction(self, prompt: str, with_references: bool) -> str:
        if with_references:
            return (
                f"Based on the reference images provided above, create a new image that: {prompt}. "
                "Incorporate the visual style, subjects, and elements from the reference images. "
                "Generate a high-quality, professional image."
            )
        return f"Generate a high-quality, professional image: {prompt}"

    async def build_payload(
        self, prompt: str, references: list[ImageReference], client: httpx.AsyncClient
    ) -> dict:
        parts: list[dict] = []
        encoded = await encode_images(references, client) if references else []
        for img in encoded:
            ref = img.reference
            parts.append({"inlineData": {"mimeType": img.mime_type, "data": img.data}})
            parts.append({"text": image_marker(ref.role.value, ref.alt_label, ref.note)})
        parts.append({"text": self.instruction(prompt, bool(encoded))})
        return {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    @staticmethod
    def extract_images(data: dict, prompt: str) -> list[ImageResult]:
        images: list[ImageResult] = []
        for candidate in data.get("candidates") or []:
            parts = ((candidate or {}).get("content") or {}).get("parts") or []
            for part in parts:
                inline = (part or {}).get("inlineData") or (part or {}).get("inline_data")
                if not inline or not inline.get("data"):
                    continue
                mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                images.append(ImageResult(url=f"data:{mime};base64,{inline['data']}", prompt=prompt))
        return images

    async def _call(self, prompt: str, references: list[ImageReference], client: httpx.AsyncClient) -> ProviderOutcome:
        payload = await self.build_payload(prompt, references, client)
        url = f"{self.base_url}/models/{self.model}:generateContent"
        resp = await client.post(url, params={"key": self.api_key}, json=payload)
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code < 200 or resp.status_code >= 300:
            message = ((data or {}).get("error") or {}).get("message") if isinstance(data, dict) else None
            return ProviderOutcome(provider=self.name, error=message or f"gemini_http_{resp.status_code}")
        images = self.extract_images(data if isinstance(data, dict) else {}, prompt)
        if not images:
            return ProviderOutcome(provider=self.name, error="gemini_returned_no_images")
        sent = sum(1 for part in payload["contents"][0]["parts"] if "inlineData" in part)
        return ProviderOutcome(provider=self.name, images=images, references_sent=sent)

    async def generate(self, prompt: str, references: list[ImageReference]) -> ProviderOutcome:
        try:
            if self.http_client is not None:
                return await self._call(prompt, references, self.http_client)
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                return await self._call(prompt, references, client)
        except httpx.TimeoutException:
            return ProviderOutcome(provider=self.name, error="gemini_timeout")
        except Exception as e:
            return ProviderOutcome(provider=self.name, error=f"gemini_network_error: {e}")
