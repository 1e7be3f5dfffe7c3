from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

import httpx

from app.agents.generate.providers import (
    GeminiImageProvider,
    ImageProvider,
    ImageResult,
    PollinationsProvider,
)
from app.agents.prompt.context import ImageReference
from app.agents.prompt.prompts import QUALITY_SUFFIX
from app.logging import get_logger

logger = get_logger("generate")

# Generated when the caller has nothing at all to say.
FALLBACK_PROMPT = QUALITY_SUFFIX


@dataclass(frozen=True)
class ProviderConfig:
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash-exp"
    image_model: str = "flux"
    width: int = 1024
    height: int = 1024
    timeout: float = 45.0
    keyless_enabled: bool = True


@dataclass
class GenerationResult:
    images: list[ImageResult] = field(default_factory=list)
    provider: Optional[str] = None
    mode: str = "generate"
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.images)


def select_providers(
    config: ProviderConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
    preferred: Optional[str] = None,
) -> list[ImageProvider]:
    """Ordered strategy list: credentialed multimodal first, keyless text-to-image last.

    ``preferred="pollinations"`` leaves the credentialed provider out of the chain.
    """
    chain: list[ImageProvider] = []
    if config.gemini_api_key and preferred != PollinationsProvider.name:
        chain.append(
            GeminiImageProvider(
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                timeout=config.timeout,
                http_client=http_client,
            )
        )
    if config.keyless_enabled:
        chain.append(
            PollinationsProvider(
                width=config.width,
                height=config.height,
                model=config.image_model,
                rng=rng,
            )
        )
    return chain


async def dispatch(
    prompt: str,
    references: list[ImageReference],
    providers: list[ImageProvider],
    request_id: Optional[str] = None,
) -> GenerationResult:
    """Try each provider in order and stop at the first that yields images."""
    request_id = request_id or str(uuid.uuid4())[:8]
    prompt = (prompt or "").strip() or FALLBACK_PROMPT

    last_error: Optional[str] = "no_generation_provider_configured"
    for provider in providers:
        refs = references if provider.supports_references else []
        try:
            outcome = await provider.generate(prompt, refs)
        except Exception as e:
            logger.warning(f"[{request_id}] provider={provider.name} raised | error={e!r}")
            last_error = f"{provider.name}: {e}"
            continue
        if outcome.ok:
            logger.info(
                f"[{request_id}] generated | provider={provider.name} images={len(outcome.images)} "
                f"refs={outcome.references_sent}/{len(refs)}"
            )
            return GenerationResult(
                images=outcome.images,
                provider=provider.name,
                mode="reference" if outcome.references_sent else "generate",
            )
        last_error = outcome.error or f"{provider.name}: no images"
        logger.warning(f"[{request_id}] provider={provider.name} failed, trying next | error={last_error}")

    logger.error(f"[{request_id}] all generation providers failed | error={last_error}")
    return GenerationResult(error=last_error)


async def generate(
    prompt: str,
    references: list[ImageReference],
    config: ProviderConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    rng: Optional[random.Random] = None,
    request_id: Optional[str] = None,
    preferred_provider: Optional[str] = None,
) -> GenerationResult:
    providers = select_providers(config, http_client=http_client, rng=rng, preferred=preferred_provider)
    return await dispatch(prompt, references, providers, request_id=request_id)
