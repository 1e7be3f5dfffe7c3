import asyncio
import random
from urllib.parse import parse_qs, unquote, urlparse

import httpx

from app.agents.generate.dispatcher import FALLBACK_PROMPT, ProviderConfig, dispatch, generate, select_providers
from app.agents.generate.providers import GeminiImageProvider, PollinationsProvider
from app.agents.prompt.context import ImageReference
from app.agents.prompt.snapshot import Role

REFS = [ImageReference(url="https://cdn.test/hero.png", alt_label="hero", note=None, role=Role.SUBJECT)]


def _gemini_client(gemini_response: httpx.Response, seen: list, image_status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "generativelanguage.googleapis.com":
            seen.append(request)
            return gemini_response
        return httpx.Response(image_status, content=b"img", headers={"content-type": "image/jpeg"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_keyless_url_encodes_prompt_seed_and_size():
    provider = PollinationsProvider(width=512, height=768, model="flux", rng=random.Random(7))
    outcome = asyncio.run(provider.generate("neon cat, rain & fog", []))
    assert outcome.ok
    url = urlparse(outcome.images[0].url)
    assert url.netloc == "image.pollinations.ai"
    assert unquote(url.path) == "/prompt/neon cat, rain & fog"
    query = parse_qs(url.query)
    assert query["width"] == ["512"] and query["height"] == ["768"]
    assert query["model"] == ["flux"] and query["nologo"] == ["true"]
    assert query["seed"] == [str(random.Random(7).randint(0, 999999))]
    assert outcome.images[0].prompt == "neon cat, rain & fog"


def test_no_key_routes_to_keyless_provider():
    result = asyncio.run(generate("a castle", REFS, ProviderConfig()))
    assert result.ok
    assert result.provider == "pollinations"
    assert result.mode == "generate"
    assert [img.prompt for img in result.images] == ["a castle"]


def test_empty_prompt_generates_fallback_text():
    result = asyncio.run(generate("", [], ProviderConfig()))
    assert result.ok
    assert len(result.images) == 1
    assert result.images[0].prompt == FALLBACK_PROMPT


def test_gemini_images_become_data_uris():
    body = {
        "candidates": [
            {"content": {"parts": [{"text": "Sure!"}, {"inlineData": {"mimeType": "image/png", "data": "QUJD"}}]}}
        ]
    }
    seen = []

    async def run():
        async with _gemini_client(httpx.Response(200, json=body), seen) as client:
            config = ProviderConfig(gemini_api_key="k")
            return await generate("a castle", REFS, config, http_client=client)

    result = asyncio.run(run())
    assert result.provider == "gemini"
    assert result.mode == "reference"
    assert [img.url for img in result.images] == ["data:image/png;base64,QUJD"]
    assert seen[0].url.params["key"] == "k"
    sent = seen[0].read().decode()
    assert '"inlineData"' in sent
    assert "[Subject reference: hero]" in sent


def test_gemini_without_images_falls_back_to_keyless_with_same_prompt():
    body = {"candidates": [{"content": {"parts": [{"text": "I can't draw that."}]}}]}
    seen = []

    async def run():
        async with _gemini_client(httpx.Response(200, json=body), seen) as client:
            return await generate("a castle", REFS, ProviderConfig(gemini_api_key="k"), http_client=client)

    result = asyncio.run(run())
    assert len(seen) == 1
    assert result.provider == "pollinations"
    assert len(result.images) >= 1
    assert all(img.prompt == "a castle" for img in result.images)


def test_gemini_http_error_falls_back():
    seen = []

    async def run():
        resp = httpx.Response(429, json={"error": {"message": "quota exceeded"}})
        async with _gemini_client(resp, seen) as client:
            return await generate("a castle", [], ProviderConfig(gemini_api_key="k"), http_client=client)

    result = asyncio.run(run())
    assert result.ok and result.provider == "pollinations"


def test_terminal_failure_reports_most_specific_error():
    seen = []

    async def run():
        resp = httpx.Response(500, json={"error": {"message": "model overloaded"}})
        async with _gemini_client(resp, seen) as client:
            provider = GeminiImageProvider(api_key="k", http_client=client)
            return await dispatch("a castle", [], [provider])

    result = asyncio.run(run())
    assert not result.ok
    assert result.images == []
    assert result.error == "model overloaded"


def test_no_providers_is_a_structured_error():
    result = asyncio.run(generate("a castle", [], ProviderConfig(keyless_enabled=False)))
    assert not result.ok
    assert result.error == "no_generation_provider_configured"


def test_unfetchable_references_mean_text_only_mode():
    body = {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "QUJD"}}]}}]}
    seen = []

    async def run():
        async with _gemini_client(httpx.Response(200, json=body), seen, image_status=404) as client:
            return await generate("a castle", REFS, ProviderConfig(gemini_api_key="k"), http_client=client)

    result = asyncio.run(run())
    assert result.provider == "gemini"
    assert result.mode == "generate"
    sent = seen[0].read().decode()
    assert '"inlineData"' not in sent
    assert "Based on the reference images" not in sent


def test_keyless_choice_leaves_credentialed_provider_out():
    config = ProviderConfig(gemini_api_key="k")
    assert [p.name for p in select_providers(config)] == ["gemini", "pollinations"]
    assert [p.name for p in select_providers(config, preferred="gemini")] == ["gemini", "pollinations"]
    assert [p.name for p in select_providers(config, preferred="pollinations")] == ["pollinations"]


def test_keyless_choice_never_calls_gemini_even_with_key():
    seen = []

    async def run():
        async with _gemini_client(httpx.Response(500), seen) as client:
            config = ProviderConfig(gemini_api_key="k")
            return await generate("a castle", REFS, config, http_client=client, preferred_provider="pollinations")

    result = asyncio.run(run())
    assert seen == []
    assert result.provider == "pollinations"
    assert result.mode == "generate"
    assert [img.prompt for img in result.images] == ["a castle"]
