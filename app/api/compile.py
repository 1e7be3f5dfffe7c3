import uuid
from datetime import datetime, timezone
from typing import Optional
import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from app.logging import get_logger
from app.api.models import GeneratedItem, GenerateRequest, GenerateResponse, GraphRequest, RefineRequest, RefineResponse
from app.config import settings
from app.api.deps import get_db_pool, verify_token
from app.db.graph import get_graph, verify_project_ownership
from app.db.generated import add_generated_images, add_prompt

from app.agents.prompt.context import StructuredContext, assemble_context
from app.agents.prompt.graph import CompileOptions, run_compile
from app.agents.prompt.providers import OpenAIReasoningProvider, ReasoningProvider
from app.agents.prompt.snapshot import resolve_snapshot
from app.agents.generate.dispatcher import ProviderConfig, generate

router = APIRouter()
logger = get_logger("compile_api")


def get_reasoning_provider() -> Optional[ReasoningProvider]:
    # No key is an expected state: refine then returns the simple prompt.
    if not settings.OPENAI_API_KEY:
        return None
    return OpenAIReasoningProvider(
        model=settings.MODEL_NAME,
        api_key=settings.OPENAI_API_KEY,
        base_url=settings.OPENAI_BASE_URL,
        max_tokens=settings.REFINE_MAX_TOKENS,
        temperature=settings.REFINE_TEMPERATURE,
        timeout=settings.PROVIDER_TIMEOUT_S,
    )


def get_compile_options() -> CompileOptions:
    return CompileOptions(
        timeout=settings.PROVIDER_TIMEOUT_S,
        per_role_cap=settings.PER_ROLE_IMAGE_CAP,
        max_images=settings.MAX_REFINE_IMAGES,
    )


def get_provider_config() -> ProviderConfig:
    return ProviderConfig(
        gemini_api_key=settings.GEMINI_API_KEY,
        gemini_model=settings.GEMINI_MODEL,
        image_model=settings.IMAGE_MODEL,
        width=settings.IMAGE_WIDTH,
        height=settings.IMAGE_HEIGHT,
        timeout=settings.PROVIDER_TIMEOUT_S,
    )


async def _load_context(
    conn: asyncpg.Connection,
    request: GraphRequest,
    project_id: str,
    user_id: str,
    options: CompileOptions,
) -> StructuredContext:
    if not await verify_project_ownership(conn, project_id, user_id):
        raise HTTPException(status_code=403, detail="Access denied")

    # Point-in-time read: inline graph from the editor, else the stored one.
    if request.nodes is not None:
        nodes, edges = request.nodes, request.edges or []
    else:
        nodes, edges = await get_graph(conn, project_id)

    snapshot = resolve_snapshot(nodes, edges)
    return assemble_context(
        snapshot,
        request.prompt,
        per_role_cap=options.per_role_cap,
        max_images=options.max_images,
    )


@router.post("/refine", response_model=RefineResponse)
async def refine(
    request: RefineRequest,
    user_id: str = Depends(verify_token),
    pool: asyncpg.Pool = Depends(get_db_pool),
    provider: Optional[ReasoningProvider] = Depends(get_reasoning_provider),
    options: CompileOptions = Depends(get_compile_options),
):
    project_id = str(request.project_id)
    request_id = str(uuid.uuid4())[:8]

    async with pool.acquire() as conn:
        context = await _load_context(conn, request, project_id, user_id, options)

    logger.info(
        f"[{request_id}] refine | user_id={user_id} | "
        f"project_id={project_id} "
        f"images_used={len(context.images)} "
        f"images_dropped={context.dropped_images} "
        f"texts={len(context.text_descriptors)} "
        f"relationships={len(context.relationships)} "
        f"provider={provider.name if provider else None}"
    )

    result = await run_compile(context, provider, options, request_id=request_id)

    prompt_id = None
    try:
        async with pool.acquire() as conn:
            prompt_id = await add_prompt(
                conn, project_id, user_id, context.user_prompt or context.simple_prompt, result.prompt
            )
    except Exception as db_err:
        # History is best-effort; the refined prompt is still returned.
        logger.error(f"[{request_id}] failed to save prompt history: {db_err}")

    logger.info(f"[{request_id}] refine complete | refined_by={result.refined_by}")
    return RefineResponse(
        refined=result.prompt,
        simple=context.simple_prompt,
        refined_by=result.refined_by,
        prompt_id=prompt_id,
    )


@router.post("/generate", response_model=GenerateResponse)
async def generate_images(
    request: GenerateRequest,
    user_id: str = Depends(verify_token),
    pool: asyncpg.Pool = Depends(get_db_pool),
    options: CompileOptions = Depends(get_compile_options),
    config: ProviderConfig = Depends(get_provider_config),
):
    project_id = str(request.project_id)
    request_id = str(uuid.uuid4())[:8]

    async with pool.acquire() as conn:
        context = await _load_context(conn, request, project_id, user_id, options)

    prompt = context.user_prompt or context.simple_prompt
    references = context.images if request.use_references else []

    logger.info(
        f"[{request_id}] generate | user_id={user_id} | "
        f"project_id={project_id} "
        f"references={len(references)} "
        f"provider={request.provider} "
        f"gemini={'yes' if config.gemini_api_key else 'no'}"
    )

    result = await generate(
        prompt, references, config, request_id=request_id, preferred_provider=request.provider
    )
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error or "Generation failed")

    prompt_id = str(request.prompt_id) if request.prompt_id else None
    try:
        async with pool.acquire() as conn:
            items = await add_generated_images(
                conn,
                project_id,
                user_id,
                [{"url": img.url, "prompt": img.prompt} for img in result.images],
                result.provider,
                prompt_id=prompt_id,
            )
    except Exception as db_err:
        # Like prompt history, the image log is best-effort.
        logger.error(f"[{request_id}] failed to save generated images: {db_err}")
        now = datetime.now(timezone.utc)
        items = [
            GeneratedItem(id=str(uuid.uuid4()), url=img.url, prompt=img.prompt, provider=result.provider, createdAt=now)
            for img in result.images
        ]

    return GenerateResponse(images=items, provider=result.provider, mode=result.mode)
