from __future__ import annotations

import asyncio
import re
import uuid
from dataclasses import dataclass
from typing import Optional

import httpx
from langchain_core.messages import SystemMessage
from langgraph.graph import StateGraph, START, END

from app.agents.prompt.context import DEFAULT_PER_ROLE_CAP, StructuredContext
from app.agents.prompt.prompts import DEFAULT_WORD_BUDGET, QUALITY_SUFFIX, instruction_block, system_prompt
from app.agents.prompt.providers import ReasoningProvider
from app.agents.prompt.state import CompileState
from app.agents.prompt.vision import build_human_message, encode_images
from app.logging import get_logger

logger = get_logger("compile")

_PREAMBLE = re.compile(
    r"^(?:"
    r"(?:here\s+is|here['’]s)(?:\s+(?:the|your)\s+(?:(?:refined|final|improved|enhanced|image)\s+)?prompt)?"
    r"|the\s+(?:(?:refined|final|improved|enhanced)\s+)?prompt\s+is"
    r")\s*:\s*",
    re.IGNORECASE,
)
_QUOTES = "\"'`“”‘’"


@dataclass(frozen=True)
class CompileOptions:
    timeout: float = 45.0
    word_budget: str = DEFAULT_WORD_BUDGET
    # Read by assemble_context callers; the pipeline itself only sees the finished context.
    per_role_cap: int = DEFAULT_PER_ROLE_CAP
    max_images: Optional[int] = None


@dataclass(frozen=True)
class CompileResult:
    prompt: str
    refined_by: str
    error: Optional[str] = None


def _join(*parts: str) -> str:
    return ", ".join(p for p in parts if p)


def direct_prompt(context: StructuredContext) -> str:
    """Prompt used when the reasoning call is skipped."""
    return _join(context.user_prompt, context.simple_prompt) or QUALITY_SUFFIX


def fallback_prompt(context: StructuredContext) -> str:
    """Prompt used when the reasoning call fails. Contains the user prompt verbatim."""
    base = context.user_prompt or context.simple_prompt
    return _join(base, QUALITY_SUFFIX)


def clean_refined(text: Optional[str]) -> str:
    if not text:
        return ""
    # Quotes may wrap the whole reply, preamble included, or only the prompt after it.
    s = text.strip().strip(_QUOTES).strip()
    s = _PREAMBLE.sub("", s, count=1)
    return s.strip().strip(_QUOTES).strip()


def build_compile_graph(
    provider: Optional[ReasoningProvider],
    options: Optional[CompileOptions] = None,
    http_client: Optional[httpx.AsyncClient] = None,
):
    """Refine pipeline.

    START -> direct -> END                               (no provider / nothing to reason about)
    START -> encode -> reason -> clean -> END            (success)
                                       \\-> fallback -> END
    """
    options = options or CompileOptions()

    def route_start(state: CompileState) -> str:
        context = state["context"]
        if provider is None:
            return "direct"
        if not context.has_images and not context.text_descriptors:
            return "direct"
        return "encode"

    async def direct_node(state: CompileState) -> dict:
        return {"prompt": direct_prompt(state["context"]), "refined_by": "simple"}

    async def encode_node(state: CompileState) -> dict:
        refs = state["context"].images
        if not refs:
            return {"encoded": []}
        if http_client is not None:
            encoded = await encode_images(refs, http_client)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(options.timeout)) as client:
                encoded = await encode_images(refs, client)
        if len(encoded) < len(refs):
            logger.warning(
                f"[{state['request_id']}] skipped {len(refs) - len(encoded)} of {len(refs)} reference images"
            )
        return {"encoded": encoded}

    async def reason_node(state: CompileState) -> dict:
        context = state["context"]
        encoded = state.get("encoded") or []
        included_roles = sorted({img.reference.role.value for img in encoded})
        messages = [
            SystemMessage(content=system_prompt(options.word_budget)),
            build_human_message(instruction_block(context, included_roles), encoded),
        ]
        try:
            raw = await asyncio.wait_for(provider.refine(messages), timeout=options.timeout)
        except asyncio.TimeoutError:
            return {"raw": None, "error": "reasoning_timeout"}
        except Exception as e:
            return {"raw": None, "error": f"reasoning_error: {e}"}
        return {"raw": raw, "error": None}

    async def clean_node(state: CompileState) -> dict:
        cleaned = clean_refined(state.get("raw"))
        if not cleaned:
            return {"error": state.get("error") or "reasoning_empty_result"}
        return {"prompt": cleaned, "refined_by": provider.name}

    async def fallback_node(state: CompileState) -> dict:
        logger.warning(f"[{state['request_id']}] refine fell back | error={state.get('error')}")
        return {"prompt": fallback_prompt(state["context"]), "refined_by": "fallback"}

    def route_clean(state: CompileState) -> str:
        return "done" if state.get("prompt") else "fallback"

    graph = StateGraph(CompileState)

    graph.add_node("direct", direct_node)
    graph.add_node("encode", encode_node)
    graph.add_node("reason", reason_node)
    graph.add_node("clean", clean_node)
    graph.add_node("fallback", fallback_node)

    graph.add_conditional_edges(START, route_start, {"direct": "direct", "encode": "encode"})
    graph.add_edge("direct", END)
    graph.add_edge("encode", "reason")
    graph.add_edge("reason", "clean")
    graph.add_conditional_edges("clean", route_clean, {"done": END, "fallback": "fallback"})
    graph.add_edge("fallback", END)

    return graph.compile()


async def run_compile(
    context: StructuredContext,
    provider: Optional[ReasoningProvider] = None,
    options: Optional[CompileOptions] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    request_id: Optional[str] = None,
) -> CompileResult:
    """Compile a context into the final prompt. Never raises."""
    request_id = request_id or str(uuid.uuid4())[:8]
    try:
        graph = build_compile_graph(provider, options, http_client)
        out = await graph.ainvoke({"context": context, "request_id": request_id})
        prompt = out.get("prompt")
        if prompt:
            return CompileResult(prompt=prompt, refined_by=out.get("refined_by", "simple"), error=out.get("error"))
        error = out.get("error") or "no_prompt"
    except Exception as e:
        error = f"compile_error: {e}"
    logger.error(f"[{request_id}] compile pipeline failed | error={error}")
    return CompileResult(prompt=fallback_prompt(context), refined_by="fallback", error=error)


async def compile_prompt(
    context: StructuredContext,
    provider: Optional[ReasoningProvider] = None,
    options: Optional[CompileOptions] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> str:
    result = await run_compile(context, provider, options, http_client)
    return result.prompt
