import json
from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from uuid import UUID


def _normalize_objects(v: Any) -> Optional[list[dict]]:
    """Accept a list of objects or a JSON-string list of objects; None means "not sent"."""
    if v is None:
        return None
    if v == "":
        return []
    if isinstance(v, str):
        try:
            v = json.loads(v)
        except json.JSONDecodeError:
            raise ValueError("Invalid JSON string")
    if not isinstance(v, list):
        raise ValueError("Expected list or JSON-string list")
    out: list[dict] = []
    for item in v:
        if not isinstance(item, dict):
            raise ValueError("Expected a list of objects")
        out.append(item)
    return out


class GraphRequest(BaseModel):
    """Common body: the project plus an optional inline graph snapshot.

    When ``nodes`` is omitted the stored graph of the project is compiled.
    """
    model_config = ConfigDict(extra="ignore")
    project_id: UUID
    prompt: str = ""
    nodes: Optional[list[dict]] = None
    edges: Optional[list[dict]] = None

    @field_validator("nodes", "edges", mode="before")
    @classmethod
    def normalize_graph(cls, v: Any) -> Optional[list[dict]]:
        return _normalize_objects(v)

    @field_validator("prompt", mode="before")
    @classmethod
    def normalize_prompt(cls, v: Any) -> str:
        return "" if v is None else str(v)


class RefineRequest(GraphRequest):
    pass


class RefineResponse(BaseModel):
    refined: str
    simple: str
    refined_by: str
    prompt_id: Optional[str] = None


class GenerateRequest(GraphRequest):
    # Send role-tagged graph images to providers that accept references.
    use_references: bool = True
    # "pollinations" skips the credentialed provider even when a key is configured.
    provider: Literal["gemini", "pollinations"] = "gemini"
    # Prompt history entry these images were generated from, as returned by /refine.
    prompt_id: Optional[UUID] = None


class GeneratedItem(BaseModel):
    id: str
    url: str
    prompt: str
    provider: Optional[str] = None
    createdAt: datetime


class GenerateResponse(BaseModel):
    images: list[GeneratedItem] = Field(default_factory=list)
    provider: str
    mode: str
