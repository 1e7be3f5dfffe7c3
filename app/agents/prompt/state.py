from typing import NotRequired
from typing_extensions import TypedDict

from app.agents.prompt.context import StructuredContext
from app.agents.prompt.vision import EncodedImage

class CompileState(TypedDict):
    context: StructuredContext
    request_id: str

    # Filled in by the pipeline nodes as they run.
    encoded: NotRequired[list[EncodedImage]]
    raw: NotRequired[str | None]
    error: NotRequired[str | None]
    prompt: NotRequired[str]
    # "simple" (no reasoning call), "fallback", or the provider name.
    refined_by: NotRequired[str]
