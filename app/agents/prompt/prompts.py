from app.agents.prompt.context import StructuredContext

QUALITY_SUFFIX = (
    "professional photography, cinematic lighting, 8k resolution, "
    "highly detailed, dramatic composition"
)

DEFAULT_WORD_BUDGET = "100-200"

SYSTEM_PROMPT = """You are an expert creative director and prompt engineer for high-end advertising agencies.
Your goal is to take a rough collection of descriptors and visual references and turn them into one cohesive, professional image generation prompt.

The user is providing a graph of nodes (images and text descriptors) plus labelled relationships between them.

Rules:
1. Use detailed, sensory language.
2. Focus on lighting, composition, texture, and mood.
3. Keep it between {words} words.
4. Do not include a "Here is the prompt" preamble, just return the prompt text.
5. Describe what the reference images show; never mention that images were provided.
"""

# Role-specific guidance, included only when that role has images.
ROLE_GUIDANCE: dict[str, str] = {
    "subject": "Make the SUBJECT images the focal point: describe their identity, features and pose precisely.",
    "scene": "Place the subject inside the SCENE images' environment: setting, depth, time of day and atmosphere.",
    "style": "Apply the STYLE images' visual language: palette, medium, lighting treatment and texture. Do not copy their content.",
    "reference": "Use the REFERENCE images for supporting details only; they must not dominate the composition.",
}

ROLE_MARKERS: dict[str, str] = {
    "subject": "Subject reference",
    "scene": "Scene reference",
    "style": "Style reference",
    "reference": "Additional reference",
}


def system_prompt(words: str = DEFAULT_WORD_BUDGET) -> str:
    return SYSTEM_PROMPT.format(words=words)


def image_marker(role: str, alt_label: str | None, note: str | None) -> str:
    """Text part sent right after an image so the model can tie it to its role."""
    marker = f"[{ROLE_MARKERS.get(role, ROLE_MARKERS['reference'])}: {alt_label or 'untitled image'}"
    if note:
        marker += f" | note: {note}"
    return marker + "]"


def instruction_block(context: StructuredContext, included_roles: list[str]) -> str:
    """Build the textual part of the refine request.

    Guidance lines only mention roles that actually have images attached.
    """
    lines: list[str] = []
    if included_roles:
        lines.append("The images above are visual references, each labelled with its role.")
        for role in ("subject", "scene", "style", "reference"):
            if role in included_roles:
                lines.append(f"- {ROLE_GUIDANCE[role]}")
        if "subject" in included_roles and "scene" in included_roles:
            lines.append("- Integrate the subject naturally into the scene with consistent lighting and perspective.")
    else:
        lines.append("No reference images are available; work from the descriptors alone.")

    if context.text_descriptors:
        lines.append("")
        lines.append("Descriptors:")
        lines.extend(f"- {t}" for t in context.text_descriptors)

    relationships = _dedupe(context.relationships)
    if relationships:
        lines.append("")
        lines.append("Relationships between elements:")
        lines.extend(f"- {r}" for r in relationships)

    lines.append("")
    if context.user_prompt:
        lines.append(f"USER'S INTENT (highest priority): {context.user_prompt}")
        lines.append("Fulfil the user's vision first; use everything else to support it.")
    elif context.simple_prompt:
        lines.append(f"Draft prompt: {context.simple_prompt}")

    lines.append("")
    lines.append("Refine all of this into a single cohesive image generation prompt.")
    return "\n".join(lines)


def _dedupe(lines: tuple[str, ...]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for line in lines:
        key = " ".join(line.split()).lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(line)
    return out
