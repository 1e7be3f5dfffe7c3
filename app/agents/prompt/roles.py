from typing import Optional

from app.agents.prompt.snapshot import Edge, ImageNode, Role

ROLE_ORDER: tuple[Role, ...] = (Role.SUBJECT, Role.SCENE, Role.STYLE, Role.REFERENCE)


def role_of(node: ImageNode) -> Role:
    # Unknown role strings degrade to reference instead of failing compilation.
    raw = (node.role or "").strip().lower()
    try:
        return Role(raw)
    except ValueError:
        return Role.REFERENCE


def relationship_of(edge: Edge) -> Optional[str]:
    label = (edge.label or "").strip()
    return label or None
