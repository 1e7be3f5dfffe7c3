"""Resolved, immutable view of the canvas graph.

The editor stores nodes in its own loose shape (``type`` + free-form ``data``).
``resolve_snapshot`` maps that raw data to total, frozen records once, so the
compiler never has to deal with missing fields.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union
from urllib.parse import urlparse


class Role(str, Enum):
    SUBJECT = "subject"
    SCENE = "scene"
    STYLE = "style"
    REFERENCE = "reference"


class UploadState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    FAILED = "failed"


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class TextNode:
    id: str
    text: str = ""
    tags: tuple[str, ...] = ()
    position: Position = field(default_factory=Position)


@dataclass(frozen=True)
class ImageNode:
    id: str
    source_url: Optional[str] = None
    alt_label: Optional[str] = None
    note: Optional[str] = None
    # Raw stored value; use roles.role_of() to read the effective role.
    role: Optional[str] = None
    upload_state: UploadState = UploadState.IDLE
    position: Position = field(default_factory=Position)


Node = Union[TextNode, ImageNode]


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    target: str
    label: Optional[str] = None


@dataclass(frozen=True)
class GraphSnapshot:
    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()

    @property
    def text_nodes(self) -> list[TextNode]:
        return [n for n in self.nodes if isinstance(n, TextNode)]

    @property
    def image_nodes(self) -> list[ImageNode]:
        return [n for n in self.nodes if isinstance(n, ImageNode)]


PERSISTED_SCHEMES = ("http", "https")


def is_persisted_url(url: Optional[str]) -> bool:
    """True for URLs an external service can fetch (not blob:/data:/local handles)."""
    if not url:
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in PERSISTED_SCHEMES and bool(parsed.netloc)


def _str_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _position(raw: Any) -> Position:
    if not isinstance(raw, Mapping):
        return Position()
    try:
        return Position(x=float(raw.get("x") or 0), y=float(raw.get("y") or 0))
    except (TypeError, ValueError):
        return Position()


def _upload_state(data: Mapping[str, Any]) -> UploadState:
    if data.get("uploadError"):
        return UploadState.FAILED
    if data.get("uploading"):
        return UploadState.UPLOADING
    raw = data.get("uploadState")
    if isinstance(raw, str):
        try:
            return UploadState(raw.lower())
        except ValueError:
            pass
    return UploadState.IDLE


def _tags(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    return tuple(str(t) for t in raw if t is not None)


def resolve_node(raw: Mapping[str, Any]) -> Optional[Node]:
    """Map one editor node (``{id, type, position, data}``) to a resolved node.

    Unknown node types and nodes without an id resolve to ``None``.
    """
    node_id = _str_or_none(raw.get("id"))
    if node_id is None:
        return None
    kind = str(raw.get("type") or raw.get("kind") or "").lower()
    data = raw.get("data")
    if not isinstance(data, Mapping):
        data = {}
    position = _position(raw.get("position"))

    if kind in ("textnode", "text"):
        text = data.get("text")
        return TextNode(
            id=node_id,
            text=str(text) if text is not None else "",
            tags=_tags(data.get("tags")),
            position=position,
        )
    if kind in ("imagenode", "image"):
        return ImageNode(
            id=node_id,
            source_url=_str_or_none(data.get("src") or data.get("url")),
            alt_label=_str_or_none(data.get("alt")),
            note=_str_or_none(data.get("note")),
            role=_str_or_none(data.get("role")),
            upload_state=_upload_state(data),
            position=position,
        )
    return None


def resolve_edge(raw: Mapping[str, Any]) -> Optional[Edge]:
    source = _str_or_none(raw.get("source"))
    target = _str_or_none(raw.get("target"))
    if source is None or target is None:
        return None
    edge_id = _str_or_none(raw.get("id")) or f"{source}->{target}"
    label = raw.get("label")
    return Edge(
        id=edge_id,
        source=source,
        target=target,
        label=label if isinstance(label, str) else None,
    )


def resolve_snapshot(
    nodes: Iterable[Mapping[str, Any]],
    edges: Iterable[Mapping[str, Any]] = (),
) -> GraphSnapshot:
    """Build an immutable snapshot from editor data, keeping insertion order.

    Dangling edge endpoints are kept; nothing downstream traverses edges.
    """
    resolved_nodes: list[Node] = []
    seen: set[str] = set()
    for raw in nodes or ():
        if not isinstance(raw, Mapping):
            continue
        node = resolve_node(raw)
        if node is None or node.id in seen:
            continue
        seen.add(node.id)
        resolved_nodes.append(node)

    resolved_edges: list[Edge] = []
    for raw in edges or ():
        if not isinstance(raw, Mapping):
            continue
        edge = resolve_edge(raw)
        if edge is not None:
            resolved_edges.append(edge)

    return GraphSnapshot(nodes=tuple(resolved_nodes), edges=tuple(resolved_edges))
