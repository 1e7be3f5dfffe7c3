from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from app.agents.prompt.roles import ROLE_ORDER, relationship_of, role_of
from app.agents.prompt.simple import build_simple_prompt
from app.agents.prompt.snapshot import GraphSnapshot, Role, is_persisted_url

DEFAULT_PER_ROLE_CAP = 2


@dataclass(frozen=True)
class ImageReference:
    url: str
    alt_label: Optional[str]
    note: Optional[str]
    role: Role


@dataclass(frozen=True)
class StructuredContext:
    subject_images: tuple[ImageReference, ...] = ()
    scene_images: tuple[ImageReference, ...] = ()
    style_images: tuple[ImageReference, ...] = ()
    reference_images: tuple[ImageReference, ...] = ()
    text_descriptors: tuple[str, ...] = ()
    relationships: tuple[str, ...] = ()
    user_prompt: str = ""
    # build_simple_prompt over the whole snapshot, uncapped.
    simple_prompt: str = ""
    dropped_images: int = field(default=0, compare=False)

    def bucket(self, role: Role) -> tuple[ImageReference, ...]:
        return {
            Role.SUBJECT: self.subject_images,
            Role.SCENE: self.scene_images,
            Role.STYLE: self.style_images,
            Role.REFERENCE: self.reference_images,
        }[role]

    @property
    def images(self) -> list[ImageReference]:
        """All included references, grouped in role order."""
        out: list[ImageReference] = []
        for role in ROLE_ORDER:
            out.extend(self.bucket(role))
        return out

    @property
    def has_images(self) -> bool:
        return bool(self.images)


def image_references(snapshot: GraphSnapshot) -> list[ImageReference]:
    """Image nodes with a persisted URL, in snapshot order."""
    refs: list[ImageReference] = []
    for node in snapshot.image_nodes:
        if not is_persisted_url(node.source_url):
            continue
        refs.append(
            ImageReference(
                url=node.source_url.strip(),
                alt_label=node.alt_label,
                note=node.note,
                role=role_of(node),
            )
        )
    return refs


def assemble_context(
    snapshot: GraphSnapshot,
    user_prompt: str = "",
    per_role_cap: int = DEFAULT_PER_ROLE_CAP,
    max_images: Optional[int] = None,
) -> StructuredContext:
    """Group persisted image references by role and collect text/edge facts.

    Each role bucket keeps its earliest ``per_role_cap`` images. ``max_images``
    applies the flat-cap variant on top, keeping the earliest references across
    all buckets. Exclusion only affects the returned context; the snapshot is
    never touched.
    """
    refs = image_references(snapshot)

    buckets: dict[Role, list[ImageReference]] = {role: [] for role in ROLE_ORDER}
    kept: list[ImageReference] = []
    for ref in refs:
        bucket = buckets[ref.role]
        if len(bucket) >= max(per_role_cap, 0):
            continue
        bucket.append(ref)
        kept.append(ref)

    if max_images is not None and len(kept) > max_images:
        allowed = {id(r) for r in kept[: max(max_images, 0)]}
        for role in ROLE_ORDER:
            buckets[role] = [r for r in buckets[role] if id(r) in allowed]

    included = sum(len(b) for b in buckets.values())
    texts = tuple(n.text for n in snapshot.text_nodes if n.text)
    relationships = tuple(
        label for label in (relationship_of(e) for e in snapshot.edges) if label
    )

    return StructuredContext(
        subject_images=tuple(buckets[Role.SUBJECT]),
        scene_images=tuple(buckets[Role.SCENE]),
        style_images=tuple(buckets[Role.STYLE]),
        reference_images=tuple(buckets[Role.REFERENCE]),
        text_descriptors=texts,
        relationships=relationships,
        user_prompt=(user_prompt or "").strip(),
        simple_prompt=build_simple_prompt(snapshot.nodes),
        dropped_images=len(refs) - included,
    )
