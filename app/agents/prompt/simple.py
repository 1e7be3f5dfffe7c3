from typing import Iterable

from app.agents.prompt.snapshot import ImageNode, Node, TextNode

IMAGE_PLACEHOLDER = "image reference"


def build_simple_prompt(nodes: Iterable[Node]) -> str:
    """Flat comma-joined prompt: text descriptors first, then image labels.

    Snapshot order is kept and nothing is deduplicated. Always available, so it
    doubles as the fallback whenever no reasoning provider is usable.
    """
    nodes = list(nodes)
    texts = [n.text for n in nodes if isinstance(n, TextNode) and n.text]
    labels = [n.alt_label or IMAGE_PLACEHOLDER for n in nodes if isinstance(n, ImageNode)]
    return ", ".join(texts + labels)
