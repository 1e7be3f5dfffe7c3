import json
import asyncpg
from typing import Any, Dict, List, Tuple

async def verify_project_ownership(conn: asyncpg.Connection, project_id: str, user_id: str) -> bool:
    row = await conn.fetchrow(
        "SELECT 1 FROM public.projects WHERE id = $1 AND user_id = $2 LIMIT 1",
        project_id, user_id
    )
    return row is not None

def _data(raw: Any) -> Dict[str, Any]:
    # JSONB comes back as text unless a codec is registered on the pool.
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return {}
    return raw if isinstance(raw, dict) else {}

async def get_graph(conn: asyncpg.Connection, project_id: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Read the stored canvas graph in the editor wire shape, oldest -> newest.
    Insertion order is the order the prompt compiler sees.
    """
    node_rows = await conn.fetch(
        """
        SELECT node_id, type, position_x, position_y, data
        FROM public.graph_nodes
        WHERE project_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        project_id,
    )
    edge_rows = await conn.fetch(
        """
        SELECT edge_id, source_node_id, target_node_id, label
        FROM public.graph_edges
        WHERE project_id = $1
        ORDER BY created_at ASC, id ASC
        """,
        project_id,
    )

    nodes = [
        {
            "id": row["node_id"],
            "type": row["type"],
            "position": {"x": row["position_x"], "y": row["position_y"]},
            "data": _data(row["data"]),
        }
        for row in node_rows
    ]
    edges = [
        {
            "id": row["edge_id"],
            "source": row["source_node_id"],
            "target": row["target_node_id"],
            "label": row["label"],
        }
        for row in edge_rows
    ]
    return nodes, edges
