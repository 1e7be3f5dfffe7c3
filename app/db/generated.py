import asyncpg
from typing import List, Optional
from app.api.models import GeneratedItem

async def add_prompt(
    conn: asyncpg.Connection,
    project_id: str,
    user_id: str,
    raw_prompt: str,
    refined_prompt: Optional[str],
) -> str:
    """Append to the project's prompt history. Returns the new prompt id."""
    row = await conn.fetchrow(
        """
        INSERT INTO public.prompts (project_id, user_id, raw_prompt, refined_prompt)
        VALUES ($1, $2, $3, $4)
        RETURNING id
        """,
        project_id, user_id, raw_prompt, refined_prompt
    )
    return str(row["id"])

async def add_generated_images(
    conn: asyncpg.Connection,
    project_id: str,
    user_id: str,
    images: List[dict],
    provider: str,
    prompt_id: Optional[str] = None,
) -> List[GeneratedItem]:
    """Append generated images to the project log. Rows are never updated afterwards."""
    items: List[GeneratedItem] = []
    async with conn.transaction():
        for img in images:
            row = await conn.fetchrow(
                """
                INSERT INTO public.generated_images (project_id, user_id, url, prompt_text, provider, prompt_id)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING id, url, prompt_text, provider, created_at
                """,
                project_id, user_id, img["url"], img["prompt"], provider, prompt_id
            )
            items.append(_item(row))
    return items

async def list_generated(conn: asyncpg.Connection, project_id: str) -> List[GeneratedItem]:
    rows = await conn.fetch(
        """
        SELECT id, url, prompt_text, provider, created_at
        FROM public.generated_images
        WHERE project_id = $1
        ORDER BY created_at ASC
        """,
        project_id,
    )
    return [_item(row) for row in rows]

async def delete_generated(conn: asyncpg.Connection, project_id: str, item_id: str) -> bool:
    status = await conn.execute(
        "DELETE FROM public.generated_images WHERE project_id = $1 AND id = $2",
        project_id, item_id
    )
    # asyncpg returns the command tag, e.g. "DELETE 1".
    return status.split()[-1] != "0"

def _item(row) -> GeneratedItem:
    return GeneratedItem(
        id=str(row["id"]),
        url=row["url"],
        prompt=row["prompt_text"] or "",
        provider=row["provider"],
        createdAt=row["created_at"],
    )
