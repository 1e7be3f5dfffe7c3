from uuid import UUID
import asyncpg
from fastapi import APIRouter, Depends, HTTPException, Response

from app.logging import get_logger
from app.api.deps import get_db_pool, verify_token
from app.api.models import GeneratedItem
from app.db.graph import verify_project_ownership
from app.db.generated import delete_generated, list_generated

router = APIRouter()
logger = get_logger("generated")

@router.get("/projects/{project_id}/generated", response_model=list[GeneratedItem])
async def list_project_generated(
    project_id: UUID,
    user_id: str = Depends(verify_token),
    pool: asyncpg.Pool = Depends(get_db_pool),
):
    async with pool.acquire() as conn:
        if not await verify_project_ownership(conn, str(project_id), user_id):
            raise HTTPException(status_code=403, detail="Access denied")
        return await list_generated(conn, str(project_id))

@router.delete("/projects/{project_id}/generated/{item_id}", status_code=204)
async def delete_project_generated(
    project_id: UUID,
    item_id: UUID,
    user_id: str = Depends(verify_token),
    pool: asyncpg.Pool = Depends(get_db_pool),
):
    async with pool.acquire() as conn:
        if not await verify_project_ownership(conn, str(project_id), user_id):
            raise HTTPException(status_code=403, detail="Access denied")
        deleted = await delete_generated(conn, str(project_id), str(item_id))

    if not deleted:
        raise HTTPException(status_code=404, detail="Generated item not found")
    logger.info(f"deleted generated item | project_id={project_id} item_id={item_id}")
    return Response(status_code=204)
