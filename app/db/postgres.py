import json
import asyncpg
from app.config import settings

async def _init_connection(conn: asyncpg.Connection) -> None:
    # graph_nodes.data is JSONB; decode it to dicts for the prompt compiler.
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")

async def create_db_pool() -> asyncpg.Pool:
    # statement_cache_size=0 is required for Supabase Transaction Pooler
    return await asyncpg.create_pool(
        dsn=settings.DB_URI,
        statement_cache_size=0,
        init=_init_connection,
        command_timeout=settings.PROVIDER_TIMEOUT_S,
    )
