from typing import AsyncIterator, Iterable, Optional
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from .config import settings

DATABASE_URL = settings.database_url

# async engine
engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)

async_session = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# helper to create tables (call at startup)
async def init_db(bind: Optional[AsyncEngine] = None):
    # import models so they register on SQLModel.metadata
    from . import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session

def upsert(session: AsyncSession, model, values: dict, index_elements: Iterable[str],
           update=None):
    """
    Build an INSERT ... ON CONFLICT statement for the session's dialect.

    With no `update` the conflicting row is left untouched (insert-if-absent).
    `update` values may reference `stmt.excluded` through a callable taking it.
    """
    dialect = session.bind.dialect.name if session.bind is not None else "postgresql"
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(model).values(**values)
    if not update:
        return stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    if callable(update):
        update = update(stmt.excluded)
    return stmt.on_conflict_do_update(index_elements=list(index_elements), set_=update)
