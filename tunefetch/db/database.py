import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .models import Base


def create_engine_for(database_path: str) -> AsyncEngine:
    return create_async_engine(f"sqlite+aiosqlite:///{database_path}", echo=False)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine):
    # データベースディレクトリが存在することを確認
    db_dir = os.path.dirname(engine.url.database or "")
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

    # A missing index file is a cold start: tables are simply created
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
