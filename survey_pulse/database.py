# survey_pulse/database.py
import logging
import os

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Load .env from the project root, falling back to the working directory
dotenv_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)
else:
    load_dotenv()


DATABASE_URL = os.getenv("DATABASE_URL")

if DATABASE_URL is None:
    logger.warning(
        "DATABASE_URL not set in environment, falling back to local SQLite database."
    )
    sqlite_db_path = os.path.join(os.path.dirname(__file__), "survey_pulse_fallback.db")
    DATABASE_URL = f"sqlite+aiosqlite:///{sqlite_db_path}"

# SQL_ECHO=true logs every statement SQLAlchemy emits
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

logger.debug("Using DATABASE_URL: %s", DATABASE_URL)

engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, pool_pre_ping=True)

AsyncSessionFactory = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    class_=AsyncSession,
)

Base = declarative_base()


def sync_database_url(url: str) -> str:
    """Strip the async driver so Alembic and scripts can use a blocking engine."""
    if "+asyncpg" in url:
        return url.replace("+asyncpg", "")
    if "+aiosqlite" in url:
        return url.replace("+aiosqlite", "")
    return url


async def get_db_session() -> AsyncSession:
    async with AsyncSessionFactory() as session:
        try:
            yield session
            await session.commit()  # one transaction per request
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_db_and_tables():
    """
    Creates missing tables directly from the model metadata. Production
    deployments run Alembic instead; this is for local SQLite setups.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured.")
