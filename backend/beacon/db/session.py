from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from beacon.core.settings import settings

"""
DB Session.

Rôle (fonctionnel) :
- Engine SQLAlchemy async (asyncpg en runtime).
- Factory AsyncSessionLocal et dépendance FastAPI `get_db()`.

Notes :
- expire_on_commit=False : les objets restent lisibles après commit (projection en réponse).
- SQLite (tests, aiosqlite) : NullPool, une connexion par session ; aucune connexion n’est
  réutilisée d’une boucle d’événements à l’autre.
"""


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True}


engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs(settings.DATABASE_URL))

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    """Dépendance FastAPI : une session par requête, fermée en sortie."""
    async with AsyncSessionLocal() as session:
        yield session
