from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from modguard.config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW
from modguard.database.models import Base

# Импортируем все модели, чтобы они зарегистрировались в Base.metadata
import modguard.database.models_detection  # noqa: F401
import modguard.database.models_moderation  # noqa: F401
import modguard.database.models_settings  # noqa: F401


def _engine_options(url: str) -> dict:
    """Параметры пула зависят от драйвера: у SQLite пула соединений нет"""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,  # Проверка соединения перед использованием
        "pool_recycle": 3600,   # Переподключение каждый час
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
    }


# создаем движок и фабрику сессий
engine = create_async_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
async_session = async_sessionmaker(engine, expire_on_commit=False)


async def init_db():
    """Инициализация базы данных"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("✅ База данных инициализирована")
