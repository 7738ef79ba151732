import os
import sys
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Добавляем путь до корня проекта (чтобы работал импорт modguard)
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# modguard.config сам загружает .env по ENVIRONMENT / ENV_PATH
from modguard.config import DATABASE_URL
from modguard.database.models import Base
# Регистрируем все таблицы в Base.metadata
import modguard.database.models_detection  # noqa: F401,E402
import modguard.database.models_moderation  # noqa: F401,E402
import modguard.database.models_settings  # noqa: F401,E402

# 1. Берем URL из переменной окружения (ALEMBIC_URL важнее)
ALEMBIC_URL = os.getenv("ALEMBIC_URL") or DATABASE_URL

# 2. Доступ к конфигу alembic ini
config = context.config

# 3. Устанавливаем значение sqlalchemy.url
if ALEMBIC_URL:
    config.set_main_option("sqlalchemy.url", ALEMBIC_URL)

# 4. Настройка логов
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 5. Метаданные моделей
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def do_run_migrations(connection: Connection) -> None:
    # render_as_batch нужен для ALTER TABLE в SQLite
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    import asyncio

    asyncio.run(run_migrations_online())
