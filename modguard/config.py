import os
from dotenv import load_dotenv
from typing import List

# Всегда ищем .env относительно корня проекта
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Определяем окружение
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Получаем путь до .env файла в зависимости от окружения
if ENVIRONMENT == "production":
    env_file = ".env.prod"
elif ENVIRONMENT == "testing":
    env_file = ".env.test"
else:
    env_file = ".env.dev"

# Проверяем, есть ли переменная ENV_PATH (для Docker)
env_path = os.getenv("ENV_PATH")
if not env_path:
    env_path = os.path.join(BASE_DIR, env_file)

# Загружаем .env файл (отсутствующий файл не ошибка, переменные могут прийти из окружения)
load_dotenv(dotenv_path=env_path)

# Основные настройки бота
BOT_TOKEN = os.getenv("BOT_TOKEN")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///modguard.db")
LOG_CHANNEL_ID = os.getenv("LOG_CHANNEL_ID")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
raw_admin_ids = os.getenv("ADMIN_IDS", "")
ADMIN_IDS: List[int] = [int(x.strip()) for x in raw_admin_ids.split(",") if x.strip().isdigit()]

# Redis настройки
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")

# Пул соединений БД (используется только для PostgreSQL)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))

# ============================================================
# ПОРОГИ МОДЕРАЦИИ (глобальные значения по умолчанию)
# ============================================================
# Переопределяются для конкретной группы через таблицу moderation_settings,
# строка с chat_id = 0 хранит глобальные значения

# Чистая уверенность >= этого значения - автоматический бан
DEFAULT_AUTO_BAN_THRESHOLD = int(os.getenv("DEFAULT_AUTO_BAN_THRESHOLD", "85"))
# Чистая уверенность >= этого значения - жалоба на ручную проверку
DEFAULT_REVIEW_THRESHOLD = int(os.getenv("DEFAULT_REVIEW_THRESHOLD", "70"))

# Детектор, чьё мнение считается достаточным для обучающей выборки
DEFAULT_TRAINING_TRUSTED_DETECTOR = os.getenv("DEFAULT_TRAINING_TRUSTED_DETECTOR", "openai")
# Минимальная уверенность этого детектора
DEFAULT_TRAINING_CONFIDENCE_FLOOR = int(os.getenv("DEFAULT_TRAINING_CONFIDENCE_FLOOR", "85"))
# Если детектора нет - чистая уверенность должна быть строго больше
DEFAULT_TRAINING_NET_THRESHOLD = int(os.getenv("DEFAULT_TRAINING_NET_THRESHOLD", "80"))
# Максимальное расстояние Хэмминга между SimHash для признания дубликатом
DEFAULT_DEDUP_MAX_DISTANCE = int(os.getenv("DEFAULT_DEDUP_MAX_DISTANCE", "3"))

# Количество предупреждений, после которого пользователь банится
DEFAULT_WARNING_BAN_THRESHOLD = int(os.getenv("DEFAULT_WARNING_BAN_THRESHOLD", "3"))
# Сколько чистых сообщений нужно для автодоверия (0 = выключено)
DEFAULT_AUTO_TRUST_THRESHOLD = int(os.getenv("DEFAULT_AUTO_TRUST_THRESHOLD", "0"))

# Таймаут одного детектора по умолчанию (секунды)
DETECTOR_TIMEOUT_SECONDS = float(os.getenv("DETECTOR_TIMEOUT_SECONDS", "10"))
# Сколько групп обрабатываем одновременно при кросс-чат бане
CROSS_CHAT_CONCURRENCY = int(os.getenv("CROSS_CHAT_CONCURRENCY", "5"))
# Время жизни кэша настроек в Redis (секунды)
SETTINGS_CACHE_TTL = int(os.getenv("SETTINGS_CACHE_TTL", "300"))


def _mask_db_url(url: str) -> str:
    """Скрывает пароль в строке подключения для вывода в лог"""
    if not url or "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    credentials, host = rest.rsplit("@", 1)
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def validate_config() -> None:
    """
    Проверяет обязательные переменные перед запуском бота.

    Вызывается из modguard.bot.main, а не при импорте, чтобы сервисы
    и тесты можно было импортировать без .env файла.

    Raises:
        ValueError: если не задан BOT_TOKEN или DATABASE_URL
    """
    if not BOT_TOKEN:
        raise ValueError("BOT_TOKEN не установлен! Проверьте .env файл")
    if not DATABASE_URL:
        raise ValueError("DATABASE_URL не установлен! Проверьте .env файл")

    print(f"[Config] Окружение: {ENVIRONMENT}")
    print(f"[Config] Загрузка env из: {os.path.abspath(env_path)}")
    print(f"[Config] База данных: {_mask_db_url(DATABASE_URL)}")
    print(f"[Config] Redis: {REDIS_HOST}:{REDIS_PORT}")
