import asyncio
import logging
from importlib.metadata import entry_points

from aiogram import Bot, Dispatcher
from aiogram.client.session.aiohttp import AiohttpSession

# ВАЖНО: сначала загружаем конфиг (.env), потом инициализируем Redis и БД
from modguard.config import ADMIN_IDS, BOT_TOKEN, LOG_LEVEL, validate_config
from modguard.services.redis_conn import test_connection

from modguard.database.session import async_session, init_db
from modguard.middleware.db_session import DbSessionMiddleware
from modguard.handlers import handlers_router

from modguard.services.detection.check_coordinator import CheckCoordinator
from modguard.services.detection.orchestrator import DetectionOrchestrator
from modguard.services.detection.side_workflows import AutoTrustWorkflow
from modguard.services.moderation.decision_service import ActionDecisionService
from modguard.services.moderation.handlers import default_handlers
from modguard.services.moderation.orchestrator import ModerationOrchestrator
from modguard.services.moderation.pipeline import ModerationPipeline
from modguard.services.moderation.platform import AiogramChatPlatform

from modguard.utils.logger import TelegramLogHandler

# Группа entry points, через которую пакеты детекторов регистрируются в боте
DETECTOR_ENTRY_POINT_GROUP = "modguard.detectors"


def setup_logging():
    logger = logging.getLogger()
    logger.setLevel(LOG_LEVEL)

    # Создаем обработчик для консоли
    console_handler = logging.StreamHandler()
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s'))
    logger.addHandler(console_handler)

    # В лог-канал Telegram уходят только ошибки
    telegram_handler = TelegramLogHandler(level=logging.ERROR)
    telegram_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    logger.addHandler(telegram_handler)

    # Отключаем встроенное логирование апдейтов aiogram
    for logger_name in ("aiogram", "aiogram.dispatcher", "aiogram.event"):
        log = logging.getLogger(logger_name)
        log.addHandler(console_handler)
        log.setLevel(logging.ERROR)
        log.propagate = False


def load_detectors():
    """
    Загружает детекторы, зарегистрированные сторонними пакетами.

    Каждый entry point группы modguard.detectors должен указывать на класс
    детектора или фабрику без аргументов.
    """
    detectors = []
    for ep in entry_points(group=DETECTOR_ENTRY_POINT_GROUP):
        try:
            detectors.append(ep.load()())
            logging.info(f"🔌 Детектор подключён: {ep.name}")
        except Exception as e:
            logging.error(f"❌ Не удалось загрузить детектор {ep.name}: {e}")
    if not detectors:
        logging.warning("⚠️ Не найдено ни одного детектора, все сообщения будут проходить как чистые")
    return detectors


def build_services(bot: Bot, session_factory=async_session) -> DetectionOrchestrator:
    """Собирает граф сервисов модерации и детекции"""
    platform = AiogramChatPlatform(bot, session_factory, admin_ids=ADMIN_IDS)
    decision_service = ActionDecisionService(platform)
    pipeline = ModerationPipeline(default_handlers())
    moderation = ModerationOrchestrator(decision_service, pipeline, platform, session_factory)
    coordinator = CheckCoordinator(load_detectors())
    return DetectionOrchestrator(
        coordinator,
        decision_service,
        moderation,
        session_factory,
        side_workflows=[AutoTrustWorkflow()],
    )


# главная асинхронная функция, запускающая бота
async def main():
    validate_config()
    setup_logging()

    # Redis нужен только для кэша настроек: без него читаем из БД
    if not await test_connection():
        logging.warning("⚠️ Redis недоступен, настройки будут читаться напрямую из БД")

    # ✅ Создаём таблицы (для продакшена используйте миграции alembic)
    await init_db()

    # ✅ Создание бота по токену из .env
    session = AiohttpSession(timeout=60.0)
    bot = Bot(token=BOT_TOKEN, session=session)

    dp = Dispatcher()
    # Оркестратор попадает в хендлеры аргументом detection_orchestrator
    dp["detection_orchestrator"] = build_services(bot)

    # ✅ Подключение middleware - прокидывает сессию в каждый хендлер
    dp.update.middleware(DbSessionMiddleware(async_session))
    dp.include_router(handlers_router)

    logging.info("🤖 Бот модерации запущен, режим polling")
    await bot.delete_webhook(drop_pending_updates=True)
    try:
        await dp.start_polling(
            bot,
            allowed_updates=["message", "edited_message", "my_chat_member", "chat_member"],
        )
    finally:
        await bot.session.close()


def run():
    """Синхронная точка входа для консольной команды modguard"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Бот остановлен пользователем")


if __name__ == "__main__":
    run()
