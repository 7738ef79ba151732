import asyncio
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock

import pytest

# КРИТИЧНО: Устанавливаем DATABASE_URL ДО импорта modguard.config,
# глобальный движок не должен смотреть в боевую базу
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Гарантируем, что пакет modguard доступен для импортов из тестов
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from aiogram import Bot
from aiogram.types import Message
from fakeredis import FakeServer
from fakeredis import aioredis as fakeredis_aioredis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from modguard.database.models import Base
# Импортируем session, чтобы все модели зарегистрировались в Base.metadata
import modguard.database.session  # noqa: F401
from modguard.services.detection.models import CheckResult, ContentCheckRequest, Detector, Verdict
from modguard.services.moderation.decision_service import ActionDecisionService
from modguard.services.moderation.handlers import default_handlers
from modguard.services.moderation.orchestrator import ModerationOrchestrator
from modguard.services.moderation.pipeline import ModerationPipeline
from modguard.services.moderation.platform import ChatPlatform

# Управляемые группы по умолчанию в platform_mock
MANAGED_CHATS = [-1001, -1002, -1003]


def _build_database_url(tmp_path: Path) -> str:
    explicit = os.getenv("TEST_DATABASE_URL")
    if explicit:
        return explicit
    # Отдельный файл на тест: сервисы открывают свои сессии и должны видеть данные теста
    return f"sqlite+aiosqlite:///{tmp_path / 'modguard_test.db'}"


@pytest.fixture
async def session_factory(tmp_path):
    """Фабрика сессий над чистой схемой (своя база на каждый тест)"""
    engine = create_async_engine(_build_database_url(tmp_path), echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    """Provide an isolated database session for a test."""
    session = session_factory()
    try:
        yield session
    finally:
        try:
            await session.rollback()
        finally:
            await session.close()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    """Подменяет глобальный Redis-клиент на fakeredis (свой сервер на каждый тест)"""
    client = fakeredis_aioredis.FakeRedis(server=FakeServer(), decode_responses=True)

    monkeypatch.setattr("modguard.services.redis_conn.redis", client)
    monkeypatch.setattr("modguard.services.settings_service.redis", client)
    return client


@pytest.fixture
def platform_mock():
    """Async mock чат-платформы с тремя управляемыми группами"""
    platform = AsyncMock(spec=ChatPlatform)
    platform.list_managed_chats.return_value = list(MANAGED_CHATS)
    platform.send_direct_message.return_value = True
    platform.send_alert.return_value = 1
    return platform


@pytest.fixture
def bot_mock():
    """Async mock for aiogram Bot."""
    bot = AsyncMock(spec=Bot)
    bot.send_message = AsyncMock()
    bot.delete_message = AsyncMock()
    bot.ban_chat_member = AsyncMock()
    bot.unban_chat_member = AsyncMock()
    bot.restrict_chat_member = AsyncMock()
    bot.get_chat_administrators = AsyncMock(return_value=[])
    bot.session = AsyncMock()
    bot.id = 424242
    return bot


@pytest.fixture
def moderation(session_factory, platform_mock) -> ModerationOrchestrator:
    """Оркестратор модерации со стандартным конвейером поверх platform_mock"""
    decision_service = ActionDecisionService(platform_mock)
    pipeline = ModerationPipeline(default_handlers())
    return ModerationOrchestrator(decision_service, pipeline, platform_mock, session_factory)


class StubDetector(Detector):
    """Детектор с заранее заданным ответом"""

    def __init__(
        self,
        name: str,
        confidence: int = 0,
        verdict: Verdict = Verdict.CLEAN,
        reason: str = "",
        *,
        delay: float = 0.0,
        error: Exception = None,
        handles_text: bool = True,
        handles_attachments: bool = False,
    ):
        self.name = name
        self.confidence = confidence
        self.verdict = verdict
        self.reason = reason
        self.delay = delay
        self.error = error
        self.handles_text = handles_text
        self.handles_attachments = handles_attachments
        self.calls = 0

    async def check(self, request: ContentCheckRequest) -> CheckResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return CheckResult(self.name, self.confidence, self.verdict, self.reason)


@pytest.fixture
def detector_factory() -> Callable[..., StubDetector]:
    """Factory for stub detectors."""
    return StubDetector


@pytest.fixture
def check_request_factory() -> Callable[..., ContentCheckRequest]:
    """Factory for ContentCheckRequest instances."""

    def _factory(**overrides) -> ContentCheckRequest:
        values = {
            "chat_id": MANAGED_CHATS[0],
            "user_id": 5001,
            "message_id": 10,
            "text": "Заработок без вложений, пиши в личку",
            "user_name": "spammer",
        }
        values.update(overrides)
        return ContentCheckRequest(**values)

    return _factory


@pytest.fixture
def message_factory() -> Callable[..., Message]:
    """Factory for aiogram Message instances."""

    def _factory(
        *,
        message_id: int = 1,
        user_id: int = 100,
        chat_id: int = MANAGED_CHATS[0],
        text: str = "hello",
        chat_type: str = "supergroup",
        first_name: str = "Test",
        **extra,
    ) -> Message:
        payload = {
            "message_id": message_id,
            "date": datetime.now(timezone.utc),
            "chat": {"id": chat_id, "type": chat_type, "title": "Test chat"},
            "from": {"id": user_id, "is_bot": False, "first_name": first_name},
        }
        if text is not None:
            payload["text"] = text
        payload.update(extra)
        return Message.model_validate(payload)

    return _factory
