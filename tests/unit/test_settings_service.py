"""Тесты настроек модерации: слияние с глобальными значениями и кэш в Redis"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import RedisError

from modguard.database.models_settings import ModerationSettings
from modguard.services import settings_service
from modguard.services.detection.models import DetectorSettings
from modguard.services.settings_service import (
    ChatModerationSettings,
    get_detector_configs,
    get_moderation_settings,
    invalidate_settings_cache,
    set_detector_config,
    update_moderation_settings,
)


CHAT_ID = -1001
OTHER_CHAT_ID = -1002


@pytest.mark.asyncio
async def test_defaults_without_rows(db_session):
    settings = await get_moderation_settings(db_session, CHAT_ID)

    assert settings == ChatModerationSettings()
    assert settings.auto_ban_threshold == 85
    assert settings.review_threshold == 70


@pytest.mark.asyncio
async def test_chat_overrides_global(db_session):
    await update_moderation_settings(db_session, 0, auto_ban_threshold=90, review_threshold=60)
    await update_moderation_settings(db_session, CHAT_ID, auto_ban_threshold=95)

    chat = await get_moderation_settings(db_session, CHAT_ID)
    other = await get_moderation_settings(db_session, OTHER_CHAT_ID)

    assert (chat.auto_ban_threshold, chat.review_threshold) == (95, 60)
    assert (other.auto_ban_threshold, other.review_threshold) == (90, 60)


@pytest.mark.asyncio
async def test_none_reverts_to_global(db_session):
    await update_moderation_settings(db_session, CHAT_ID, warning_ban_threshold=5)
    settings = await update_moderation_settings(db_session, CHAT_ID, warning_ban_threshold=None)

    assert settings.warning_ban_threshold == 3


@pytest.mark.asyncio
async def test_settings_are_cached_until_invalidated(db_session, fake_redis):
    assert (await get_moderation_settings(db_session, CHAT_ID)).auto_ban_threshold == 85
    assert await fake_redis.exists(f"modguard:settings:{CHAT_ID}")

    # Меняем БД в обход сервиса - кэш ещё старый
    db_session.add(ModerationSettings(chat_id=CHAT_ID, auto_ban_threshold=50))
    await db_session.commit()
    assert (await get_moderation_settings(db_session, CHAT_ID)).auto_ban_threshold == 85

    await invalidate_settings_cache(CHAT_ID)
    assert (await get_moderation_settings(db_session, CHAT_ID)).auto_ban_threshold == 50


@pytest.mark.asyncio
async def test_global_update_invalidates_all_chats(db_session):
    await get_moderation_settings(db_session, CHAT_ID)
    await get_moderation_settings(db_session, OTHER_CHAT_ID)

    await update_moderation_settings(db_session, 0, auto_ban_threshold=77)

    assert (await get_moderation_settings(db_session, CHAT_ID)).auto_ban_threshold == 77
    assert (await get_moderation_settings(db_session, OTHER_CHAT_ID)).auto_ban_threshold == 77


@pytest.mark.asyncio
async def test_unknown_setting_rejected(db_session):
    with pytest.raises(ValueError):
        await update_moderation_settings(db_session, CHAT_ID, ban_everyone=True)


@pytest.mark.asyncio
async def test_redis_failure_falls_back_to_db(db_session, monkeypatch):
    await update_moderation_settings(db_session, CHAT_ID, review_threshold=55)

    broken = AsyncMock()
    broken.get.side_effect = RedisError("connection refused")
    broken.set.side_effect = RedisError("connection refused")
    monkeypatch.setattr(settings_service, "redis", broken)

    settings = await get_moderation_settings(db_session, CHAT_ID)

    assert settings.review_threshold == 55
    broken.get.assert_awaited()


@pytest.mark.asyncio
async def test_detector_configs_chat_row_wins(db_session):
    await set_detector_config(db_session, 0, "llm", weight=2.0)
    await set_detector_config(db_session, 0, "malware_links", always_run=True)
    await set_detector_config(db_session, CHAT_ID, "llm", enabled=False)

    chat = await get_detector_configs(db_session, CHAT_ID)
    other = await get_detector_configs(db_session, OTHER_CHAT_ID)

    assert chat["llm"] == DetectorSettings("llm", enabled=False, weight=1.0, always_run=False, timeout=None)
    assert chat["malware_links"].always_run
    assert other["llm"].weight == 2.0
    assert other["llm"].enabled


@pytest.mark.asyncio
async def test_detector_configs_from_cache(db_session):
    await set_detector_config(db_session, CHAT_ID, "llm", weight=1.5, timeout_seconds=3.0)

    first = await get_detector_configs(db_session, CHAT_ID)
    cached = await get_detector_configs(db_session, CHAT_ID)

    assert cached == first
    assert isinstance(cached["llm"], DetectorSettings)
    assert cached["llm"].timeout == 3.0
