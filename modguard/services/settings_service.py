# modguard/services/settings_service.py
"""
Сервис настроек модерации.

Отвечает за:
- Получение порогов модерации группы с откатом к глобальным (chat_id = 0)
- Получение настроек детекторов группы
- Кэширование в Redis и сброс кэша при изменении
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from modguard.config import (
    DEFAULT_AUTO_BAN_THRESHOLD,
    DEFAULT_REVIEW_THRESHOLD,
    DEFAULT_TRAINING_TRUSTED_DETECTOR,
    DEFAULT_TRAINING_CONFIDENCE_FLOOR,
    DEFAULT_TRAINING_NET_THRESHOLD,
    DEFAULT_DEDUP_MAX_DISTANCE,
    DEFAULT_WARNING_BAN_THRESHOLD,
    DEFAULT_AUTO_TRUST_THRESHOLD,
    SETTINGS_CACHE_TTL,
)
from modguard.database.models_settings import ModerationSettings, DetectorConfig
from modguard.services.detection.models import DetectorSettings
from modguard.services.redis_conn import redis


# Логгер для отслеживания операций с настройками
logger = logging.getLogger(__name__)

# ID строки глобальных настроек
GLOBAL_CHAT_ID = 0

# Ключи кэша
SETTINGS_CACHE_KEY = "modguard:settings:{chat_id}"
DETECTORS_CACHE_KEY = "modguard:detectors:{chat_id}"


@dataclass
class ChatModerationSettings:
    """
    Действующие настройки модерации для группы.

    Значения уже слиты: колонка группы -> глобальная строка -> config.py.
    """

    # Чистая уверенность для автобана
    auto_ban_threshold: int = DEFAULT_AUTO_BAN_THRESHOLD
    # Чистая уверенность для жалобы
    review_threshold: int = DEFAULT_REVIEW_THRESHOLD
    # Обучающая выборка
    training_trusted_detector: str = DEFAULT_TRAINING_TRUSTED_DETECTOR
    training_confidence_floor: int = DEFAULT_TRAINING_CONFIDENCE_FLOOR
    training_net_threshold: int = DEFAULT_TRAINING_NET_THRESHOLD
    dedup_max_distance: int = DEFAULT_DEDUP_MAX_DISTANCE
    # Предупреждений до автобана
    warning_ban_threshold: int = DEFAULT_WARNING_BAN_THRESHOLD
    # Чистых сообщений до автодоверия (0 = выкл)
    auto_trust_threshold: int = DEFAULT_AUTO_TRUST_THRESHOLD


# Колонки ModerationSettings, которые переносятся в датакласс
_SETTING_FIELDS = [f.name for f in fields(ChatModerationSettings)]


def _merge(base: ChatModerationSettings, row: Optional[ModerationSettings]) -> ChatModerationSettings:
    """Накладывает заполненные колонки строки поверх базовых значений"""
    if row is None:
        return base
    values = asdict(base)
    for name in _SETTING_FIELDS:
        value = getattr(row, name, None)
        if value is not None:
            values[name] = value
    return ChatModerationSettings(**values)


async def _cache_get(key: str) -> Optional[Any]:
    # Redis недоступен - работаем напрямую с БД
    try:
        cached = await redis.get(key)
    except RedisError as e:
        logger.warning(f"[Settings] Redis недоступен при чтении {key}: {e}")
        return None
    return json.loads(cached) if cached else None


async def _cache_set(key: str, value: Any) -> None:
    try:
        await redis.set(key, json.dumps(value), ex=SETTINGS_CACHE_TTL)
    except RedisError as e:
        logger.warning(f"[Settings] Не удалось записать кэш {key}: {e}")


# ════════════════════════════════════════════════════════════════════════════
# ПОРОГИ МОДЕРАЦИИ
# ════════════════════════════════════════════════════════════════════════════

async def get_moderation_settings(session: AsyncSession, chat_id: Optional[int]) -> ChatModerationSettings:
    """
    Возвращает действующие настройки модерации группы.

    Args:
        session: Асинхронная сессия SQLAlchemy
        chat_id: ID группы (None = только глобальные настройки)

    Returns:
        ChatModerationSettings
    """
    chat_id = chat_id if chat_id is not None else GLOBAL_CHAT_ID
    key = SETTINGS_CACHE_KEY.format(chat_id=chat_id)

    cached = await _cache_get(key)
    if cached is not None:
        return ChatModerationSettings(**cached)

    chat_ids = {GLOBAL_CHAT_ID, chat_id}
    result = await session.execute(select(ModerationSettings).where(ModerationSettings.chat_id.in_(chat_ids)))
    rows = {row.chat_id: row for row in result.scalars().all()}

    # Сначала глобальные значения, потом переопределения группы
    settings = _merge(ChatModerationSettings(), rows.get(GLOBAL_CHAT_ID))
    if chat_id != GLOBAL_CHAT_ID:
        settings = _merge(settings, rows.get(chat_id))

    await _cache_set(key, asdict(settings))
    return settings


async def update_moderation_settings(session: AsyncSession, chat_id: int, **values: Any) -> ChatModerationSettings:
    """
    Обновляет настройки группы (chat_id = 0 - глобальные) и сбрасывает кэш.

    Args:
        session: Асинхронная сессия SQLAlchemy
        chat_id: ID группы
        **values: Колонки ModerationSettings; None возвращает глобальное значение

    Returns:
        Новые действующие настройки
    """
    unknown = set(values) - set(_SETTING_FIELDS)
    if unknown:
        raise ValueError(f"Неизвестные настройки: {', '.join(sorted(unknown))}")

    result = await session.execute(select(ModerationSettings).where(ModerationSettings.chat_id == chat_id))
    row = result.scalar_one_or_none()
    if row is None:
        row = ModerationSettings(chat_id=chat_id)
        session.add(row)
    for name, value in values.items():
        setattr(row, name, value)
    await session.commit()

    await invalidate_settings_cache(chat_id)
    logger.info(f"[Settings] Обновлены настройки chat={chat_id}: {values}")
    return await get_moderation_settings(session, chat_id)


async def invalidate_settings_cache(chat_id: int) -> None:
    """Сбрасывает кэш группы; для глобальных настроек - кэш всех групп"""
    try:
        if chat_id == GLOBAL_CHAT_ID:
            for pattern in ("modguard:settings:*", "modguard:detectors:*"):
                async for key in redis.scan_iter(match=pattern):
                    await redis.delete(key)
        else:
            await redis.delete(
                SETTINGS_CACHE_KEY.format(chat_id=chat_id),
                DETECTORS_CACHE_KEY.format(chat_id=chat_id),
            )
    except RedisError as e:
        logger.warning(f"[Settings] Не удалось сбросить кэш chat={chat_id}: {e}")


# ════════════════════════════════════════════════════════════════════════════
# НАСТРОЙКИ ДЕТЕКТОРОВ
# ════════════════════════════════════════════════════════════════════════════

async def get_detector_configs(session: AsyncSession, chat_id: Optional[int]) -> Dict[str, DetectorSettings]:
    """
    Настройки детекторов группы по имени.

    Строки группы перекрывают глобальные строки с тем же detector_name.
    Детекторы без строк в результат не попадают (координатор возьмёт
    значения по умолчанию).
    """
    chat_id = chat_id if chat_id is not None else GLOBAL_CHAT_ID
    key = DETECTORS_CACHE_KEY.format(chat_id=chat_id)

    cached = await _cache_get(key)
    if cached is not None:
        return {name: DetectorSettings(*values) for name, values in cached.items()}

    result = await session.execute(
        select(DetectorConfig).where(DetectorConfig.chat_id.in_({GLOBAL_CHAT_ID, chat_id}))
    )
    # Глобальные строки идут первыми, строки группы их перезаписывают
    rows = sorted(result.scalars().all(), key=lambda r: r.chat_id != GLOBAL_CHAT_ID)

    configs: Dict[str, DetectorSettings] = {}
    for row in rows:
        configs[row.detector_name] = DetectorSettings(
            name=row.detector_name,
            enabled=row.enabled,
            weight=row.weight,
            always_run=row.always_run,
            timeout=row.timeout_seconds,
        )

    await _cache_set(key, {name: list(cfg) for name, cfg in configs.items()})
    return configs


async def set_detector_config(
    session: AsyncSession,
    chat_id: int,
    detector_name: str,
    *,
    enabled: bool = True,
    weight: float = 1.0,
    always_run: bool = False,
    timeout_seconds: Optional[float] = None,
) -> DetectorSettings:
    """Создаёт или обновляет настройки детектора и сбрасывает кэш"""
    result = await session.execute(
        select(DetectorConfig).where(
            DetectorConfig.chat_id == chat_id,
            DetectorConfig.detector_name == detector_name,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = DetectorConfig(chat_id=chat_id, detector_name=detector_name)
        session.add(row)
    row.enabled = enabled
    row.weight = weight
    row.always_run = always_run
    row.timeout_seconds = timeout_seconds
    await session.commit()

    await invalidate_settings_cache(chat_id)
    return DetectorSettings(detector_name, enabled, weight, always_run, timeout_seconds)
