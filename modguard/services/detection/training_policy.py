# modguard/services/detection/training_policy.py
"""
Политика отбора образцов в обучающую выборку.

Образец годится для обучения, если:
- его пометил человек (админ в Telegram или в веб-панели), или
- доверенный детектор проголосовал за спам с уверенностью не ниже порога, или
- чистая уверенность строго выше отдельного порога
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from modguard.services.detection.models import AggregateDetectionResult
from modguard.services.detection.repository import get_training_hashes
from modguard.services.detection.simhash import is_near_duplicate
from modguard.services.moderation.models import Actor
from modguard.services.settings_service import ChatModerationSettings


def is_training_worthy(
    aggregate: AggregateDetectionResult,
    settings: ChatModerationSettings,
    actor: Optional[Actor] = None,
) -> bool:
    """
    Решает, годится ли результат детекции для обучающей выборки.

    Args:
        aggregate: Результат координатора
        settings: Настройки модерации группы (пороги обучения)
        actor: Кто классифицировал сообщение (None = автоматика)

    Returns:
        True если образец можно использовать для обучения
    """
    # Ручная разметка всегда ценна
    if actor is not None and actor.is_manual:
        return True

    trusted = aggregate.result_for(settings.training_trusted_detector)
    if trusted is not None and trusted.is_spam and trusted.confidence >= settings.training_confidence_floor:
        return True

    # Пограничные авторезультаты в выборку не попадают
    return aggregate.net_confidence > settings.training_net_threshold


async def is_duplicate_training_sample(
    session: AsyncSession,
    content_hash: int,
    is_spam: bool,
    max_distance: int,
) -> bool:
    """
    Есть ли в обучающей выборке почти такой же образец того же класса.

    Пустой текст (хеш 0) дубликатом не считается: для медиа без подписи
    SimHash ничего не говорит о содержимом.
    """
    if not content_hash:
        return False
    existing = await get_training_hashes(session, is_spam)
    return is_near_duplicate(content_hash, existing, max_distance)
