# modguard/services/moderation/pipeline.py
"""
Конвейер обработчиков события модерации.

Обработчики регистрируются явным списком при старте, сортируются
по order один раз и выполняются строго последовательно. Упавший
обработчик логируется, остальные получают то же событие.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем dataclass для контекста
from dataclasses import dataclass
# Импортируем типы для аннотаций
from typing import FrozenSet, Iterable, List, NamedTuple

# Импортируем AsyncSession для контекста
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем модели модерации
from modguard.services.moderation.models import ModerationActionType, ModerationEvent, ModerationFollowUp
from modguard.services.moderation.platform import ChatPlatform
from modguard.services.settings_service import ChatModerationSettings


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


@dataclass
class ModerationContext:
    """Всё, что нужно обработчикам для одного события"""

    # Сессия БД этого события
    session: AsyncSession
    # Чат-платформа
    platform: ChatPlatform
    # Настройки группы события (или глобальные)
    settings: ChatModerationSettings


class ModerationHandler:
    """
    Базовый обработчик конвейера.

    Наследник задаёт name, order, applies_to и реализует handle().
    Пустой applies_to - обработчик получает все типы действий.
    critical=True: ошибка обработчика логируется как CRITICAL.
    """

    name: str = ""
    order: int = 100
    applies_to: FrozenSet[ModerationActionType] = frozenset()
    critical: bool = False

    def handles(self, action_type: ModerationActionType) -> bool:
        return not self.applies_to or action_type in self.applies_to

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        raise NotImplementedError


class FollowUpRequest(NamedTuple):
    """Запрос на дополнительное действие от конкретного обработчика"""
    handler: str
    follow_up: ModerationFollowUp


class ModerationPipeline:
    """Последовательный проход обработчиков по событию"""

    def __init__(self, handlers: Iterable[ModerationHandler]):
        # sorted устойчив: при равном order сохраняется порядок регистрации
        self.handlers: List[ModerationHandler] = sorted(handlers, key=lambda h: h.order)
        logger.info(
            "[Pipeline] Обработчики: "
            + ", ".join(f"{h.name}({h.order})" for h in self.handlers)
        )

    async def run(self, event: ModerationEvent, ctx: ModerationContext) -> List[FollowUpRequest]:
        """
        Прогоняет событие через все подходящие обработчики.

        Returns:
            Запросы на дополнительные действия (кроме NONE)
        """
        follow_ups: List[FollowUpRequest] = []

        for handler in self.handlers:
            if not handler.handles(event.action_type):
                continue
            try:
                follow_up = await handler.handle(event, ctx)
            except Exception as e:
                level = logging.CRITICAL if handler.critical else logging.ERROR
                logger.log(
                    level,
                    f"[Pipeline] Обработчик {handler.name} упал на {event.action_type.value} "
                    f"user={event.user_id}: {type(e).__name__}: {e}",
                    exc_info=True,
                )
                # Незавершённая транзакция упавшего обработчика не должна мешать следующим
                await ctx.session.rollback()
                continue

            if follow_up is not None and follow_up != ModerationFollowUp.NONE:
                logger.info(f"[Pipeline] {handler.name} запросил {follow_up.value} для user={event.user_id}")
                follow_ups.append(FollowUpRequest(handler.name, follow_up))

        return follow_ups
