# modguard/services/moderation/orchestrator.py
"""
Оркестратор модерации - единая точка входа для действий.

Порядок:
1. Отказ для системных аккаунтов Telegram
2. Применение действия (ActionDecisionService.apply)
3. Проход конвейера обработчиков
4. Не более одного дополнительного действия (автобан по предупреждениям),
   которое выполняется без права на следующее дополнительное действие
"""

# Импортируем логгер для записи событий
import logging
# Импортируем типы для аннотаций
from typing import Callable, List

# Импортируем фабрику сессий
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем компоненты модерации
from modguard.services.moderation.decision_service import ActionDecisionService
from modguard.services.moderation.exceptions import ProtectedAccountError
from modguard.services.moderation.models import (
    CROSS_CHAT_ACTIONS,
    Actor,
    ModerationActionType,
    ModerationEvent,
    ModerationFollowUp,
    ModerationResult,
)
from modguard.services.moderation.pipeline import FollowUpRequest, ModerationContext, ModerationPipeline
from modguard.services.moderation.platform import ChatPlatform
from modguard.services.settings_service import ChatModerationSettings, get_moderation_settings
from modguard.utils.logger import log_auto_ban_triggered


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# СИСТЕМНЫЕ АККАУНТЫ TELEGRAM
# ════════════════════════════════════════════════════════════════════════════
# 777000     - Telegram (уведомления и посты связанного канала)
# 1087968824 - GroupAnonymousBot (анонимные админы)
# 136817688  - Channel Bot (сообщения от имени канала)
# 1271266957 - Replies bot
# 5434988373 - Antispam bot Telegram
SYSTEM_ACCOUNT_IDS = frozenset({777000, 1087968824, 136817688, 1271266957, 5434988373})


def is_system_account(user_id: int) -> bool:
    return user_id in SYSTEM_ACCOUNT_IDS


class ModerationOrchestrator:
    """
    Выполняет событие модерации целиком.

    Args:
        decision_service: Применение действий
        pipeline: Конвейер обработчиков
        platform: Чат-платформа (передаётся обработчикам)
        session_factory: Фабрика сессий; одна сессия на событие
    """

    def __init__(
        self,
        decision_service: ActionDecisionService,
        pipeline: ModerationPipeline,
        platform: ChatPlatform,
        session_factory: Callable[[], AsyncSession],
    ):
        self.decision_service = decision_service
        self.pipeline = pipeline
        self.platform = platform
        self.session_factory = session_factory

    async def execute_moderation_action(self, event: ModerationEvent) -> ModerationResult:
        """
        Применяет действие и прогоняет его через конвейер.

        Никогда не бросает исключение: ошибки возвращаются в ModerationResult.
        """
        return await self._execute(event, allow_follow_up=True)

    async def _execute(self, event: ModerationEvent, *, allow_follow_up: bool) -> ModerationResult:
        if is_system_account(event.user_id):
            e = ProtectedAccountError(event.user_id)
            logger.warning(f"[Moderation] {event.action_type.value} отклонён: {e}")
            return ModerationResult(success=False, error_message=str(e))

        async with self.session_factory() as session:
            # ═══════════════════════════════════════════════════════════
            # 1. ПРИМЕНЯЕМ ДЕЙСТВИЕ
            # ═══════════════════════════════════════════════════════════
            try:
                execution = await self.decision_service.apply(session, event)
            except Exception as e:
                logger.error(
                    f"[Moderation] Не удалось применить {event.action_type.value} user={event.user_id}: {e}",
                    exc_info=True,
                )
                await session.rollback()
                return ModerationResult(success=False, error_message=f"{type(e).__name__}: {e}")

            # Результат прикрепляется к событию один раз, дальше событие не меняется
            event = event.with_execution(execution)

            result = ModerationResult(
                success=self._is_success(event),
                chats_affected=len(execution.affected_chats),
                warning_count=execution.warning_count,
                execution=execution,
            )
            if not result.success:
                result.error_message = self._failure_message(event)

            # ═══════════════════════════════════════════════════════════
            # 2. КОНВЕЙЕР ОБРАБОТЧИКОВ
            # ═══════════════════════════════════════════════════════════
            try:
                settings = await get_moderation_settings(session, event.chat_id)
            except Exception as e:
                # Без настроек группы работаем на глобальных значениях по умолчанию
                logger.error(f"[Moderation] Не удалось загрузить настройки chat={event.chat_id}: {e}")
                await session.rollback()
                settings = ChatModerationSettings()

            ctx = ModerationContext(session=session, platform=self.platform, settings=settings)
            follow_ups = await self.pipeline.run(event, ctx)

        # ═══════════════════════════════════════════════════════════
        # 3. ДОПОЛНИТЕЛЬНОЕ ДЕЙСТВИЕ
        # ═══════════════════════════════════════════════════════════
        if follow_ups:
            if not allow_follow_up:
                logger.error(
                    f"[Moderation] Дополнительное действие внутри дополнительного действия отброшено: "
                    f"{[f.handler for f in follow_ups]}"
                )
            elif len(follow_ups) > 1:
                logger.error(
                    f"[Moderation] Несколько обработчиков запросили дополнительное действие "
                    f"({[f.handler for f in follow_ups]}), ничего не выполняем"
                )
            else:
                follow_result = await self._run_follow_up(event, follow_ups[0])
                result.auto_ban_triggered = follow_result.success

        return result

    async def _run_follow_up(self, event: ModerationEvent, request: FollowUpRequest) -> ModerationResult:
        if request.follow_up != ModerationFollowUp.BAN:
            logger.error(f"[Moderation] Неизвестное дополнительное действие {request.follow_up}")
            return ModerationResult(success=False, error_message=f"unknown follow-up {request.follow_up}")

        count = event.warning_count
        ban_event = ModerationEvent(
            action_type=ModerationActionType.BAN,
            user_id=event.user_id,
            actor=Actor.auto_ban(),
            reason=f"Превышен порог предупреждений ({count} предупреждений)",
            chat_id=event.chat_id,
            message_id=event.message_id,
            snapshot=event.snapshot,
        )
        logger.warning(f"⛔ [Moderation] Автобан user={event.user_id} по запросу {request.handler}")
        user_name = event.snapshot.user_name if event.snapshot else None
        log_auto_ban_triggered(user_name, event.user_id, count)
        return await self._execute(ban_event, allow_follow_up=False)

    @staticmethod
    def _is_success(event: ModerationEvent) -> bool:
        execution = event.execution
        if event.action_type in CROSS_CHAT_ACTIONS or event.action_type == ModerationActionType.DELETE:
            return execution.any_success
        return True

    @staticmethod
    def _failure_message(event: ModerationEvent) -> str:
        execution = event.execution
        if execution.total == 0:
            return "Нет активных групп для применения действия"
        errors: List[str] = [f"{chat_id}: {error}" for chat_id, error in execution.failed_chats.items()]
        return f"Действие не применено ни в одной группе ({'; '.join(errors)})"
