# modguard/services/moderation/decision_service.py
"""
Сервис принятия решений и применения действий.

Содержит:
- Выбор уровня решения по чистой уверенности (бан / жалоба / пропуск)
- Критичный путь: удаление сообщения и уведомление автора
- Применение действий модерации (кросс-чат баны, предупреждения, доверие)
"""

# Импортируем логгер для записи событий
import logging
# Импортируем datetime для сроков временных действий
from datetime import datetime, timedelta
# Импортируем типы для аннотаций
from typing import TYPE_CHECKING, Optional

# Импортируем ошибки Telegram
from aiogram.exceptions import TelegramAPIError
# Импортируем AsyncSession для работы с БД
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем модели
from modguard.database.models import utcnow
from modguard.services.detection.models import AggregateDetectionResult, ContentCheckRequest
from modguard.services.detection.repository import create_report
from modguard.services.moderation.cross_chat_executor import CrossChatExecutor
from modguard.services.moderation.models import (
    CROSS_CHAT_ACTIONS,
    ActionExecutionResult,
    ActionTier,
    Actor,
    MessageSnapshot,
    ModerationActionType,
    ModerationEvent,
)
from modguard.services.moderation.platform import ChatPlatform
from modguard.services.moderation.repository import increment_warning_count, set_user_trusted
from modguard.services.settings_service import ChatModerationSettings
from modguard.utils.logger import log_critical_violation

if TYPE_CHECKING:
    from modguard.services.moderation.orchestrator import ModerationOrchestrator


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


class ActionDecisionService:
    """
    Переводит результат детекции в действие и применяет действия.

    Args:
        platform: Чат-платформа
        executor: Исполнитель кросс-чат действий (по умолчанию поверх platform)
    """

    def __init__(self, platform: ChatPlatform, executor: Optional[CrossChatExecutor] = None):
        self.platform = platform
        self.executor = executor or CrossChatExecutor(platform)

    # ════════════════════════════════════════════════════════════════════════
    # РЕШЕНИЕ
    # ════════════════════════════════════════════════════════════════════════

    @staticmethod
    def decide(aggregate: AggregateDetectionResult, settings: ChatModerationSettings) -> ActionTier:
        """
        Уровень решения по результату детекции.

        Критичные нарушения важнее любой уверенности. Дальше:
        net >= auto_ban_threshold -> AUTO_BAN, net >= review_threshold -> REVIEW.
        """
        if aggregate.has_violations:
            return ActionTier.CRITICAL
        if aggregate.skipped:
            return ActionTier.PASS
        net = aggregate.net_confidence
        if net >= settings.auto_ban_threshold:
            return ActionTier.AUTO_BAN
        if net >= settings.review_threshold:
            return ActionTier.REVIEW
        return ActionTier.PASS

    async def act_on_detection(
        self,
        session: AsyncSession,
        request: ContentCheckRequest,
        aggregate: AggregateDetectionResult,
        settings: ChatModerationSettings,
        moderation: "ModerationOrchestrator",
    ) -> ActionTier:
        """
        Принимает решение и запускает соответствующее действие.

        Args:
            session: Сессия текущего сообщения (для жалоб)
            request: Проверенное сообщение
            aggregate: Результат координатора
            settings: Настройки группы
            moderation: Оркестратор модерации, через который идут действия

        Returns:
            Выбранный уровень решения
        """
        tier = self.decide(aggregate, settings)

        if tier == ActionTier.CRITICAL:
            await self.handle_critical_violation(request, aggregate, moderation)
        elif tier == ActionTier.AUTO_BAN:
            reason = f"Автобан: уверенность {aggregate.net_confidence:.0f}% ({', '.join(aggregate.detector_names)})"
            event = ModerationEvent(
                action_type=ModerationActionType.MARK_AS_SPAM_AND_BAN,
                user_id=request.user_id,
                actor=Actor.auto_detection(),
                reason=reason,
                chat_id=request.chat_id,
                message_id=request.message_id,
                snapshot=MessageSnapshot(
                    text=request.text,
                    image_ref=request.image_ref,
                    file_ref=request.file_ref,
                    user_name=request.user_name,
                ),
            )
            result = await moderation.execute_moderation_action(event)
            logger.info(
                f"🔨 [Decision] Автобан user={request.user_id} chat={request.chat_id}: "
                f"net={aggregate.net_confidence:.1f}, групп={result.chats_affected}, success={result.success}"
            )
        elif tier == ActionTier.REVIEW:
            await create_report(
                session,
                chat_id=request.chat_id,
                message_id=request.message_id,
                user_id=request.user_id,
                net_confidence=aggregate.net_confidence,
                details=aggregate.summary(),
            )
        else:
            logger.debug(f"[Decision] PASS chat={request.chat_id} msg={request.message_id} net={aggregate.net_confidence:.1f}")

        return tier

    # ════════════════════════════════════════════════════════════════════════
    # КРИТИЧНЫЙ ПУТЬ
    # ════════════════════════════════════════════════════════════════════════

    async def handle_critical_violation(
        self,
        request: ContentCheckRequest,
        aggregate: AggregateDetectionResult,
        moderation: "ModerationOrchestrator",
    ) -> None:
        """
        Удаляет сообщение и уведомляет автора. Без бана и предупреждения.

        Применяется ко всем, включая доверенных и админов.
        """
        violations = aggregate.violations
        logger.warning(
            f"🚨 [Decision] Критичное нарушение user={request.user_id} chat={request.chat_id} "
            f"msg={request.message_id}: {'; '.join(violations)}"
        )

        # Удаление идёт через конвейер, чтобы попасть в аудит
        if request.message_id is not None:
            await moderation.execute_moderation_action(
                ModerationEvent(
                    action_type=ModerationActionType.DELETE,
                    user_id=request.user_id,
                    actor=Actor.auto_detection(),
                    reason=f"Критичное нарушение: {'; '.join(violations)}",
                    chat_id=request.chat_id,
                    message_id=request.message_id,
                )
            )

        violation_list = "\n".join(f"{i}. {v}" for i, v in enumerate(violations, start=1))
        text = (
            "⚠️ Ваше сообщение удалено из-за нарушения правил безопасности:\n\n"
            f"{violation_list}\n\n"
            "Эти проверки применяются ко всем участникам независимо от статуса доверия."
        )
        try:
            delivered = await self.platform.send_direct_message(request.user_id, text)
        except Exception as e:
            logger.error(f"[Decision] Не удалось уведомить user={request.user_id} о нарушении: {e}")
            delivered = False
        if not delivered:
            logger.info(f"[Decision] Уведомление о нарушении не доставлено user={request.user_id}")

        log_critical_violation(request.user_name, request.user_id, request.chat_id, violations)

    # ════════════════════════════════════════════════════════════════════════
    # ПРИМЕНЕНИЕ ДЕЙСТВИЙ
    # ════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _until(event: ModerationEvent) -> Optional[datetime]:
        if event.expires_at is not None:
            return event.expires_at
        if event.duration_seconds:
            return utcnow() + timedelta(seconds=event.duration_seconds)
        return None

    async def execute_across_chats(self, session: AsyncSession, event: ModerationEvent) -> ActionExecutionResult:
        """Бан/разбан/мут во всех управляемых группах"""
        return await self.executor.execute(
            session,
            action_type=event.action_type,
            user_id=event.user_id,
            reason=event.reason,
            until_date=self._until(event),
        )

    async def apply(self, session: AsyncSession, event: ModerationEvent) -> ActionExecutionResult:
        """
        Применяет действие события.

        Args:
            session: Асинхронная сессия SQLAlchemy
            event: Событие модерации

        Returns:
            ActionExecutionResult (для WARN содержит новый счётчик предупреждений)
        """
        action = event.action_type

        if action in CROSS_CHAT_ACTIONS:
            result = await self.execute_across_chats(session, event)
            # Пометка спамом дополнительно удаляет само сообщение
            if action == ModerationActionType.MARK_AS_SPAM_AND_BAN:
                await self._delete_quietly(event)
            return result

        result = ActionExecutionResult()

        if action == ModerationActionType.DELETE:
            if event.chat_id is None or event.message_id is None:
                result.record_failure(event.chat_id or 0, "нет chat_id/message_id")
                return result
            try:
                await self.platform.delete_message(event.chat_id, event.message_id)
                result.record_success(event.chat_id)
            except TelegramAPIError as e:
                logger.error(f"[Decision] Не удалось удалить сообщение {event.message_id} в {event.chat_id}: {e}")
                result.record_failure(event.chat_id, str(e))
            return result

        if action == ModerationActionType.WARN:
            result.warning_count = await increment_warning_count(session, event.user_id, event.reason)
            if event.chat_id is not None:
                result.record_success(event.chat_id)
            logger.info(f"⚠️ [Decision] Предупреждение user={event.user_id}: теперь {result.warning_count}")
            return result

        if action == ModerationActionType.TRUST:
            changed = await set_user_trusted(session, event.user_id, True)
            logger.info(f"[Decision] Доверие user={event.user_id} {'установлено' if changed else 'уже было'}")
            return result

        raise ValueError(f"Неизвестное действие {action}")

    async def _delete_quietly(self, event: ModerationEvent) -> None:
        # Ошибка удаления не отменяет бан
        if event.chat_id is None or event.message_id is None:
            return
        try:
            await self.platform.delete_message(event.chat_id, event.message_id)
        except TelegramAPIError as e:
            logger.warning(f"[Decision] Сообщение {event.message_id} в {event.chat_id} не удалено: {e}")
