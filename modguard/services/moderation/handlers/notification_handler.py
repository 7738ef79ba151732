# modguard/services/moderation/handlers/notification_handler.py
"""
Уведомления о действиях модерации.

Пользователь получает сообщение в ЛС, админы - алерт о бане.
Доставка не гарантируется: ошибки только логируются.
"""

# Импортируем логгер
import logging
# Импортируем html для экранирования причины
import html
# Импортируем типы для аннотаций
from typing import Optional

# Импортируем модели модерации
from modguard.services.moderation.models import ModerationActionType, ModerationEvent, ModerationFollowUp
from modguard.services.moderation.pipeline import ModerationContext, ModerationHandler
from modguard.utils.logger import log_user_banned


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Баны, о которых сообщаем админам
_BAN_ACTIONS = (ModerationActionType.BAN, ModerationActionType.MARK_AS_SPAM_AND_BAN)


class NotificationHandler(ModerationHandler):
    name = "notification"
    order = 200
    applies_to = frozenset({
        ModerationActionType.WARN,
        ModerationActionType.TEMP_BAN,
        ModerationActionType.BAN,
        ModerationActionType.MARK_AS_SPAM_AND_BAN,
    })

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        # ═══════════════════════════════════════════════════════════
        # УВЕДОМЛЕНИЕ ПОЛЬЗОВАТЕЛЯ
        # ═══════════════════════════════════════════════════════════
        text = self._user_text(event, ctx.settings.warning_ban_threshold)
        if text:
            try:
                delivered = await ctx.platform.send_direct_message(event.user_id, text)
                logger.debug(f"[Notify] user={event.user_id} {event.action_type.value}: доставлено={delivered}")
            except Exception as e:
                logger.warning(f"[Notify] Не удалось уведомить user={event.user_id}: {e}")

        # ═══════════════════════════════════════════════════════════
        # АЛЕРТ АДМИНАМ О БАНЕ
        # ═══════════════════════════════════════════════════════════
        if event.action_type in _BAN_ACTIONS:
            # Группы, где бан действует: применён сейчас или уже был (как в аудите)
            success = len(event.execution.affected_chats) if event.execution else 0
            failed = event.execution.fail_count if event.execution else 0
            alert = (
                f"🚫 Пользователь <code>{event.user_id}</code> забанен\n"
                f"• Групп: {success}" + (f" (ошибок: {failed})" if failed else "") + "\n"
                f"• Причина: {html.escape(event.reason or '-')}\n"
                f"• Исполнитель: {html.escape(str(event.actor))}"
            )
            try:
                await ctx.platform.send_alert(alert)
            except Exception as e:
                logger.warning(f"[Notify] Не удалось отправить алерт о бане user={event.user_id}: {e}")

            user_name = event.snapshot.user_name if event.snapshot else None
            log_user_banned(user_name, event.user_id, success, failed, reason=event.reason, actor=event.actor)

        return ModerationFollowUp.NONE

    @staticmethod
    def _user_text(event: ModerationEvent, threshold: int) -> Optional[str]:
        reason = html.escape(event.reason) if event.reason else "нарушение правил"
        if event.action_type == ModerationActionType.WARN:
            count = event.warning_count or 0
            limit = f" из {threshold}" if threshold > 0 else ""
            return f"⚠️ Вы получили предупреждение ({count}{limit}).\nПричина: {reason}"
        if event.action_type == ModerationActionType.TEMP_BAN:
            until = event.expires_at.strftime("%d.%m.%Y %H:%M UTC") if event.expires_at else "на время"
            return f"⏳ Вы временно заблокированы до {until}.\nПричина: {reason}"
        if event.action_type in _BAN_ACTIONS:
            return f"🚫 Вы заблокированы во всех группах.\nПричина: {reason}"
        return None
