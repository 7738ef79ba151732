# modguard/services/moderation/handlers/warning_handler.py
"""Автобан по порогу предупреждений"""

import logging

from modguard.services.moderation.models import ModerationActionType, ModerationEvent, ModerationFollowUp
from modguard.services.moderation.pipeline import ModerationContext, ModerationHandler
from modguard.services.moderation.repository import get_warning_count


logger = logging.getLogger(__name__)


class WarningThresholdHandler(ModerationHandler):
    """
    Запрашивает бан, когда счётчик предупреждений достиг порога или превысил его.

    Счётчик берётся из события: его заполнил атомарный инкремент при
    выполнении WARN. Счётчик выше порога остаётся после разбана без сброса,
    снижения порога или неудачного бана, и тоже ведёт к бану. Повторный
    бан уже забаненного пользователя ничего не делает в Telegram.
    Порог 0 выключает автобан.
    """

    name = "warning_threshold"
    order = 20
    applies_to = frozenset({ModerationActionType.WARN})

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        threshold = ctx.settings.warning_ban_threshold
        if threshold <= 0:
            return ModerationFollowUp.NONE

        count = event.warning_count
        if count is None:
            # Событие пришло без результата инкремента - читаем текущее значение
            count = await get_warning_count(ctx.session, event.user_id)

        if count >= threshold:
            logger.warning(f"[Warnings] user={event.user_id} {count} предупреждений при пороге {threshold}, запрашиваем бан")
            return ModerationFollowUp.BAN

        logger.debug(f"[Warnings] user={event.user_id}: {count}/{threshold}")
        return ModerationFollowUp.NONE
