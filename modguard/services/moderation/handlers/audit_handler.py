# modguard/services/moderation/handlers/audit_handler.py
"""Запись каждого действия модерации в журнал аудита"""

import logging

from modguard.services.moderation.models import ModerationEvent, ModerationFollowUp
from modguard.services.moderation.pipeline import ModerationContext, ModerationHandler
from modguard.services.moderation.repository import insert_audit_record
from modguard.utils.logger import log_audit_failure


logger = logging.getLogger(__name__)


class AuditHandler(ModerationHandler):
    name = "audit"
    order = 100
    # Все типы действий
    applies_to = frozenset()
    critical = True

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        execution = event.execution
        try:
            await insert_audit_record(
                ctx.session,
                action_type=event.action_type.value,
                user_id=event.user_id,
                chat_id=event.chat_id,
                message_id=event.message_id,
                actor_type=event.actor.type.value,
                actor_id=event.actor.identifier,
                reason=event.reason,
                chats_affected=len(execution.affected_chats) if execution else 0,
                chats_failed=execution.fail_count if execution else 0,
            )
        except Exception as e:
            # Потеря аудита - повод разбудить админа
            log_audit_failure(event.action_type.value, event.user_id, e)
            raise
        return ModerationFollowUp.NONE
