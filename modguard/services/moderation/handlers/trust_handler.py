# modguard/services/moderation/handlers/trust_handler.py
"""Снятие доверия с забаненного пользователя"""

import logging

from modguard.services.moderation.models import ModerationActionType, ModerationEvent, ModerationFollowUp
from modguard.services.moderation.pipeline import ModerationContext, ModerationHandler
from modguard.services.moderation.repository import set_user_trusted


logger = logging.getLogger(__name__)


class TrustRevocationHandler(ModerationHandler):
    name = "trust_revocation"
    order = 10
    applies_to = frozenset({ModerationActionType.BAN, ModerationActionType.MARK_AS_SPAM_AND_BAN})

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        # Забаненный пользователь не может быть доверенным
        if await set_user_trusted(ctx.session, event.user_id, False):
            logger.info(f"[Trust] Доверие снято с user={event.user_id} ({event.action_type.value})")
        return ModerationFollowUp.NONE
