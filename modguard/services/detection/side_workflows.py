# modguard/services/detection/side_workflows.py
"""
Побочные процессы после чистого результата детекции.

Каждый процесс получает DetectionContext и выполняется независимо:
ошибка одного процесса логируется и не влияет на сохранённый
результат детекции и на остальные процессы.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from modguard.services.detection.models import AggregateDetectionResult, ContentCheckRequest
from modguard.services.detection.repository import count_user_detections
from modguard.services.moderation.models import Actor, ModerationActionType, ModerationEvent
from modguard.services.settings_service import ChatModerationSettings

if TYPE_CHECKING:
    from modguard.services.moderation.orchestrator import ModerationOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class DetectionContext:
    """Состояние проверки одного сообщения"""

    session: AsyncSession
    request: ContentCheckRequest
    settings: ChatModerationSettings
    aggregate: AggregateDetectionResult
    moderation: "ModerationOrchestrator"
    edit_version: int = 0


class SideWorkflow:
    """Базовый побочный процесс"""

    name: str = ""

    async def run(self, ctx: DetectionContext) -> None:
        raise NotImplementedError


class AutoTrustWorkflow(SideWorkflow):
    """
    Автоматическое доверие.

    Пользователь становится доверенным, когда у него набралось
    auto_trust_threshold чистых результатов и ни одного спама.
    Доверие выдаётся действием TRUST, поэтому попадает в аудит.
    """

    name = "auto_trust"

    async def run(self, ctx: DetectionContext) -> None:
        threshold = ctx.settings.auto_trust_threshold
        if threshold <= 0:
            return

        user_id = ctx.request.user_id
        if await count_user_detections(ctx.session, user_id, is_spam=True) > 0:
            return

        clean = await count_user_detections(ctx.session, user_id, is_spam=False)
        if clean < threshold:
            logger.debug(f"[AutoTrust] user={user_id}: {clean}/{threshold} чистых сообщений")
            return

        result = await ctx.moderation.execute_moderation_action(
            ModerationEvent(
                action_type=ModerationActionType.TRUST,
                user_id=user_id,
                actor=Actor.system("auto_trust"),
                reason=f"Автодоверие: {clean} чистых сообщений без спама",
                chat_id=ctx.request.chat_id,
            )
        )
        if result.success:
            logger.info(f"🤝 [AutoTrust] user={user_id} стал доверенным ({clean} чистых сообщений)")
        else:
            logger.warning(f"[AutoTrust] Не удалось выдать доверие user={user_id}: {result.error_message}")
