# modguard/services/detection/orchestrator.py
"""
Оркестратор детекции - полный цикл проверки одного сообщения.

Шаги:
1. Доверенные и админы без критичных детекторов - пропуск
2. Координатор проверок (для доверенных и админов - только критичные)
3. Критичное нарушение - удаление и уведомление, дальше не идём
4. Доверенные и админы - дальше не идём
5. Запись результата детекции (обучающая выборка + дедупликация)
6. Чистый результат - побочные процессы (автодоверие)
7. Решение: автобан / жалоба / пропуск

Ошибки никогда не доходят до вызывающего кода, только логируются.
"""

# Импортируем asyncio для события отмены
import asyncio
# Импортируем логгер для записи событий
import logging
# Импортируем типы для аннотаций
from typing import Callable, Iterable, Optional

# Импортируем AsyncSession для работы с БД
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем модели БД
from modguard.database.models_detection import DetectionResult
# Импортируем компоненты детекции
from modguard.services.detection.check_coordinator import CheckCoordinator
from modguard.services.detection.models import AggregateDetectionResult, ContentCheckRequest
from modguard.services.detection.repository import insert_detection_result
from modguard.services.detection.side_workflows import DetectionContext, SideWorkflow
from modguard.services.detection.simhash import compute_hash, to_signed
from modguard.services.detection.training_policy import is_duplicate_training_sample, is_training_worthy
# Импортируем компоненты модерации
from modguard.services.moderation.decision_service import ActionDecisionService
from modguard.services.moderation.exceptions import DetectionPersistenceError
from modguard.services.moderation.models import Actor
from modguard.services.moderation.orchestrator import ModerationOrchestrator
from modguard.services.moderation.repository import is_chat_admin, is_user_trusted
# Импортируем настройки
from modguard.services.settings_service import ChatModerationSettings, get_detector_configs, get_moderation_settings


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


class DetectionOrchestrator:
    """
    Проверяет входящее сообщение и передаёт результат в модерацию.

    Args:
        coordinator: Координатор детекторов
        decision_service: Сервис решений
        moderation: Оркестратор модерации
        session_factory: Фабрика сессий; одна сессия на сообщение
        side_workflows: Процессы после чистого результата
    """

    def __init__(
        self,
        coordinator: CheckCoordinator,
        decision_service: ActionDecisionService,
        moderation: ModerationOrchestrator,
        session_factory: Callable[[], AsyncSession],
        side_workflows: Iterable[SideWorkflow] = (),
    ):
        self.coordinator = coordinator
        self.decision_service = decision_service
        self.moderation = moderation
        self.session_factory = session_factory
        self.side_workflows = list(side_workflows)

    async def run_detection(
        self,
        request: ContentCheckRequest,
        edit_version: int = 0,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Optional[AggregateDetectionResult]:
        """
        Полный цикл проверки сообщения.

        Args:
            request: Сообщение
            edit_version: Номер правки (0 = новое сообщение)
            cancel_event: Отмена незавершённых детекторов

        Returns:
            Результат координатора или None, если проверка прервалась ошибкой
        """
        try:
            async with self.session_factory() as session:
                return await self._run(session, request, edit_version, cancel_event)
        except Exception as e:
            logger.error(
                f"[Detection] Ошибка проверки chat={request.chat_id} msg={request.message_id} "
                f"user={request.user_id}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return None

    async def _run(
        self,
        session: AsyncSession,
        request: ContentCheckRequest,
        edit_version: int,
        cancel_event: Optional[asyncio.Event],
    ) -> AggregateDetectionResult:
        settings = await get_moderation_settings(session, request.chat_id)
        configs = await get_detector_configs(session, request.chat_id)

        # ═══════════════════════════════════════════════════════════
        # 1. ДОВЕРЕННЫЕ И АДМИНЫ
        # ═══════════════════════════════════════════════════════════
        trusted = await is_user_trusted(session, request.user_id)
        admin = await is_chat_admin(session, request.chat_id, request.user_id)
        exempt = trusted or admin

        if exempt and not self.coordinator.has_critical_detectors(configs):
            reason = "доверенный пользователь" if trusted else "админ группы"
            logger.debug(f"[Detection] Пропуск проверки user={request.user_id}: {reason}")
            return AggregateDetectionResult.skipped_result(reason, is_trusted=trusted, is_admin=admin)

        # ═══════════════════════════════════════════════════════════
        # 2. КООРДИНАТОР
        # ═══════════════════════════════════════════════════════════
        aggregate = await self.coordinator.check(
            request,
            configs,
            only_critical=exempt,
            cancel_event=cancel_event,
        )
        aggregate.is_trusted = trusted
        aggregate.is_admin = admin

        # ═══════════════════════════════════════════════════════════
        # 3. КРИТИЧНЫЕ НАРУШЕНИЯ
        # ═══════════════════════════════════════════════════════════
        if aggregate.has_violations:
            await self.decision_service.act_on_detection(session, request, aggregate, settings, self.moderation)
            return aggregate

        # ═══════════════════════════════════════════════════════════
        # 4. ДОВЕРЕННЫЕ И АДМИНЫ ПРОШЛИ КРИТИЧНЫЕ ПРОВЕРКИ
        # ═══════════════════════════════════════════════════════════
        if exempt:
            aggregate.skipped = True
            aggregate.skip_reason = "обычные проверки не применяются к доверенным и админам"
            return aggregate

        # ═══════════════════════════════════════════════════════════
        # 5. ЗАПИСЬ РЕЗУЛЬТАТА
        # ═══════════════════════════════════════════════════════════
        record = await self._build_record(session, request, aggregate, settings, edit_version)
        try:
            await insert_detection_result(session, record)
        except DetectionPersistenceError as e:
            logger.error(f"[Detection] {e}")
            return aggregate

        edit_info = f" (правка #{edit_version})" if edit_version > 0 else ""
        logger.debug(
            f"[Detection] Сохранён результат msg={request.message_id}{edit_info}: "
            f"{'spam' if aggregate.is_spam else 'ham'} net={aggregate.net_confidence:.1f} "
            f"training={record.used_for_training}"
        )

        # ═══════════════════════════════════════════════════════════
        # 6. ПОБОЧНЫЕ ПРОЦЕССЫ ПОСЛЕ ЧИСТОГО РЕЗУЛЬТАТА
        # ═══════════════════════════════════════════════════════════
        if not aggregate.is_spam and aggregate.check_results:
            ctx = DetectionContext(
                session=session,
                request=request,
                settings=settings,
                aggregate=aggregate,
                moderation=self.moderation,
                edit_version=edit_version,
            )
            for workflow in self.side_workflows:
                try:
                    await workflow.run(ctx)
                except Exception as e:
                    logger.error(f"[Detection] Побочный процесс {workflow.name} упал user={request.user_id}: {e}")
                    await session.rollback()

        # ═══════════════════════════════════════════════════════════
        # 7. РЕШЕНИЕ
        # ═══════════════════════════════════════════════════════════
        await self.decision_service.act_on_detection(session, request, aggregate, settings, self.moderation)
        return aggregate

    @staticmethod
    async def _build_record(
        session: AsyncSession,
        request: ContentCheckRequest,
        aggregate: AggregateDetectionResult,
        settings: ChatModerationSettings,
        edit_version: int,
    ) -> DetectionResult:
        """Строит строку detection_results с учётом обучающей выборки и дубликатов"""
        spam_reasons = [f"{r.detector}: {r.reason}" for r in aggregate.check_results if r.is_spam and r.reason]
        reason = "; ".join(spam_reasons) if spam_reasons else ("Спам" if aggregate.is_spam else "Чисто")
        if edit_version > 0:
            reason = f"[Правка #{edit_version}] {reason}"

        content_hash = compute_hash(request.text)
        used_for_training = is_training_worthy(aggregate, settings, Actor.auto_detection())
        if used_for_training and await is_duplicate_training_sample(
            session, content_hash, aggregate.is_spam, settings.dedup_max_distance
        ):
            logger.info(
                f"[Detection] msg={request.message_id} почти совпадает с обучающим образцом, "
                f"в выборку не добавляем"
            )
            used_for_training = False

        return DetectionResult(
            chat_id=request.chat_id,
            message_id=request.message_id,
            user_id=request.user_id,
            net_confidence=aggregate.net_confidence,
            max_confidence=aggregate.max_confidence,
            is_spam=aggregate.is_spam,
            detection_source="auto",
            detection_method=", ".join(aggregate.detector_names) or None,
            reason=reason,
            used_for_training=used_for_training,
            actor_type=Actor.auto_detection().type.value,
            actor_id=None,
            edit_version=edit_version,
            content_hash=to_signed(content_hash) if content_hash else None,
            message_text=request.text or None,
        )
