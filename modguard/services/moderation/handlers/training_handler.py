# modguard/services/moderation/handlers/training_handler.py
"""
Пополнение обучающей выборки при ручной пометке спама.

Когда админ помечает сообщение спамом:
- создаётся результат детекции с ручной меткой (с проверкой на дубликаты)
- для сообщения с фото создаётся обучающий образец изображения
- если сообщения нет в истории, оно восстанавливается из снимка события
"""

# Импортируем логгер
import logging

# Импортируем модели БД
from modguard.database.models_detection import DetectionResult
# Импортируем работу с историей и образцами
from modguard.services.detection.repository import (
    get_message,
    insert_detection_result,
    insert_image_training_sample,
    save_message,
)
# Импортируем SimHash и дедупликацию
from modguard.services.detection.simhash import compute_hash, to_signed
from modguard.services.detection.training_policy import is_duplicate_training_sample
# Импортируем модели модерации
from modguard.services.moderation.models import ModerationActionType, ModerationEvent, ModerationFollowUp
from modguard.services.moderation.pipeline import ModerationContext, ModerationHandler


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


class TrainingDataHandler(ModerationHandler):
    name = "training_data"
    order = 50
    applies_to = frozenset({ModerationActionType.MARK_AS_SPAM_AND_BAN})

    async def handle(self, event: ModerationEvent, ctx: ModerationContext) -> ModerationFollowUp:
        # Автобан уже сохранил свой результат детекции при проверке сообщения
        if not event.actor.is_manual:
            return ModerationFollowUp.NONE

        if event.chat_id is None or event.message_id is None:
            logger.warning(f"[Training] Нет сообщения в событии для user={event.user_id}, пропускаем")
            return ModerationFollowUp.NONE

        session = ctx.session

        # ═══════════════════════════════════════════════════════════
        # ИСХОДНОЕ СООБЩЕНИЕ
        # ═══════════════════════════════════════════════════════════
        message = await get_message(session, event.chat_id, event.message_id)
        if message is None and event.snapshot is not None:
            message = await save_message(
                session,
                chat_id=event.chat_id,
                message_id=event.message_id,
                user_id=event.user_id,
                text=event.snapshot.text,
                image_ref=event.snapshot.image_ref,
                file_ref=event.snapshot.file_ref,
                user_name=event.snapshot.user_name,
            )
            logger.info(f"[Training] Сообщение {event.message_id} в {event.chat_id} восстановлено из снимка")

        if message is None:
            logger.warning(
                f"[Training] Сообщение {event.message_id} в {event.chat_id} не найдено и снимка нет, "
                f"образец не создан"
            )
            return ModerationFollowUp.NONE

        # ═══════════════════════════════════════════════════════════
        # РЕЗУЛЬТАТ ДЕТЕКЦИИ С РУЧНОЙ МЕТКОЙ
        # ═══════════════════════════════════════════════════════════
        content_hash = compute_hash(message.text)
        duplicate = await is_duplicate_training_sample(
            session, content_hash, is_spam=True, max_distance=ctx.settings.dedup_max_distance
        )
        if duplicate:
            logger.info(f"[Training] Сообщение {event.message_id} почти совпадает с существующим образцом")

        record = DetectionResult(
            chat_id=event.chat_id,
            message_id=event.message_id,
            user_id=event.user_id,
            net_confidence=100.0,
            max_confidence=100,
            is_spam=True,
            detection_source="manual",
            detection_method="manual",
            reason=event.reason,
            used_for_training=not duplicate,
            actor_type=event.actor.type.value,
            actor_id=event.actor.identifier,
            edit_version=message.edit_count or 0,
            content_hash=to_signed(content_hash) if content_hash else None,
            message_text=message.text,
        )
        await insert_detection_result(session, record)

        # ═══════════════════════════════════════════════════════════
        # ОБРАЗЕЦ ИЗОБРАЖЕНИЯ
        # ═══════════════════════════════════════════════════════════
        if message.image_ref:
            await insert_image_training_sample(
                session,
                chat_id=event.chat_id,
                message_id=event.message_id,
                user_id=event.user_id,
                image_ref=message.image_ref,
                is_spam=True,
                labeled_by=str(event.actor),
            )
            logger.info(f"[Training] Создан образец изображения для сообщения {event.message_id}")

        return ModerationFollowUp.NONE
