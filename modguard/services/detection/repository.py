# modguard/services/detection/repository.py
"""
Работа с БД для детекции: результаты, история сообщений,
обучающие образцы и жалобы.
"""

# Импортируем логгер
import logging
# Импортируем типы для аннотаций
from typing import List, Optional

# Импортируем SQLAlchemy
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем модели
from modguard.database.models import MessageHistory, utcnow
from modguard.database.models_detection import DetectionResult, ImageTrainingSample, Report, ReportStatus
# Импортируем исключение сохранения
from modguard.services.moderation.exceptions import DetectionPersistenceError


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# РЕЗУЛЬТАТЫ ДЕТЕКЦИИ
# ════════════════════════════════════════════════════════════════════════════

async def insert_detection_result(session: AsyncSession, record: DetectionResult) -> DetectionResult:
    """
    Сохраняет результат детекции (только вставка).

    Raises:
        DetectionPersistenceError: если вставка не удалась
    """
    try:
        session.add(record)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise DetectionPersistenceError(
            f"Не удалось сохранить детекцию chat={record.chat_id} msg={record.message_id}: {e}"
        ) from e
    return record


async def get_training_hashes(session: AsyncSession, is_spam: bool) -> List[int]:
    """SimHash всех обучающих образцов одного класса (спам или чисто)"""
    result = await session.execute(
        select(DetectionResult.content_hash).where(
            DetectionResult.used_for_training.is_(True),
            DetectionResult.is_spam.is_(is_spam),
            DetectionResult.content_hash.is_not(None),
        )
    )
    return [value for value in result.scalars().all()]


async def get_detection_history(session: AsyncSession, user_id: int, limit: int = 50) -> List[DetectionResult]:
    """Последние результаты детекции пользователя (новые первыми)"""
    result = await session.execute(
        select(DetectionResult)
        .where(DetectionResult.user_id == user_id)
        .order_by(DetectionResult.detected_at.desc(), DetectionResult.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_user_detections(session: AsyncSession, user_id: int, *, is_spam: bool) -> int:
    result = await session.execute(
        select(func.count(DetectionResult.id)).where(
            DetectionResult.user_id == user_id,
            DetectionResult.is_spam.is_(is_spam),
        )
    )
    return int(result.scalar_one())


# ════════════════════════════════════════════════════════════════════════════
# ИСТОРИЯ СООБЩЕНИЙ
# ════════════════════════════════════════════════════════════════════════════

async def get_message(session: AsyncSession, chat_id: int, message_id: int) -> Optional[MessageHistory]:
    result = await session.execute(
        select(MessageHistory).where(
            MessageHistory.chat_id == chat_id,
            MessageHistory.message_id == message_id,
        )
    )
    return result.scalar_one_or_none()


async def save_message(
    session: AsyncSession,
    *,
    chat_id: int,
    message_id: int,
    user_id: int,
    text: Optional[str],
    image_ref: Optional[str] = None,
    file_ref: Optional[str] = None,
    user_name: Optional[str] = None,
    is_edit: bool = False,
) -> MessageHistory:
    """
    Сохраняет сообщение в историю.

    Для правки увеличивает edit_count; если исходного сообщения
    в истории нет, правка записывается как новая строка с edit_count = 1.

    Returns:
        Строка истории (edit_count = номер правки для повторной проверки)
    """
    message = await get_message(session, chat_id, message_id)
    if message is None:
        message = MessageHistory(
            chat_id=chat_id,
            message_id=message_id,
            user_id=user_id,
            user_name=user_name,
            text=text,
            image_ref=image_ref,
            file_ref=file_ref,
            edit_count=1 if is_edit else 0,
            edited_at=utcnow() if is_edit else None,
        )
        session.add(message)
    else:
        message.text = text
        message.image_ref = image_ref or message.image_ref
        message.file_ref = file_ref or message.file_ref
        if is_edit:
            message.edit_count = (message.edit_count or 0) + 1
            message.edited_at = utcnow()
    await session.commit()
    return message


# ════════════════════════════════════════════════════════════════════════════
# ОБУЧАЮЩИЕ ОБРАЗЦЫ ИЗОБРАЖЕНИЙ
# ════════════════════════════════════════════════════════════════════════════

async def insert_image_training_sample(
    session: AsyncSession,
    *,
    chat_id: int,
    message_id: int,
    user_id: int,
    image_ref: str,
    is_spam: bool,
    labeled_by: Optional[str],
) -> ImageTrainingSample:
    # Один образец на сообщение: повторная разметка не плодит копии
    result = await session.execute(
        select(ImageTrainingSample).where(
            ImageTrainingSample.chat_id == chat_id,
            ImageTrainingSample.message_id == message_id,
        )
    )
    sample = result.scalar_one_or_none()
    if sample is None:
        sample = ImageTrainingSample(chat_id=chat_id, message_id=message_id, user_id=user_id, image_ref=image_ref)
        session.add(sample)
    sample.is_spam = is_spam
    sample.labeled_by = labeled_by
    await session.commit()
    return sample


# ════════════════════════════════════════════════════════════════════════════
# ЖАЛОБЫ
# ════════════════════════════════════════════════════════════════════════════

async def create_report(
    session: AsyncSession,
    *,
    chat_id: int,
    message_id: Optional[int],
    user_id: int,
    net_confidence: float,
    details: str,
) -> Report:
    report = Report(
        chat_id=chat_id,
        message_id=message_id,
        user_id=user_id,
        net_confidence=net_confidence,
        details=details,
        status=ReportStatus.PENDING,
    )
    session.add(report)
    await session.commit()
    logger.info(f"[Reports] Создана жалоба #{report.id} chat={chat_id} msg={message_id} user={user_id} net={net_confidence:.1f}")
    return report


async def get_pending_reports(session: AsyncSession, chat_id: Optional[int] = None) -> List[Report]:
    query = select(Report).where(Report.status == ReportStatus.PENDING)
    if chat_id is not None:
        query = query.where(Report.chat_id == chat_id)
    result = await session.execute(query.order_by(Report.created_at))
    return list(result.scalars().all())
