# Импорт функций для описания колонок таблицы
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Boolean, Float, Text, Index, Enum as SQLEnum
# Импорт базового класса для всех моделей
from modguard.database.models import Base, utcnow
# Импорт enum для типобезопасного определения констант
import enum


# ============================================================
# ENUM ТИПЫ
# ============================================================

# Статус жалобы на ручную проверку
class ReportStatus(str, enum.Enum):
    # Ждёт решения админа
    PENDING = "PENDING"
    # Админ подтвердил спам
    CONFIRMED = "CONFIRMED"
    # Админ отклонил жалобу
    DISMISSED = "DISMISSED"


# ============================================================
# МОДЕЛЬ: РЕЗУЛЬТАТ ДЕТЕКЦИИ
# ============================================================

# Одна строка = одна проверка одного сообщения (правка = новая строка)
class DetectionResult(Base):
    # Имя таблицы в базе данных
    __tablename__ = "detection_results"

    # Первичный ключ
    id = Column(Integer, primary_key=True, autoincrement=True)
    # Группа в которой было сообщение
    chat_id = Column(BigInteger, nullable=False)
    # ID сообщения в группе (NULL если сообщение недоступно)
    message_id = Column(BigInteger, nullable=True)
    # Автор сообщения
    user_id = Column(BigInteger, nullable=False)
    # Когда проверили
    detected_at = Column(DateTime, default=utcnow, nullable=False)
    # Взвешенная уверенность со знаком (-100..100)
    net_confidence = Column(Float, nullable=False, default=0.0)
    # Максимальная уверенность среди голосов за спам
    max_confidence = Column(Integer, nullable=False, default=0)
    # Итоговая классификация
    is_spam = Column(Boolean, nullable=False, default=False)
    # Откуда результат: auto (детекторы) или manual (админ)
    detection_source = Column(String(16), nullable=False, default="auto")
    # Какие детекторы участвовали, через запятую
    detection_method = Column(String(512), nullable=True)
    # Человекочитаемая причина
    reason = Column(Text, nullable=True)
    # Годится ли образец для обучения
    used_for_training = Column(Boolean, nullable=False, default=False)
    # Тип исполнителя (auto_detection, telegram_user, web_user, system)
    actor_type = Column(String(32), nullable=False, default="auto_detection")
    # ID или имя исполнителя
    actor_id = Column(String(64), nullable=True)
    # Номер правки (0 = исходное сообщение)
    edit_version = Column(Integer, nullable=False, default=0)
    # SimHash текста (знаковое 64-битное представление)
    content_hash = Column(BigInteger, nullable=True)
    # Текст сообщения на момент проверки
    message_text = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_detection_results_user", "user_id"),
        Index("ix_detection_results_chat_message", "chat_id", "message_id"),
        Index("ix_detection_results_training", "used_for_training", "is_spam"),
    )


# ============================================================
# МОДЕЛЬ: ОБУЧАЮЩИЙ ОБРАЗЕЦ ИЗОБРАЖЕНИЯ
# ============================================================

class ImageTrainingSample(Base):
    # Имя таблицы
    __tablename__ = "image_training_samples"

    # Первичный ключ
    id = Column(Integer, primary_key=True, autoincrement=True)
    # Группа и сообщение, откуда взят образец
    chat_id = Column(BigInteger, nullable=False)
    message_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=False)
    # file_id изображения в Telegram
    image_ref = Column(String(256), nullable=False)
    # Метка образца
    is_spam = Column(Boolean, nullable=False, default=True)
    # Кто пометил
    labeled_by = Column(String(64), nullable=True)
    # Когда создан
    created_at = Column(DateTime, default=utcnow, nullable=False)


# ============================================================
# МОДЕЛЬ: ЖАЛОБА НА РУЧНУЮ ПРОВЕРКУ
# ============================================================

class Report(Base):
    # Имя таблицы
    __tablename__ = "moderation_reports"

    # Первичный ключ
    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(BigInteger, nullable=False)
    message_id = Column(BigInteger, nullable=True)
    user_id = Column(BigInteger, nullable=False)
    # Уверенность, с которой сообщение попало на проверку
    net_confidence = Column(Float, nullable=False, default=0.0)
    # Сводка по детекторам
    details = Column(Text, nullable=True)
    # Статус жалобы
    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.PENDING)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_moderation_reports_status", "status"),
    )
