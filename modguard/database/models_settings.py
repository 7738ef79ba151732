# Импорт функций для описания колонок таблицы
from sqlalchemy import Column, Integer, String, BigInteger, Boolean, Float, DateTime, UniqueConstraint
# Импорт базового класса для всех моделей
from modguard.database.models import Base, utcnow


# ============================================================
# МОДЕЛЬ: НАСТРОЙКИ МОДЕРАЦИИ
# ============================================================

# chat_id = 0 - глобальные настройки, NULL в колонке = взять глобальное значение
class ModerationSettings(Base):
    __tablename__ = "moderation_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(BigInteger, nullable=False, unique=True)
    # Порог автобана
    auto_ban_threshold = Column(Integer, nullable=True)
    # Порог жалобы на проверку
    review_threshold = Column(Integer, nullable=True)
    # Доверенный детектор для обучающей выборки
    training_trusted_detector = Column(String(64), nullable=True)
    # Минимальная уверенность доверенного детектора
    training_confidence_floor = Column(Integer, nullable=True)
    # Порог чистой уверенности для обучающей выборки
    training_net_threshold = Column(Integer, nullable=True)
    # Максимальное расстояние Хэмминга для дубликатов
    dedup_max_distance = Column(Integer, nullable=True)
    # Предупреждений до бана
    warning_ban_threshold = Column(Integer, nullable=True)
    # Чистых сообщений до автодоверия (0 = выкл)
    auto_trust_threshold = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ============================================================
# МОДЕЛЬ: НАСТРОЙКИ ДЕТЕКТОРА
# ============================================================

# Вес и критичность - свойство конфигурации группы, а не самого детектора
class DetectorConfig(Base):
    __tablename__ = "detector_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # 0 = глобальная конфигурация
    chat_id = Column(BigInteger, nullable=False, default=0)
    # Имя детектора (совпадает с Detector.name)
    detector_name = Column(String(64), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    # Вес в агрегированной оценке
    weight = Column(Float, nullable=False, default=1.0)
    # Критичный детектор: запускается даже для доверенных, нарушение = удаление
    always_run = Column(Boolean, nullable=False, default=False)
    # Таймаут в секундах (NULL = значение по умолчанию)
    timeout_seconds = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("chat_id", "detector_name", name="uq_detector_config_chat_name"),
    )
