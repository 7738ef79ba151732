# Импорт функций для описания колонок таблицы
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Text, UniqueConstraint, Index
# Импорт базового класса для всех моделей
from modguard.database.models import Base, utcnow


# ============================================================
# МОДЕЛЬ: СЧЁТЧИК ПРЕДУПРЕЖДЕНИЙ
# ============================================================

# Одна строка на пользователя, счётчик растёт атомарным UPDATE
class UserWarning(Base):
    __tablename__ = "user_warnings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Пользователь (уникален - предупреждения глобальные, а не на группу)
    user_id = Column(BigInteger, nullable=False, unique=True)
    # Текущее количество предупреждений
    warning_count = Column(Integer, nullable=False, default=0)
    # Последняя причина предупреждения
    last_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ============================================================
# МОДЕЛЬ: СОСТОЯНИЕ БАНА В ГРУППЕ
# ============================================================

# Нужна для идемпотентности: повторный бан в той же группе - no-op
class ChatBan(Base):
    __tablename__ = "chat_bans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=False)
    reason = Column(Text, nullable=True)
    # NULL = навсегда
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "chat_id", name="uq_chat_ban_user_chat"),
    )


# ============================================================
# МОДЕЛЬ: ЖУРНАЛ АУДИТА
# ============================================================

# Только вставка, строки не изменяются
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Тип действия (BAN, WARN, ...)
    action_type = Column(String(32), nullable=False)
    user_id = Column(BigInteger, nullable=False)
    chat_id = Column(BigInteger, nullable=True)
    message_id = Column(BigInteger, nullable=True)
    # Кто выполнил действие
    actor_type = Column(String(32), nullable=False)
    actor_id = Column(String(64), nullable=True)
    reason = Column(Text, nullable=True)
    # Сколько групп затронуто / сколько упало
    chats_affected = Column(Integer, nullable=False, default=0)
    chats_failed = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_log_user", "user_id"),
    )
