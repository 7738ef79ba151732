from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Boolean, Text, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# 🏠 Группы под управлением бота
class ManagedChat(Base):
    __tablename__ = "managed_chats"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(BigInteger, unique=True, nullable=False)
    title = Column(String, nullable=True)
    # Бот всё ещё админ в группе и может применять действия
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# 👮 Администраторы групп (освобождены от обычных проверок)
class ChatAdmin(Base):
    __tablename__ = "chat_admins"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("chat_id", "user_id", name="uq_chat_admin"),
    )


# 👤 Пользователи Telegram
class TelegramUser(Base):
    __tablename__ = "telegram_users"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, unique=True, nullable=False)
    username = Column(String, nullable=True)
    full_name = Column(String, nullable=True)
    # Доверенный пользователь - обычные проверки пропускаются
    is_trusted = Column(Boolean, default=False, nullable=False)
    trusted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# 💬 История сообщений (нужна для правок и обучающих образцов)
class MessageHistory(Base):
    __tablename__ = "message_history"

    id = Column(Integer, primary_key=True)
    chat_id = Column(BigInteger, nullable=False)
    message_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=False)
    user_name = Column(String, nullable=True)
    text = Column(Text, nullable=True)
    # file_id фото, если было
    image_ref = Column(String, nullable=True)
    # file_id документа/видео, если было
    file_ref = Column(String, nullable=True)
    # Сколько раз сообщение редактировали
    edit_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    edited_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("chat_id", "message_id", name="uq_message_history_chat_message"),
        Index("ix_message_history_user", "user_id"),
    )
