# modguard/services/moderation/repository.py
"""
Работа с БД для модерации: группы, пользователи, баны,
предупреждения и журнал аудита.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from modguard.database.models import ChatAdmin, ManagedChat, TelegramUser, utcnow
from modguard.database.models_moderation import AuditLog, ChatBan, UserWarning


logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# ГРУППЫ
# ════════════════════════════════════════════════════════════════════════════

async def list_active_chat_ids(session: AsyncSession) -> List[int]:
    """ID всех активных управляемых групп"""
    result = await session.execute(
        select(ManagedChat.chat_id).where(ManagedChat.is_active.is_(True)).order_by(ManagedChat.id)
    )
    return list(result.scalars().all())


async def add_managed_chat(session: AsyncSession, chat_id: int, title: Optional[str] = None) -> ManagedChat:
    """Регистрирует группу (или активирует заново)"""
    result = await session.execute(select(ManagedChat).where(ManagedChat.chat_id == chat_id))
    chat = result.scalar_one_or_none()
    if chat is None:
        chat = ManagedChat(chat_id=chat_id, title=title, is_active=True)
        session.add(chat)
    else:
        chat.is_active = True
        chat.title = title or chat.title
    await session.commit()
    return chat


# ════════════════════════════════════════════════════════════════════════════
# ПОЛЬЗОВАТЕЛИ: ДОВЕРИЕ И АДМИНЫ
# ════════════════════════════════════════════════════════════════════════════

async def is_user_trusted(session: AsyncSession, user_id: int) -> bool:
    result = await session.execute(select(TelegramUser.is_trusted).where(TelegramUser.user_id == user_id))
    return bool(result.scalar_one_or_none())


async def is_chat_admin(session: AsyncSession, chat_id: int, user_id: int) -> bool:
    result = await session.execute(
        select(ChatAdmin.id).where(ChatAdmin.chat_id == chat_id, ChatAdmin.user_id == user_id)
    )
    return result.first() is not None


async def add_chat_admin(session: AsyncSession, chat_id: int, user_id: int) -> bool:
    """Добавляет админа группы. False если он уже записан"""
    if await is_chat_admin(session, chat_id, user_id):
        return False
    session.add(ChatAdmin(chat_id=chat_id, user_id=user_id))
    await session.commit()
    return True


async def remove_chat_admin(session: AsyncSession, chat_id: int, user_id: int) -> bool:
    result = await session.execute(
        delete(ChatAdmin).where(ChatAdmin.chat_id == chat_id, ChatAdmin.user_id == user_id)
    )
    await session.commit()
    return bool(result.rowcount)


async def set_user_trusted(session: AsyncSession, user_id: int, trusted: bool) -> bool:
    """
    Устанавливает флаг доверия.

    Returns:
        True если флаг изменился
    """
    result = await session.execute(select(TelegramUser).where(TelegramUser.user_id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        if not trusted:
            # Нет записи - доверия и так нет
            return False
        user = TelegramUser(user_id=user_id)
        session.add(user)
    elif bool(user.is_trusted) == trusted:
        return False

    user.is_trusted = trusted
    user.trusted_at = utcnow() if trusted else None
    await session.commit()
    return True


# ════════════════════════════════════════════════════════════════════════════
# СОСТОЯНИЕ БАНОВ
# ════════════════════════════════════════════════════════════════════════════

def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # В БД время хранится без таймзоны (UTC)
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


async def get_banned_chat_ids(
    session: AsyncSession,
    user_id: int,
    chat_ids: Iterable[int],
    until: Optional[datetime] = None,
) -> Set[int]:
    """
    Группы из списка, где действующий бан не слабее запрошенного.

    Args:
        until: Срок запрошенного бана (None = навсегда)

    Returns:
        Для постоянного бана - группы с постоянным баном; для временного -
        группы, где бан постоянный или заканчивается не раньше until
    """
    chat_ids = list(chat_ids)
    if not chat_ids:
        return set()
    now = utcnow()
    until = _as_naive_utc(until)
    result = await session.execute(
        select(ChatBan.chat_id, ChatBan.expires_at).where(
            ChatBan.user_id == user_id,
            ChatBan.chat_id.in_(chat_ids),
        )
    )

    covered = set()
    for chat_id, expires_at in result.all():
        if expires_at is None:
            covered.add(chat_id)
        # Истёкший временный бан уже не действует, постоянный временным не покрывается
        elif until is not None and expires_at > now and expires_at >= until:
            covered.add(chat_id)
    return covered


async def record_bans(
    session: AsyncSession,
    user_id: int,
    chat_ids: Iterable[int],
    reason: Optional[str],
    expires_at: Optional[datetime] = None,
) -> None:
    """Записывает состояние бана для групп (существующие строки обновляются)"""
    chat_ids = list(chat_ids)
    if not chat_ids:
        return
    result = await session.execute(
        select(ChatBan).where(ChatBan.user_id == user_id, ChatBan.chat_id.in_(chat_ids))
    )
    existing = {ban.chat_id: ban for ban in result.scalars().all()}
    for chat_id in chat_ids:
        ban = existing.get(chat_id)
        if ban is None:
            session.add(ChatBan(user_id=user_id, chat_id=chat_id, reason=reason, expires_at=_as_naive_utc(expires_at)))
        else:
            ban.reason = reason
            ban.expires_at = _as_naive_utc(expires_at)
    await session.commit()


async def clear_bans(session: AsyncSession, user_id: int, chat_ids: Optional[Iterable[int]] = None) -> None:
    query = delete(ChatBan).where(ChatBan.user_id == user_id)
    if chat_ids is not None:
        query = query.where(ChatBan.chat_id.in_(list(chat_ids)))
    await session.execute(query)
    await session.commit()


# ════════════════════════════════════════════════════════════════════════════
# ПРЕДУПРЕЖДЕНИЯ
# ════════════════════════════════════════════════════════════════════════════

async def increment_warning_count(session: AsyncSession, user_id: int, reason: Optional[str] = None) -> int:
    """
    Атомарно увеличивает счётчик предупреждений.

    UPDATE ... RETURNING выполняется одной командой, поэтому параллельные
    предупреждения не теряются. Первое предупреждение вставляет строку;
    если параллельный запрос вставил её раньше - повторяем UPDATE.

    Returns:
        Новое значение счётчика
    """
    for _ in range(2):
        result = await session.execute(
            update(UserWarning)
            .where(UserWarning.user_id == user_id)
            .values(warning_count=UserWarning.warning_count + 1, last_reason=reason, updated_at=utcnow())
            .returning(UserWarning.warning_count)
            .execution_options(synchronize_session=False)
        )
        count = result.scalar_one_or_none()
        if count is not None:
            await session.commit()
            return int(count)

        try:
            await session.execute(
                insert(UserWarning).values(user_id=user_id, warning_count=1, last_reason=reason, updated_at=utcnow())
            )
            await session.commit()
            return 1
        except IntegrityError:
            # Строку вставил параллельный запрос - повторяем инкремент
            await session.rollback()
            logger.debug(f"[Warnings] Гонка при первом предупреждении user={user_id}, повторяем")

    raise RuntimeError(f"Не удалось увеличить счётчик предупреждений user={user_id}")


async def get_warning_count(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(select(UserWarning.warning_count).where(UserWarning.user_id == user_id))
    return int(result.scalar_one_or_none() or 0)


async def reset_warnings(session: AsyncSession, user_id: int) -> None:
    """Единственный способ уменьшить счётчик"""
    await session.execute(
        update(UserWarning).where(UserWarning.user_id == user_id).values(warning_count=0, updated_at=utcnow())
    )
    await session.commit()
    logger.info(f"[Warnings] Счётчик предупреждений сброшен user={user_id}")


# ════════════════════════════════════════════════════════════════════════════
# АУДИТ
# ════════════════════════════════════════════════════════════════════════════

async def insert_audit_record(
    session: AsyncSession,
    *,
    action_type: str,
    user_id: int,
    chat_id: Optional[int],
    message_id: Optional[int],
    actor_type: str,
    actor_id: Optional[str],
    reason: Optional[str],
    chats_affected: int,
    chats_failed: int,
) -> AuditLog:
    record = AuditLog(
        action_type=action_type,
        user_id=user_id,
        chat_id=chat_id,
        message_id=message_id,
        actor_type=actor_type,
        actor_id=actor_id,
        reason=reason,
        chats_affected=chats_affected,
        chats_failed=chats_failed,
    )
    session.add(record)
    await session.commit()
    return record


async def get_audit_records(session: AsyncSession, user_id: int) -> List[AuditLog]:
    result = await session.execute(select(AuditLog).where(AuditLog.user_id == user_id).order_by(AuditLog.id))
    return list(result.scalars().all())
