# modguard/handlers/detection_handler.py
"""
Приём сообщений групп и передача их на проверку.

- message: новое сообщение -> история -> проверка
- edited_message: правка -> история (edit_count + 1) -> повторная проверка
- my_chat_member: бот добавлен/удалён - обновляем список управляемых групп
- chat_member: назначение и снятие админов группы
"""

# Импортируем логгер
import logging
# Импортируем типы для аннотаций
from typing import Any, Dict

# Импортируем aiogram
from aiogram import Bot, F, Router
from aiogram.enums import ChatMemberStatus, ChatType
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ChatMemberUpdated, Message
# Импортируем SQLAlchemy
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем модели БД
from modguard.database.models import ChatAdmin, ManagedChat
# Импортируем сервисы
from modguard.services.detection.models import ContentCheckRequest
from modguard.services.detection.orchestrator import DetectionOrchestrator
from modguard.services.detection.repository import save_message
from modguard.services.moderation.repository import add_chat_admin, add_managed_chat, remove_chat_admin


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Роутер модуля
detection_router = Router(name="detection")

# Только группы и супергруппы
GROUP_CHAT_FILTER = F.chat.type.in_({ChatType.GROUP, ChatType.SUPERGROUP})


def build_check_request(message: Message) -> ContentCheckRequest:
    """Собирает запрос на проверку из сообщения Telegram"""
    user = message.from_user

    # Самое большое фото - последнее в списке
    image_ref = message.photo[-1].file_id if message.photo else None
    attachment = message.document or message.video or message.animation
    file_ref = attachment.file_id if attachment else None

    metadata: Dict[str, Any] = {}
    reply = message.reply_to_message
    if reply is not None and reply.sender_chat is not None and reply.sender_chat.type == ChatType.CHANNEL:
        metadata["is_reply_to_channel_post"] = True
    if message.forward_origin is not None:
        metadata["is_forward"] = True

    return ContentCheckRequest(
        chat_id=message.chat.id,
        user_id=user.id,
        message_id=message.message_id,
        text=message.text or message.caption or "",
        image_ref=image_ref,
        file_ref=file_ref,
        user_name=user.username or user.full_name,
        metadata=metadata,
    )


async def _store_and_check(
    message: Message,
    session: AsyncSession,
    detection_orchestrator: DetectionOrchestrator,
    *,
    is_edit: bool,
) -> None:
    # Посты от имени канала и анонимных админов не проверяем
    if message.from_user is None or message.sender_chat is not None:
        return
    if message.from_user.is_bot:
        return

    request = build_check_request(message)
    history = await save_message(
        session,
        chat_id=request.chat_id,
        message_id=request.message_id,
        user_id=request.user_id,
        text=request.text,
        image_ref=request.image_ref,
        file_ref=request.file_ref,
        user_name=request.user_name,
        is_edit=is_edit,
    )
    edit_version = history.edit_count if is_edit else 0
    await detection_orchestrator.run_detection(request, edit_version=edit_version)


@detection_router.message(GROUP_CHAT_FILTER)
async def on_group_message(message: Message, session: AsyncSession, detection_orchestrator: DetectionOrchestrator):
    await _store_and_check(message, session, detection_orchestrator, is_edit=False)


@detection_router.edited_message(GROUP_CHAT_FILTER)
async def on_group_message_edited(message: Message, session: AsyncSession, detection_orchestrator: DetectionOrchestrator):
    await _store_and_check(message, session, detection_orchestrator, is_edit=True)


# ════════════════════════════════════════════════════════════════════════════
# СПИСОК УПРАВЛЯЕМЫХ ГРУПП
# ════════════════════════════════════════════════════════════════════════════

async def sync_chat_admins(bot: Bot, session: AsyncSession, chat_id: int) -> int:
    """Перечитывает админов группы из Telegram. Возвращает их количество"""
    admins = await bot.get_chat_administrators(chat_id)
    await session.execute(delete(ChatAdmin).where(ChatAdmin.chat_id == chat_id))
    for member in admins:
        session.add(ChatAdmin(chat_id=chat_id, user_id=member.user.id))
    await session.commit()
    return len(admins)


@detection_router.my_chat_member(GROUP_CHAT_FILTER)
async def on_bot_membership_changed(event: ChatMemberUpdated, bot: Bot, session: AsyncSession):
    status = event.new_chat_member.status
    chat_id = event.chat.id

    if status == ChatMemberStatus.ADMINISTRATOR:
        await add_managed_chat(session, chat_id, event.chat.title)
        try:
            count = await sync_chat_admins(bot, session, chat_id)
            logger.info(f"✅ Группа {chat_id} ({event.chat.title}) под управлением, админов: {count}")
        except TelegramAPIError as e:
            logger.warning(f"Не удалось получить админов группы {chat_id}: {e}")
        return

    # Бот больше не админ - действия в группе невозможны
    result = await session.execute(select(ManagedChat).where(ManagedChat.chat_id == chat_id))
    chat = result.scalar_one_or_none()
    if chat is not None and chat.is_active:
        chat.is_active = False
        await session.commit()
        logger.info(f"⛔ Группа {chat_id} ({event.chat.title}) больше не управляется (статус бота: {status})")


# Статусы, дающие права админа в группе
ADMIN_STATUSES = {ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.CREATOR}


@detection_router.chat_member(GROUP_CHAT_FILTER)
async def on_chat_member_updated(event: ChatMemberUpdated, session: AsyncSession):
    """Назначение и снятие админов без полной пересинхронизации группы"""
    chat_id = event.chat.id
    user_id = event.new_chat_member.user.id
    was_admin = event.old_chat_member.status in ADMIN_STATUSES
    is_admin = event.new_chat_member.status in ADMIN_STATUSES

    if is_admin and not was_admin:
        if await add_chat_admin(session, chat_id, user_id):
            logger.info(f"👮 {user_id} стал админом группы {chat_id}")
    elif was_admin and not is_admin:
        if await remove_chat_admin(session, chat_id, user_id):
            logger.info(f"👤 {user_id} больше не админ группы {chat_id}")
