# modguard/services/moderation/platform.py
"""
Чат-платформа - всё, что модерация делает в Telegram.

ChatPlatform описывает операции, AiogramChatPlatform выполняет их
через aiogram Bot. Ошибки Telegram пробрасываются как TelegramAPIError,
решение что с ними делать принимает вызывающий код.
"""

# Импортируем логгер для записи событий
import logging
# Импортируем datetime для срока ограничения
from datetime import datetime, timezone
# Импортируем типы для аннотаций
from typing import Iterable, List, Optional

# Импортируем типы aiogram
from aiogram import Bot
from aiogram.types import ChatPermissions
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

# Импортируем фабрику сессий
from sqlalchemy.ext.asyncio import async_sessionmaker

# Импортируем репозиторий групп
from modguard.services.moderation.repository import list_active_chat_ids


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # В БД время хранится без таймзоны (UTC), aiogram считает наивное время локальным
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ChatPlatform:
    """Операции модерации на стороне мессенджера"""

    async def ban_user(self, chat_id: int, user_id: int, until_date: Optional[datetime] = None) -> None:
        raise NotImplementedError

    async def unban_user(self, chat_id: int, user_id: int) -> None:
        raise NotImplementedError

    async def restrict_user(self, chat_id: int, user_id: int, until_date: Optional[datetime] = None) -> None:
        raise NotImplementedError

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        raise NotImplementedError

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        raise NotImplementedError

    async def send_alert(self, text: str, chat_ids: Optional[Iterable[int]] = None) -> int:
        raise NotImplementedError

    async def list_managed_chats(self) -> List[int]:
        raise NotImplementedError


class AiogramChatPlatform(ChatPlatform):
    """
    Реализация ChatPlatform через aiogram.

    Args:
        bot: Объект бота aiogram
        session_factory: Фабрика сессий для чтения списка групп
        admin_ids: Кому слать алерты (ЛС админов бота)
    """

    def __init__(self, bot: Bot, session_factory: async_sessionmaker, admin_ids: Iterable[int] = ()):
        self.bot = bot
        self.session_factory = session_factory
        self.admin_ids = list(admin_ids)

    async def ban_user(self, chat_id: int, user_id: int, until_date: Optional[datetime] = None) -> None:
        # revoke_messages=False: сообщения удаляются отдельно и только нужные
        await self.bot.ban_chat_member(
            chat_id=chat_id,
            user_id=user_id,
            until_date=_as_utc(until_date),
            revoke_messages=False,
        )

    async def unban_user(self, chat_id: int, user_id: int) -> None:
        # only_if_banned: не выкидываем из группы того, кто не забанен
        await self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id, only_if_banned=True)

    async def restrict_user(self, chat_id: int, user_id: int, until_date: Optional[datetime] = None) -> None:
        # Запрещаем отправку любых сообщений
        await self.bot.restrict_chat_member(
            chat_id=chat_id,
            user_id=user_id,
            permissions=ChatPermissions(
                can_send_messages=False,
                can_send_audios=False,
                can_send_documents=False,
                can_send_photos=False,
                can_send_videos=False,
                can_send_video_notes=False,
                can_send_voice_notes=False,
                can_send_polls=False,
                can_send_other_messages=False,
                can_add_web_page_previews=False,
            ),
            until_date=_as_utc(until_date),
        )

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramBadRequest as e:
            # Сообщение уже удалено - цель достигнута
            if "message to delete not found" in str(e).lower():
                logger.debug(f"Сообщение {message_id} в {chat_id} уже удалено")
                return
            raise

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        """Пишет пользователю в ЛС. False если бот заблокирован или диалога нет"""
        try:
            await self.bot.send_message(chat_id=user_id, text=text, parse_mode="HTML")
            return True
        except TelegramAPIError as e:
            logger.info(f"Не удалось написать пользователю {user_id} в ЛС: {e}")
            return False

    async def send_alert(self, text: str, chat_ids: Optional[Iterable[int]] = None) -> int:
        """
        Отправляет алерт админам.

        Returns:
            Сколько получателей получили сообщение
        """
        recipients = list(chat_ids) if chat_ids is not None else self.admin_ids
        delivered = 0
        for recipient in recipients:
            try:
                await self.bot.send_message(chat_id=recipient, text=text, parse_mode="HTML")
                delivered += 1
            except TelegramAPIError as e:
                logger.warning(f"Не удалось отправить алерт в {recipient}: {e}")
        return delivered

    async def list_managed_chats(self) -> List[int]:
        async with self.session_factory() as session:
            return await list_active_chat_ids(session)
