# modguard/services/moderation/cross_chat_executor.py
"""
Применение действия во всех управляемых группах.

Каждая группа обрабатывается независимо: ошибка в одной группе
записывается в результат и не мешает остальным. Успешные группы
не откатываются, повторов на этом уровне нет.
"""

# Импортируем asyncio для ограничения параллельности
import asyncio
# Импортируем логгер для записи событий
import logging
# Импортируем datetime для срока бана
from datetime import datetime
# Импортируем типы для аннотаций
from typing import Awaitable, Callable, List, Optional

# Импортируем ошибки Telegram
from aiogram.exceptions import TelegramAPIError
# Импортируем AsyncSession для работы с БД
from sqlalchemy.ext.asyncio import AsyncSession

# Импортируем настройки
from modguard.config import CROSS_CHAT_CONCURRENCY
# Импортируем модели модерации
from modguard.services.moderation.models import ActionExecutionResult, ModerationActionType
# Импортируем платформу
from modguard.services.moderation.platform import ChatPlatform
# Импортируем репозиторий банов
from modguard.services.moderation.repository import clear_bans, get_banned_chat_ids, record_bans


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Действия, после которых пользователь считается забаненным в группе
_BAN_ACTIONS = (
    ModerationActionType.BAN,
    ModerationActionType.MARK_AS_SPAM_AND_BAN,
    ModerationActionType.TEMP_BAN,
)


class CrossChatExecutor:
    """Выполняет бан/разбан/мут во всех активных группах"""

    def __init__(self, platform: ChatPlatform, concurrency: int = CROSS_CHAT_CONCURRENCY):
        self.platform = platform
        self.concurrency = max(1, concurrency)

    def _operation(
        self,
        action_type: ModerationActionType,
        user_id: int,
        until_date: Optional[datetime],
    ) -> Callable[[int], Awaitable[None]]:
        """Возвращает функцию, применяющую действие в одной группе"""
        if action_type in _BAN_ACTIONS:
            return lambda chat_id: self.platform.ban_user(chat_id, user_id, until_date)
        if action_type == ModerationActionType.UNBAN:
            return lambda chat_id: self.platform.unban_user(chat_id, user_id)
        if action_type == ModerationActionType.RESTRICT:
            return lambda chat_id: self.platform.restrict_user(chat_id, user_id, until_date)
        raise ValueError(f"Действие {action_type.value} не применяется по группам")

    async def execute(
        self,
        session: AsyncSession,
        *,
        action_type: ModerationActionType,
        user_id: int,
        reason: Optional[str] = None,
        until_date: Optional[datetime] = None,
    ) -> ActionExecutionResult:
        """
        Применяет действие во всех управляемых группах.

        Для банов группа, где уже действует бан не слабее запрошенного
        (постоянный, или временный с более поздним сроком), считается
        выполненной без вызова Telegram (skipped).

        Args:
            session: Асинхронная сессия SQLAlchemy (используется только до и после рассылки)
            action_type: BAN, MARK_AS_SPAM_AND_BAN, TEMP_BAN, UNBAN или RESTRICT
            user_id: Пользователь
            reason: Причина (для записи состояния бана)
            until_date: Срок для временных действий

        Returns:
            ActionExecutionResult с количеством успехов/ошибок/пропусков
        """
        operation = self._operation(action_type, user_id, until_date)
        result = ActionExecutionResult()

        chat_ids = await self.platform.list_managed_chats()
        if not chat_ids:
            logger.warning(f"[CrossChat] Нет активных групп для {action_type.value} user={user_id}")
            return result

        # ═══════════════════════════════════════════════════════════
        # ГРУППЫ, ГДЕ ДЕЙСТВИЕ УЖЕ В СИЛЕ
        # ═══════════════════════════════════════════════════════════
        already_banned = set()
        if action_type in _BAN_ACTIONS:
            # Пропускаем только группы, где действующий бан не слабее запрошенного
            already_banned = await get_banned_chat_ids(session, user_id, chat_ids, until=until_date)
        for chat_id in chat_ids:
            if chat_id in already_banned:
                result.record_skip(chat_id)

        targets = [chat_id for chat_id in chat_ids if chat_id not in already_banned]
        logger.info(
            f"[CrossChat] {action_type.value} user={user_id}: {len(targets)} групп, "
            f"уже в силе в {len(already_banned)}"
        )

        # ═══════════════════════════════════════════════════════════
        # ПРИМЕНЯЕМ В КАЖДОЙ ГРУППЕ
        # ═══════════════════════════════════════════════════════════
        semaphore = asyncio.Semaphore(self.concurrency)

        async def apply(chat_id: int) -> Optional[str]:
            async with semaphore:
                try:
                    await operation(chat_id)
                    return None
                except TelegramAPIError as e:
                    logger.warning(f"[CrossChat] {action_type.value} в {chat_id} не удался: {e}")
                    return str(e)
                except Exception as e:
                    logger.error(f"[CrossChat] Неожиданная ошибка {action_type.value} в {chat_id}: {e}")
                    return f"{type(e).__name__}: {e}"

        errors = await asyncio.gather(*(apply(chat_id) for chat_id in targets))

        succeeded: List[int] = []
        for chat_id, error in zip(targets, errors):
            if error is None:
                result.record_success(chat_id)
                succeeded.append(chat_id)
            else:
                result.record_failure(chat_id, error)

        # ═══════════════════════════════════════════════════════════
        # ЗАПИСЫВАЕМ СОСТОЯНИЕ БАНОВ
        # ═══════════════════════════════════════════════════════════
        if action_type in _BAN_ACTIONS and succeeded:
            await record_bans(session, user_id, succeeded, reason, expires_at=until_date)
        elif action_type == ModerationActionType.UNBAN and succeeded:
            await clear_bans(session, user_id, succeeded)

        logger.info(
            f"[CrossChat] {action_type.value} user={user_id}: успешно {result.success_count}, "
            f"ошибок {result.fail_count}, пропущено {result.skipped_count}"
        )
        return result
