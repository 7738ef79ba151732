import asyncio
import html
import logging

import aiohttp

from modguard.config import BOT_TOKEN, LOG_CHANNEL_ID

# Максимальная длина сообщения Telegram
TELEGRAM_MESSAGE_LIMIT = 4096

# Незавершённые отправки в канал логов
_pending_sends = set()


async def send_formatted_log(message):
    """Отправляет отформатированное сообщение в канал логов в Telegram"""
    if not BOT_TOKEN or not LOG_CHANNEL_ID:
        print("❗ BOT_TOKEN или LOG_CHANNEL_ID не установлены")
        return

    url = f"https://api.telegram.org/bot{BOT_TOKEN}/sendMessage"
    payload = {
        "chat_id": LOG_CHANNEL_ID,
        "text": message[:TELEGRAM_MESSAGE_LIMIT],
        "parse_mode": "HTML",
        "disable_web_page_preview": True
    }

    async with aiohttp.ClientSession() as session:
        try:
            resp = await session.post(url, data=payload)
            if resp.status != 200:
                text = await resp.text()
                print(f"❌ Telegram API Error: {resp.status} - {text}")
        except aiohttp.ClientError as e:
            print(f"❌ Ошибка при отправке лога в Telegram: {e}")


def _schedule(message):
    """Ставит отправку в очередь текущего event loop (без канала логов - ничего не делает)"""
    if not BOT_TOKEN or not LOG_CHANNEL_ID:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Вне event loop (скрипты, импорт) отправлять некуда
        return
    task = loop.create_task(send_formatted_log(message))
    # Ссылка живёт до завершения задачи
    _pending_sends.add(task)
    task.add_done_callback(_pending_sends.discard)


# ==== ОБРАБОТЧИК LOGGING ДЛЯ TELEGRAM ====

class TelegramLogHandler(logging.Handler):
    """Пересылает записи лога (по умолчанию ERROR и выше) в канал логов"""

    def __init__(self, level=logging.ERROR):
        super().__init__(level=level)

    def emit(self, record):
        # Ошибки самого aiohttp не пересылаем, иначе зациклимся
        if record.name.startswith("aiohttp"):
            return
        try:
            message = f"<pre>{html.escape(self.format(record))}</pre>"
        except Exception:
            self.handleError(record)
            return
        _schedule(message)


# ==== СПЕЦИАЛЬНЫЕ ФОРМАТИРОВАННЫЕ ЛОГИ ДЛЯ TELEGRAM ====

def _user_link(username, user_id):
    return f"<a href='tg://user?id={user_id}'>{html.escape(username) if username else f'id{user_id}'}</a>"


def _chat_link(chat_id):
    short_id = str(chat_id).replace('-100', '')
    return f"<a href='https://t.me/c/{short_id}/{short_id}'>{chat_id}</a>"


def log_user_banned(username, user_id, chats_affected, chats_failed=0, reason="Спам", actor="auto"):
    """Отправляет лог о бане пользователя во всех группах"""
    msg = (
        f"🚫 #ПОЛЬЗОВАТЕЛЬ_ЗАБАНЕН 🔴\n"
        f"• Кто: {_user_link(username, user_id)} [{user_id}]\n"
        f"• Групп: {chats_affected}" + (f" (ошибок: {chats_failed})" if chats_failed else "") + "\n"
        f"• Причина: {html.escape(reason or '')}\n"
        f"• Исполнитель: {html.escape(str(actor))}\n"
        f"#id{user_id}"
    )

    # Выводим в консоль для информации
    print(f"📱 Логируем бан пользователя {user_id} в {chats_affected} группах")
    _schedule(msg)


def log_critical_violation(username, user_id, chat_id, violations):
    """Отправляет лог о нарушении критичных проверок"""
    violation_lines = "\n".join(f"  {i}. {html.escape(v)}" for i, v in enumerate(violations, start=1))
    msg = (
        f"🚨 #КРИТИЧНОЕ_НАРУШЕНИЕ 🔴\n"
        f"• Кто: {_user_link(username, user_id)} [{user_id}]\n"
        f"• Группа: {_chat_link(chat_id)}\n"
        f"• Нарушения:\n{violation_lines}\n"
        f"#id{user_id}"
    )
    _schedule(msg)


def log_auto_ban_triggered(username, user_id, warning_count):
    """Отправляет лог об автобане по порогу предупреждений"""
    msg = (
        f"⛔ #АВТОБАН_ПО_ПРЕДУПРЕЖДЕНИЯМ 🔴\n"
        f"• Кто: {_user_link(username, user_id)} [{user_id}]\n"
        f"• Предупреждений: {warning_count}\n"
        f"#id{user_id}"
    )
    _schedule(msg)


def log_audit_failure(action_type, user_id, error):
    """Отправляет лог о потере записи аудита"""
    msg = (
        f"🆘 #ОШИБКА_АУДИТА 🔴\n"
        f"• Действие: {html.escape(str(action_type))}\n"
        f"• Пользователь: [{user_id}]\n"
        f"• Ошибка: <code>{html.escape(str(error))}</code>\n"
        f"#id{user_id}"
    )
    _schedule(msg)
