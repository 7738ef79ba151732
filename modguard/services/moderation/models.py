# modguard/services/moderation/models.py
"""
Модели данных модерации.

Содержит:
- ModerationActionType: тип действия (бан, предупреждение, ...)
- Actor: кто выполнил действие
- ModerationEvent: неизменяемое событие модерации
- ModerationFollowUp: запрос обработчика на дополнительное действие
- ActionExecutionResult: итог выполнения действия по группам
- ModerationResult: итог для вызывающего кода
- ActionTier: уровень решения по уверенности
"""

# Импортируем dataclass для структур данных
from dataclasses import dataclass, field, replace
# Импортируем datetime для сроков бана
from datetime import datetime
# Импортируем Enum для типов действий
from enum import Enum
# Импортируем типы для аннотаций
from typing import Dict, List, Optional


# ════════════════════════════════════════════════════════════════════════════
# ТИПЫ ДЕЙСТВИЙ
# ════════════════════════════════════════════════════════════════════════════

class ModerationActionType(str, Enum):
    """Действие модерации"""
    # Бан во всех управляемых группах
    BAN = "BAN"
    # Пометить сообщение спамом, удалить его и забанить автора
    MARK_AS_SPAM_AND_BAN = "MARK_AS_SPAM_AND_BAN"
    # Временный бан
    TEMP_BAN = "TEMP_BAN"
    # Снять бан
    UNBAN = "UNBAN"
    # Предупреждение (счётчик + возможный автобан)
    WARN = "WARN"
    # Ограничение на отправку сообщений (mute)
    RESTRICT = "RESTRICT"
    # Удалить одно сообщение
    DELETE = "DELETE"
    # Отметить пользователя доверенным
    TRUST = "TRUST"


# Действия, которые применяются во всех управляемых группах
CROSS_CHAT_ACTIONS = frozenset({
    ModerationActionType.BAN,
    ModerationActionType.MARK_AS_SPAM_AND_BAN,
    ModerationActionType.TEMP_BAN,
    ModerationActionType.UNBAN,
    ModerationActionType.RESTRICT,
})


class ActionTier(str, Enum):
    """Уровень решения по результату детекции"""
    # Нарушение критичного детектора: удалить и уведомить
    CRITICAL = "CRITICAL"
    # Уверенный спам: бан во всех группах
    AUTO_BAN = "AUTO_BAN"
    # Пограничный случай: жалоба админам
    REVIEW = "REVIEW"
    # Ничего не делаем
    PASS = "PASS"


class ModerationFollowUp(str, Enum):
    """Дополнительное действие, которое может запросить обработчик"""
    NONE = "NONE"
    BAN = "BAN"


# ════════════════════════════════════════════════════════════════════════════
# ИСПОЛНИТЕЛЬ ДЕЙСТВИЯ
# ════════════════════════════════════════════════════════════════════════════

class ActorType(str, Enum):
    AUTO_DETECTION = "auto_detection"
    TELEGRAM_USER = "telegram_user"
    WEB_USER = "web_user"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """
    Кто вызвал событие.

    Создавайте через фабрики: Actor.auto_detection(), Actor.telegram_user(id),
    Actor.web_user(id), Actor.system(name), Actor.auto_ban().
    """

    type: ActorType
    # ID пользователя Telegram, ID веб-пользователя или имя системного процесса
    identifier: Optional[str] = None

    @classmethod
    def auto_detection(cls) -> "Actor":
        return cls(ActorType.AUTO_DETECTION)

    @classmethod
    def telegram_user(cls, user_id: int) -> "Actor":
        return cls(ActorType.TELEGRAM_USER, str(user_id))

    @classmethod
    def web_user(cls, user_id: str) -> "Actor":
        return cls(ActorType.WEB_USER, str(user_id))

    @classmethod
    def system(cls, name: str) -> "Actor":
        return cls(ActorType.SYSTEM, name)

    @classmethod
    def auto_ban(cls) -> "Actor":
        return cls.system("auto_ban")

    @property
    def is_manual(self) -> bool:
        """Действие выполнил человек"""
        return self.type in (ActorType.TELEGRAM_USER, ActorType.WEB_USER)

    def __str__(self) -> str:
        if self.identifier is None:
            return self.type.value
        return f"{self.type.value}:{self.identifier}"


# ════════════════════════════════════════════════════════════════════════════
# СНИМОК СООБЩЕНИЯ
# ════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MessageSnapshot:
    """Копия сообщения от вызывающего кода (на случай если в истории его нет)"""
    text: Optional[str] = None
    image_ref: Optional[str] = None
    file_ref: Optional[str] = None
    user_name: Optional[str] = None


# ════════════════════════════════════════════════════════════════════════════
# РЕЗУЛЬТАТ ВЫПОЛНЕНИЯ
# ════════════════════════════════════════════════════════════════════════════

@dataclass
class ActionExecutionResult:
    """Итог применения действия по группам"""

    success_count: int = 0
    fail_count: int = 0
    # Группы, где действие не понадобилось (уже забанен и т.п.)
    skipped_count: int = 0
    # Группы, где действие применено или уже было в силе
    affected_chats: List[int] = field(default_factory=list)
    # Ошибки по группам: {chat_id: текст ошибки}
    failed_chats: Dict[int, str] = field(default_factory=dict)
    # Новое значение счётчика предупреждений (только WARN)
    warning_count: Optional[int] = None

    @property
    def total(self) -> int:
        return self.success_count + self.fail_count + self.skipped_count

    @property
    def any_success(self) -> bool:
        return self.success_count > 0 or self.skipped_count > 0

    def record_success(self, chat_id: int) -> None:
        self.success_count += 1
        self.affected_chats.append(chat_id)

    def record_skip(self, chat_id: int) -> None:
        self.skipped_count += 1
        self.affected_chats.append(chat_id)

    def record_failure(self, chat_id: int, error: str) -> None:
        self.fail_count += 1
        self.failed_chats[chat_id] = error


# ════════════════════════════════════════════════════════════════════════════
# СОБЫТИЕ МОДЕРАЦИИ
# ════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ModerationEvent:
    """
    Событие модерации, которое проходит через весь конвейер.

    Неизменяемое: обработчики получают один и тот же объект; результат
    выполнения прикрепляется один раз через with_execution().
    """

    action_type: ModerationActionType
    user_id: int
    actor: Actor
    reason: str = ""
    chat_id: Optional[int] = None
    message_id: Optional[int] = None
    # Длительность для TEMP_BAN / RESTRICT (секунды)
    duration_seconds: Optional[int] = None
    # Абсолютный срок окончания (вычисляется из duration_seconds, если не задан)
    expires_at: Optional[datetime] = None
    # Счётчик предупреждений после атомарного инкремента (только WARN)
    warning_count: Optional[int] = None
    # Копия сообщения для обучающей выборки
    snapshot: Optional[MessageSnapshot] = None
    # Заполняется после выполнения действия
    execution: Optional[ActionExecutionResult] = None

    def with_execution(self, execution: ActionExecutionResult) -> "ModerationEvent":
        return replace(
            self,
            execution=execution,
            warning_count=execution.warning_count if execution.warning_count is not None else self.warning_count,
        )


# ════════════════════════════════════════════════════════════════════════════
# РЕЗУЛЬТАТ ДЛЯ ВЫЗЫВАЮЩЕГО КОДА
# ════════════════════════════════════════════════════════════════════════════

@dataclass
class ModerationResult:
    success: bool
    error_message: Optional[str] = None
    chats_affected: int = 0
    warning_count: Optional[int] = None
    # Сработал автобан по порогу предупреждений
    auto_ban_triggered: bool = False
    # Подробности по группам
    execution: Optional[ActionExecutionResult] = None
