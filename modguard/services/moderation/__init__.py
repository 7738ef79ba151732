# ============================================================
# МОДУЛЬ MODERATION - ИНИЦИАЛИЗАЦИЯ
# ============================================================
# - models: события, исполнители, результаты
# - exceptions: исключения модерации
# - platform: операции в Telegram
# - decision_service: уровни решений и применение действий
# - cross_chat_executor: действие во всех группах
# - pipeline: конвейер обработчиков
# - orchestrator: единая точка входа
#
# Здесь экспортируются только модели и исключения: сервисы
# импортируются по полному пути, чтобы не было циклических импортов
# с модулем detection.
# ============================================================

from modguard.services.moderation.models import (
    ActionExecutionResult,
    ActionTier,
    Actor,
    ActorType,
    MessageSnapshot,
    ModerationActionType,
    ModerationEvent,
    ModerationFollowUp,
    ModerationResult,
)
from modguard.services.moderation.exceptions import (
    ModerationError,
    ProtectedAccountError,
    DetectionPersistenceError,
)

__all__ = [
    'ActionExecutionResult',
    'ActionTier',
    'Actor',
    'ActorType',
    'MessageSnapshot',
    'ModerationActionType',
    'ModerationEvent',
    'ModerationFollowUp',
    'ModerationResult',
    'ModerationError',
    'ProtectedAccountError',
    'DetectionPersistenceError',
]
