# ============================================================
# ОБРАБОТЧИКИ КОНВЕЙЕРА МОДЕРАЦИИ
# ============================================================
# Порядок выполнения задаётся атрибутом order:
# - 10  trust_revocation: снятие доверия при бане
# - 20  warning_threshold: автобан по порогу предупреждений
# - 50  training_data: обучающая выборка при ручной пометке спама
# - 100 audit: журнал аудита (все действия)
# - 200 notification: уведомления пользователю и админам
# ============================================================

from modguard.services.moderation.handlers.trust_handler import TrustRevocationHandler
from modguard.services.moderation.handlers.warning_handler import WarningThresholdHandler
from modguard.services.moderation.handlers.training_handler import TrainingDataHandler
from modguard.services.moderation.handlers.audit_handler import AuditHandler
from modguard.services.moderation.handlers.notification_handler import NotificationHandler


def default_handlers():
    """Явный список обработчиков для регистрации при старте"""
    return [
        TrustRevocationHandler(),
        WarningThresholdHandler(),
        TrainingDataHandler(),
        AuditHandler(),
        NotificationHandler(),
    ]


__all__ = [
    'TrustRevocationHandler',
    'WarningThresholdHandler',
    'TrainingDataHandler',
    'AuditHandler',
    'NotificationHandler',
    'default_handlers',
]
