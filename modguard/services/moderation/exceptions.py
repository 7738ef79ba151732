# modguard/services/moderation/exceptions.py
"""Исключения модерации"""


class ModerationError(Exception):
    """Базовое исключение модерации"""


class ProtectedAccountError(ModerationError):
    """Действие против системного аккаунта Telegram"""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"Нельзя применять действия к system account {user_id}")


class DetectionPersistenceError(ModerationError):
    """Не удалось сохранить результат детекции"""
