# Импорт всех роутеров для удобного подключения
from .detection_handler import detection_router

handlers_router = detection_router

__all__ = ["handlers_router", "detection_router"]
