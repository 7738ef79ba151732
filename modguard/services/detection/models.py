# modguard/services/detection/models.py
"""
Модели данных детекции спама.

Содержит:
- Verdict: вердикт одного детектора
- ContentCheckRequest: неизменяемый запрос на проверку сообщения
- CheckResult: результат одного детектора
- DetectorSettings: настройки детектора для конкретной группы
- AggregateDetectionResult: итог работы всех детекторов
- Detector: базовый класс детектора
"""

# Импортируем dataclass для неизменяемых структур
from dataclasses import dataclass, field
# Импортируем Enum для вердиктов
from enum import Enum
# Импортируем типы для аннотаций
from typing import Any, List, Mapping, NamedTuple, Optional, Tuple


# ════════════════════════════════════════════════════════════════════════════
# ВЕРДИКТ
# ════════════════════════════════════════════════════════════════════════════

class Verdict(str, Enum):
    """Голос детектора: спам или чисто"""
    SPAM = "spam"
    CLEAN = "clean"


# ════════════════════════════════════════════════════════════════════════════
# ЗАПРОС НА ПРОВЕРКУ
# ════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ContentCheckRequest:
    """
    Запрос на проверку одного сообщения.

    Создаётся один раз обработчиком входящих сообщений и дальше
    только читается детекторами.
    """

    # Группа и автор
    chat_id: int
    user_id: int
    # ID сообщения в группе
    message_id: Optional[int] = None
    # Текст или подпись к медиа
    text: str = ""
    # file_id фото
    image_ref: Optional[str] = None
    # file_id документа/видео
    file_ref: Optional[str] = None
    # Имя автора для логов и уведомлений
    user_name: Optional[str] = None
    # Контекст: ответ на пост канала, пересылка и т.п.
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    @property
    def has_attachments(self) -> bool:
        return bool(self.image_ref or self.file_ref)


# ════════════════════════════════════════════════════════════════════════════
# РЕЗУЛЬТАТ ОДНОГО ДЕТЕКТОРА
# ════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CheckResult:
    """Результат одного детектора. Уверенность всегда в диапазоне 0..100"""

    detector: str
    confidence: int
    verdict: Verdict
    reason: str = ""
    # Заполняется координатором из настроек группы
    weight: float = 1.0
    is_critical: bool = False
    # Детектор упал или не уложился в таймаут - голос нейтральный
    failed: bool = False

    def __post_init__(self):
        # Зажимаем уверенность в 0..100, детекторы бывают неаккуратны
        clamped = max(0, min(100, int(self.confidence)))
        object.__setattr__(self, "confidence", clamped)

    @property
    def is_spam(self) -> bool:
        return self.verdict == Verdict.SPAM and not self.failed

    @classmethod
    def neutral(cls, detector: str, reason: str, *, weight: float = 1.0, is_critical: bool = False) -> "CheckResult":
        """Нейтральный результат для упавшего детектора"""
        return cls(
            detector=detector,
            confidence=0,
            verdict=Verdict.CLEAN,
            reason=reason,
            weight=weight,
            is_critical=is_critical,
            failed=True,
        )


# ════════════════════════════════════════════════════════════════════════════
# НАСТРОЙКИ ДЕТЕКТОРА
# ════════════════════════════════════════════════════════════════════════════

class DetectorSettings(NamedTuple):
    """Настройки детектора в группе (строка detector_configs или значения по умолчанию)"""
    name: str
    enabled: bool = True
    weight: float = 1.0
    # Критичный: запускается для доверенных, нарушение сразу удаляет сообщение
    always_run: bool = False
    # None = таймаут координатора по умолчанию
    timeout: Optional[float] = None


# ════════════════════════════════════════════════════════════════════════════
# АГРЕГИРОВАННЫЙ РЕЗУЛЬТАТ
# ════════════════════════════════════════════════════════════════════════════

@dataclass
class AggregateDetectionResult:
    """Итог работы координатора по одному сообщению"""

    # Взвешенная уверенность со знаком: > 0 спам, < 0 чисто
    net_confidence: float = 0.0
    # Максимальная уверенность среди некритичных голосов за спам
    max_confidence: int = 0
    # Все результаты, включая упавшие детекторы
    check_results: List[CheckResult] = field(default_factory=list)
    # Нарушения критичных детекторов в формате "detector: reason"
    violations: List[str] = field(default_factory=list)
    # Проверки пропущены целиком
    skipped: bool = False
    skip_reason: Optional[str] = None
    # Автор доверенный или админ
    is_trusted: bool = False
    is_admin: bool = False
    # Проверка была отменена, часть детекторов не успела
    partial: bool = False
    # Ошибки детекторов: (имя, текст ошибки)
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def is_spam(self) -> bool:
        return self.net_confidence > 0

    @property
    def has_violations(self) -> bool:
        return bool(self.violations)

    @property
    def detector_names(self) -> List[str]:
        return [result.detector for result in self.check_results if not result.failed]

    def result_for(self, detector: str) -> Optional[CheckResult]:
        """Результат конкретного детектора или None"""
        for result in self.check_results:
            if result.detector == detector:
                return result
        return None

    def summary(self) -> str:
        """Краткая сводка для логов и жалоб"""
        parts = [
            f"{r.detector}={'ERR' if r.failed else r.verdict.value}:{r.confidence}"
            for r in self.check_results
        ]
        return f"net={self.net_confidence:.1f} max={self.max_confidence} [{', '.join(parts)}]"

    @classmethod
    def skipped_result(cls, reason: str, *, is_trusted: bool = False, is_admin: bool = False) -> "AggregateDetectionResult":
        return cls(skipped=True, skip_reason=reason, is_trusted=is_trusted, is_admin=is_admin)


# ════════════════════════════════════════════════════════════════════════════
# БАЗОВЫЙ ДЕТЕКТОР
# ════════════════════════════════════════════════════════════════════════════

class Detector:
    """
    Базовый класс детектора.

    Наследник задаёт name и реализует check(). По умолчанию детектор
    проверяет только текст; детекторы вложений переопределяют
    handles_attachments.
    """

    # Уникальное имя детектора, по нему ищутся настройки
    name: str = ""
    # Проверяет текст сообщения
    handles_text: bool = True
    # Проверяет фото/файлы
    handles_attachments: bool = False

    def applies_to(self, request: ContentCheckRequest) -> bool:
        """Применим ли детектор к запросу (пустой текст не проверяется текстовыми)"""
        if self.handles_attachments and request.has_attachments:
            return True
        if self.handles_text and request.has_text:
            return True
        return False

    async def check(self, request: ContentCheckRequest) -> CheckResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
