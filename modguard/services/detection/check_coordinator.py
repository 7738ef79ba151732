# modguard/services/detection/check_coordinator.py
"""
Координатор проверок - параллельный запуск детекторов и агрегация.

Отвечает за:
- Запуск всех включённых и применимых детекторов одновременно
- Независимый таймаут каждого детектора
- Изоляцию ошибок: упавший детектор даёт нейтральный голос
- Взвешенную итоговую уверенность
- Отделение критичных нарушений от основной оценки
"""

# Импортируем asyncio для параллельного запуска
import asyncio
# Импортируем логгер
import logging
# Импортируем типы для аннотаций
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

# Импортируем модели детекции
from modguard.services.detection.models import (
    AggregateDetectionResult,
    CheckResult,
    ContentCheckRequest,
    Detector,
    DetectorSettings,
)
# Таймаут по умолчанию
from modguard.config import DETECTOR_TIMEOUT_SECONDS


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)


# Пара (результат, ошибка): ошибка None если детектор отработал
DetectorOutcome = Tuple[CheckResult, Optional[str]]


class CheckCoordinator:
    """
    Запускает детекторы и собирает AggregateDetectionResult.

    Формула для некритичных детекторов:
        net = Σ(confidence × sign × weight) / Σ(weight)
    где sign = +1 за спам и -1 за чисто. Упавшие детекторы не входят
    ни в числитель, ни в знаменатель.
    """

    def __init__(self, detectors: Iterable[Detector], default_timeout: float = DETECTOR_TIMEOUT_SECONDS):
        # Детекторы по имени; имя - ключ к настройкам группы
        self._detectors: Dict[str, Detector] = {}
        for detector in detectors:
            if detector.name in self._detectors:
                raise ValueError(f"Детектор {detector.name!r} зарегистрирован дважды")
            self._detectors[detector.name] = detector
        self._default_timeout = default_timeout

    @property
    def detector_names(self) -> List[str]:
        return list(self._detectors)

    # ─────────────────────────────────────────────────────────────────────
    # ВЫБОР ДЕТЕКТОРОВ
    # ─────────────────────────────────────────────────────────────────────

    def resolve_settings(self, configs: Optional[Mapping[str, DetectorSettings]] = None) -> List[DetectorSettings]:
        """Настройки для каждого зарегистрированного детектора (без строки в БД - по умолчанию)"""
        configs = configs or {}
        return [configs.get(name) or DetectorSettings(name=name) for name in self._detectors]

    def has_critical_detectors(self, configs: Optional[Mapping[str, DetectorSettings]] = None) -> bool:
        """Есть ли хоть один включённый критичный детектор"""
        return any(s.enabled and s.always_run for s in self.resolve_settings(configs))

    def _select(
        self,
        request: ContentCheckRequest,
        configs: Optional[Mapping[str, DetectorSettings]],
        only_critical: bool,
    ) -> List[Tuple[Detector, DetectorSettings]]:
        selected = []
        for settings in self.resolve_settings(configs):
            if not settings.enabled:
                continue
            if only_critical and not settings.always_run:
                continue
            detector = self._detectors[settings.name]
            if not detector.applies_to(request):
                continue
            selected.append((detector, settings))
        return selected

    # ─────────────────────────────────────────────────────────────────────
    # ЗАПУСК ОДНОГО ДЕТЕКТОРА
    # ─────────────────────────────────────────────────────────────────────

    async def _run_detector(
        self,
        detector: Detector,
        settings: DetectorSettings,
        request: ContentCheckRequest,
    ) -> DetectorOutcome:
        """
        Запускает детектор с таймаутом и никогда не бросает исключение.

        Returns:
            (CheckResult с весом и критичностью из настроек, текст ошибки или None)
        """
        timeout = settings.timeout if settings.timeout is not None else self._default_timeout
        try:
            raw = await asyncio.wait_for(detector.check(request), timeout=timeout)
            # Вес и критичность задаёт конфигурация группы, а не детектор
            result = CheckResult(
                detector=detector.name,
                confidence=raw.confidence,
                verdict=raw.verdict,
                reason=raw.reason,
                weight=settings.weight,
                is_critical=settings.always_run,
            )
        except asyncio.TimeoutError:
            error = f"таймаут {timeout:.1f}с"
            logger.warning(f"[Coordinator] Детектор {detector.name} не ответил: {error} (chat={request.chat_id}, msg={request.message_id})")
            return CheckResult.neutral(detector.name, error, weight=settings.weight, is_critical=settings.always_run), error
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            logger.error(f"[Coordinator] Детектор {detector.name} упал: {error} (chat={request.chat_id}, msg={request.message_id})")
            return CheckResult.neutral(detector.name, error, weight=settings.weight, is_critical=settings.always_run), error

        return result, None

    # ─────────────────────────────────────────────────────────────────────
    # ОСНОВНОЙ МЕТОД
    # ─────────────────────────────────────────────────────────────────────

    async def check(
        self,
        request: ContentCheckRequest,
        configs: Optional[Mapping[str, DetectorSettings]] = None,
        *,
        only_critical: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AggregateDetectionResult:
        """
        Проверяет сообщение всеми подходящими детекторами.

        Args:
            request: Запрос на проверку
            configs: Настройки детекторов группы по имени
            only_critical: Запускать только критичные детекторы (доверенные/админы)
            cancel_event: Установленное событие отменяет незавершённые детекторы,
                уже готовые результаты попадают в частичный итог

        Returns:
            AggregateDetectionResult
        """
        selected = self._select(request, configs, only_critical)
        if not selected:
            logger.debug(f"[Coordinator] Нет применимых детекторов для chat={request.chat_id} msg={request.message_id}")
            return AggregateDetectionResult()

        tasks = [
            asyncio.create_task(self._run_detector(detector, settings, request), name=f"detector:{detector.name}")
            for detector, settings in selected
        ]

        partial = False
        try:
            if cancel_event is None:
                await asyncio.wait(tasks)
            else:
                partial = await self._wait_or_cancel(tasks, cancel_event)
        finally:
            # При отмене самого координатора не оставляем висящих задач
            for task in tasks:
                if not task.done():
                    task.cancel()

        outcomes = [task.result() for task in tasks if task.done() and not task.cancelled()]
        aggregate = self.aggregate(outcomes)
        aggregate.partial = partial

        logger.info(
            f"[Coordinator] chat={request.chat_id} msg={request.message_id} user={request.user_id}: "
            f"{aggregate.summary()}"
            + (f" violations={aggregate.violations}" if aggregate.violations else "")
            + (" (частичный результат)" if partial else "")
        )
        return aggregate

    @staticmethod
    async def _wait_or_cancel(tasks: List[asyncio.Task], cancel_event: asyncio.Event) -> bool:
        """Ждёт детекторы или событие отмены. True если пришлось отменять"""
        cancel_waiter = asyncio.create_task(cancel_event.wait())
        try:
            pending = set(tasks)
            while pending:
                done, _ = await asyncio.wait(pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                pending -= done
                if cancel_waiter in done:
                    break
        finally:
            cancel_waiter.cancel()

        if not pending:
            return False
        for task in pending:
            task.cancel()
        # Дожидаемся отмены, чтобы детекторы успели освободить ресурсы
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info(f"[Coordinator] Проверка отменена, не успели: {len(pending)} детектор(ов)")
        return True

    # ─────────────────────────────────────────────────────────────────────
    # АГРЕГАЦИЯ
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def aggregate(outcomes: Iterable[DetectorOutcome]) -> AggregateDetectionResult:
        """
        Сводит результаты детекторов в один итог.

        Критичные детекторы в сумму не входят: их голос за спам
        становится нарушением "detector: reason".
        """
        aggregate = AggregateDetectionResult()
        weighted_sum = 0.0
        total_weight = 0.0

        for result, error in outcomes:
            aggregate.check_results.append(result)
            if error is not None:
                aggregate.errors.append((result.detector, error))
                continue

            if result.is_critical:
                if result.is_spam:
                    aggregate.violations.append(f"{result.detector}: {result.reason}")
                continue

            if result.weight <= 0:
                continue

            sign = 1 if result.is_spam else -1
            weighted_sum += result.confidence * sign * result.weight
            total_weight += result.weight

            if result.is_spam:
                aggregate.max_confidence = max(aggregate.max_confidence, result.confidence)

        if total_weight > 0:
            aggregate.net_confidence = weighted_sum / total_weight
        return aggregate
