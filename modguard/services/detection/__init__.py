# ============================================================
# МОДУЛЬ DETECTION - ИНИЦИАЛИЗАЦИЯ
# ============================================================
# - models: запрос, результаты детекторов, базовый Detector
# - check_coordinator: параллельный запуск и агрегация
# - simhash: хеш похожести текста для дедупликации
# - training_policy: отбор образцов для обучения
# - repository: работа с БД
# - side_workflows: побочные процессы после чистого результата
# - orchestrator: полный цикл проверки сообщения
#
# Оркестратор импортируется по полному пути
# (modguard.services.detection.orchestrator), он зависит от moderation.
# ============================================================

from modguard.services.detection.models import (
    AggregateDetectionResult,
    CheckResult,
    ContentCheckRequest,
    Detector,
    DetectorSettings,
    Verdict,
)
from modguard.services.detection.check_coordinator import CheckCoordinator
from modguard.services.detection.simhash import compute_hash, hamming_distance, is_near_duplicate

__all__ = [
    'AggregateDetectionResult',
    'CheckResult',
    'ContentCheckRequest',
    'Detector',
    'DetectorSettings',
    'Verdict',
    'CheckCoordinator',
    'compute_hash',
    'hamming_distance',
    'is_near_duplicate',
]
