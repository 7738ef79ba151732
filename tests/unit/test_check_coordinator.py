# ============================================================
# UNIT-ТЕСТЫ КООРДИНАТОРА ПРОВЕРОК
# ============================================================
# Тестируем:
# - Взвешенную итоговую уверенность
# - Изоляцию упавших и зависших детекторов
# - Критичные детекторы и нарушения
# - Выбор детекторов (выключенные, только критичные, вложения)
# - Отмену проверки с частичным результатом
# ============================================================

import asyncio

import pytest

from modguard.services.detection.check_coordinator import CheckCoordinator
from modguard.services.detection.models import CheckResult, DetectorSettings, Verdict


class TestAggregation:
    """Итоговая уверенность и максимальная уверенность"""

    async def test_weighted_signed_average(self, detector_factory, check_request_factory):
        """(90*2 - 60*1) / 3 = 40"""
        coordinator = CheckCoordinator([
            detector_factory("llm", 90, Verdict.SPAM, "реклама"),
            detector_factory("bayes", 60, Verdict.CLEAN),
        ])
        configs = {"llm": DetectorSettings("llm", weight=2.0)}

        result = await coordinator.check(check_request_factory(), configs)

        assert result.net_confidence == pytest.approx(40.0)
        assert result.max_confidence == 90
        assert result.is_spam
        assert result.violations == []
        assert result.detector_names == ["llm", "bayes"]

    async def test_all_clean_is_negative(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([
            detector_factory("llm", 80, Verdict.CLEAN),
            detector_factory("bayes", 40, Verdict.CLEAN),
        ])

        result = await coordinator.check(check_request_factory())

        assert result.net_confidence == pytest.approx(-60.0)
        assert result.max_confidence == 0
        assert not result.is_spam

    async def test_zero_weight_detector_is_ignored(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([
            detector_factory("llm", 90, Verdict.SPAM),
            detector_factory("noisy", 100, Verdict.CLEAN),
        ])
        configs = {"noisy": DetectorSettings("noisy", weight=0.0)}

        result = await coordinator.check(check_request_factory(), configs)

        assert result.net_confidence == pytest.approx(90.0)

    async def test_no_detectors_gives_neutral_result(self, check_request_factory):
        result = await CheckCoordinator([]).check(check_request_factory())

        assert result.net_confidence == 0
        assert result.check_results == []
        assert not result.is_spam
        assert not result.has_violations

    def test_confidence_is_clamped(self):
        assert CheckResult("x", 150, Verdict.SPAM).confidence == 100
        assert CheckResult("x", -5, Verdict.SPAM).confidence == 0


class TestFailureIsolation:
    """Упавший или зависший детектор даёт нейтральный голос"""

    async def test_crashed_detector_is_excluded(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([
            detector_factory("llm", 90, Verdict.SPAM),
            detector_factory("broken", error=RuntimeError("boom")),
        ])

        result = await coordinator.check(check_request_factory())

        assert result.net_confidence == pytest.approx(90.0)
        assert result.errors == [("broken", "RuntimeError: boom")]
        broken = result.result_for("broken")
        assert broken.failed
        assert not broken.is_spam
        assert "broken" not in result.detector_names

    async def test_timed_out_detector_is_neutral(self, detector_factory, check_request_factory):
        slow = detector_factory("slow", 100, Verdict.SPAM, delay=1.0)
        coordinator = CheckCoordinator([slow, detector_factory("fast", 50, Verdict.CLEAN)])
        configs = {"slow": DetectorSettings("slow", timeout=0.05)}

        result = await coordinator.check(check_request_factory(), configs)

        assert result.net_confidence == pytest.approx(-50.0)
        assert result.result_for("slow").failed
        assert result.errors[0][0] == "slow"
        assert "таймаут" in result.errors[0][1]

    async def test_all_detectors_failed(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([detector_factory("broken", error=ValueError("bad"))])

        result = await coordinator.check(check_request_factory())

        assert result.net_confidence == 0
        assert len(result.check_results) == 1

    def test_duplicate_detector_name_rejected(self, detector_factory):
        with pytest.raises(ValueError):
            CheckCoordinator([detector_factory("llm"), detector_factory("llm")])


class TestCriticalDetectors:
    """Критичные детекторы не входят в сумму, их спам - нарушение"""

    async def test_critical_spam_becomes_violation(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([
            detector_factory("malware_links", 100, Verdict.SPAM, "вредоносная ссылка"),
            detector_factory("bayes", 50, Verdict.CLEAN),
        ])
        configs = {"malware_links": DetectorSettings("malware_links", always_run=True)}

        result = await coordinator.check(check_request_factory(), configs)

        assert result.violations == ["malware_links: вредоносная ссылка"]
        assert result.has_violations
        # В сумму вошёл только bayes
        assert result.net_confidence == pytest.approx(-50.0)
        assert result.max_confidence == 0
        assert result.result_for("malware_links").is_critical

    async def test_critical_clean_is_not_violation(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([detector_factory("malware_links", 90, Verdict.CLEAN)])
        configs = {"malware_links": DetectorSettings("malware_links", always_run=True)}

        result = await coordinator.check(check_request_factory(), configs)

        assert not result.has_violations
        assert result.net_confidence == 0

    async def test_crashed_critical_detector_is_not_violation(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([detector_factory("malware_links", error=RuntimeError("api down"))])
        configs = {"malware_links": DetectorSettings("malware_links", always_run=True)}

        result = await coordinator.check(check_request_factory(), configs)

        assert not result.has_violations
        assert result.errors

    def test_has_critical_detectors(self, detector_factory):
        coordinator = CheckCoordinator([detector_factory("llm"), detector_factory("malware_links")])

        assert not coordinator.has_critical_detectors({})
        assert coordinator.has_critical_detectors({"malware_links": DetectorSettings("malware_links", always_run=True)})
        # Выключенный критичный детектор не считается
        assert not coordinator.has_critical_detectors(
            {"malware_links": DetectorSettings("malware_links", enabled=False, always_run=True)}
        )


class TestSelection:
    """Какие детекторы запускаются"""

    async def test_disabled_detector_not_run(self, detector_factory, check_request_factory):
        disabled = detector_factory("llm", 90, Verdict.SPAM)
        coordinator = CheckCoordinator([disabled, detector_factory("bayes", 30, Verdict.CLEAN)])
        configs = {"llm": DetectorSettings("llm", enabled=False)}

        result = await coordinator.check(check_request_factory(), configs)

        assert disabled.calls == 0
        assert result.detector_names == ["bayes"]

    async def test_only_critical(self, detector_factory, check_request_factory):
        regular = detector_factory("llm", 90, Verdict.SPAM)
        critical = detector_factory("malware_links", 10, Verdict.CLEAN)
        coordinator = CheckCoordinator([regular, critical])
        configs = {"malware_links": DetectorSettings("malware_links", always_run=True)}

        result = await coordinator.check(check_request_factory(), configs, only_critical=True)

        assert regular.calls == 0
        assert critical.calls == 1
        assert result.detector_names == ["malware_links"]

    async def test_text_detector_skips_media_without_caption(self, detector_factory, check_request_factory):
        text_detector = detector_factory("llm", 90, Verdict.SPAM)
        image_detector = detector_factory(
            "scam_images", 95, Verdict.SPAM, handles_text=False, handles_attachments=True
        )
        coordinator = CheckCoordinator([text_detector, image_detector])

        result = await coordinator.check(check_request_factory(text="", image_ref="photo-file-id"))

        assert text_detector.calls == 0
        assert image_detector.calls == 1
        assert result.net_confidence == pytest.approx(95.0)

    async def test_whitespace_text_is_empty(self, detector_factory, check_request_factory):
        text_detector = detector_factory("llm", 90, Verdict.SPAM)

        result = await CheckCoordinator([text_detector]).check(check_request_factory(text="   \n"))

        assert text_detector.calls == 0
        assert result.check_results == []


class TestCancellation:
    """Отмена проверки событием"""

    async def test_cancel_returns_partial_result(self, detector_factory, check_request_factory):
        fast = detector_factory("fast", 70, Verdict.SPAM)
        slow = detector_factory("slow", 100, Verdict.SPAM, delay=5.0)
        coordinator = CheckCoordinator([fast, slow], default_timeout=30)
        cancel_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel_event.set)

        result = await coordinator.check(check_request_factory(), cancel_event=cancel_event)

        assert result.partial
        assert result.detector_names == ["fast"]
        assert result.net_confidence == pytest.approx(70.0)

    async def test_event_never_set_gives_full_result(self, detector_factory, check_request_factory):
        coordinator = CheckCoordinator([detector_factory("a", 60, Verdict.SPAM), detector_factory("b", 20, Verdict.CLEAN)])

        result = await coordinator.check(check_request_factory(), cancel_event=asyncio.Event())

        assert not result.partial
        assert result.net_confidence == pytest.approx(20.0)
