"""Сборка графа сервисов при старте бота"""

from modguard import bot as bot_module
from modguard.services.detection.orchestrator import DetectionOrchestrator
from modguard.services.detection.side_workflows import AutoTrustWorkflow
from modguard.services.moderation.platform import AiogramChatPlatform


def test_build_services(bot_mock, session_factory, detector_factory, monkeypatch):
    monkeypatch.setattr(bot_module, "load_detectors", lambda: [detector_factory("llm"), detector_factory("bayes")])

    orchestrator = bot_module.build_services(bot_mock, session_factory)

    assert isinstance(orchestrator, DetectionOrchestrator)
    assert orchestrator.coordinator.detector_names == ["llm", "bayes"]
    assert isinstance(orchestrator.moderation.platform, AiogramChatPlatform)
    assert orchestrator.moderation.decision_service is orchestrator.decision_service
    assert [type(w) for w in orchestrator.side_workflows] == [AutoTrustWorkflow]
    handler_names = [h.name for h in orchestrator.moderation.pipeline.handlers]
    assert handler_names == ["trust_revocation", "warning_threshold", "training_data", "audit", "notification"]


def test_load_detectors_without_plugins(monkeypatch):
    monkeypatch.setattr(bot_module, "entry_points", lambda group: [])

    assert bot_module.load_detectors() == []


def test_run_stops_on_interrupt(monkeypatch, capsys):
    async def interrupted():
        raise KeyboardInterrupt

    monkeypatch.setattr(bot_module, "main", interrupted)

    bot_module.run()

    assert "Бот остановлен" in capsys.readouterr().out
