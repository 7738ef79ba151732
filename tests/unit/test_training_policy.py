"""Тесты отбора образцов в обучающую выборку и дедупликации"""

import pytest

from modguard.database.models_detection import DetectionResult
from modguard.services.detection.models import AggregateDetectionResult, CheckResult, Verdict
from modguard.services.detection.simhash import compute_hash, to_signed
from modguard.services.detection.training_policy import is_duplicate_training_sample, is_training_worthy
from modguard.services.moderation.models import Actor
from modguard.services.settings_service import ChatModerationSettings


SPAM_TEXT = "Купи крипту сейчас, доход 300% за неделю, ссылка в профиле"


def _aggregate(net: float, *results: CheckResult) -> AggregateDetectionResult:
    return AggregateDetectionResult(net_confidence=net, check_results=list(results))


class TestIsTrainingWorthy:
    """Пороги обучающей выборки (по умолчанию: openai, 85, 80)"""

    settings = ChatModerationSettings()

    def test_manual_actor_always_worthy(self):
        assert is_training_worthy(_aggregate(-50), self.settings, Actor.telegram_user(42))
        assert is_training_worthy(_aggregate(0), self.settings, Actor.web_user("admin@panel"))

    def test_trusted_detector_above_floor(self):
        aggregate = _aggregate(10, CheckResult("openai", 90, Verdict.SPAM))
        assert is_training_worthy(aggregate, self.settings)

    def test_trusted_detector_below_floor_falls_through(self):
        assert is_training_worthy(_aggregate(81, CheckResult("openai", 80, Verdict.SPAM)), self.settings)
        assert not is_training_worthy(_aggregate(70, CheckResult("openai", 80, Verdict.SPAM)), self.settings)

    def test_trusted_detector_clean_vote_falls_through(self):
        aggregate = _aggregate(10, CheckResult("openai", 99, Verdict.CLEAN))
        assert not is_training_worthy(aggregate, self.settings)

    def test_failed_trusted_detector_ignored(self):
        aggregate = _aggregate(10, CheckResult.neutral("openai", "таймаут"))
        assert not is_training_worthy(aggregate, self.settings)

    def test_net_threshold_is_strict(self):
        assert not is_training_worthy(_aggregate(80), self.settings)
        assert is_training_worthy(_aggregate(80.5), self.settings)

    def test_system_actor_is_not_manual(self):
        assert not is_training_worthy(_aggregate(50), self.settings, Actor.auto_ban())

    def test_custom_trusted_detector(self):
        settings = ChatModerationSettings(training_trusted_detector="bayes", training_confidence_floor=60)
        assert is_training_worthy(_aggregate(0, CheckResult("bayes", 60, Verdict.SPAM)), settings)


class TestDuplicateTrainingSample:
    """Поиск почти-дубликатов среди обучающих образцов"""

    async def _add_sample(self, db_session, text, *, is_spam=True, used_for_training=True):
        db_session.add(DetectionResult(
            chat_id=-1001,
            message_id=1,
            user_id=1,
            is_spam=is_spam,
            used_for_training=used_for_training,
            content_hash=to_signed(compute_hash(text)),
            message_text=text,
        ))
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_near_duplicate_same_class(self, db_session):
        await self._add_sample(db_session, SPAM_TEXT)
        variant = "КУПИ КРИПТУ СЕЙЧАС!!! Доход 300% за неделю... ссылка в профиле"

        assert await is_duplicate_training_sample(db_session, compute_hash(variant), True, 3)

    @pytest.mark.asyncio
    async def test_other_class_is_not_duplicate(self, db_session):
        await self._add_sample(db_session, SPAM_TEXT)

        assert not await is_duplicate_training_sample(db_session, compute_hash(SPAM_TEXT), False, 3)

    @pytest.mark.asyncio
    async def test_non_training_rows_ignored(self, db_session):
        await self._add_sample(db_session, SPAM_TEXT, used_for_training=False)

        assert not await is_duplicate_training_sample(db_session, compute_hash(SPAM_TEXT), True, 3)

    @pytest.mark.asyncio
    async def test_empty_text_never_duplicate(self, db_session):
        await self._add_sample(db_session, SPAM_TEXT)

        assert not await is_duplicate_training_sample(db_session, 0, True, 64)
