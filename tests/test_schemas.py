"""
Input/output schema and configuration tests.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from config import EngineConfig
from core.triggers import ActivityCompletedEvent, BiometricEvent
from shared.schemas import (
    ActivityIn, BiometricEventIn, EventType, ReplayDocument, ReplayStep, WeightEditRequest
)


class TestBiometricEventIn:

    def test_recovery_event(self):
        event = BiometricEventIn.model_validate({"type": "RECOVERY", "value": 72, "date": "2026-10-18"})
        assert event.type == EventType.RECOVERY
        assert event.to_event() == BiometricEvent(event_date=date(2026, 10, 18), recovery_score=72)

    def test_workout_needs_type_id(self):
        with pytest.raises(ValidationError):
            BiometricEventIn.model_validate({"type": "WORKOUT", "date": "2026-10-18"})

        event = BiometricEventIn.model_validate({"type": "WORKOUT", "date": "2026-10-18", "workout_type_id": 63})
        assert event.to_event().workout_type_id == 63

    def test_recovery_out_of_range(self):
        with pytest.raises(ValidationError):
            BiometricEventIn.model_validate({"type": "RECOVERY", "value": 120, "date": "2026-10-18"})

    def test_sleep_needs_value(self):
        with pytest.raises(ValidationError):
            BiometricEventIn.model_validate({"type": "SLEEP", "date": "2026-10-18"})

    def test_activity_completed(self):
        event = BiometricEventIn.model_validate(
            {"type": "ACTIVITY_COMPLETED", "date": "2026-10-18", "activity_id": "run"}
        )
        assert event.to_event() == ActivityCompletedEvent(date(2026, 10, 18), "run")


class TestRequests:

    def test_weight_edit_normalizes_category(self):
        request = WeightEditRequest(category=" training ", new_value=60)
        assert request.category == "TRAINING"

    @pytest.mark.parametrize("value", [-1, 101])
    def test_weight_edit_range(self, value):
        with pytest.raises(ValidationError):
            WeightEditRequest(category="SLEEP", new_value=value)

    @pytest.mark.parametrize("points", [4, 101])
    def test_activity_points_range(self, points):
        with pytest.raises(ValidationError):
            ActivityIn(key="a", name="A", pillar="BODY", sub_category="TRAINING", points=points)

    def test_unknown_step_kind(self):
        with pytest.raises(ValidationError):
            ReplayStep(kind="explode")

    def test_document_defaults(self):
        document = ReplayDocument.model_validate({})
        assert document.user_id == 1
        assert document.activities == []
        assert document.steps == []


class TestEngineConfig:

    def test_defaults(self, monkeypatch):
        for name in ("ENGINE_TIMEZONE", "STREAK_WARNING_HOURS", "EVOLUTION_LEVELS"):
            monkeypatch.delenv(name, raising=False)

        config = EngineConfig()

        assert config.timezone == "UTC"
        assert config.streaks.warning_window_hours == 6.0
        assert config.progression.evolution_levels == {2: 10, 3: 25, 4: 50}

    def test_evolution_levels_from_env(self, monkeypatch):
        monkeypatch.setenv("EVOLUTION_LEVELS", "5, 8, 12")
        assert EngineConfig().progression.evolution_levels == {2: 5, 3: 8, 4: 12}

    @pytest.mark.parametrize("name,value", [
        ("EVOLUTION_LEVELS", "25,10,50"),
        ("EVOLUTION_LEVELS", "10,25"),
        ("EVOLUTION_LEVELS", "ten"),
        ("ENGINE_TIMEZONE", "Mars/Olympus"),
        ("STREAK_WARNING_HOURS", "30"),
    ])
    def test_invalid_values_rejected(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            EngineConfig()

    def test_logging_config_has_console_handler(self, monkeypatch):
        monkeypatch.setenv("LOG_TO_FILE", "false")
        logging_config = EngineConfig().get_logging_config()
        assert logging_config["loggers"][""]["handlers"] == ["console"]
