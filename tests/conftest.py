"""
Shared fixtures for the habit engine test suite.

Every test gets an explicit EvaluationClock, so nothing depends on the wall
clock or on the machine's timezone.
"""

import os
import sys
from datetime import datetime, timedelta

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.models import Activity, ActivityLog, CompletionSource, Pillar
from services.completion_service import CompletionService
from services.data_service import DataService
from utils.datetime_utils import EvaluationClock


# ===========================================================================
# Clocks
# ===========================================================================

@pytest.fixture
def clock():
    """Noon UTC on a fixed day."""
    return EvaluationClock.at(datetime(2026, 10, 18, 12, 0), "UTC")


@pytest.fixture
def make_clock():
    """Factory: clock at an arbitrary local datetime in a given zone."""
    def _make(year, month, day, hour=12, minute=0, tz="UTC"):
        return EvaluationClock.at(datetime(year, month, day, hour, minute), tz)
    return _make


# ===========================================================================
# Activities and logs
# ===========================================================================

@pytest.fixture
def training():
    return Activity(
        activity_id="training-1", user_id=1, name="Morning run",
        pillar=Pillar.BODY, sub_category="TRAINING", points=25
    )


@pytest.fixture
def sleep():
    return Activity(
        activity_id="sleep-1", user_id=1, name="Sleep 8h",
        pillar=Pillar.BODY, sub_category="SLEEP", points=40
    )


@pytest.fixture
def meditation():
    return Activity(
        activity_id="meditation-1", user_id=1, name="Meditate",
        pillar=Pillar.MIND, sub_category="MEDITATION", points=50
    )


@pytest.fixture
def make_log():
    """Factory: snapshot log for an activity at a given moment."""
    def _make(activity, completed_at, source=CompletionSource.MANUAL, details=None):
        return ActivityLog.for_activity(activity, completed_at, source=source, details=details)
    return _make


@pytest.fixture
def qualifying_day_logs(make_log):
    """Factory: logs that complete both pillars on each of the given days."""
    body = Activity(activity_id="body-all", user_id=1, name="Body", pillar=Pillar.BODY,
                    sub_category="TRAINING", points=100, is_habit=False)
    mind = Activity(activity_id="mind-all", user_id=1, name="Mind", pillar=Pillar.MIND,
                    sub_category="READING", points=100, is_habit=False)

    def _make(start_clock, days, pillars=(Pillar.BODY, Pillar.MIND)):
        logs = []
        for offset in range(days):
            moment = start_clock.now + timedelta(days=offset)
            if Pillar.BODY in pillars:
                logs.append(make_log(body, moment))
            if Pillar.MIND in pillars:
                logs.append(make_log(mind, moment))
        return logs
    return _make


# ===========================================================================
# Services
# ===========================================================================

@pytest.fixture
def data_service():
    """Fresh in-memory store (no file persistence)."""
    return DataService()


@pytest.fixture
def service(data_service):
    return CompletionService(data_service)
