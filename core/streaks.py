#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Streaks
Серии выполнения: всегда пересчитываются из истории, никогда не инкрементируются

Автор: AI Assistant
Версия: 1.0.0
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Set, Tuple, Any
from dataclasses import dataclass
from enum import Enum
import logging

from core.models import Pillar
from utils.datetime_utils import EvaluationClock

logger = logging.getLogger(__name__)

STREAK_MILESTONES: Tuple[int, ...] = (3, 7, 14, 30, 60, 100, 365)
DEFAULT_WARNING_WINDOW_HOURS = 6.0

class StreakPillar(Enum):
    """Для чего считается серия"""
    BODY = "BODY"
    MIND = "MIND"
    OVERALL = "OVERALL"  # оба столпа в один день

@dataclass(frozen=True)
class StreakState:
    """Состояние серии на момент оценки"""
    pillar_key: StreakPillar
    current_streak_days: int
    longest_streak_days: int
    last_qualifying_date: Optional[date]
    at_risk: bool
    hours_remaining: float

    @property
    def display_hours(self) -> float:
        """Часы до полуночи, округлённые для отображения"""
        return round(self.hours_remaining, 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pillar": self.pillar_key.value,
            "current_streak_days": self.current_streak_days,
            "longest_streak_days": self.longest_streak_days,
            "last_qualifying_date": self.last_qualifying_date.isoformat() if self.last_qualifying_date else None,
            "at_risk": self.at_risk,
            "hours_remaining": self.display_hours
        }

# ===== MILESTONES =====

def reached_milestones(streak_days: int, milestones: Tuple[int, ...] = STREAK_MILESTONES) -> List[int]:
    return [m for m in milestones if streak_days >= m]

def new_milestones(previous_days: int, current_days: int,
                   milestones: Tuple[int, ...] = STREAK_MILESTONES) -> List[int]:
    """Вехи, впервые достигнутые при переходе previous -> current"""
    return [m for m in milestones if previous_days < m <= current_days]

def ember_intensity(days: int) -> Dict[str, Any]:
    """Яркость "огонька" серии"""
    if days >= 14:
        return {"level": "golden", "has_particles": True}
    elif days >= 7:
        return {"level": "bright", "has_particles": False}
    elif days >= 4:
        return {"level": "steady", "has_particles": False}
    return {"level": "dim", "has_particles": False}

# ===== TRACKER =====

class StreakTracker:
    """Вычисление серии из истории выполнения столпов по дням"""

    def __init__(self, warning_window_hours: float = DEFAULT_WARNING_WINDOW_HOURS):
        self.warning_window_hours = warning_window_hours

    @staticmethod
    def qualifying_days(history: Dict[date, Dict[Pillar, bool]], pillar_key: StreakPillar) -> Set[date]:
        """Дни, засчитываемые в серию"""
        days = set()
        for day, completed in history.items():
            if pillar_key == StreakPillar.OVERALL:
                qualified = completed.get(Pillar.BODY, False) and completed.get(Pillar.MIND, False)
            else:
                qualified = completed.get(Pillar(pillar_key.value), False)
            if qualified:
                days.add(day)
        return days

    @staticmethod
    def current_streak(qualifying: Set[date], today: date) -> int:
        """
        Подряд идущие дни, заканчивающиеся сегодня (если сегодня засчитан)
        или вчера (сегодня ещё не закончился).
        """
        cursor = today if today in qualifying else today - timedelta(days=1)
        streak = 0
        while cursor in qualifying:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    @staticmethod
    def longest_streak(qualifying: Set[date]) -> int:
        longest = 0
        for day in qualifying:
            if day - timedelta(days=1) in qualifying:
                continue
            length = 1
            while day + timedelta(days=length) in qualifying:
                length += 1
            longest = max(longest, length)
        return longest

    def evaluate(self, history: Dict[date, Dict[Pillar, bool]], pillar_key: StreakPillar,
                 clock: EvaluationClock) -> StreakState:
        today = clock.today
        # будущие дни (например, после смены таймзоны) не учитываются
        qualifying = {day for day in self.qualifying_days(history, pillar_key) if day <= today}

        current = self.current_streak(qualifying, today)
        hours_remaining = clock.hours_until_midnight()
        today_done = today in qualifying
        at_risk = current > 0 and not today_done and hours_remaining <= self.warning_window_hours

        return StreakState(
            pillar_key=pillar_key,
            current_streak_days=current,
            longest_streak_days=self.longest_streak(qualifying),
            last_qualifying_date=max(qualifying) if qualifying else None,
            at_risk=at_risk,
            hours_remaining=hours_remaining
        )

    def evaluate_all(self, history: Dict[date, Dict[Pillar, bool]],
                     clock: EvaluationClock) -> Dict[StreakPillar, StreakState]:
        return {key: self.evaluate(history, key, clock) for key in StreakPillar}

__all__ = [
    'STREAK_MILESTONES', 'StreakPillar', 'StreakState', 'StreakTracker',
    'reached_milestones', 'new_milestones', 'ember_intensity'
]
