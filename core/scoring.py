#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Daily Scores
Дневной счёт по столпам: сумма снимков очков, ограниченная порогом

Автор: AI Assistant
Версия: 1.0.0
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Any
from dataclasses import dataclass
import logging

from core.models import ActivityLog, Pillar
from core.weights import PillarWeights
from utils.datetime_utils import EvaluationClock

logger = logging.getLogger(__name__)

POINTS_THRESHOLD = 100

# ===== HELPERS =====

def calculate_daily_points(logs: Iterable[ActivityLog], pillar: Pillar) -> int:
    """Сырая сумма очков столпа (без ограничения)"""
    return sum(log.points_earned for log in logs if log.pillar == pillar)

def is_pillar_complete(points: int) -> bool:
    return points >= POINTS_THRESHOLD

def points_progress(points: int) -> float:
    """Прогресс к дневной цели в процентах (0-100)"""
    return min(max(points, 0) / POINTS_THRESHOLD * 100, 100.0)

def points_remaining(points: int) -> int:
    return max(POINTS_THRESHOLD - points, 0)

@dataclass(frozen=True)
class PillarScore:
    """Счёт столпа за день"""
    pillar: Pillar
    raw_points: int
    score: int
    completed: bool

    @property
    def progress(self) -> float:
        return points_progress(self.score)

    @property
    def remaining(self) -> int:
        return points_remaining(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pillar": self.pillar.value,
            "pillar_score": self.score,
            "completed": self.completed,
            "raw_points": self.raw_points,
            "remaining": self.remaining
        }

# ===== AGGREGATOR =====

class DailyScoreAggregator:
    """Подсчёт дневного счёта по записям о выполнении"""

    def score_pillar(self, day_logs: Iterable[ActivityLog], pillar: Pillar) -> PillarScore:
        """Счёт столпа по записям одного дня"""
        raw = max(0, calculate_daily_points(day_logs, pillar))
        score = min(raw, POINTS_THRESHOLD)
        return PillarScore(pillar=pillar, raw_points=raw, score=score, completed=is_pillar_complete(score))

    def logs_for_day(self, logs: Iterable[ActivityLog], day: date, clock: EvaluationClock) -> List[ActivityLog]:
        return [log for log in logs if clock.local_date(log.completed_at) == day]

    def score_day(self, logs: Iterable[ActivityLog], day: date, clock: EvaluationClock) -> Dict[Pillar, PillarScore]:
        day_logs = self.logs_for_day(logs, day, clock)
        return {pillar: self.score_pillar(day_logs, pillar) for pillar in Pillar}

    def daily_history(self, logs: Iterable[ActivityLog], clock: EvaluationClock,
                      days: Optional[int] = None) -> Dict[date, Dict[Pillar, PillarScore]]:
        """
        Счёт по каждому дню, в котором есть записи (дни без записей не попадают).

        days ограничивает историю последними N днями, включая сегодня.
        """
        earliest = clock.today - timedelta(days=days - 1) if days else None
        by_day: Dict[date, List[ActivityLog]] = defaultdict(list)
        for log in logs:
            day = clock.local_date(log.completed_at)
            if earliest is not None and day < earliest:
                continue
            by_day[day].append(log)

        return {
            day: {pillar: self.score_pillar(day_logs, pillar) for pillar in Pillar}
            for day, day_logs in sorted(by_day.items())
        }

    def completion_history(self, logs: Iterable[ActivityLog], clock: EvaluationClock,
                           days: Optional[int] = None) -> Dict[date, Dict[Pillar, bool]]:
        """Флаги выполнения столпов по дням - вход для StreakTracker"""
        return {
            day: {pillar: score.completed for pillar, score in scores.items()}
            for day, scores in self.daily_history(logs, clock, days).items()
        }

    def sub_category_breakdown(self, day_logs: Iterable[ActivityLog], weights: PillarWeights) -> Dict[str, Dict[str, Any]]:
        """
        Очки по подкатегориям столпа и их взвешенный вклад.

        Только для отображения: на pillar_score не влияет.
        """
        raw: Dict[str, int] = {key: 0 for key in weights.weights}
        for log in day_logs:
            if log.pillar != weights.pillar:
                continue
            key = log.sub_category.key
            raw[key] = raw.get(key, 0) + log.points_earned

        return {
            key: {
                "points": points,
                "weight": weights.get(key),
                "weighted": round(points * weights.get(key) / 100, 2)
            }
            for key, points in raw.items()
        }

__all__ = [
    'POINTS_THRESHOLD', 'PillarScore', 'DailyScoreAggregator',
    'calculate_daily_points', 'is_pillar_complete', 'points_progress', 'points_remaining'
]
