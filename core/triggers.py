#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Auto Triggers
Автоматическое выполнение активностей по биометрии и по выполнению других активностей

Автор: AI Assistant
Версия: 1.0.0
"""

import uuid
from collections import deque
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union, Any
from dataclasses import dataclass
import logging

from core.models import (
    Activity, ActivityLog, AutoTriggerRule, CompletionSource, TriggerType,
    TriggerConfigurationError
)
from utils.datetime_utils import EvaluationClock

logger = logging.getLogger(__name__)

# ===== REFERENCE DATA =====

WHOOP_WORKOUT_TYPES: Dict[int, str] = {
    1: "Running",
    44: "Functional Fitness",
    43: "HIIT",
    0: "Weightlifting",
    63: "Meditation",
    52: "Cycling",
    71: "Yoga",
    48: "Swimming",
    82: "Walking",
    16: "Basketball",
    25: "Golf",
    57: "Tennis",
    64: "Rowing",
    73: "Pilates",
}

def recovery_zone(score: float) -> str:
    """Зона восстановления: green / yellow / red"""
    if score >= 67:
        return "green"
    elif score >= 34:
        return "yellow"
    return "red"

# ===== EVENTS =====

@dataclass(frozen=True)
class BiometricEvent:
    """Биометрические показатели за день (отсутствующие = None)"""
    event_date: date
    recovery_score: Optional[float] = None
    sleep_hours: Optional[float] = None
    strain: Optional[float] = None
    workout_type_id: Optional[int] = None

@dataclass(frozen=True)
class ActivityCompletedEvent:
    """Активность выполнена в указанный день"""
    event_date: date
    activity_id: str

TriggerEvent = Union[BiometricEvent, ActivityCompletedEvent]

@dataclass(frozen=True)
class TriggerEvaluationResult:
    """Результат проверки одного правила"""
    rule_id: str
    activity_id: str
    triggered: bool
    already_completed: bool = False
    completion: Optional[ActivityLog] = None

    @property
    def created(self) -> bool:
        return self.completion is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "activity_id": self.activity_id,
            "triggered": self.triggered,
            "already_completed": self.already_completed,
            "completion": self.completion.to_dict() if self.completion else None
        }

# ===== RULE FACTORY =====

def build_trigger_rule(activity_id: str, trigger_type: Union[TriggerType, str],
                       threshold_value: Optional[float] = None,
                       workout_type_id: Optional[int] = None,
                       trigger_activity_id: Optional[str] = None,
                       known_activity_ids: Optional[Iterable[str]] = None,
                       rule_id: Optional[str] = None) -> AutoTriggerRule:
    """
    Создание правила с проверкой конфигурации.

    Ошибки конфигурации (нет нужного поля, лишние поля, ссылка на себя,
    неизвестная активность) отклоняются здесь, а не при вычислении.
    """
    rule = AutoTriggerRule(
        rule_id=rule_id or str(uuid.uuid4()),
        activity_id=activity_id,
        trigger_type=trigger_type,
        threshold_value=threshold_value,
        workout_type_id=workout_type_id,
        trigger_activity_id=trigger_activity_id
    )

    if known_activity_ids is not None:
        known = set(known_activity_ids)
        if activity_id not in known:
            raise TriggerConfigurationError(f"Активность {activity_id} не найдена")
        if rule.trigger_activity_id is not None and rule.trigger_activity_id not in known:
            raise TriggerConfigurationError(f"Связанная активность {rule.trigger_activity_id} не найдена")

    return rule

def rules_from_activities(activities: Iterable[Activity]) -> List[AutoTriggerRule]:
    return [activity.auto_trigger for activity in activities if activity.auto_trigger is not None]

# ===== PREDICATES =====

def rule_matches(rule: AutoTriggerRule, event: TriggerEvent) -> bool:
    """Предикат правила; отсутствующий показатель - всегда False"""
    trigger_type = rule.trigger_type

    if trigger_type == TriggerType.ACTIVITY_COMPLETED:
        return isinstance(event, ActivityCompletedEvent) and event.activity_id == rule.trigger_activity_id

    if not isinstance(event, BiometricEvent):
        return False

    if trigger_type == TriggerType.WHOOP_RECOVERY_ABOVE:
        return event.recovery_score is not None and event.recovery_score >= rule.threshold_value
    if trigger_type == TriggerType.WHOOP_RECOVERY_BELOW:
        return event.recovery_score is not None and event.recovery_score < rule.threshold_value
    if trigger_type == TriggerType.WHOOP_SLEEP_ABOVE:
        return event.sleep_hours is not None and event.sleep_hours >= rule.threshold_value
    if trigger_type == TriggerType.WHOOP_STRAIN_ABOVE:
        return event.strain is not None and event.strain >= rule.threshold_value
    if trigger_type == TriggerType.WHOOP_WORKOUT_TYPE:
        return event.workout_type_id is not None and event.workout_type_id == rule.workout_type_id

    return False

def trigger_reason(rule: AutoTriggerRule, event: TriggerEvent) -> str:
    """Текст причины для details синтетического выполнения"""
    trigger_type = rule.trigger_type

    if trigger_type in (TriggerType.WHOOP_RECOVERY_ABOVE, TriggerType.WHOOP_RECOVERY_BELOW):
        return f"Auto-triggered: Recovery {event.recovery_score:g}%"
    if trigger_type == TriggerType.WHOOP_SLEEP_ABOVE:
        return f"Auto-triggered: Sleep {event.sleep_hours:.1f} hours"
    if trigger_type == TriggerType.WHOOP_STRAIN_ABOVE:
        return f"Auto-triggered: Strain {event.strain:.1f}"
    if trigger_type == TriggerType.WHOOP_WORKOUT_TYPE:
        workout = WHOOP_WORKOUT_TYPES.get(event.workout_type_id, f"type {event.workout_type_id}")
        return f"Auto-triggered: Workout {workout} logged"
    if trigger_type == TriggerType.ACTIVITY_COMPLETED:
        return "Auto-triggered: Linked activity completed"
    return "Auto-triggered"

def _completion_moment(event_date: date, clock: EvaluationClock) -> datetime:
    """Сегодня - текущий момент; прошлые дни (ресинк) - полдень того дня"""
    if event_date == clock.today:
        return clock.now
    start, _ = clock.day_bounds(event_date)
    return start + timedelta(hours=12)

# ===== EVALUATOR =====

class AutoTriggerEvaluator:
    """Проверка правил по событию и синтез выполнений"""

    def __init__(self, cascade: bool = True):
        self.cascade = cascade

    @staticmethod
    def _is_live(activity_id: Optional[str], activities: Dict[str, Activity]) -> bool:
        activity = activities.get(activity_id) if activity_id is not None else None
        return activity is not None and not activity.archived

    def evaluate(self, rules: Iterable[AutoTriggerRule], activities: Dict[str, Activity],
                 event: TriggerEvent, clock: EvaluationClock,
                 existing_logs: Iterable[ActivityLog] = ()) -> List[TriggerEvaluationResult]:
        """
        Проверить правила против события.

        Выполнение синтезируется, только если у активности нет выполнения
        за этот день (в existing_logs или созданного ранее в этом же проходе),
        поэтому повторная доставка того же события ничего не создаёт.
        Созданные выполнения порождают ActivityCompletedEvent, так что
        цепочки ACTIVITY_COMPLETED срабатывают в том же проходе.
        """
        rules = list(rules)
        completed: Set[Tuple[str, date]] = {
            (log.activity_id, clock.local_date(log.completed_at)) for log in existing_logs
        }
        results: List[TriggerEvaluationResult] = []
        queue = deque([event])

        while queue:
            current = queue.popleft()
            for rule in rules:
                result = self._evaluate_rule(rule, activities, current, clock, completed)
                if result is None:
                    continue
                results.append(result)
                if result.completion is not None and self.cascade:
                    queue.append(ActivityCompletedEvent(current.event_date, result.activity_id))

        return results

    def _evaluate_rule(self, rule: AutoTriggerRule, activities: Dict[str, Activity],
                       event: TriggerEvent, clock: EvaluationClock,
                       completed: Set[Tuple[str, date]]) -> Optional[TriggerEvaluationResult]:
        if not rule.is_active:
            return None

        is_activity_rule = rule.trigger_type == TriggerType.ACTIVITY_COMPLETED
        if is_activity_rule != isinstance(event, ActivityCompletedEvent):
            return None

        if not self._is_live(rule.activity_id, activities):
            logger.debug(f"Правило {rule.rule_id}: активность {rule.activity_id} удалена, пропуск")
            return None
        if is_activity_rule and not self._is_live(rule.trigger_activity_id, activities):
            logger.debug(f"Правило {rule.rule_id}: связанная активность {rule.trigger_activity_id} удалена, пропуск")
            return None

        if not rule_matches(rule, event):
            return TriggerEvaluationResult(rule.rule_id, rule.activity_id, triggered=False)

        key = (rule.activity_id, event.event_date)
        if key in completed:
            return TriggerEvaluationResult(rule.rule_id, rule.activity_id, triggered=True, already_completed=True)

        log = ActivityLog.for_activity(
            activities[rule.activity_id],
            completed_at=_completion_moment(event.event_date, clock),
            source=CompletionSource.AUTO_TRIGGER,
            details={"reason": trigger_reason(rule, event), "rule_id": rule.rule_id}
        )
        completed.add(key)
        logger.debug(f"Правило {rule.rule_id} сработало для {rule.activity_id} ({event.event_date})")
        return TriggerEvaluationResult(rule.rule_id, rule.activity_id, triggered=True, completion=log)

__all__ = [
    'WHOOP_WORKOUT_TYPES', 'recovery_zone',
    'BiometricEvent', 'ActivityCompletedEvent', 'TriggerEvent', 'TriggerEvaluationResult',
    'build_trigger_rule', 'rules_from_activities', 'rule_matches', 'trigger_reason',
    'AutoTriggerEvaluator'
]
