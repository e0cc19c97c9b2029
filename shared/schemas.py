from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional, Dict, Any, Union
from datetime import date, datetime
from enum import Enum

from core.models import normalize_key
from core.progression import ProgressionResult
from core.scoring import PillarScore
from core.streaks import StreakState
from core.triggers import ActivityCompletedEvent, BiometricEvent

# Перечисления
class PillarIn(str, Enum):
    BODY = "BODY"
    MIND = "MIND"

class EventType(str, Enum):
    RECOVERY = "RECOVERY"
    SLEEP = "SLEEP"
    STRAIN = "STRAIN"
    WORKOUT = "WORKOUT"
    ACTIVITY_COMPLETED = "ACTIVITY_COMPLETED"

# Входные модели
class WeightEditRequest(BaseModel):
    category: str
    new_value: int = Field(..., ge=0, le=100)

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        v = normalize_key(v)
        if not v:
            raise ValueError('Подкатегория не может быть пустой')
        return v

class BiometricEventIn(BaseModel):
    """Событие { type, value, date, workout_type_id? }"""
    model_config = ConfigDict(populate_by_name=True)

    type: EventType
    event_date: date = Field(..., alias="date")
    value: Optional[float] = None
    workout_type_id: Optional[int] = None
    activity_id: Optional[str] = None

    @model_validator(mode='after')
    def check_payload(self):
        if self.type == EventType.WORKOUT and self.workout_type_id is None:
            raise ValueError('workout_type_id обязателен для WORKOUT')
        if self.type == EventType.ACTIVITY_COMPLETED and not self.activity_id:
            raise ValueError('activity_id обязателен для ACTIVITY_COMPLETED')
        if self.type in (EventType.RECOVERY, EventType.SLEEP, EventType.STRAIN) and self.value is None:
            raise ValueError(f'value обязателен для {self.type.value}')
        if self.type == EventType.RECOVERY and not 0 <= self.value <= 100:
            raise ValueError('Recovery должен быть от 0 до 100')
        return self

    def to_event(self) -> Union[BiometricEvent, ActivityCompletedEvent]:
        if self.type == EventType.ACTIVITY_COMPLETED:
            return ActivityCompletedEvent(event_date=self.event_date, activity_id=self.activity_id)
        if self.type == EventType.RECOVERY:
            return BiometricEvent(event_date=self.event_date, recovery_score=self.value)
        if self.type == EventType.SLEEP:
            return BiometricEvent(event_date=self.event_date, sleep_hours=self.value)
        if self.type == EventType.STRAIN:
            return BiometricEvent(event_date=self.event_date, strain=self.value)
        return BiometricEvent(event_date=self.event_date, workout_type_id=self.workout_type_id)

class TriggerIn(BaseModel):
    trigger_type: str
    threshold_value: Optional[float] = None
    workout_type_id: Optional[int] = None
    trigger_activity: Optional[str] = None  # ключ активности в документе

class ActivityIn(BaseModel):
    key: str
    name: str = Field(..., min_length=1, max_length=100)
    pillar: PillarIn
    sub_category: str
    points: int = Field(10, ge=5, le=100)
    is_habit: bool = True
    auto_trigger: Optional[TriggerIn] = None

class ReplayStep(BaseModel):
    """Шаг сценария для CLI"""
    kind: str
    at: Optional[datetime] = None
    activity: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    event: Optional[BiometricEventIn] = None
    pillar: Optional[PillarIn] = None
    weight: Optional[WeightEditRequest] = None

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v):
        if v not in ('complete', 'uncomplete', 'sync', 'weight', 'status'):
            raise ValueError(f'Неизвестный шаг: {v}')
        return v

class ReplayDocument(BaseModel):
    user_id: int = 1
    activities: List[ActivityIn] = []
    steps: List[ReplayStep] = []

# Выходные модели
class PillarScoreOut(BaseModel):
    pillar_score: int = Field(..., ge=0, le=100)
    completed: bool

    @classmethod
    def from_score(cls, score: PillarScore) -> "PillarScoreOut":
        return cls(pillar_score=score.score, completed=score.completed)

class StreakOut(BaseModel):
    current_streak_days: int = Field(..., ge=0)
    at_risk: bool
    hours_remaining: float = Field(..., ge=0)

    @classmethod
    def from_state(cls, state: StreakState) -> "StreakOut":
        return cls(
            current_streak_days=state.current_streak_days,
            at_risk=state.at_risk,
            hours_remaining=state.display_hours
        )

class ProgressionOut(BaseModel):
    new_level: int = Field(..., ge=1)
    leveled_up: bool
    evolved: bool
    new_evolution_stage: Optional[int] = Field(None, ge=1, le=4)

    @classmethod
    def from_result(cls, result: ProgressionResult) -> "ProgressionOut":
        return cls(
            new_level=result.new_level,
            leveled_up=result.leveled_up,
            evolved=result.evolved,
            new_evolution_stage=result.new_evolution_stage if result.evolved else None
        )
