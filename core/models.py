#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Core Data Models
Модели данных с валидацией и типизацией

Автор: AI Assistant
Версия: 1.0.0
"""

import re
import uuid
from datetime import datetime, date
from typing import Dict, List, Optional, Union, Any
from dataclasses import dataclass, field
from enum import Enum
import logging

logger = logging.getLogger(__name__)

# ===== ENUMS =====

class Pillar(Enum):
    """Столпы"""
    BODY = "BODY"
    MIND = "MIND"

class PredefinedSubCategory(Enum):
    """Предопределённые подкатегории"""
    TRAINING = "TRAINING"
    SLEEP = "SLEEP"
    NUTRITION = "NUTRITION"
    MEDITATION = "MEDITATION"
    READING = "READING"
    LEARNING = "LEARNING"
    JOURNALING = "JOURNALING"

class TriggerType(Enum):
    """Типы авто-триггеров"""
    WHOOP_RECOVERY_ABOVE = "WHOOP_RECOVERY_ABOVE"
    WHOOP_RECOVERY_BELOW = "WHOOP_RECOVERY_BELOW"
    WHOOP_SLEEP_ABOVE = "WHOOP_SLEEP_ABOVE"
    WHOOP_STRAIN_ABOVE = "WHOOP_STRAIN_ABOVE"
    WHOOP_WORKOUT_TYPE = "WHOOP_WORKOUT_TYPE"
    ACTIVITY_COMPLETED = "ACTIVITY_COMPLETED"

class CompletionSource(Enum):
    """Источник выполнения"""
    MANUAL = "MANUAL"
    WHOOP = "WHOOP"
    AUTO_TRIGGER = "AUTO_TRIGGER"

class Species(Enum):
    """Виды компаньонов (habitanimals)"""
    GORILLA = "gorilla"
    SLOTH = "sloth"
    OX = "ox"
    TURTLE = "turtle"
    FOX = "fox"

PREDEFINED_SUBCATEGORIES: Dict[Pillar, List[PredefinedSubCategory]] = {
    Pillar.BODY: [
        PredefinedSubCategory.TRAINING,
        PredefinedSubCategory.SLEEP,
        PredefinedSubCategory.NUTRITION,
    ],
    Pillar.MIND: [
        PredefinedSubCategory.MEDITATION,
        PredefinedSubCategory.READING,
        PredefinedSubCategory.LEARNING,
        PredefinedSubCategory.JOURNALING,
    ],
}

SPECIES_BY_SUBCATEGORY: Dict[PredefinedSubCategory, Species] = {
    PredefinedSubCategory.TRAINING: Species.GORILLA,
    PredefinedSubCategory.SLEEP: Species.SLOTH,
    PredefinedSubCategory.NUTRITION: Species.OX,
    PredefinedSubCategory.MEDITATION: Species.TURTLE,
    PredefinedSubCategory.JOURNALING: Species.TURTLE,
    PredefinedSubCategory.READING: Species.FOX,
    PredefinedSubCategory.LEARNING: Species.FOX,
}

DEFAULT_COMPANION_NAMES: Dict[Species, str] = {
    Species.GORILLA: "Guiro",
    Species.SLOTH: "Milo",
    Species.OX: "Greeny",
    Species.TURTLE: "Zen",
    Species.FOX: "Finn",
}

# ===== VALIDATION HELPERS =====

class ValidationError(Exception):
    """Ошибка валидации данных"""
    pass

class TriggerConfigurationError(ValidationError):
    """Неверная конфигурация авто-триггера"""
    pass

class WeightConfigurationError(ValidationError):
    """Неверная конфигурация весов"""
    pass

def validate_text(text: str, min_length: int = 1, max_length: int = 1000, field_name: str = "text") -> str:
    """Валидация текстовых полей"""
    if not isinstance(text, str):
        raise ValidationError(f"{field_name} должен быть строкой")

    text = text.strip()
    if len(text) < min_length:
        raise ValidationError(f"{field_name} должен содержать минимум {min_length} символов")

    if len(text) > max_length:
        raise ValidationError(f"{field_name} должен содержать максимум {max_length} символов")

    return text

def validate_enum_value(value: Any, enum_class: type, field_name: str = "value") -> Enum:
    """Приведение к enum (принимает сам enum или его значение)"""
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        valid_values = [e.value for e in enum_class]
        raise ValidationError(f"{field_name} должен быть одним из: {valid_values}")

# ===== SUB-CATEGORIES =====

@dataclass(frozen=True)
class Predefined:
    """Предопределённая подкатегория"""
    value: PredefinedSubCategory

    @property
    def key(self) -> str:
        return self.value.value

@dataclass(frozen=True)
class Custom:
    """Пользовательская подкатегория (нормализованный ключ)"""
    key: str

    def __post_init__(self):
        normalized = normalize_key(self.key)
        if not normalized:
            raise ValidationError("Ключ подкатегории не может быть пустым")
        if normalized in PredefinedSubCategory.__members__:
            raise ValidationError(f"{normalized} - предопределённая подкатегория")
        object.__setattr__(self, "key", normalized)

SubCategory = Union[Predefined, Custom]

def normalize_key(raw: str) -> str:
    """'  Cold  plunge ' -> 'COLD_PLUNGE'"""
    return re.sub(r"\s+", "_", raw.strip()).upper()

def parse_sub_category(raw: Union[str, PredefinedSubCategory, Predefined, Custom]) -> SubCategory:
    """Разбор подкатегории: предопределённые имеют приоритет над пользовательскими"""
    if isinstance(raw, (Predefined, Custom)):
        return raw
    if isinstance(raw, PredefinedSubCategory):
        return Predefined(raw)
    if not isinstance(raw, str):
        raise ValidationError("sub_category должна быть строкой")

    key = normalize_key(raw)
    if key in PredefinedSubCategory.__members__:
        return Predefined(PredefinedSubCategory[key])
    return Custom(key)

def sub_category_pillar(sub_category: SubCategory) -> Optional[Pillar]:
    """Столп предопределённой подкатегории (None для пользовательских)"""
    if isinstance(sub_category, Predefined):
        for pillar, members in PREDEFINED_SUBCATEGORIES.items():
            if sub_category.value in members:
                return pillar
    return None

# ===== CORE MODELS =====

@dataclass
class AutoTriggerRule:
    """Правило авто-выполнения активности"""
    rule_id: str
    activity_id: str
    trigger_type: TriggerType
    threshold_value: Optional[float] = None
    workout_type_id: Optional[int] = None
    trigger_activity_id: Optional[str] = None
    is_active: bool = True

    THRESHOLD_TYPES = (
        TriggerType.WHOOP_RECOVERY_ABOVE,
        TriggerType.WHOOP_RECOVERY_BELOW,
        TriggerType.WHOOP_SLEEP_ABOVE,
        TriggerType.WHOOP_STRAIN_ABOVE,
    )

    def __post_init__(self):
        """Ровно те поля, которые нужны типу триггера"""
        try:
            self.trigger_type = validate_enum_value(self.trigger_type, TriggerType, "trigger_type")
        except ValidationError as e:
            raise TriggerConfigurationError(str(e))

        required = self.required_field
        populated = {
            name for name in ("threshold_value", "workout_type_id", "trigger_activity_id")
            if getattr(self, name) is not None
        }

        if required not in populated:
            raise TriggerConfigurationError(
                f"{required} обязателен для триггера {self.trigger_type.value}"
            )

        extra = populated - {required}
        if extra:
            raise TriggerConfigurationError(
                f"Лишние поля для триггера {self.trigger_type.value}: {sorted(extra)}"
            )

        if self.trigger_type == TriggerType.ACTIVITY_COMPLETED and self.trigger_activity_id == self.activity_id:
            raise TriggerConfigurationError("Активность не может запускать саму себя")

    @property
    def required_field(self) -> str:
        if self.trigger_type in self.THRESHOLD_TYPES:
            return "threshold_value"
        if self.trigger_type == TriggerType.WHOOP_WORKOUT_TYPE:
            return "workout_type_id"
        return "trigger_activity_id"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "activity_id": self.activity_id,
            "trigger_type": self.trigger_type.value,
            "threshold_value": self.threshold_value,
            "workout_type_id": self.workout_type_id,
            "trigger_activity_id": self.trigger_activity_id,
            "is_active": self.is_active
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoTriggerRule":
        return cls(**data)

@dataclass
class Activity:
    """Определение активности (привычки или разовой задачи)"""
    activity_id: str
    user_id: int
    name: str
    pillar: Pillar
    sub_category: SubCategory
    points: int = 10
    is_habit: bool = True
    auto_trigger: Optional[AutoTriggerRule] = None
    archived: bool = False
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    MIN_POINTS = 5
    MAX_POINTS = 100

    def __post_init__(self):
        """Валидация после создания объекта"""
        self.name = validate_text(self.name, min_length=1, max_length=100, field_name="name")
        self.pillar = validate_enum_value(self.pillar, Pillar, "pillar")
        self.sub_category = parse_sub_category(self.sub_category)

        expected_pillar = sub_category_pillar(self.sub_category)
        if expected_pillar is not None and expected_pillar != self.pillar:
            raise ValidationError(
                f"Подкатегория {self.sub_category.key} относится к {expected_pillar.value}, а не {self.pillar.value}"
            )

        if isinstance(self.points, bool) or not isinstance(self.points, int) \
                or not self.MIN_POINTS <= self.points <= self.MAX_POINTS:
            raise ValidationError(f"points должен быть от {self.MIN_POINTS} до {self.MAX_POINTS}")

        if self.auto_trigger is not None and self.auto_trigger.activity_id != self.activity_id:
            raise TriggerConfigurationError("Триггер принадлежит другой активности")

    def update_points(self, points: int) -> None:
        """Изменить стоимость (старые записи сохраняют свой снимок очков)"""
        if isinstance(points, bool) or not isinstance(points, int) \
                or not self.MIN_POINTS <= points <= self.MAX_POINTS:
            raise ValidationError(f"points должен быть от {self.MIN_POINTS} до {self.MAX_POINTS}")
        self.points = points

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "user_id": self.user_id,
            "name": self.name,
            "pillar": self.pillar.value,
            "sub_category": self.sub_category.key,
            "points": self.points,
            "is_habit": self.is_habit,
            "auto_trigger": self.auto_trigger.to_dict() if self.auto_trigger else None,
            "archived": self.archived,
            "created_at": self.created_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        try:
            trigger = data.get("auto_trigger")
            return cls(
                activity_id=data["activity_id"],
                user_id=data["user_id"],
                name=data["name"],
                pillar=data["pillar"],
                sub_category=data["sub_category"],
                points=data.get("points", 10),
                is_habit=data.get("is_habit", True),
                auto_trigger=AutoTriggerRule.from_dict(trigger) if trigger else None,
                archived=data.get("archived", False),
                created_at=data.get("created_at", datetime.now().isoformat())
            )
        except KeyError as e:
            raise ValidationError(f"Не удалось загрузить активность: нет поля {e}")

    @classmethod
    def create(cls, user_id: int, name: str, pillar: Union[Pillar, str],
               sub_category: Union[str, SubCategory], points: int = 10,
               is_habit: bool = True) -> "Activity":
        """Создание новой активности"""
        return cls(
            activity_id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            pillar=pillar,
            sub_category=sub_category,
            points=points,
            is_habit=is_habit
        )

@dataclass(frozen=True)
class ActivityLog:
    """Запись о выполнении (неизменяемая, удаляется целиком)"""
    log_id: str
    activity_id: str
    completed_at: datetime
    points_earned: int
    pillar: Pillar
    sub_category: SubCategory
    source: CompletionSource = CompletionSource.MANUAL
    details: Optional[Dict[str, Any]] = None
    # компаньон, получивший XP за это выполнение
    awarded_species: Optional[Species] = None

    def __post_init__(self):
        if self.completed_at.tzinfo is None:
            raise ValidationError("completed_at должен содержать таймзону")
        if self.points_earned < 0:
            raise ValidationError("points_earned не может быть отрицательным")

    @property
    def has_details(self) -> bool:
        return bool(self.details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_id": self.log_id,
            "activity_id": self.activity_id,
            "completed_at": self.completed_at.isoformat(),
            "points_earned": self.points_earned,
            "pillar": self.pillar.value,
            "sub_category": self.sub_category.key,
            "source": self.source.value,
            "details": self.details,
            "awarded_species": self.awarded_species.value if self.awarded_species else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityLog":
        return cls(
            log_id=data["log_id"],
            activity_id=data["activity_id"],
            completed_at=datetime.fromisoformat(data["completed_at"]),
            points_earned=data["points_earned"],
            pillar=Pillar(data["pillar"]),
            sub_category=parse_sub_category(data["sub_category"]),
            source=CompletionSource(data.get("source", CompletionSource.MANUAL.value)),
            details=data.get("details"),
            awarded_species=Species(data["awarded_species"]) if data.get("awarded_species") else None
        )

    @classmethod
    def for_activity(cls, activity: Activity, completed_at: datetime,
                     source: CompletionSource = CompletionSource.MANUAL,
                     details: Optional[Dict[str, Any]] = None) -> "ActivityLog":
        """Снимок очков и категории активности на момент выполнения"""
        return cls(
            log_id=str(uuid.uuid4()),
            activity_id=activity.activity_id,
            completed_at=completed_at,
            points_earned=activity.points,
            pillar=activity.pillar,
            sub_category=activity.sub_category,
            source=source,
            details=details
        )

@dataclass
class Companion:
    """Компаньон (habitanimal)"""
    species: Species
    name: str = ""
    xp: int = 0
    level: int = 1
    evolution_stage: int = 1
    health: int = 100
    last_interaction: Optional[date] = None

    def __post_init__(self):
        """Валидация после создания объекта"""
        self.species = validate_enum_value(self.species, Species, "species")
        if not self.name:
            self.name = DEFAULT_COMPANION_NAMES[self.species]
        self.xp = max(0, self.xp)
        self.level = max(1, self.level)
        self.evolution_stage = min(4, max(1, self.evolution_stage))
        self.health = min(100, max(0, self.health))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "species": self.species.value,
            "name": self.name,
            "xp": self.xp,
            "level": self.level,
            "evolution_stage": self.evolution_stage,
            "health": self.health,
            "last_interaction": self.last_interaction.isoformat() if self.last_interaction else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Companion":
        last = data.get("last_interaction")
        return cls(
            species=data["species"],
            name=data.get("name", ""),
            xp=data.get("xp", 0),
            level=data.get("level", 1),
            evolution_stage=data.get("evolution_stage", 1),
            health=data.get("health", 100),
            last_interaction=date.fromisoformat(last) if last else None
        )

# ===== EXPORT =====

__all__ = [
    # Enums
    'Pillar', 'PredefinedSubCategory', 'TriggerType', 'CompletionSource', 'Species',
    'PREDEFINED_SUBCATEGORIES', 'SPECIES_BY_SUBCATEGORY', 'DEFAULT_COMPANION_NAMES',

    # Exceptions
    'ValidationError', 'TriggerConfigurationError', 'WeightConfigurationError',

    # Validation functions
    'validate_text', 'validate_enum_value',

    # Sub-categories
    'Predefined', 'Custom', 'SubCategory', 'normalize_key', 'parse_sub_category', 'sub_category_pillar',

    # Models
    'AutoTriggerRule', 'Activity', 'ActivityLog', 'Companion'
]
