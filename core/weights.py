#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Pillar Weights
Веса подкатегорий внутри столпа: всегда целые и в сумме ровно 100

Автор: AI Assistant
Версия: 1.0.0
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Union, Any
from dataclasses import dataclass, field
from enum import Enum
import logging

from core.models import (
    Pillar, SubCategory, WeightConfigurationError, parse_sub_category, validate_enum_value
)

logger = logging.getLogger(__name__)

REQUIRED_SUM = 100

# ===== PRESETS =====

class WeightPreset(Enum):
    """Готовые наборы весов"""
    BALANCED = "BALANCED"
    ATHLETE = "ATHLETE"
    RECOVERY = "RECOVERY"
    KNOWLEDGE = "KNOWLEDGE"
    CUSTOM = "CUSTOM"

WEIGHT_PRESETS: Dict[WeightPreset, Dict[Pillar, Dict[str, int]]] = {
    WeightPreset.BALANCED: {
        Pillar.BODY: {"TRAINING": 35, "SLEEP": 35, "NUTRITION": 30},
        Pillar.MIND: {"MEDITATION": 40, "READING": 30, "LEARNING": 30},
    },
    WeightPreset.ATHLETE: {
        Pillar.BODY: {"TRAINING": 50, "SLEEP": 35, "NUTRITION": 15},
        Pillar.MIND: {"MEDITATION": 50, "READING": 25, "LEARNING": 25},
    },
    WeightPreset.RECOVERY: {
        Pillar.BODY: {"TRAINING": 20, "SLEEP": 50, "NUTRITION": 30},
        Pillar.MIND: {"MEDITATION": 50, "READING": 30, "LEARNING": 20},
    },
    WeightPreset.KNOWLEDGE: {
        Pillar.BODY: {"TRAINING": 30, "SLEEP": 40, "NUTRITION": 30},
        Pillar.MIND: {"MEDITATION": 20, "READING": 40, "LEARNING": 40},
    },
}
# CUSTOM по умолчанию совпадает с BALANCED
WEIGHT_PRESETS[WeightPreset.CUSTOM] = WEIGHT_PRESETS[WeightPreset.BALANCED]

# ===== VALIDATION =====

def _category_key(category: Union[str, SubCategory]) -> str:
    return parse_sub_category(category).key

def validate_weights(weights: Dict[str, int]) -> List[str]:
    """Список ошибок (пустой, если веса корректны)"""
    errors = []

    if not weights:
        errors.append("Набор весов пуст")
        return errors

    for key, value in weights.items():
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"Вес {key} должен быть целым числом")
        elif not 0 <= value <= REQUIRED_SUM:
            errors.append(f"Вес {key} должен быть от 0 до {REQUIRED_SUM}, получено {value}")

    if not errors:
        total = sum(weights.values())
        if total != REQUIRED_SUM:
            errors.append(f"Сумма весов должна быть {REQUIRED_SUM}, получено {total}")

    return errors

@dataclass(frozen=True)
class PillarWeights:
    """Веса подкатегорий одного столпа"""
    pillar: Pillar
    weights: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "pillar", validate_enum_value(self.pillar, Pillar, "pillar"))
        normalized = {_category_key(key): value for key, value in self.weights.items()}
        if len(normalized) != len(self.weights):
            raise WeightConfigurationError("Повторяющиеся подкатегории в наборе весов")

        errors = validate_weights(normalized)
        if errors:
            raise WeightConfigurationError(f"{self.pillar.value}: " + "; ".join(errors))
        object.__setattr__(self, "weights", normalized)

    def get(self, category: Union[str, SubCategory], default: int = 0) -> int:
        return self.weights.get(_category_key(category), default)

    def to_dict(self) -> Dict[str, Any]:
        return {"pillar": self.pillar.value, "weights": dict(self.weights)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PillarWeights":
        return cls(pillar=Pillar(data["pillar"]), weights=dict(data["weights"]))

def weights_for_preset(preset: Union[WeightPreset, str],
                       body: Optional[Dict[str, int]] = None,
                       mind: Optional[Dict[str, int]] = None) -> Dict[Pillar, PillarWeights]:
    """
    Веса для пресета.

    Для готовых пресетов переданные веса игнорируются; для CUSTOM берутся
    переданные (или BALANCED, если не переданы). Результат валидируется.
    """
    preset = validate_enum_value(preset, WeightPreset, "preset")
    table = WEIGHT_PRESETS[preset]

    if preset == WeightPreset.CUSTOM:
        body = body if body is not None else table[Pillar.BODY]
        mind = mind if mind is not None else table[Pillar.MIND]
    else:
        body, mind = table[Pillar.BODY], table[Pillar.MIND]

    return {
        Pillar.BODY: PillarWeights(Pillar.BODY, dict(body)),
        Pillar.MIND: PillarWeights(Pillar.MIND, dict(mind)),
    }

# ===== NORMALIZER =====

def _round_half_up(numerator: int, denominator: int) -> int:
    return int((Decimal(numerator) / Decimal(denominator)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

class WeightNormalizer:
    """Пропорциональное перераспределение весов после правки одного из них"""

    @staticmethod
    def redistribute(weights: Dict[str, int], category: Union[str, SubCategory], new_value: int) -> Dict[str, int]:
        """
        Установить вес category = new_value, остальные пересчитать пропорционально.

        Остаток от округления добавляется к первому подходящему весу
        (в порядке словаря), поэтому результат детерминирован.
        Увеличение при нулевых остальных весах - no-op.
        """
        key = _category_key(category)
        if key not in weights:
            raise WeightConfigurationError(f"Неизвестная подкатегория: {key}")
        if isinstance(new_value, bool) or not isinstance(new_value, int) or not 0 <= new_value <= REQUIRED_SUM:
            raise WeightConfigurationError(f"Новый вес должен быть целым от 0 до {REQUIRED_SUM}")

        others = [k for k in weights if k != key]
        if not others:
            logger.debug(f"Единственный вес {key} не редактируется")
            return dict(weights)

        room = REQUIRED_SUM - new_value
        others_sum = sum(weights[k] for k in others)

        if others_sum == 0:
            if new_value >= weights[key]:
                # освободить место не у кого
                return dict(weights)
            share, remainder = divmod(room, len(others))
            redistributed = {k: share + (1 if i < remainder else 0) for i, k in enumerate(others)}
        else:
            redistributed = {k: _round_half_up(room * weights[k], others_sum) for k in others}

        residual = room - sum(redistributed.values())
        for k in others:
            if residual == 0:
                break
            adjusted = min(REQUIRED_SUM, max(0, redistributed[k] + residual))
            residual -= adjusted - redistributed[k]
            redistributed[k] = adjusted

        result = {}
        for k in weights:
            result[k] = new_value if k == key else redistributed[k]
        return result

    def apply_edit(self, pillar_weights: PillarWeights, category: Union[str, SubCategory],
                   new_value: int) -> PillarWeights:
        """Правка веса с возвратом нового PillarWeights"""
        updated = self.redistribute(pillar_weights.weights, category, new_value)
        if updated == pillar_weights.weights:
            return pillar_weights
        logger.debug(f"{pillar_weights.pillar.value}: {pillar_weights.weights} -> {updated}")
        return PillarWeights(pillar_weights.pillar, updated)

__all__ = [
    'REQUIRED_SUM', 'WeightPreset', 'WEIGHT_PRESETS', 'PillarWeights',
    'validate_weights', 'weights_for_preset', 'WeightNormalizer'
]
