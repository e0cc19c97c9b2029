#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Progression
Опыт, уровни и эволюция компаньонов

Автор: AI Assistant
Версия: 1.0.0
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple, Union, Any
import logging

from core.models import (
    Companion, Predefined, Species, SubCategory, SPECIES_BY_SUBCATEGORY,
    ValidationError, parse_sub_category
)

logger = logging.getLogger(__name__)

XP_PER_LEVEL_MULTIPLIER = 100
MIN_STAGE = 1
MAX_STAGE = 4

# ===== LEVEL CURVE =====

def xp_for_next_level(level: int) -> int:
    """XP, нужный для перехода с level на level + 1"""
    return level * XP_PER_LEVEL_MULTIPLIER

def total_xp_for_level(level: int) -> int:
    """Накопленный XP для достижения уровня: 1 -> 0, 2 -> 100, 3 -> 300, 4 -> 600"""
    return sum(xp_for_next_level(i) for i in range(1, level))

def calculate_level(total_xp: int) -> int:
    """Уровень по суммарному XP (последовательное вычитание требований уровней)"""
    level = 1
    remaining = max(0, total_xp)
    while remaining >= xp_for_next_level(level):
        remaining -= xp_for_next_level(level)
        level += 1
    return level

def level_progress(total_xp: int) -> Tuple[int, int]:
    """(XP внутри текущего уровня, XP до следующего уровня всего)"""
    level = calculate_level(total_xp)
    return max(0, total_xp) - total_xp_for_level(level), xp_for_next_level(level)

def calculate_habit_xp(points: int, has_details: bool = False) -> int:
    """XP за выполнение равен очкам активности; details на XP не влияют"""
    return points

# ===== EVOLUTION =====

STAGE_NAMES: Dict[int, str] = {1: "Baby", 2: "Teen", 3: "Adult", 4: "Legendary"}

class EvolutionTable:
    """Минимальные уровни стадий 2-4 (стадия 1 - с первого уровня)"""

    DEFAULT_LEVELS: Dict[int, int] = {2: 10, 3: 25, 4: 50}

    def __init__(self, levels: Optional[Dict[int, int]] = None):
        levels = dict(self.DEFAULT_LEVELS if levels is None else levels)

        if sorted(levels) != list(range(MIN_STAGE + 1, MAX_STAGE + 1)):
            raise ValidationError(f"Нужны уровни для стадий {MIN_STAGE + 1}-{MAX_STAGE}")
        ordered = [levels[stage] for stage in sorted(levels)]
        if ordered[0] <= 1 or any(a >= b for a, b in zip(ordered, ordered[1:])):
            raise ValidationError(f"Уровни эволюции должны строго возрастать и быть больше 1: {levels}")

        self.levels = levels

    def stage_for_level(self, level: int) -> int:
        stage = MIN_STAGE
        for candidate in sorted(self.levels):
            if level >= self.levels[candidate]:
                stage = candidate
        return stage

    @staticmethod
    def stage_name(stage: int) -> str:
        return STAGE_NAMES.get(stage, "Unknown")

# ===== ENGINE =====

@dataclass(frozen=True)
class ProgressionResult:
    """Итог изменения XP компаньона"""
    species: Species
    previous_xp: int
    new_xp: int
    previous_level: int
    new_level: int
    previous_evolution_stage: int
    new_evolution_stage: int
    leveled_up: bool
    evolved: bool
    level_ups: Tuple[int, ...] = ()

    @property
    def levels_gained(self) -> int:
        return len(self.level_ups)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "species": self.species.value,
            "xp": self.new_xp,
            "new_level": self.new_level,
            "leveled_up": self.leveled_up,
            "evolved": self.evolved,
            "levels_gained": self.levels_gained
        }
        if self.evolved:
            data["new_evolution_stage"] = self.new_evolution_stage
        return data

class ProgressionEngine:
    """Начисление и списание XP с пересчётом уровня и стадии"""

    def __init__(self, evolution_table: Optional[EvolutionTable] = None):
        self.evolution_table = evolution_table or EvolutionTable()

    def apply_xp(self, companion: Companion, delta: int) -> ProgressionResult:
        """
        Рассчитать новое состояние компаньона после изменения XP на delta.

        Компаньон не изменяется. Отрицательный delta (отмена выполнения)
        ограничен нулём XP; уровень и стадия пересчитываются заново, а
        leveled_up/evolved при списании всегда False.
        """
        new_xp = max(0, companion.xp + delta)
        previous_level = calculate_level(companion.xp)
        new_level = calculate_level(new_xp)

        level_ups: List[int] = []
        if delta > 0:
            # граница может пересекаться несколько раз за одно выполнение
            level = previous_level
            while new_xp >= total_xp_for_level(level + 1):
                level += 1
                level_ups.append(level)

        previous_stage = companion.evolution_stage
        new_stage = self.evolution_table.stage_for_level(new_level)
        evolved = bool(level_ups) and new_stage > previous_stage

        return ProgressionResult(
            species=companion.species,
            previous_xp=companion.xp,
            new_xp=new_xp,
            previous_level=previous_level,
            new_level=new_level,
            previous_evolution_stage=previous_stage,
            new_evolution_stage=new_stage,
            leveled_up=bool(level_ups),
            evolved=evolved,
            level_ups=tuple(level_ups)
        )

    def advance(self, companion: Companion, delta: int) -> Tuple[Companion, ProgressionResult]:
        """Новый экземпляр компаньона с применённым результатом"""
        result = self.apply_xp(companion, delta)
        updated = replace(
            companion,
            xp=result.new_xp,
            level=result.new_level,
            evolution_stage=result.new_evolution_stage
        )
        if result.evolved:
            logger.debug(
                f"{companion.name}: эволюция {self.evolution_table.stage_name(result.previous_evolution_stage)}"
                f" -> {self.evolution_table.stage_name(result.new_evolution_stage)}"
            )
        return updated, result

def species_for(sub_category: Union[str, SubCategory],
                custom_mapping: Optional[Dict[str, Species]] = None) -> Optional[Species]:
    """
    Компаньон для подкатегории.

    Пользовательские подкатегории получают компаньона только через явное
    сопоставление; без него XP не начисляется.
    """
    sub_category = parse_sub_category(sub_category)
    if isinstance(sub_category, Predefined):
        return SPECIES_BY_SUBCATEGORY[sub_category.value]
    return (custom_mapping or {}).get(sub_category.key)

__all__ = [
    'XP_PER_LEVEL_MULTIPLIER', 'STAGE_NAMES',
    'xp_for_next_level', 'total_xp_for_level', 'calculate_level', 'level_progress',
    'calculate_habit_xp', 'EvolutionTable', 'ProgressionResult', 'ProgressionEngine', 'species_for'
]
