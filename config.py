#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Configuration
Централизованная конфигурация движка с валидацией

Автор: AI Assistant
Версия: 1.0.0
"""

import os
import sys
from pathlib import Path
from typing import Dict, Any, Tuple
from dataclasses import dataclass, field
from enum import Enum

import pytz

class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

@dataclass
class ScoringConfig:
    """Конфигурация подсчёта очков"""
    points_threshold: int = 100  # фиксированная дневная цель
    min_activity_points: int = 5
    max_activity_points: int = 100

@dataclass
class StreakConfig:
    """Конфигурация серий"""
    warning_window_hours: float = 6.0
    milestones: Tuple[int, ...] = (3, 7, 14, 30, 60, 100, 365)

@dataclass
class ProgressionConfig:
    """Конфигурация прогрессии компаньонов"""
    xp_per_level_multiplier: int = 100
    # стадия -> минимальный уровень
    evolution_levels: Dict[int, int] = field(default_factory=lambda: {2: 10, 3: 25, 4: 50})

@dataclass
class HealthConfig:
    """Конфигурация здоровья компаньонов"""
    max_health: int = 100
    single_miss_decay: int = 10
    consecutive_miss_decay: int = 30
    recovery_per_completion: int = 15

class EngineConfig:
    """Главный класс конфигурации"""

    def __init__(self):
        self.environment = Environment(os.getenv('ENVIRONMENT', 'development'))
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Время
        self.timezone = os.getenv('ENGINE_TIMEZONE', 'UTC')

        # Директории
        self.data_dir = Path(os.getenv('DATA_DIR', 'data'))
        self.log_dir = Path(os.getenv('LOG_DIR', 'logs'))

        self.scoring = ScoringConfig()

        self.streaks = StreakConfig(
            warning_window_hours=float(os.getenv('STREAK_WARNING_HOURS', 6))
        )

        self.progression = ProgressionConfig(
            evolution_levels=self._parse_evolution_levels(os.getenv('EVOLUTION_LEVELS', '10,25,50'))
        )

        self.health = HealthConfig()

        # Логирование
        self.log_level = LogLevel(os.getenv('LOG_LEVEL', 'INFO'))
        self.log_to_file = os.getenv('LOG_TO_FILE', 'false').lower() == 'true'
        self.log_format = os.getenv(
            'LOG_FORMAT',
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )

    @staticmethod
    def _parse_evolution_levels(raw: str) -> Dict[int, int]:
        """'10,25,50' -> {2: 10, 3: 25, 4: 50}"""
        try:
            levels = [int(part.strip()) for part in raw.split(',') if part.strip()]
        except ValueError:
            raise ValueError(f"EVOLUTION_LEVELS должен быть списком чисел через запятую: {raw!r}")
        return {stage: level for stage, level in enumerate(levels, start=2)}

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.timezone not in pytz.all_timezones_set:
            errors.append(f"ENGINE_TIMEZONE неизвестна: {self.timezone}")

        if not 0 <= self.streaks.warning_window_hours <= 24:
            errors.append("STREAK_WARNING_HOURS должен быть от 0 до 24")

        levels = self.progression.evolution_levels
        if len(levels) != 3:
            errors.append("EVOLUTION_LEVELS должен содержать ровно 3 уровня (стадии 2-4)")
        ordered = [levels[stage] for stage in sorted(levels)]
        if any(level <= 1 for level in ordered) or ordered != sorted(set(ordered)):
            errors.append("EVOLUTION_LEVELS должны строго возрастать и быть больше 1")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        handlers = ['console']
        if self.log_to_file:
            handlers.append('file')

        logging_config = {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.log_format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                }
            },
            'loggers': {
                '': {
                    'level': self.log_level.value,
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

        if self.log_to_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            logging_config['handlers']['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': self.log_level.value,
                'formatter': 'default',
                'filename': str(self.log_dir / f"engine_{self.environment.value}.log"),
                'maxBytes': 10485760,  # 10MB
                'backupCount': 5,
                'encoding': 'utf-8'
            }

        return logging_config

    def is_development(self) -> bool:
        """Проверка режима разработки"""
        return self.environment == Environment.DEVELOPMENT

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        return {
            'environment': self.environment.value,
            'timezone': self.timezone,
            'points_threshold': self.scoring.points_threshold,
            'streak_warning_hours': self.streaks.warning_window_hours,
            'evolution_levels': self.progression.evolution_levels,
            'log_level': self.log_level.value,
            'log_to_file': self.log_to_file
        }

# Глобальный экземпляр конфигурации
config = EngineConfig()

__all__ = [
    'config',
    'EngineConfig',
    'Environment',
    'LogLevel',
    'ScoringConfig',
    'StreakConfig',
    'ProgressionConfig',
    'HealthConfig'
]
