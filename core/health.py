#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - Companion Health
Здоровье компаньонов по правилу "never miss twice"

Автор: AI Assistant
Версия: 1.0.0
"""

from datetime import date
from typing import Optional

MAX_HEALTH = 100
MIN_HEALTH = 0
HEALTH_DECAY_SINGLE_MISS = 10
HEALTH_DECAY_CONSECUTIVE_MISS = 30
HEALTH_RECOVERY_PER_COMPLETION = 15
ATTENTION_THRESHOLD = 50

def days_between(first: date, second: date) -> int:
    return abs((second - first).days)

def calculate_health_decay(current_health: int, last_interaction: Optional[date], today: date,
                           single_miss: int = HEALTH_DECAY_SINGLE_MISS,
                           consecutive_miss: int = HEALTH_DECAY_CONSECUTIVE_MISS) -> int:
    """
    Здоровье с учётом пропусков.

    Выполнено сегодня или вчера - без изменений; один пропущенный день -
    небольшой штраф; каждый следующий день подряд - крупный.
    """
    if last_interaction is None or today <= last_interaction:
        # более раннее выполнение не считается пропуском
        return current_health

    days_missed = days_between(last_interaction, today)
    if days_missed <= 1:
        return current_health

    decay = single_miss + (days_missed - 2) * consecutive_miss
    return max(MIN_HEALTH, current_health - decay)

def recover_health(current_health: int, amount: int = HEALTH_RECOVERY_PER_COMPLETION) -> int:
    return min(MAX_HEALTH, current_health + amount)

def get_mood(health: int) -> str:
    if health >= 80:
        return "happy"
    if health >= 50:
        return "neutral"
    if health >= 30:
        return "tired"
    return "sad"

def needs_attention(health: int) -> bool:
    return health < ATTENTION_THRESHOLD

__all__ = [
    'MAX_HEALTH', 'MIN_HEALTH', 'days_between', 'calculate_health_decay',
    'recover_health', 'get_mood', 'needs_attention'
]
