# services/completion_service.py

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Optional, Tuple, Union, Any

from config import config
from core.health import calculate_health_decay, recover_health
from core.models import (
    Activity, ActivityLog, AutoTriggerRule, Companion, CompletionSource, Pillar, Species,
    SubCategory, TriggerType, validate_enum_value
)
from core.progression import EvolutionTable, ProgressionEngine, ProgressionResult, species_for
from core.scoring import DailyScoreAggregator, PillarScore
from core.streaks import StreakPillar, StreakState, StreakTracker, new_milestones
from core.triggers import (
    ActivityCompletedEvent, AutoTriggerEvaluator, TriggerEvaluationResult, TriggerEvent,
    build_trigger_rule
)
from core.weights import PillarWeights, WeightNormalizer, WeightPreset, weights_for_preset
from services.data_service import DataService, get_data_service
from utils.datetime_utils import EvaluationClock

logger = logging.getLogger(__name__)

# ===== ОШИБКИ =====

class EngineError(Exception):
    """Ошибка операции движка"""
    pass

class ActivityNotFoundError(EngineError):
    """Активность не найдена"""
    pass

class AlreadyCompletedError(EngineError):
    """Привычка уже выполнена за этот день"""
    pass

class CompanionNotFoundError(EngineError):
    """Компаньон не найден"""
    pass

# ===== РЕЗУЛЬТАТЫ =====

@dataclass
class CompletionOutcome:
    """Итог выполнения активности (включая каскад авто-триггеров)"""
    log: ActivityLog
    pillar_scores: Dict[Pillar, PillarScore]
    streaks: Dict[StreakPillar, StreakState]
    progression: Optional[ProgressionResult] = None
    milestones: Dict[StreakPillar, List[int]] = field(default_factory=dict)
    triggered: List[TriggerEvaluationResult] = field(default_factory=list)
    cascade_progression: List[ProgressionResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log": self.log.to_dict(),
            "pillar_scores": {p.value: s.to_dict() for p, s in self.pillar_scores.items()},
            "streaks": {k.value: s.to_dict() for k, s in self.streaks.items()},
            "progression": self.progression.to_dict() if self.progression else None,
            "milestones": {k.value: days for k, days in self.milestones.items()},
            "triggered": [r.to_dict() for r in self.triggered if r.created]
        }

@dataclass
class UncompleteOutcome:
    """Итог отмены выполнения"""
    removed: bool
    pillar_scores: Dict[Pillar, PillarScore]
    streaks: Dict[StreakPillar, StreakState]
    log: Optional[ActivityLog] = None
    progression: Optional[ProgressionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed": self.removed,
            "log": self.log.to_dict() if self.log else None,
            "pillar_scores": {p.value: s.to_dict() for p, s in self.pillar_scores.items()},
            "streaks": {k.value: s.to_dict() for k, s in self.streaks.items()},
            "progression": self.progression.to_dict() if self.progression else None
        }

@dataclass
class SyncOutcome:
    """Итог синхронизации биометрии"""
    results: List[TriggerEvaluationResult]
    completions: List[ActivityLog]
    progression: List[ProgressionResult]
    pillar_scores: Dict[Pillar, PillarScore]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "completions": [log.to_dict() for log in self.completions],
            "progression": [p.to_dict() for p in self.progression],
            "pillar_scores": {p.value: s.to_dict() for p, s in self.pillar_scores.items()}
        }

@dataclass
class DailyStatus:
    """Состояние дня: счёт по столпам и серии"""
    day: date
    pillar_scores: Dict[Pillar, PillarScore]
    streaks: Dict[StreakPillar, StreakState]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.day.isoformat(),
            "pillar_scores": {p.value: s.to_dict() for p, s in self.pillar_scores.items()},
            "streaks": {k.value: s.to_dict() for k, s in self.streaks.items()}
        }

# ===== СЕРВИС =====

class CompletionService:
    """
    Выполнение и отмена активностей, синхронизация биометрии, правка весов.

    Все пересчёты по событию (счёт, серии, XP, эволюция) идут под
    блокировкой аккаунта: новое состояние компаньона вычисляется до записи
    и сохраняется вместе с ней.
    """

    def __init__(self, data_service: DataService = None,
                 evolution_table: Optional[EvolutionTable] = None,
                 warning_window_hours: Optional[float] = None):
        self.data_service = data_service or get_data_service()
        self.aggregator = DailyScoreAggregator()
        self.streak_tracker = StreakTracker(
            warning_window_hours if warning_window_hours is not None else config.streaks.warning_window_hours
        )
        self.evaluator = AutoTriggerEvaluator()
        self.progression = ProgressionEngine(
            evolution_table or EvolutionTable(config.progression.evolution_levels)
        )
        self.normalizer = WeightNormalizer()
        self.health_config = config.health

    # ===== АКТИВНОСТИ =====

    def create_activity(self, user_id: int, name: str, pillar: Union[Pillar, str],
                        sub_category: Union[str, SubCategory], points: int = 10,
                        is_habit: bool = True) -> Activity:
        """Создать активность"""
        activity = Activity.create(user_id, name, pillar, sub_category, points, is_habit)
        self.data_service.save_activity(activity)
        logger.info(f"✅ Активность '{activity.name}' создана ({activity.pillar.value}/{activity.sub_category.key})")
        return activity

    def get_activity(self, user_id: int, activity_id: str) -> Activity:
        activity = self.data_service.get_activity(user_id, activity_id)
        if activity is None:
            raise ActivityNotFoundError(f"Активность {activity_id} не найдена")
        return activity

    def update_points(self, user_id: int, activity_id: str, points: int) -> Activity:
        """Изменить стоимость; уже записанные очки не меняются"""
        activity = self.get_activity(user_id, activity_id)
        activity.update_points(points)
        return self.data_service.save_activity(activity)

    def archive_activity(self, user_id: int, activity_id: str) -> Activity:
        activity = self.get_activity(user_id, activity_id)
        activity.archived = True
        return self.data_service.save_activity(activity)

    def set_auto_trigger(self, user_id: int, activity_id: str, trigger_type: Union[TriggerType, str],
                         threshold_value: Optional[float] = None,
                         workout_type_id: Optional[int] = None,
                         trigger_activity_id: Optional[str] = None) -> AutoTriggerRule:
        """Назначить активности правило авто-выполнения (заменяет предыдущее)"""
        activity = self.get_activity(user_id, activity_id)
        rule = build_trigger_rule(
            activity_id, trigger_type,
            threshold_value=threshold_value,
            workout_type_id=workout_type_id,
            trigger_activity_id=trigger_activity_id,
            known_activity_ids=self.data_service.get_activities(user_id).keys()
        )
        activity.auto_trigger = rule
        self.data_service.save_activity(activity)
        logger.info(f"🔧 Авто-триггер {rule.trigger_type.value} назначен активности {activity_id}")
        return rule

    def clear_auto_trigger(self, user_id: int, activity_id: str):
        activity = self.get_activity(user_id, activity_id)
        activity.auto_trigger = None
        self.data_service.save_activity(activity)

    # ===== ВЫПОЛНЕНИЕ =====

    def _species_for(self, user_id: int, sub_category: SubCategory) -> Optional[Species]:
        return species_for(sub_category, self.data_service.get_custom_species(user_id))

    def _companion_after(self, user_id: int, log: ActivityLog, clock: EvaluationClock):
        """Новое состояние компаньона после выполнения (без записи)"""
        species = self._species_for(user_id, log.sub_category)
        if species is None:
            return None, None

        companion = self.data_service.get_companion(user_id, species)
        if companion is None:
            raise CompanionNotFoundError(f"Компаньон {species.value} не найден у пользователя {user_id}")

        updated, result = self.progression.advance(companion, log.points_earned)
        day = clock.local_date(log.completed_at)
        # выполнение задним числом не считается пропуском
        health = calculate_health_decay(
            updated.health, updated.last_interaction, day,
            single_miss=self.health_config.single_miss_decay,
            consecutive_miss=self.health_config.consecutive_miss_decay
        )
        health = recover_health(health, self.health_config.recovery_per_completion)
        last_interaction = max(day, updated.last_interaction) if updated.last_interaction else day
        return replace(updated, health=health, last_interaction=last_interaction), result

    def _commit_completion(self, user_id: int, log: ActivityLog, clock: EvaluationClock,
                           single_writer: bool) -> Tuple[ActivityLog, Optional[ProgressionResult]]:
        """
        Записать выполнение вместе с новым состоянием компаньона.

        Возвращает записанный лог (с отметкой, какому компаньону начислен XP)
        и результат прогрессии; AlreadyCompletedError, если запись
        отклонена проверкой single-writer.
        """
        companion, result = self._companion_after(user_id, log, clock)
        if companion is not None:
            log = replace(log, awarded_species=companion.species)
        if not self.data_service.insert_completion(user_id, log, clock, single_writer=single_writer):
            raise AlreadyCompletedError(
                f"Активность {log.activity_id} уже выполнена {clock.local_date(log.completed_at)}"
            )
        if companion is not None:
            self.data_service.save_companion(user_id, companion)
        return log, result

    def _run_triggers(self, user_id: int, event: TriggerEvent, clock: EvaluationClock):
        """Проверить правила и записать созданные выполнения"""
        results = self.evaluator.evaluate(
            self.data_service.get_rules(user_id),
            self.data_service.get_activities(user_id, include_archived=True),
            event,
            clock,
            existing_logs=self.data_service.get_logs(user_id)
        )

        completions, progression = [], []
        for result in results:
            if result.completion is None:
                continue
            try:
                log, progress = self._commit_completion(user_id, result.completion, clock, single_writer=True)
            except AlreadyCompletedError:
                # параллельное выполнение успело раньше
                logger.debug(f"Авто-выполнение {result.activity_id} уже записано")
                continue
            completions.append(log)
            if progress is not None:
                progression.append(progress)
            logger.info(f"✅ Авто-выполнение {result.activity_id}: {result.completion.details.get('reason')}")
        return results, completions, progression

    def complete_activity(self, user_id: int, activity_id: str, clock: EvaluationClock,
                          details: Optional[Dict[str, Any]] = None,
                          source: Union[CompletionSource, str] = CompletionSource.MANUAL) -> CompletionOutcome:
        """Отметить активность выполненной"""
        source = validate_enum_value(source, CompletionSource, "source")

        with self.data_service.account_lock(user_id):
            activity = self.get_activity(user_id, activity_id)
            if activity.archived:
                raise ActivityNotFoundError(f"Активность {activity_id} в архиве")

            streaks_before = self._streaks(user_id, clock)

            log = ActivityLog.for_activity(activity, clock.now, source=source, details=details)
            try:
                log, progression = self._commit_completion(user_id, log, clock, single_writer=activity.is_habit)
            except AlreadyCompletedError:
                logger.warning(f"⚠️ Привычка {activity_id} уже выполнена сегодня (пользователь {user_id})")
                raise

            triggered, _, cascade = self._run_triggers(
                user_id, ActivityCompletedEvent(clock.today, activity_id), clock
            )

            streaks = self._streaks(user_id, clock)
            milestones = {}
            for key, state in streaks.items():
                reached = new_milestones(streaks_before[key].current_streak_days, state.current_streak_days)
                if reached:
                    milestones[key] = reached

            outcome = CompletionOutcome(
                log=log,
                pillar_scores=self._scores(user_id, clock.today, clock),
                streaks=streaks,
                progression=progression,
                milestones=milestones,
                triggered=triggered,
                cascade_progression=cascade
            )

        logger.info(
            f"✅ {activity.name} выполнена пользователем {user_id} (+{log.points_earned}, "
            f"{activity.pillar.value}: {outcome.pillar_scores[activity.pillar].score}/100)"
        )
        return outcome

    def uncomplete_activity(self, user_id: int, activity_id: str, clock: EvaluationClock) -> UncompleteOutcome:
        """Отменить последнее выполнение активности за сегодня"""
        with self.data_service.account_lock(user_id):
            self.get_activity(user_id, activity_id)

            day_logs = self.data_service.logs_for_day(user_id, clock.today, clock, activity_id)
            if not day_logs:
                logger.debug(f"Нечего отменять для {activity_id} ({clock.today})")
                return UncompleteOutcome(
                    removed=False,
                    pillar_scores=self._scores(user_id, clock.today, clock),
                    streaks=self._streaks(user_id, clock)
                )

            latest = max(day_logs, key=lambda log: log.completed_at)
            companion, progression = None, None
            # XP снимается только с того компаньона, которому он был начислен
            species = latest.awarded_species
            if species is not None:
                current = self.data_service.get_companion(user_id, species)
                if current is None:
                    raise CompanionNotFoundError(f"Компаньон {species.value} не найден у пользователя {user_id}")
                # здоровье при отмене не откатывается
                companion, progression = self.progression.advance(current, -latest.points_earned)

            removed = self.data_service.remove_latest_completion(user_id, activity_id, clock.today, clock)
            if companion is not None:
                self.data_service.save_companion(user_id, companion)

            outcome = UncompleteOutcome(
                removed=removed is not None,
                log=removed,
                pillar_scores=self._scores(user_id, clock.today, clock),
                streaks=self._streaks(user_id, clock),
                progression=progression
            )

        logger.info(f"🔄 Выполнение {activity_id} отменено пользователем {user_id} (-{latest.points_earned})")
        return outcome

    def sync_biometrics(self, user_id: int, event: TriggerEvent, clock: EvaluationClock) -> SyncOutcome:
        """Проверить авто-триггеры по биометрическому событию"""
        with self.data_service.account_lock(user_id):
            if isinstance(event, ActivityCompletedEvent) and not self.data_service.has_completion(
                    user_id, event.activity_id, event.event_date, clock):
                logger.warning(
                    f"⚠️ Активность {event.activity_id} не выполнена {event.event_date}, событие пропущено"
                )
                return SyncOutcome(
                    results=[], completions=[], progression=[],
                    pillar_scores=self._scores(user_id, event.event_date, clock)
                )
            results, completions, progression = self._run_triggers(user_id, event, clock)
            scores = self._scores(user_id, event.event_date, clock)

        logger.info(
            f"🔄 Синхронизация {event.event_date} для пользователя {user_id}: "
            f"правил сработало {sum(1 for r in results if r.triggered)}, создано выполнений {len(completions)}"
        )
        return SyncOutcome(results=results, completions=completions, progression=progression, pillar_scores=scores)

    # ===== ВЕСА =====

    def edit_weight(self, user_id: int, pillar: Union[Pillar, str], category: Union[str, SubCategory],
                    new_value: int) -> PillarWeights:
        """Изменить вес подкатегории с перераспределением остальных"""
        pillar = validate_enum_value(pillar, Pillar, "pillar")
        with self.data_service.account_lock(user_id):
            current = self.data_service.get_weights(user_id, pillar)
            updated = self.normalizer.apply_edit(current, category, new_value)
            if updated is not current:
                self.data_service.save_weights(user_id, updated, preset=WeightPreset.CUSTOM)
                logger.info(f"🔧 Веса {pillar.value} пользователя {user_id}: {updated.weights}")
        return updated

    def apply_preset(self, user_id: int, preset: Union[WeightPreset, str],
                     body: Optional[Dict[str, int]] = None,
                     mind: Optional[Dict[str, int]] = None) -> Dict[Pillar, PillarWeights]:
        preset = validate_enum_value(preset, WeightPreset, "preset")
        weights = weights_for_preset(preset, body, mind)
        with self.data_service.account_lock(user_id):
            for pillar_weights in weights.values():
                self.data_service.save_weights(user_id, pillar_weights, preset=preset)
        logger.info(f"🔧 Пресет весов {preset.value} применён для пользователя {user_id}")
        return weights

    # ===== СОСТОЯНИЕ =====

    def _scores(self, user_id: int, day: date, clock: EvaluationClock) -> Dict[Pillar, PillarScore]:
        return self.aggregator.score_day(self.data_service.get_logs(user_id), day, clock)

    def _streaks(self, user_id: int, clock: EvaluationClock) -> Dict[StreakPillar, StreakState]:
        history = self.aggregator.completion_history(self.data_service.get_logs(user_id), clock)
        return self.streak_tracker.evaluate_all(history, clock)

    def daily_status(self, user_id: int, clock: EvaluationClock) -> DailyStatus:
        """Счёт обоих столпов за сегодня и все серии"""
        with self.data_service.account_lock(user_id):
            return DailyStatus(
                day=clock.today,
                pillar_scores=self._scores(user_id, clock.today, clock),
                streaks=self._streaks(user_id, clock)
            )

    def companion_status(self, user_id: int, species: Union[Species, str], clock: EvaluationClock) -> Companion:
        """Компаньон со здоровьем, пересчитанным на сегодня"""
        species = validate_enum_value(species, Species, "species")
        companion = self.data_service.get_companion(user_id, species)
        if companion is None:
            raise CompanionNotFoundError(f"Компаньон {species.value} не найден у пользователя {user_id}")
        health = calculate_health_decay(
            companion.health, companion.last_interaction, clock.today,
            single_miss=self.health_config.single_miss_decay,
            consecutive_miss=self.health_config.consecutive_miss_decay
        )
        return replace(companion, health=health)

# Глобальный экземпляр
_global_completion_service = None

def get_completion_service() -> CompletionService:
    """Получить глобальный экземпляр CompletionService"""
    global _global_completion_service
    if _global_completion_service is None:
        _global_completion_service = CompletionService()
    return _global_completion_service

def initialize_completion_service(data_service: DataService = None) -> CompletionService:
    """Инициализация глобального CompletionService"""
    global _global_completion_service
    _global_completion_service = CompletionService(data_service)
    return _global_completion_service
