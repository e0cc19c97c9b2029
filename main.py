#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Habit Engine - CLI
Прогон JSON-сценария (активности + шаги) через движок с выводом итогового состояния

Автор: AI Assistant
Версия: 1.0.0
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError

from config import config
from core.models import ValidationError
from core.triggers import ActivityCompletedEvent
from services import ServiceManager, EngineError
from shared.schemas import (
    PillarScoreOut, ProgressionOut, ReplayDocument, ReplayStep, StreakOut
)
from utils.datetime_utils import EvaluationClock, get_timezone
from utils.logger import configure_logging, setup_logger

logger = logging.getLogger(__name__)

class ReplayRunner:
    """Выполняет шаги сценария по порядку"""

    def __init__(self, manager: ServiceManager, tz_name: str):
        self.service = manager.completion_service
        self.data_service = manager.data_service
        self.tz_name = tz_name
        self.tz = get_timezone(tz_name)
        self.activity_ids: Dict[str, str] = {}

    def _clock(self, step: ReplayStep) -> EvaluationClock:
        moment = step.at or datetime.now(self.tz)
        return EvaluationClock(now=moment, tz=self.tz)

    def _activity_id(self, key: Optional[str]) -> str:
        if key not in self.activity_ids:
            raise EngineError(f"Активность '{key}' не описана в сценарии")
        return self.activity_ids[key]

    def load(self, document: ReplayDocument):
        """Создать активности, затем их авто-триггеры (ссылки по ключу)"""
        for item in document.activities:
            activity = self.service.create_activity(
                document.user_id, item.name, item.pillar.value, item.sub_category,
                points=item.points, is_habit=item.is_habit
            )
            self.activity_ids[item.key] = activity.activity_id

        for item in document.activities:
            if item.auto_trigger is None:
                continue
            trigger = item.auto_trigger
            self.service.set_auto_trigger(
                document.user_id, self.activity_ids[item.key], trigger.trigger_type,
                threshold_value=trigger.threshold_value,
                workout_type_id=trigger.workout_type_id,
                trigger_activity_id=self._activity_id(trigger.trigger_activity) if trigger.trigger_activity else None
            )

    def run_step(self, user_id: int, step: ReplayStep) -> Dict[str, Any]:
        clock = self._clock(step)

        if step.kind == 'complete':
            outcome = self.service.complete_activity(
                user_id, self._activity_id(step.activity), clock, details=step.details
            )
            return {
                "step": step.kind,
                "activity": step.activity,
                "progression": ProgressionOut.from_result(outcome.progression).model_dump() if outcome.progression else None,
                "milestones": {k.value: v for k, v in outcome.milestones.items()},
                "auto_completed": [r.activity_id for r in outcome.triggered if r.created]
            }

        if step.kind == 'uncomplete':
            outcome = self.service.uncomplete_activity(user_id, self._activity_id(step.activity), clock)
            return {
                "step": step.kind,
                "activity": step.activity,
                "removed": outcome.removed,
                "progression": ProgressionOut.from_result(outcome.progression).model_dump() if outcome.progression else None
            }

        if step.kind == 'sync':
            if step.event is None:
                raise EngineError("Шаг sync требует event")
            event = step.event.to_event()
            if isinstance(event, ActivityCompletedEvent):
                event = ActivityCompletedEvent(event.event_date, self._activity_id(event.activity_id))
            outcome = self.service.sync_biometrics(user_id, event, clock)
            return {
                "step": step.kind,
                "triggered": sum(1 for r in outcome.results if r.triggered),
                "completions": [log.details.get("reason") for log in outcome.completions]
            }

        if step.kind == 'weight':
            if step.pillar is None or step.weight is None:
                raise EngineError("Шаг weight требует pillar и weight")
            weights = self.service.edit_weight(user_id, step.pillar.value, step.weight.category, step.weight.new_value)
            return {"step": step.kind, "pillar": step.pillar.value, "weights": weights.weights}

        return {"step": step.kind, **self.status(user_id, clock)}

    def status(self, user_id: int, clock: EvaluationClock) -> Dict[str, Any]:
        status = self.service.daily_status(user_id, clock)
        return {
            "date": status.day.isoformat(),
            "pillars": {p.value: PillarScoreOut.from_score(s).model_dump() for p, s in status.pillar_scores.items()},
            "streaks": {k.value: StreakOut.from_state(s).model_dump() for k, s in status.streaks.items()},
            "companions": [c.to_dict() for c in self.data_service.get_companions(user_id)]
        }

    def replay(self, document: ReplayDocument) -> Dict[str, Any]:
        self.load(document)
        steps: List[Dict[str, Any]] = []
        for step in document.steps:
            try:
                steps.append(self.run_step(document.user_id, step))
            except (EngineError, ValidationError) as e:
                logger.warning(f"⚠️ Шаг {step.kind} отклонён: {e}")
                steps.append({"step": step.kind, "error": str(e)})

        last_clock = self._clock(document.steps[-1]) if document.steps else EvaluationClock.now_in(self.tz_name)
        return {"steps": steps, "final": self.status(document.user_id, last_clock)}

def main():
    """Главная функция"""
    parser = argparse.ArgumentParser(description='Прогон сценария через Habit Engine')
    parser.add_argument('--events', type=str, required=True, help='JSON-файл сценария')
    parser.add_argument('--tz', type=str, default=config.timezone, help='Таймзона пользователя')
    parser.add_argument('--debug', action='store_true', help='Подробное логирование')
    parser.add_argument('--log-file', type=str, help='Дополнительно писать лог в файл (с ротацией)')

    args = parser.parse_args()
    configure_logging(config, debug=args.debug)
    if args.log_file:
        setup_logger(args.log_file, level=logging.DEBUG if args.debug else logging.INFO)

    try:
        with open(args.events, 'r', encoding='utf-8') as f:
            document = ReplayDocument.model_validate(json.load(f))
    except (OSError, json.JSONDecodeError, SchemaValidationError) as e:
        logger.error(f"❌ Не удалось прочитать сценарий {args.events}: {e}")
        sys.exit(1)

    with ServiceManager() as manager:
        if not manager.initialize_services():
            sys.exit(1)
        try:
            result = ReplayRunner(manager, args.tz).replay(document)
        except (EngineError, ValidationError) as e:
            # ошибки описания активностей и триггеров; ошибки шагов попадают в результат
            logger.error(f"❌ Некорректный сценарий {args.events}: {e}")
            sys.exit(1)

    print(json.dumps(result, ensure_ascii=False, indent=2))

if __name__ == "__main__":
    main()
