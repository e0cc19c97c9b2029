"""
Auto-trigger tests: rule configuration, predicates, idempotency, orphans
and chained ACTIVITY_COMPLETED rules.
"""

from datetime import timedelta

import pytest

from core.models import (
    Activity, AutoTriggerRule, CompletionSource, Pillar, TriggerConfigurationError,
    TriggerType, ValidationError
)
from core.triggers import (
    ActivityCompletedEvent, AutoTriggerEvaluator, BiometricEvent, WHOOP_WORKOUT_TYPES,
    build_trigger_rule, recovery_zone, rule_matches, rules_from_activities
)


@pytest.fixture
def evaluator():
    return AutoTriggerEvaluator()


@pytest.fixture
def activities(training, sleep, meditation):
    return {a.activity_id: a for a in (training, sleep, meditation)}


def recovery_rule(activity_id="meditation-1", threshold=60, trigger_type=TriggerType.WHOOP_RECOVERY_ABOVE):
    return build_trigger_rule(activity_id, trigger_type, threshold_value=threshold, rule_id=f"rule-{activity_id}")


# ===========================================================================
# Configuration
# ===========================================================================

class TestRuleConfiguration:

    @pytest.mark.parametrize("trigger_type", [
        TriggerType.WHOOP_RECOVERY_ABOVE,
        TriggerType.WHOOP_RECOVERY_BELOW,
        TriggerType.WHOOP_SLEEP_ABOVE,
        TriggerType.WHOOP_STRAIN_ABOVE,
        TriggerType.WHOOP_WORKOUT_TYPE,
        TriggerType.ACTIVITY_COMPLETED,
    ])
    def test_missing_required_field_rejected(self, trigger_type):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("a", trigger_type)

    def test_extra_field_rejected(self):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("a", TriggerType.WHOOP_RECOVERY_ABOVE, threshold_value=60, workout_type_id=1)

    def test_self_reference_rejected(self):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("a", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="a")

    def test_unknown_referenced_activity_rejected(self):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("a", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="ghost",
                               known_activity_ids=["a", "b"])

    def test_unknown_owner_rejected(self):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("ghost", "WHOOP_SLEEP_ABOVE", threshold_value=7, known_activity_ids=["a"])

    def test_unknown_trigger_type_rejected(self):
        with pytest.raises(TriggerConfigurationError):
            build_trigger_rule("a", "WHOOP_HRV_ABOVE", threshold_value=7)

    def test_configuration_error_is_validation_error(self):
        assert issubclass(TriggerConfigurationError, ValidationError)

    def test_string_type_accepted(self):
        rule = build_trigger_rule("a", "WHOOP_WORKOUT_TYPE", workout_type_id=1)
        assert rule.trigger_type == TriggerType.WHOOP_WORKOUT_TYPE
        assert rule.required_field == "workout_type_id"

    def test_round_trip(self):
        rule = build_trigger_rule("a", TriggerType.WHOOP_STRAIN_ABOVE, threshold_value=12.5)
        assert AutoTriggerRule.from_dict(rule.to_dict()) == rule

    def test_trigger_must_belong_to_activity(self):
        rule = recovery_rule("other")
        with pytest.raises(TriggerConfigurationError):
            Activity(activity_id="mine", user_id=1, name="x", pillar=Pillar.MIND,
                     sub_category="MEDITATION", auto_trigger=rule)


# ===========================================================================
# Predicates
# ===========================================================================

class TestPredicates:

    def test_recovery_above_boundary_is_inclusive(self, clock):
        rule = recovery_rule(threshold=60)
        assert rule_matches(rule, BiometricEvent(clock.today, recovery_score=60)) is True
        assert rule_matches(rule, BiometricEvent(clock.today, recovery_score=59)) is False

    def test_recovery_below_is_strict(self, clock):
        rule = recovery_rule(threshold=34, trigger_type=TriggerType.WHOOP_RECOVERY_BELOW)
        assert rule_matches(rule, BiometricEvent(clock.today, recovery_score=33)) is True
        assert rule_matches(rule, BiometricEvent(clock.today, recovery_score=34)) is False

    def test_sleep_and_strain_inclusive(self, clock):
        sleep_rule = build_trigger_rule("a", TriggerType.WHOOP_SLEEP_ABOVE, threshold_value=7.5)
        strain_rule = build_trigger_rule("a", TriggerType.WHOOP_STRAIN_ABOVE, threshold_value=14)

        assert rule_matches(sleep_rule, BiometricEvent(clock.today, sleep_hours=7.5))
        assert not rule_matches(sleep_rule, BiometricEvent(clock.today, sleep_hours=7.4))
        assert rule_matches(strain_rule, BiometricEvent(clock.today, strain=14.0))
        assert not rule_matches(strain_rule, BiometricEvent(clock.today, strain=13.9))

    def test_workout_type_equality(self, clock):
        rule = build_trigger_rule("a", TriggerType.WHOOP_WORKOUT_TYPE, workout_type_id=0)
        assert rule_matches(rule, BiometricEvent(clock.today, workout_type_id=0))
        assert not rule_matches(rule, BiometricEvent(clock.today, workout_type_id=1))

    def test_missing_reading_never_matches(self, clock):
        rule = recovery_rule(threshold=0)
        assert rule_matches(rule, BiometricEvent(clock.today, sleep_hours=9)) is False

    def test_activity_completed_matches_referenced_activity(self, clock):
        rule = build_trigger_rule("b", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="a")
        assert rule_matches(rule, ActivityCompletedEvent(clock.today, "a"))
        assert not rule_matches(rule, ActivityCompletedEvent(clock.today, "c"))
        assert not rule_matches(rule, BiometricEvent(clock.today, recovery_score=99))


# ===========================================================================
# Evaluation
# ===========================================================================

class TestEvaluation:

    def test_synthesizes_completion(self, evaluator, activities, clock):
        rule = recovery_rule()
        results = evaluator.evaluate([rule], activities, BiometricEvent(clock.today, recovery_score=72), clock)

        assert len(results) == 1
        log = results[0].completion
        assert log.activity_id == "meditation-1"
        assert log.source == CompletionSource.AUTO_TRIGGER
        assert log.points_earned == 50
        assert log.details["reason"] == "Auto-triggered: Recovery 72%"
        assert clock.local_date(log.completed_at) == clock.today

    def test_predicate_false_creates_nothing(self, evaluator, activities, clock):
        results = evaluator.evaluate([recovery_rule()], activities,
                                     BiometricEvent(clock.today, recovery_score=59), clock)
        assert results[0].triggered is False
        assert results[0].completion is None

    def test_same_event_twice_creates_one_completion(self, evaluator, activities, clock):
        rule = recovery_rule()
        event = BiometricEvent(clock.today, recovery_score=80)

        first = evaluator.evaluate([rule], activities, event, clock)
        logs = [r.completion for r in first if r.completion]
        second = evaluator.evaluate([rule], activities, event, clock, existing_logs=logs)

        assert len(logs) == 1
        assert second[0].triggered is True
        assert second[0].already_completed is True
        assert second[0].completion is None

    def test_manual_completion_blocks_trigger(self, evaluator, activities, clock, make_log, meditation):
        existing = [make_log(meditation, clock.now - timedelta(hours=3))]
        results = evaluator.evaluate([recovery_rule()], activities,
                                     BiometricEvent(clock.today, recovery_score=90), clock, existing)
        assert results[0].already_completed is True

    def test_completion_on_other_day_does_not_block(self, evaluator, activities, clock, make_log, meditation):
        existing = [make_log(meditation, clock.now - timedelta(days=1))]
        results = evaluator.evaluate([recovery_rule()], activities,
                                     BiometricEvent(clock.today, recovery_score=90), clock, existing)
        assert results[0].completion is not None

    def test_past_date_resync_lands_on_that_day(self, evaluator, activities, clock):
        event = BiometricEvent(clock.yesterday, recovery_score=90)
        log = evaluator.evaluate([recovery_rule()], activities, event, clock)[0].completion
        assert clock.local_date(log.completed_at) == clock.yesterday

    def test_orphaned_rule_is_skipped(self, evaluator, activities, clock):
        rule = recovery_rule("deleted-activity")
        results = evaluator.evaluate([rule], activities, BiometricEvent(clock.today, recovery_score=90), clock)
        assert results == []

    def test_archived_activity_is_skipped(self, evaluator, activities, clock):
        activities["meditation-1"].archived = True
        results = evaluator.evaluate([recovery_rule()], activities,
                                     BiometricEvent(clock.today, recovery_score=90), clock)
        assert results == []

    def test_inactive_rule_is_skipped(self, evaluator, activities, clock):
        rule = recovery_rule()
        rule.is_active = False
        assert evaluator.evaluate([rule], activities, BiometricEvent(clock.today, recovery_score=90), clock) == []

    def test_rules_are_independent(self, evaluator, activities, clock):
        rules = [
            recovery_rule("meditation-1", threshold=50),
            recovery_rule("sleep-1", threshold=95),
            build_trigger_rule("training-1", TriggerType.WHOOP_RECOVERY_BELOW, threshold_value=95),
        ]
        results = evaluator.evaluate(rules, activities, BiometricEvent(clock.today, recovery_score=70), clock)
        created = {r.activity_id for r in results if r.completion}

        assert created == {"meditation-1", "training-1"}


class TestChainedTriggers:

    def test_completion_cascades(self, evaluator, activities, clock):
        rules = [
            build_trigger_rule("training-1", TriggerType.WHOOP_WORKOUT_TYPE, workout_type_id=1),
            build_trigger_rule("sleep-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="training-1"),
            build_trigger_rule("meditation-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="sleep-1"),
        ]
        results = evaluator.evaluate(rules, activities, BiometricEvent(clock.today, workout_type_id=1), clock)
        created = [r.activity_id for r in results if r.completion]

        assert created == ["training-1", "sleep-1", "meditation-1"]

    def test_cycle_is_bounded_by_idempotency(self, evaluator, activities, clock, make_log, training):
        rules = [
            build_trigger_rule("training-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="sleep-1"),
            build_trigger_rule("sleep-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="training-1"),
        ]
        manual = [make_log(training, clock.now)]
        results = evaluator.evaluate(rules, activities, ActivityCompletedEvent(clock.today, "training-1"),
                                     clock, existing_logs=manual)
        created = [r.activity_id for r in results if r.completion]

        assert created == ["sleep-1"]
        assert any(r.activity_id == "training-1" and r.already_completed for r in results)

    def test_cascade_can_be_disabled(self, activities, clock):
        rules = [
            build_trigger_rule("training-1", TriggerType.WHOOP_WORKOUT_TYPE, workout_type_id=1),
            build_trigger_rule("sleep-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="training-1"),
        ]
        results = AutoTriggerEvaluator(cascade=False).evaluate(
            rules, activities, BiometricEvent(clock.today, workout_type_id=1), clock
        )
        assert [r.activity_id for r in results if r.completion] == ["training-1"]

    def test_orphaned_reference_is_skipped(self, evaluator, activities, clock):
        rule = build_trigger_rule("sleep-1", TriggerType.ACTIVITY_COMPLETED, trigger_activity_id="gone")
        assert evaluator.evaluate([rule], activities, ActivityCompletedEvent(clock.today, "gone"), clock) == []

    def test_rules_from_activities(self, activities):
        rule = recovery_rule()
        activities["meditation-1"].auto_trigger = rule
        assert rules_from_activities(activities.values()) == [rule]


class TestReferenceData:

    @pytest.mark.parametrize("score,zone", [(100, "green"), (67, "green"), (66, "yellow"),
                                            (34, "yellow"), (33, "red"), (0, "red")])
    def test_recovery_zone(self, score, zone):
        assert recovery_zone(score) == zone

    def test_workout_types(self):
        assert WHOOP_WORKOUT_TYPES[1] == "Running"
        assert WHOOP_WORKOUT_TYPES[0] == "Weightlifting"
