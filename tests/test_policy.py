"""
Tests for the stale-device policy engine.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable

import pytest

from devicesweep.directory.models import Device
from devicesweep.policy.engine import (
    NOTE_ALREADY_DISABLED,
    NOTE_EXCLUDED,
    NOTE_RECENT,
    StaleDeviceEvaluator,
    build_filter_predicate,
    compute_threshold,
    evaluate,
    threshold_datetime,
)
from devicesweep.policy.models import (
    Action,
    Decision,
    DeviceOutcome,
    ResultRecord,
    SweepMode,
    SweepOptions,
)


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def all_options() -> SweepOptions:
    """Options including enabled and disabled devices, dry-run."""
    return SweepOptions(include_enabled=True, include_disabled=True, dry_run=True)


# =============================================================================
# Test compute_threshold
# =============================================================================


class TestComputeThreshold:
    """Tests for threshold computation."""

    def test_ninety_days(self) -> None:
        """Test 90 days before 2024-06-01."""
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert compute_threshold(now, 90) == "2024-03-03T00:00:00Z"

    def test_time_of_day_dropped(self) -> None:
        """Test the threshold always lands on UTC midnight."""
        now = datetime(2024, 6, 1, 17, 45, 12, tzinfo=timezone.utc)
        assert compute_threshold(now, 90) == "2024-03-03T00:00:00Z"

    def test_accepts_date(self) -> None:
        """Test a plain date is treated as UTC midnight."""
        assert compute_threshold(date(2024, 6, 1), 0) == "2024-06-01T00:00:00Z"

    def test_naive_is_utc(self) -> None:
        """Test naive datetimes are not shifted by the local zone."""
        naive = datetime(2024, 6, 1, 23, 30)
        assert compute_threshold(naive, 1) == "2024-05-31T00:00:00Z"

    def test_aware_converted_to_utc(self) -> None:
        """Test a non-UTC instant is converted before truncation."""
        # 2024-06-01 01:00 at UTC+05:00 is 2024-05-31 20:00 UTC
        tz = timezone(timedelta(hours=5))
        now = datetime(2024, 6, 1, 1, 0, tzinfo=tz)
        assert compute_threshold(now, 0) == "2024-05-31T00:00:00Z"

    def test_negative_days_rejected(self) -> None:
        """Test negative day counts are rejected."""
        with pytest.raises(ValueError):
            compute_threshold(datetime(2024, 6, 1), -1)

    def test_monotonic_in_days_back(self) -> None:
        """Test larger days_back never yields a later threshold."""
        now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        thresholds = [threshold_datetime(now, days) for days in range(0, 400, 7)]
        assert thresholds == sorted(thresholds, reverse=True)


# =============================================================================
# Test build_filter_predicate
# =============================================================================


class TestBuildFilterPredicate:
    """Tests for the server-side filter expression."""

    THRESHOLD = "2024-03-03T00:00:00Z"

    def test_both_included(self) -> None:
        """Test no enablement clause when both flags are set."""
        assert (
            build_filter_predicate(self.THRESHOLD, True, True)
            == "approximateLastSignInDateTime le 2024-03-03T00:00:00Z"
        )

    def test_enabled_only(self) -> None:
        """Test enabled-only adds accountEnabled eq true."""
        predicate = build_filter_predicate(self.THRESHOLD, True, False)
        assert predicate.endswith(" and accountEnabled eq true")

    def test_disabled_only(self) -> None:
        """Test disabled-only adds accountEnabled eq false."""
        predicate = build_filter_predicate(self.THRESHOLD, False, True)
        assert predicate.endswith(" and accountEnabled eq false")

    def test_neither_included(self) -> None:
        """Test no filter is produced when nothing is in scope."""
        assert build_filter_predicate(self.THRESHOLD, False, False) is None


# =============================================================================
# Test evaluate
# =============================================================================


class TestEvaluate:
    """Tests for the per-device decision."""

    def test_enabled_dry_run_disable(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test a stale enabled device would be disabled in dry-run."""
        device = make_device(enabled=True, last_sign_in="2024-01-01T00:00:00Z")
        decision = evaluate(device, all_options, SweepMode.DISABLE)

        assert decision.action == Action.MUTATE
        assert decision.note == "would be disabled"
        assert device.account_enabled is True

    def test_enabled_dry_run_delete(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test the note follows the delete mode."""
        decision = evaluate(make_device(), all_options, SweepMode.DELETE)
        assert decision == Decision(Action.MUTATE, "would be deleted")

    def test_enabled_committed(self, make_device: Callable[..., Device]) -> None:
        """Test committed runs use the past tense."""
        options = SweepOptions(dry_run=False)
        assert evaluate(make_device(), options, SweepMode.DISABLE).note == "disabled"
        assert evaluate(make_device(), options, SweepMode.DELETE).note == "deleted"

    def test_disabled_device_audit_only(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test a disabled device is reported without action."""
        device = make_device(enabled=False, last_sign_in="2024-01-01T00:00:00Z")
        decision = evaluate(device, all_options, SweepMode.DISABLE)

        assert decision.action == Action.AUDIT_ONLY
        assert decision.note == NOTE_ALREADY_DISABLED

    @pytest.mark.parametrize("mode", list(SweepMode))
    @pytest.mark.parametrize("include_disabled", [True, False])
    @pytest.mark.parametrize("dry_run", [True, False])
    def test_enabled_never_mutated_when_excluded(
        self,
        make_device: Callable[..., Device],
        mode: SweepMode,
        include_disabled: bool,
        dry_run: bool,
    ) -> None:
        """Test enabled devices are excluded when enabled inclusion is off."""
        options = SweepOptions(
            include_enabled=False, include_disabled=include_disabled, dry_run=dry_run
        )
        decision = evaluate(make_device(enabled=True), options, mode)

        assert decision.action == Action.EXCLUDED
        assert decision.note == NOTE_EXCLUDED

    def test_disabled_excluded_when_flag_off(
        self, make_device: Callable[..., Device]
    ) -> None:
        """Test disabled devices slipping past the filter are excluded."""
        options = SweepOptions(include_enabled=True, include_disabled=False)
        decision = evaluate(make_device(enabled=False), options)
        assert decision.is_excluded

    def test_report_mode_never_mutates(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test report mode classifies enabled devices as audit-only."""
        decision = evaluate(make_device(enabled=True), all_options, SweepMode.REPORT)
        assert decision.action == Action.AUDIT_ONLY
        assert not decision.should_mutate

    def test_recent_sign_in_excluded(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test devices seen after the threshold are excluded."""
        threshold = datetime(2024, 3, 3, tzinfo=timezone.utc)
        device = make_device(last_sign_in="2024-05-01T00:00:00Z")
        decision = evaluate(device, all_options, SweepMode.DISABLE, threshold)

        assert decision == Decision(Action.EXCLUDED, NOTE_RECENT)

    def test_never_signed_in_is_stale(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test a missing sign-in timestamp does not exclude a device."""
        threshold = datetime(2024, 3, 3, tzinfo=timezone.utc)
        device = make_device(last_sign_in=None)
        decision = evaluate(device, all_options, SweepMode.DISABLE, threshold)

        assert decision.action == Action.MUTATE


# =============================================================================
# Test StaleDeviceEvaluator
# =============================================================================


class TestStaleDeviceEvaluator:
    """Tests for the stateful evaluator."""

    def test_threshold_and_filter(self, all_options: SweepOptions) -> None:
        """Test the evaluator derives threshold and filter from options."""
        evaluator = StaleDeviceEvaluator(
            all_options, SweepMode.DISABLE, now=datetime(2024, 6, 1)
        )

        assert evaluator.threshold == "2024-03-03T00:00:00Z"
        assert evaluator.filter_predicate == (
            "approximateLastSignInDateTime le 2024-03-03T00:00:00Z"
        )

    def test_vacuous_filter(self) -> None:
        """Test no filter for vacuous options."""
        options = SweepOptions(include_enabled=False, include_disabled=False)
        evaluator = StaleDeviceEvaluator(options, now=datetime(2024, 6, 1))

        assert options.is_vacuous
        assert evaluator.filter_predicate is None

    def test_statistics(
        self, make_device: Callable[..., Device], all_options: SweepOptions
    ) -> None:
        """Test statistics count each action."""
        evaluator = StaleDeviceEvaluator(
            all_options, SweepMode.DISABLE, now=datetime(2024, 6, 1)
        )
        evaluator.evaluate(make_device("a", enabled=True))
        evaluator.evaluate(make_device("b", enabled=False))
        evaluator.evaluate(make_device("c", last_sign_in="2024-05-30T00:00:00Z"))

        stats = evaluator.get_statistics()
        assert stats["total_evaluations"] == 3
        assert stats["mutate"] == 1
        assert stats["audit_only"] == 1
        assert stats["excluded"] == 1

        evaluator.reset_statistics()
        assert evaluator.get_statistics()["total_evaluations"] == 0


# =============================================================================
# Test models
# =============================================================================


class TestModels:
    """Tests for policy data models."""

    def test_options_immutable(self) -> None:
        """Test options cannot be changed after creation."""
        options = SweepOptions()
        with pytest.raises(AttributeError):
            options.dry_run = False  # type: ignore[misc]

    def test_options_reject_negative_days(self) -> None:
        """Test options validate days_back."""
        with pytest.raises(ValueError):
            SweepOptions(days_back=-1)

    def test_mode_properties(self) -> None:
        """Test sweep mode helpers."""
        assert SweepMode.REPORT.mutates is False
        assert SweepMode.DISABLE.mutates is True
        assert SweepMode.DELETE.past_tense == "deleted"
        assert str(SweepMode.DISABLE) == "disable"

    def test_result_record_from_device(self, make_device: Callable[..., Device]) -> None:
        """Test records copy device fields verbatim."""
        device = make_device("x1", enabled=False, last_sign_in="2023-12-31T23:59:59Z")
        record = ResultRecord.from_device(device, NOTE_ALREADY_DISABLED)

        assert record.to_dict() == {
            "display_name": "HOST-x1",
            "device_id": "dev-x1",
            "id": "x1",
            "operating_system": "Windows",
            "approximate_last_sign_in": "2023-12-31T23:59:59Z",
            "account_enabled": False,
            "note": NOTE_ALREADY_DISABLED,
        }
        assert ResultRecord.field_names()[0] == "display_name"

    def test_outcome_success_and_failure(
        self, make_device: Callable[..., Device]
    ) -> None:
        """Test outcomes carry either a record or an error."""
        device = make_device()
        decision = Decision(Action.MUTATE, "disabled")

        success = DeviceOutcome.success(device, decision)
        failure = DeviceOutcome.failure(device, decision, "boom")

        assert success.ok and success.record is not None
        assert not failure.ok and failure.record is None
        assert failure.error == "boom"
