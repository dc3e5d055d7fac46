"""
Stale-device policy engine.

Computes the inactivity threshold, builds the server-side filter and
classifies each listed device.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from devicesweep.directory.models import Device
from devicesweep.policy.models import Action, Decision, SweepMode, SweepOptions


logger = logging.getLogger(__name__)

THRESHOLD_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

NOTE_ALREADY_DISABLED = "already disabled"
NOTE_EXCLUDED = "excluded by configuration"
NOTE_RECENT = "signed in after threshold"
NOTE_STALE = "stale"


def _as_utc(now: datetime | date) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime."""
    if not isinstance(now, datetime):
        return datetime.combine(now, time.min, tzinfo=timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def threshold_datetime(now: datetime | date, days_back: int) -> datetime:
    """
    Return the UTC midnight ``days_back`` days before ``now``.

    Naive datetimes are taken to be UTC already.
    """
    if days_back < 0:
        raise ValueError(f"days_back must be >= 0, got {days_back}")
    cutoff = _as_utc(now) - timedelta(days=days_back)
    return datetime.combine(cutoff.date(), time.min, tzinfo=timezone.utc)


def compute_threshold(now: datetime | date, days_back: int) -> str:
    """
    Compute the last-sign-in threshold for a sweep.

    Args:
        now: Reference instant
        days_back: Days of inactivity that make a device stale

    Returns:
        ISO-8601 UTC instant, e.g. ``2024-03-03T00:00:00Z``
    """
    return threshold_datetime(now, days_back).strftime(THRESHOLD_FORMAT)


def build_filter_predicate(
    threshold: str,
    include_enabled: bool,
    include_disabled: bool,
) -> str | None:
    """
    Build the OData filter sent with the device listing.

    Args:
        threshold: Output of compute_threshold
        include_enabled: Whether enabled devices are in scope
        include_disabled: Whether disabled devices are in scope

    Returns:
        Filter expression, or None when neither flag is set and no query
        should be sent at all
    """
    if not include_enabled and not include_disabled:
        return None

    predicate = f"approximateLastSignInDateTime le {threshold}"
    if include_enabled != include_disabled:
        enabled = "true" if include_enabled else "false"
        predicate += f" and accountEnabled eq {enabled}"
    return predicate


def evaluate(
    device: Device,
    options: SweepOptions,
    mode: SweepMode = SweepMode.DISABLE,
    threshold: datetime | None = None,
) -> Decision:
    """
    Classify a device for this sweep.

    The listing filter is expected to have narrowed the candidates
    already, but every rule is checked again here.

    Args:
        device: Device to classify
        options: Run options
        mode: Sweep mode deciding the mutation wording
        threshold: Optional cutoff; devices seen after it are excluded

    Returns:
        Decision with action and note
    """
    if (
        threshold is not None
        and device.approximate_last_sign_in is not None
        and device.approximate_last_sign_in > threshold
    ):
        return Decision(Action.EXCLUDED, NOTE_RECENT)

    if device.account_enabled and options.include_enabled:
        if not mode.mutates:
            return Decision(Action.AUDIT_ONLY, NOTE_STALE)
        if options.dry_run:
            return Decision(Action.MUTATE, f"would be {mode.past_tense}")
        return Decision(Action.MUTATE, mode.past_tense)

    if not device.account_enabled and options.include_disabled:
        return Decision(Action.AUDIT_ONLY, NOTE_ALREADY_DISABLED)

    return Decision(Action.EXCLUDED, NOTE_EXCLUDED)


class StaleDeviceEvaluator:
    """
    Evaluates devices for one sweep and keeps per-action statistics.
    """

    def __init__(
        self,
        options: SweepOptions,
        mode: SweepMode = SweepMode.DISABLE,
        now: datetime | None = None,
    ) -> None:
        """
        Initialize the evaluator.

        Args:
            options: Run options
            mode: Sweep mode
            now: Reference instant, defaults to the current UTC time
        """
        self.options = options
        self.mode = mode
        self.now = _as_utc(now or datetime.now(timezone.utc))
        self.threshold_at = threshold_datetime(self.now, options.days_back)
        self.threshold = self.threshold_at.strftime(THRESHOLD_FORMAT)

        # Statistics
        self._evaluations = 0
        self._mutate = 0
        self._audit_only = 0
        self._excluded = 0

    @property
    def filter_predicate(self) -> str | None:
        """Server-side filter for this run, None when nothing can match."""
        return build_filter_predicate(
            self.threshold,
            self.options.include_enabled,
            self.options.include_disabled,
        )

    def evaluate(self, device: Device) -> Decision:
        """Classify a device and update statistics."""
        decision = evaluate(device, self.options, self.mode, self.threshold_at)
        self._update_stats(decision.action)
        logger.debug(
            "Device %s (%s): %s - %s",
            device.label, device.id, decision.action.value, decision.note,
        )
        return decision

    def _update_stats(self, action: Action) -> None:
        """Update evaluation statistics."""
        self._evaluations += 1
        if action == Action.MUTATE:
            self._mutate += 1
        elif action == Action.AUDIT_ONLY:
            self._audit_only += 1
        else:
            self._excluded += 1

    def get_statistics(self) -> dict:
        """Get evaluation statistics."""
        return {
            "total_evaluations": self._evaluations,
            "mutate": self._mutate,
            "audit_only": self._audit_only,
            "excluded": self._excluded,
            "threshold": self.threshold,
            "mode": self.mode.value,
        }

    def reset_statistics(self) -> None:
        """Reset evaluation statistics."""
        self._evaluations = 0
        self._mutate = 0
        self._audit_only = 0
        self._excluded = 0
