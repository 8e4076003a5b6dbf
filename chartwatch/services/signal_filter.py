"""Dispatch filtering for automation runs.

Decides whether a freshly analyzed signal is worth a notification, given the
previous recorded signal and the schedule's filter settings.
All functions are pure computation: no I/O, no database access.
"""

from dataclasses import dataclass

from chartwatch.utils.constants import (
    SKIP_HOLD_SUPPRESSED,
    SKIP_LOW_CONFIDENCE,
    SKIP_SIGNAL_UNCHANGED,
    SignalAction,
)


@dataclass(frozen=True)
class DispatchFilters:
    """The subset of a schedule that drives the dispatch decision."""
    min_confidence: int = 50
    only_on_signal_change: bool = False
    send_on_hold: bool = False

    @classmethod
    def from_schedule(cls, schedule) -> "DispatchFilters":
        return cls(
            min_confidence=schedule.min_confidence,
            only_on_signal_change=schedule.only_on_signal_change,
            send_on_hold=schedule.send_on_hold,
        )


@dataclass(frozen=True)
class DispatchDecision:
    """Dispatch decision.

    The filter booleans are always populated, including for skips, so the
    job log can show why a run was suppressed.
    """
    should_dispatch: bool
    signal_changed: bool
    met_min_confidence: bool
    skip_reason: str | None = None  # "hold suppressed", "signal unchanged", "confidence below threshold"


def evaluate_dispatch(
    action: str,
    confidence: int,
    previous_action: str | None,
    filters: DispatchFilters,
) -> DispatchDecision:
    """Evaluate the dispatch rules in order; the first failing rule is the skip reason."""
    signal_changed = previous_action is None or previous_action != action
    met_min_confidence = confidence >= filters.min_confidence

    def _skip(reason: str) -> DispatchDecision:
        return DispatchDecision(
            should_dispatch=False,
            signal_changed=signal_changed,
            met_min_confidence=met_min_confidence,
            skip_reason=reason,
        )

    # HOLD suppression wins over every other reason
    if action == SignalAction.HOLD and not filters.send_on_hold:
        return _skip(SKIP_HOLD_SUPPRESSED)

    if filters.only_on_signal_change and not signal_changed:
        return _skip(SKIP_SIGNAL_UNCHANGED)

    if not met_min_confidence:
        return _skip(SKIP_LOW_CONFIDENCE)

    return DispatchDecision(
        should_dispatch=True,
        signal_changed=signal_changed,
        met_min_confidence=met_min_confidence,
    )
