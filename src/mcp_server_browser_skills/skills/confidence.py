"""Confidence model for skill runs."""

# A skill is learned once a successful run scores at least this much.
LEARNING_THRESHOLD = 0.7

# Runs faster than this earn the speed bonus.
FAST_RUN_THRESHOLD_MS = 30_000

HISTORICAL_WEIGHT = 0.6
ACTION_WEIGHT = 0.3
TIME_BONUS = 0.1


def action_success_rate(succeeded: int, executed: int) -> float:
    """Share of executed actions that succeeded; an empty run counts as 1.0."""
    if executed <= 0:
        return 1.0
    return succeeded / executed


def compute_confidence(
    success_count: int,
    attempts: int,
    actions_succeeded: int,
    actions_executed: int,
    time_elapsed_ms: float,
) -> float:
    """Score one successful run.

    ``min(1, 0.6 * historical + 0.3 * action_rate + time_bonus)`` where
    historical is ``success_count / attempts`` (both already counting the
    current run) and the time bonus applies below 30 seconds. The result is
    not a running average; callers keep the maximum they have seen.

    Args:
        success_count: Successful runs including this one
        attempts: Attempts including this one
        actions_succeeded: Actions of this run that succeeded
        actions_executed: Actions of this run that were dispatched
        time_elapsed_ms: Wall time of this run so far

    Returns:
        Confidence clamped to [0, 1]
    """
    historical = success_count / attempts if attempts > 0 else 0.0
    action_rate = action_success_rate(actions_succeeded, actions_executed)
    bonus = TIME_BONUS if time_elapsed_ms < FAST_RUN_THRESHOLD_MS else 0.0

    score = HISTORICAL_WEIGHT * historical + ACTION_WEIGHT * action_rate + bonus
    return max(0.0, min(1.0, score))
