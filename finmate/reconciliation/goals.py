"""
Goal Progress Calculator

Contributions only count toward a goal when they are in the goal's own
currency. No conversion happens here: a contribution in another currency
is ignored rather than guessed at.
"""

from collections import defaultdict
from typing import Iterable, Sequence

from finmate.models.records import Goal, GoalDisplay, GoalProgress, GoalStatus, Record
from finmate.reconciliation.normalizer import (
    first_date_text,
    first_text,
    normalize_currency_code,
    optional_id,
    resolve_numeric_field,
    safe_number,
    text_or_empty,
)


GOAL_TARGET_KEYS = ("target_amount", "target", "goal_amount")
GOAL_CURRENCY_KEYS = ("currency", "target_currency", "base_currency")
GOAL_DEADLINE_KEYS = ("deadline", "target_date", "due_date")


def compute_goal_progress(goal: Goal, contributions: Iterable[Record]) -> GoalProgress:
    """
    Sum same-currency contributions and turn them into a progress percentage.

    A contribution without a currency is taken to be in the goal's currency.
    The total never goes below zero and progress stays within [0, 100].
    """
    currency = goal.target_currency.upper()
    contributed = 0.0
    for contribution in contributions:
        contribution_currency = normalize_currency_code(contribution.get("currency"), currency)
        if contribution_currency != currency:
            continue
        contributed += safe_number(contribution.get("amount"), "amount")

    contributed = max(contributed, 0.0)
    if goal.target_amount > 0:
        progress = min(max(contributed / goal.target_amount * 100, 0.0), 100.0)
    else:
        progress = 0.0
    return GoalProgress(contributed=contributed, progress_pct=progress)


def build_goal(record: Record, default_currency: str = "COP") -> Goal:
    return Goal(
        id=optional_id(record.get("id")),
        name=first_text(record, ("name", "title")) or "Goal",
        goal_type=text_or_empty(record.get("goal_type")).lower() or "savings",
        target_amount=resolve_numeric_field(record, GOAL_TARGET_KEYS),
        target_currency=normalize_currency_code(
            first_text(record, GOAL_CURRENCY_KEYS), default_currency
        ),
        deadline=first_date_text(record, GOAL_DEADLINE_KEYS),
        status=first_text(record, ("status",)),
    )


def group_contributions(contribution_rows: Iterable[Record]) -> dict[str, list[Record]]:
    grouped: dict[str, list[Record]] = defaultdict(list)
    for row in contribution_rows:
        goal_id = optional_id(row.get("goal_id"))
        if goal_id is not None:
            grouped[goal_id].append(row)
    return dict(grouped)


def build_goal_displays(
    goal_rows: Sequence[Record],
    contribution_rows: Sequence[Record],
    default_currency: str = "COP",
) -> list[GoalDisplay]:
    """Goals with contribution totals attached, in row order."""
    by_goal = group_contributions(contribution_rows)

    displays = []
    for record in goal_rows:
        goal = build_goal(record, default_currency)
        progress = compute_goal_progress(goal, by_goal.get(goal.id, []) if goal.id else [])
        status = goal.status or (
            GoalStatus.COMPLETED.value if progress.progress_pct >= 100 else GoalStatus.ACTIVE.value
        )
        displays.append(GoalDisplay(
            **goal.model_dump(exclude={"status"}),
            status=status,
            contributed=progress.contributed,
            progress_pct=progress.progress_pct,
        ))
    return displays
