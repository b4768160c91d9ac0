"""Achievement catalogue and rule evaluation.

Every rule is a pure function of an :class:`ActivityLog`. ``evaluate_all``
re-derives the complete state on each call; callers compare two results
with ``newly_earned`` to find the achievements that flipped to earned.
"""

import logging
import math
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from grasp.activity_log import ActivityLog, longest_week_run

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_QUIZ_TARGET = 3

# Per-quiz outcome achievements, keyed by the quiz they were earned on.
QUIZ_COMPLETED = "quiz_completed"
QUIZ_PERFECT = "quiz_perfect"

OUTCOME_ACHIEVEMENTS = {
    QUIZ_COMPLETED: ("Quiz Completed", "Finished every question of a quiz"),
    QUIZ_PERFECT: ("Perfect Score!", "Answered all questions correctly"),
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class RuleContext(BaseModel):
    weekly_quiz_target: int = DEFAULT_WEEKLY_QUIZ_TARGET


class AchievementStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    earned: bool
    progress: int


class AchievementDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    category: str
    predicate: Callable[[ActivityLog, RuleContext], bool]
    # ``None`` means binary progress: 100 once earned, 0 before.
    progress: Optional[Callable[[ActivityLog, RuleContext], int]] = None


def _ratio(count: int, target: int) -> int:
    return min(100, round_half_up(100 * count / target))


def _early_count(log: ActivityLog) -> int:
    return sum(1 for c in log.completions if c.completed_early is True)


def _longest_run(log: ActivityLog) -> int:
    return longest_week_run(log.weekly_index().keys())


def _reviewed_quizzes(log: ActivityLog) -> int:
    return len({m.quiz_id for m in log.mistake_reviews if m.quiz_id is not None})


def _revisited_within_week(log: ActivityLog) -> bool:
    for revisit in log.revisits:
        if revisit.revisited_at is None or revisit.quiz_id is None:
            continue
        for completion in log.completions:
            if completion.quiz_id != revisit.quiz_id or completion.completed_at is None:
                continue
            if 1 <= (revisit.revisited_at - completion.completed_at).days <= 7:
                return True
    return False


def _improvements(log: ActivityLog) -> list[int]:
    return [
        r.second_score - r.first_score
        for r in log.retakes
        if r.first_score is not None and r.second_score is not None
    ]


CATALOGUE: tuple[AchievementDefinition, ...] = (
    AchievementDefinition(
        id="FirstDayFinisher",
        title="First Day Finisher",
        description="Completed a quiz on the day it was released",
        category="Timing",
        predicate=lambda log, ctx: any(
            c.completed_on_release_day is True for c in log.completions
        ),
    ),
    AchievementDefinition(
        id="MistakeReviewer",
        title="Mistake Reviewer",
        description="Reviewed the questions you got wrong",
        category="Reflection",
        predicate=lambda log, ctx: len(log.mistake_reviews) > 0,
    ),
    AchievementDefinition(
        id="WeeklyRevisitor",
        title="Weekly Revisitor",
        description="Came back to a quiz within a week of finishing it",
        category="Reflection",
        predicate=lambda log, ctx: _revisited_within_week(log),
    ),
    AchievementDefinition(
        id="PerfectScore",
        title="Perfect Score",
        description="Scored 100% on a quiz",
        category="Mastery",
        predicate=lambda log, ctx: any(c.score == 100 for c in log.completions),
    ),
    AchievementDefinition(
        id="EarlyBird",
        title="Early Bird",
        description="Completed three quizzes before their due date",
        category="Timing",
        predicate=lambda log, ctx: _early_count(log) >= 3,
        progress=lambda log, ctx: _ratio(_early_count(log), 3),
    ),
    AchievementDefinition(
        id="ConsistentLearner",
        title="Consistent Learner",
        description="Completed quizzes five weeks in a row",
        category="Consistency",
        predicate=lambda log, ctx: _longest_run(log) >= 5,
        progress=lambda log, ctx: _ratio(_longest_run(log), 5),
    ),
    AchievementDefinition(
        id="SpeedDemon",
        title="Speed Demon",
        description="Finished a quiz in under half the time limit",
        category="Timing",
        predicate=lambda log, ctx: any(
            c.completed_in_half_time is True for c in log.completions
        ),
    ),
    AchievementDefinition(
        id="ImprovementMaster",
        title="Improvement Master",
        description="Improved a quiz score by at least 20 points on a retake",
        category="Growth",
        predicate=lambda log, ctx: any(d >= 20 for d in _improvements(log)),
    ),
    AchievementDefinition(
        id="DedicatedStudent",
        title="Dedicated Student",
        description="Completed ten quizzes",
        category="Consistency",
        predicate=lambda log, ctx: len(log.completions) >= 10,
        progress=lambda log, ctx: _ratio(len(log.completions), 10),
    ),
    AchievementDefinition(
        id="ReviewChampion",
        title="Review Champion",
        description="Reviewed mistakes on five different quizzes",
        category="Reflection",
        predicate=lambda log, ctx: _reviewed_quizzes(log) >= 5,
        progress=lambda log, ctx: _ratio(_reviewed_quizzes(log), 5),
    ),
    AchievementDefinition(
        id="WeekWarrior",
        title="Week Warrior",
        description="Completed every expected quiz in a single week",
        category="Consistency",
        predicate=lambda log, ctx: any(
            len(quizzes) >= ctx.weekly_quiz_target
            for quizzes in log.weekly_index().values()
        ),
    ),
    AchievementDefinition(
        id="ComebackKing",
        title="Comeback King",
        description="Beat your previous score on a retake",
        category="Growth",
        predicate=lambda log, ctx: any(d > 0 for d in _improvements(log)),
    ),
)

CATALOGUE_BY_ID = {definition.id: definition for definition in CATALOGUE}


def evaluate(definition: AchievementDefinition, log: ActivityLog, ctx: RuleContext) -> AchievementStatus:
    try:
        earned = bool(definition.predicate(log, ctx))
        if definition.progress is None:
            progress = 100 if earned else 0
        else:
            progress = max(0, min(100, int(definition.progress(log, ctx))))
    except (TypeError, ValueError, AttributeError, KeyError):
        logger.warning(
            "Achievement %s could not be evaluated; treating as not earned",
            definition.id,
            exc_info=True,
        )
        return AchievementStatus(earned=False, progress=0)
    return AchievementStatus(earned=earned, progress=progress)


def evaluate_all(
    log: ActivityLog, weekly_quiz_target: int = DEFAULT_WEEKLY_QUIZ_TARGET
) -> dict[str, AchievementStatus]:
    ctx = RuleContext(weekly_quiz_target=weekly_quiz_target)
    return {d.id: evaluate(d, log, ctx) for d in CATALOGUE}


def newly_earned(
    previous: dict[str, AchievementStatus], current: dict[str, AchievementStatus]
) -> list[str]:
    """Ids whose status went from not earned to earned, in catalogue order."""

    edges = []
    for achievement_id, status in current.items():
        before = previous.get(achievement_id)
        if status.earned and not (before and before.earned):
            edges.append(achievement_id)
    return edges


def describe(achievement_type: str) -> tuple[str, str]:
    """Display title and description for any known achievement type."""

    if achievement_type in OUTCOME_ACHIEVEMENTS:
        return OUTCOME_ACHIEVEMENTS[achievement_type]
    definition = CATALOGUE_BY_ID.get(achievement_type)
    if definition is None:
        return achievement_type, ""
    return definition.title, definition.description
