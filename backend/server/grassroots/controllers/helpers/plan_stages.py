"""
Strategic plan stage rules.

Pure functions, no DB. Plans move strictly forward through STAGES, one
stage at a time; only the admin override path may move them anywhere else.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from grassroots.controllers.helpers.errors import InvalidStageError, ValidationError

DRAFT = "draft"
DISCUSSION = "discussion"
DECISION = "decision"
REVIEW = "review"
COMPLETED = "completed"

STAGES = (DRAFT, DISCUSSION, DECISION, REVIEW, COMPLETED)

CONTRIBUTION_KINDS = ("issue", "goal", "action", "comment")

# Stages in which each kind of contribution may be added
CONTRIBUTION_STAGES = {
    "issue": {DRAFT, DISCUSSION, DECISION},
    "goal": {DRAFT, DISCUSSION, DECISION},
    "action": {DRAFT, DISCUSSION, DECISION},
    "comment": {DRAFT, DISCUSSION, DECISION, REVIEW},
}

# Issue votes are the decision-stage participation
VOTE_STAGES = {DECISION}


def check_stage(stage):
    if stage not in STAGES:
        raise ValidationError(f"Unknown plan stage '{stage}'")
    return stage


def next_stage(stage) -> str:
    """The stage after `stage`; Completed has none."""
    check_stage(stage)
    if stage == COMPLETED:
        raise InvalidStageError("A completed plan has no next stage", stage=stage)
    return STAGES[STAGES.index(stage) + 1]


def stage_deadline(stage, entered_at: datetime, durations: Dict[str, int]) -> Optional[datetime]:
    """When a plan that entered `stage` at `entered_at` is due to advance."""
    check_stage(stage)
    if stage == COMPLETED:
        return None
    return entered_at + timedelta(days=durations[stage])


def check_contribution_allowed(kind, stage):
    if kind not in CONTRIBUTION_STAGES:
        raise ValidationError(f"Unknown contribution kind '{kind}'")
    if stage not in CONTRIBUTION_STAGES[kind]:
        raise InvalidStageError(
            f"{kind.capitalize()}s cannot be added while the plan is in {stage}",
            kind=kind, stage=stage,
        )


def check_vote_allowed(stage):
    if stage not in VOTE_STAGES:
        raise InvalidStageError(
            f"Issues can only be voted on during the decision stage (plan is in {stage})",
            stage=stage,
        )


def is_forward_step(from_stage, to_stage) -> bool:
    """True for the single legal step of the normal transition path."""
    return from_stage != COMPLETED and next_stage(from_stage) == to_stage


def pseudonym(contributor_index) -> str:
    return f"Anonymous contributor #{contributor_index}"
