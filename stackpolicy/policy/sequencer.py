"""
Action sequencing for multi-step remedies.

A recommendation's steps become an ordered list of actions, each depending
on the one before it. The result is data only: an external executor decides
how much of it to run and reports progress against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .schema import Recommendation, Step


@dataclass(frozen=True)
class Action:
    rule_id: str
    position: int  # 1-based within the recommendation
    step: Step
    depends_on: int | None = None  # position of the preceding action

    @property
    def key(self) -> str:
        return f"{self.rule_id}#{self.position}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "position": self.position,
            "depends_on": self.depends_on,
            **self.step.to_dict(),
        }


def sequence(recommendation: Recommendation) -> list[Action]:
    """Expand a recommendation into actions, preserving declared step order."""
    actions: list[Action] = []
    for pos, step in enumerate(recommendation.steps, start=1):
        actions.append(
            Action(
                rule_id=recommendation.rule_id,
                position=pos,
                step=step,
                depends_on=pos - 1 if pos > 1 else None,
            )
        )
    return actions


def sequence_all(recommendations: Iterable[Recommendation]) -> list[Action]:
    """Flatten a whole report; recommendations stay in the given order."""
    out: list[Action] = []
    for rec in recommendations:
        out.extend(sequence(rec))
    return out


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered actions for one recommendation, with partial-progress helpers."""

    rule_id: str
    actions: tuple[Action, ...]

    @classmethod
    def for_recommendation(cls, recommendation: Recommendation) -> "ExecutionPlan":
        return cls(rule_id=recommendation.rule_id, actions=tuple(sequence(recommendation)))

    def __len__(self) -> int:
        return len(self.actions)

    def prefix(self, count: int) -> tuple[Action, ...]:
        """The first ``count`` actions; the only valid partial executions."""
        if count < 0:
            raise ValueError("count must be non-negative")
        return self.actions[:count]

    def remaining(self, completed: int) -> tuple[Action, ...]:
        if completed < 0:
            raise ValueError("completed must be non-negative")
        return self.actions[completed:]

    def next_action(self, completed: int) -> Action | None:
        rest = self.remaining(completed)
        return rest[0] if rest else None

    def progress(self, completed: int) -> str:
        done = min(max(completed, 0), len(self.actions))
        state = "complete" if done == len(self.actions) else "partial"
        return f"{self.rule_id}: {done}/{len(self.actions)} steps ({state})"
