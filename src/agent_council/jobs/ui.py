"""Host-agnostic progress step lists derived from a status snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from agent_council.jobs.models import OverallState, StatusSnapshot

STEP_PENDING = "pending"
STEP_COMPLETED = "completed"

DISPATCH_STEP = "[Council] Prompt dispatch"
SYNTHESIZE_STEP = "[Council] Synthesize"


@dataclass(slots=True, frozen=True)
class ProgressStep:
    """One step of the canonical council plan."""

    label: str
    completed: bool
    active_form: str

    @property
    def status(self) -> str:
        return STEP_COMPLETED if self.completed else STEP_PENDING


def build_steps(snapshot: StatusSnapshot) -> list[ProgressStep]:
    """Canonical ordering: dispatch, one step per member by name, synthesize."""

    dispatched = snapshot.counts.queued == 0
    steps = [
        ProgressStep(
            label=DISPATCH_STEP,
            completed=dispatched,
            active_form=(
                "Dispatched council prompts" if dispatched else "Dispatching council prompts"
            ),
        ),
    ]
    for member in sorted(snapshot.members, key=lambda item: item.member):
        finished = member.state.is_terminal
        steps.append(
            ProgressStep(
                label=f"[Council] Ask {member.member}",
                completed=finished,
                active_form="Finished" if finished else "Awaiting response",
            ),
        )
    synthesized = snapshot.overall_state is OverallState.DONE
    steps.append(
        ProgressStep(
            label=SYNTHESIZE_STEP,
            completed=synthesized,
            active_form="Council results ready" if synthesized else "Waiting to synthesize",
        ),
    )
    return steps


def build_ui_payload(snapshot: StatusSnapshot) -> dict[str, Any]:
    """Render the plan for Codex `update_plan` and Claude `todo_write` consumers."""

    steps = build_steps(snapshot)
    return {
        "progress": {
            "done": snapshot.counts.terminal,
            "total": snapshot.counts.total,
            "overallState": snapshot.overall_state.value,
        },
        "codex": {
            "update_plan": {
                "plan": [{"step": step.label, "status": step.status} for step in steps],
            },
        },
        "claude": {
            "todo_write": {
                "todos": [
                    {
                        "content": step.label,
                        "status": step.status,
                        "activeForm": step.active_form,
                    }
                    for step in steps
                ],
            },
        },
    }
