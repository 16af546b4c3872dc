# backend/workflow.py
# step statuses only move forward: locked -> active -> completed
import copy
import logging
from typing import Iterable, List, Optional

from entities import (
    GOAL_QUESTIONS, SUB_STEPS, FlowState, FlowStep, QuestionType, StepStatus,
    SubStepState, SubStepStatus, utcnow,
)

logger = logging.getLogger(__name__)

FLOW_ORDER: List[FlowStep] = list(FlowStep)

FLOW_STEP_LABELS = {
    FlowStep.UPLOAD: "Upload",
    FlowStep.VISIE_HUIDIGE: "Huidige situatie",
    FlowStep.VISIE_GEWENSTE: "Gewenste situatie",
    FlowStep.VISIE_BEWEGING: "Beweging",
    FlowStep.VISIE_STAKEHOLDERS: "Belanghebbenden",
    FlowStep.DOELEN: "Doelen",
    FlowStep.SCOPE: "Scope",
    FlowStep.EXPORT: "Export",
}

# question types whose approval settles a sub-step; doelen needs only goal_1
VISIE_QUESTIONS = {
    FlowStep.VISIE_HUIDIGE: QuestionType.CURRENT_SITUATION,
    FlowStep.VISIE_GEWENSTE: QuestionType.DESIRED_SITUATION,
    FlowStep.VISIE_BEWEGING: QuestionType.CHANGE_DIRECTION,
    FlowStep.VISIE_STAKEHOLDERS: QuestionType.STAKEHOLDERS,
}
STEP_QUESTIONS = {
    **{step: [q] for step, q in VISIE_QUESTIONS.items()},
    FlowStep.DOELEN: list(GOAL_QUESTIONS),
    FlowStep.SCOPE: [QuestionType.OUT_OF_SCOPE],
}

_STATUS_RANK = {StepStatus.LOCKED: 0, StepStatus.ACTIVE: 1, StepStatus.COMPLETED: 2}


def step_index(step: FlowStep) -> int:
    return FLOW_ORDER.index(FlowStep(step))


def initial_flow_state(session_id: str) -> FlowState:
    steps = {s: StepStatus.LOCKED for s in FLOW_ORDER}
    steps[FlowStep.UPLOAD] = StepStatus.ACTIVE
    return FlowState(
        session_id=session_id,
        current_step=FlowStep.UPLOAD,
        steps=steps,
        sub_steps={s: SubStepState() for s in SUB_STEPS},
    )


def _copy(state: FlowState) -> FlowState:
    new = copy.deepcopy(state)
    new.updated_at = utcnow()
    return new


def next_step(step: FlowStep) -> Optional[FlowStep]:
    i = step_index(step)
    return FLOW_ORDER[i + 1] if i < len(FLOW_ORDER) - 1 else None


def previous_step(step: FlowStep) -> Optional[FlowStep]:
    i = step_index(step)
    return FLOW_ORDER[i - 1] if i > 0 else None


def can_proceed_to(state: FlowState, target: FlowStep) -> bool:
    target_i = step_index(target)
    if target_i <= step_index(state.current_step):
        return True
    return all(state.steps[s] == StepStatus.COMPLETED for s in FLOW_ORDER[:target_i])


def _set_status(state: FlowState, step: FlowStep, status: StepStatus) -> FlowState:
    current = state.steps[step]
    if _STATUS_RANK[status] < _STATUS_RANK[current]:
        logger.warning("refusing to move %s back from %s to %s", step.value, current.value, status.value)
        return state
    if current == StepStatus.LOCKED and status == StepStatus.COMPLETED:
        logger.warning("refusing to complete locked step %s", step.value)
        return state
    if current == status:
        return state
    new = _copy(state)
    new.steps[step] = status
    return new


def complete_step(state: FlowState, step: FlowStep) -> FlowState:
    """Mark `step` completed. A locked step is left alone; current_step does not move."""
    return _set_status(state, FlowStep(step), StepStatus.COMPLETED)


def unlock_step(state: FlowState, step: FlowStep) -> FlowState:
    return _set_status(state, FlowStep(step), StepStatus.ACTIVE)


def set_current_step(state: FlowState, step: FlowStep) -> FlowState:
    step = FlowStep(step)
    if state.current_step == step:
        return state
    new = _copy(state)
    new.current_step = step
    return new


def advance(state: FlowState) -> FlowState:
    """Complete the current step, unlock the next one and move there."""
    state = complete_step(state, state.current_step)
    nxt = next_step(state.current_step)
    if nxt is None:
        return state
    state = unlock_step(state, nxt)
    return set_current_step(state, nxt)


def update_sub_step(state: FlowState, step: FlowStep, **changes) -> FlowState:
    step = FlowStep(step)
    if step not in state.sub_steps:
        raise ValueError(f"{step.value} has no sub-step state")
    new = _copy(state)
    sub = new.sub_steps[step]
    for name, value in changes.items():
        if not hasattr(sub, name):
            raise AttributeError(f"SubStepState has no field {name!r}")
        setattr(sub, name, value)
    return new


def is_session_complete(state: FlowState) -> bool:
    return all(state.sub_steps[s].status == SubStepStatus.APPROVED for s in SUB_STEPS)


def progress(state: FlowState) -> dict:
    approved = [s.value for s in SUB_STEPS if state.sub_steps[s].status == SubStepStatus.APPROVED]
    return {
        "approved": approved,
        "total": len(SUB_STEPS),
        "percent": round(100 * len(approved) / len(SUB_STEPS)),
        "complete": len(approved) == len(SUB_STEPS),
    }


def reconcile_with_approved_texts(state: FlowState, approved: Iterable[QuestionType]) -> FlowState:
    """
    Re-derive sub-step approval from the approved texts actually stored.

    A crash between saving an approved text and saving the flow state leaves the
    cached status behind; stored texts win. Steps the user already moved past
    are completed as well, so the forward guard matches what was approved.
    """
    have = {QuestionType(q) for q in approved}
    new = state
    for step, questions in STEP_QUESTIONS.items():
        settled = questions[0] in have  # a partial goal ranking still counts
        sub = new.sub_steps[step]
        if settled and sub.status != SubStepStatus.APPROVED:
            logger.info("reconciling %s to approved from stored texts", step.value)
            new = update_sub_step(new, step, status=SubStepStatus.APPROVED)
        if settled and step_index(step) < step_index(new.current_step):
            new = complete_step(unlock_step(new, step), step)
    return new
