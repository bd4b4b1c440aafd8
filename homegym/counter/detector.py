from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple

from homegym.common.events import EndReason, Event, FormWarning, RepIncremented, SessionEnded
from homegym.counter.pose_core import JointFrame
from homegym.counter.rules import FormRule, RepRule, lookup_rule

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    RESTING = "resting"
    ACTIVE = "active"   # the "going down" half of a rep


class FormStatus(str, Enum):
    OK = "ok"
    WARNED = "warned"
    FAILED = "failed"   # terminal


@dataclass(frozen=True)
class SessionState:
    """
    Everything the counter remembers between frames. Never mutated in place:
    `step` hands back a new instance, so a caller swapping it in under a lock
    either sees the whole update or none of it.
    """
    exercise: str
    phase: Phase = Phase.RESTING
    count: int = 0
    form: FormStatus = FormStatus.OK
    last_pose: Optional[JointFrame] = None

    @property
    def ended(self) -> bool:
        return self.form == FormStatus.FAILED


def step(state: SessionState, frame: JointFrame) -> Tuple[SessionState, List[Event]]:
    """Evaluate one frame against the session's rule -> (new state, events)."""
    if state.ended:
        return state, []

    rule = lookup_rule(state.exercise)
    if rule is None:
        new_state, events = state, []
    elif isinstance(rule, FormRule):
        new_state, events = _step_form(rule, state, frame)
    else:
        new_state, events = _step_reps(rule, state, frame)

    return replace(new_state, last_pose=frame), events


def _step_reps(rule: RepRule, state: SessionState, frame: JointFrame) -> Tuple[SessionState, List[Event]]:
    value = rule.feature.extract(frame)
    if value is None:
        # joints missing: keep the phase we had
        return state, []

    if rule.enter(value):
        if state.phase != Phase.ACTIVE:
            logger.debug("%s: phase→active", state.exercise)
        return replace(state, phase=Phase.ACTIVE), []

    if state.phase == Phase.ACTIVE and rule.count(value):
        count = state.count + 1
        logger.debug("%s: rep++ → %d", state.exercise, count)
        return replace(state, phase=Phase.RESTING, count=count), [RepIncremented(count)]

    return state, []


def _step_form(rule: FormRule, state: SessionState, frame: JointFrame) -> Tuple[SessionState, List[Event]]:
    drop = rule.feature.extract(frame)
    if drop is None:
        return state, []

    if drop > rule.failure:
        logger.info("%s: form failure (hip drop %.1f)", state.exercise, drop)
        return (
            replace(state, form=FormStatus.FAILED),
            [SessionEnded(EndReason.FORM_FAILURE, rule.failure_message)],
        )
    if drop > rule.warning:
        if state.form == FormStatus.WARNED:
            return state, []
        logger.debug("%s: form warning (hip drop %.1f)", state.exercise, drop)
        return replace(state, form=FormStatus.WARNED), [FormWarning(rule.warning_message)]

    return replace(state, form=FormStatus.OK), []
