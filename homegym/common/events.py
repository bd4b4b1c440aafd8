from __future__ import annotations
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Union

class EventType(str, Enum):
    SESSION_STARTED = "session_started"
    SESSION_PAUSED = "session_paused"
    SESSION_RESUMED = "session_resumed"
    SESSION_STOPPED = "session_stopped"
    REP = "rep"
    FORM_WARNING = "form_warning"
    SESSION_ENDED = "session_ended"

class EndReason(str, Enum):
    FORM_FAILURE = "form_failure"
    USER_STOPPED = "user_stopped"
    PIPELINE_ERROR = "pipeline_error"

@dataclass(frozen=True)
class RepIncremented:
    count: int
    type: EventType = EventType.REP

@dataclass(frozen=True)
class FormWarning:
    message: str
    type: EventType = EventType.FORM_WARNING

@dataclass(frozen=True)
class SessionEnded:
    reason: EndReason = EndReason.FORM_FAILURE
    message: str = ""
    type: EventType = EventType.SESSION_ENDED

@dataclass(frozen=True)
class SessionEvent:
    type: EventType
    session_id: str
    exercise: str
    ts: float
    count: int = 0

Event = Union[RepIncremented, FormWarning, SessionEnded]

def to_payload(ev) -> dict:
    """Flatten an event dataclass into a JSON-ready dict for sinks."""
    out = asdict(ev)
    for k, v in out.items():
        if isinstance(v, Enum):
            out[k] = v.value
    return out
