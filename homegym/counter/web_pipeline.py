from __future__ import annotations
import logging
from typing import Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from homegym.common.events import Event
from homegym.counter.pose_core import JointId, Orientation, RawObservation

logger = logging.getLogger(__name__)

_JOINT_NAMES = {j.value for j in JointId}


class JointPayload(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class FramePayload(BaseModel):
    """One estimator observation as sent by the browser client."""
    type: Literal["frame"] = "frame"
    orientation: Orientation = Orientation.PORTRAIT
    ts: Optional[float] = None
    joints: Dict[str, JointPayload] = Field(default_factory=dict)

    def to_raw(self) -> Dict[JointId, Tuple[float, float, float]]:
        raw = {}
        for name, j in self.joints.items():
            if name not in _JOINT_NAMES:
                logger.debug("ignoring unknown joint %r", name)
                continue
            raw[JointId(name)] = (j.x, j.y, j.confidence)
        return raw


class WebFramePipeline:
    """
    A minimal 'pipeline' that consumes joint frames estimated in the browser.
    No camera, no threads. Just call push(payload).
    """
    def __init__(
        self,
        on_frame: Callable[[RawObservation], List[Event]],
        set_orientation: Optional[Callable[[Orientation], None]] = None,
    ):
        self.on_frame = on_frame
        self.set_orientation = set_orientation
        self._running = True

    # keep for API parity with PosePipeline
    def start(self):
        self._running = True

    def stop(self):
        self._running = False

    def pause(self):
        self._running = False

    def resume(self):
        self._running = True

    def push(self, payload: dict) -> List[Event]:
        """Feed one frame message; raises pydantic.ValidationError on malformed input."""
        if not self._running:
            return []
        frame = FramePayload.model_validate(payload)
        if self.set_orientation is not None:
            self.set_orientation(frame.orientation)
        return self.on_frame(frame.to_raw())
