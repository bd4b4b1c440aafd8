from __future__ import annotations
import logging
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Tuple, Union

from homegym.audio.tts import TTSEngine
from homegym.common.config import Settings
from homegym.common.events import (
    EndReason,
    Event,
    EventType,
    FormWarning,
    RepIncremented,
    SessionEnded,
    SessionEvent,
    to_payload,
)
from homegym.counter.detector import SessionState, step
from homegym.counter.pose_core import JointFrame, Orientation, RawObservation, correct_frame
from homegym.counter.rules import ExerciseId, lookup_exercise, lookup_rule
from homegym.counter.web_pipeline import WebFramePipeline

logger = logging.getLogger(__name__)

Listener = Callable[[Event], None]


@dataclass
class Gate:
    """UI signals that decide whether a frame may reach the counter."""
    paused: bool = False
    tutorial_visible: bool = False
    countdown_visible: bool = False
    summary_visible: bool = False
    tutorials_enabled: bool = True

    def blocks(self) -> bool:
        return (
            (self.tutorial_visible and self.tutorials_enabled)
            or self.countdown_visible
            or self.summary_visible
            or self.paused
        )


class SessionController:
    """
    Owns the SessionState of one exercise session and serializes every
    evaluation behind a lock (frames may come from a camera thread while
    the UI flips gate flags from another).
    """
    def __init__(
        self,
        exercise: Union[str, ExerciseId],
        gate: Optional[Gate] = None,
        orientation: Orientation = Orientation.PORTRAIT,
        viewport: Tuple[float, float] = (1.0, 1.0),
    ):
        ex = lookup_exercise(exercise)
        self.exercise = ex.value if ex is not None else str(exercise)
        if lookup_rule(self.exercise) is None:
            logger.warning("no rule for exercise %r; frames will be accepted without counting", exercise)
        self.gate = gate or Gate()
        self.orientation = orientation
        self.viewport = viewport
        self._state = SessionState(exercise=self.exercise)
        self._lock = threading.Lock()
        self._closed = False
        self._listeners: List[Listener] = []
        # events wait here in evaluation order; one thread at a time delivers them
        self._pending: Deque[Event] = deque()
        self._delivering = False

    # ----- observers -----

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def count(self) -> int:
        return self.state.count

    @property
    def closed(self) -> bool:
        return self._closed

    # ----- gate signals -----

    def set_gate(self, **flags: bool) -> None:
        with self._lock:
            for name, value in flags.items():
                if not hasattr(self.gate, name):
                    raise AttributeError(f"unknown gate flag: {name}")
                setattr(self.gate, name, bool(value))

    def set_orientation(self, orientation: Union[str, Orientation]) -> None:
        with self._lock:
            self.orientation = Orientation(orientation)

    # ----- frames -----

    def submit_raw(self, raw: RawObservation) -> List[Event]:
        """Correct an estimator observation for the current orientation, then submit it."""
        return self.submit(correct_frame(raw, self.orientation, self.viewport))

    def submit(self, frame: JointFrame) -> List[Event]:
        with self._lock:
            if self._closed or self.gate.blocks():
                return []
            self._state, events = step(self._state, frame)
            if any(isinstance(ev, SessionEnded) for ev in events):
                self.gate.summary_visible = True
            self._pending.extend(events)
            if self._delivering:
                return events
            self._delivering = True

        self._deliver()
        return events

    def close(self) -> SessionState:
        """Drop the session; an evaluation in flight finishes before this returns."""
        with self._lock:
            self._closed = True
            return self._state

    def _deliver(self) -> None:
        while True:
            with self._lock:
                if not self._pending:
                    self._delivering = False
                    return
                ev = self._pending.popleft()
            self._dispatch(ev)

    def _dispatch(self, ev: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener(ev)
            except Exception:
                logger.exception("event listener failed for %s", ev)


# ---------------------------------------------------------------------------
# Session manager: one active session, speech, countdown, outer event sink
# ---------------------------------------------------------------------------

@dataclass
class SessionStatus:
    session_id: str
    state: str
    count: int
    exercise: Optional[str] = None
    elapsed_s: float = 0.0


@dataclass
class FinalSummary:
    session_id: str
    exercise: str
    total_reps: int
    elapsed_s: float
    reason: EndReason = EndReason.USER_STOPPED


class SessionClosedError(RuntimeError):
    pass


class RepSessionManager:
    def __init__(self, settings: Optional[Settings] = None, tts=None):
        self.settings = settings or Settings()
        self.tts = tts if tts is not None else TTSEngine()
        self.active_id: Optional[str] = None
        self.controller: Optional[SessionController] = None
        self.active_pipeline = None
        self.web_mode: bool = False           # browser is feeding frames?
        self.end_reason: Optional[EndReason] = None
        self._event_sink: Optional[Callable[[dict], None]] = None
        self._countdown: Optional[threading.Timer] = None
        self._countdown_left = 0
        self._lock = threading.RLock()
        # active (unpaused) time bookkeeping
        self._elapsed = 0.0
        self._live_since: Optional[float] = None

    def set_event_sink(self, sink: Callable[[dict], None]):
        self._event_sink = sink

    @property
    def count(self) -> int:
        return self.controller.count if self.controller else 0

    # ----- lifecycle -----

    def start(self, exercise: Union[str, ExerciseId], camera: bool = False) -> Tuple[str, str]:
        # stop existing session if any
        if self.controller is not None:
            self.stop(self.active_id)

        s = self.settings
        gate = Gate(tutorials_enabled=s.enable_tutorials, tutorial_visible=s.enable_tutorials)
        ctl = SessionController(exercise, gate=gate, viewport=s.viewport)
        ctl.add_listener(self._on_event)

        with self._lock:
            self.active_id = str(uuid.uuid4())
            self.controller = ctl
            self.end_reason = None
            self._elapsed = 0.0
            self._live_since = None

        if s.enable_voice and hasattr(self.tts, "prewarm"):
            self.tts.prewarm()

        # camera thread, or passive pipeline fed by a web client
        if camera:
            pipe = self._make_camera_pipeline(ctl)
        else:
            pipe = WebFramePipeline(ctl.submit_raw, ctl.set_orientation)
        self.active_pipeline = pipe
        pipe.start()

        logger.info("session %s started: %s", self.active_id, ctl.exercise)
        self._emit(SessionEvent(EventType.SESSION_STARTED, self.active_id, ctl.exercise, time.time()))
        if not s.enable_tutorials:
            self._after_tutorial()
        return self.active_id, f"started {ctl.exercise}"

    def dismiss_tutorial(self) -> None:
        ctl = self._require()
        ctl.set_gate(tutorial_visible=False)
        self._after_tutorial()

    def _after_tutorial(self) -> None:
        if self.settings.enable_countdown and self.settings.countdown_seconds > 0:
            self.start_countdown(self.settings.countdown_seconds)
        else:
            self._go_live()

    def start_countdown(self, seconds: int) -> None:
        ctl = self._require()
        ctl.set_gate(countdown_visible=True)
        with self._lock:
            self._countdown_left = seconds
        self._say(str(seconds))
        self._schedule_tick()

    def _schedule_tick(self) -> None:
        with self._lock:
            self._countdown = threading.Timer(1.0, self._tick)
            self._countdown.daemon = True
            self._countdown.start()

    def _tick(self) -> None:
        with self._lock:
            if self.controller is None:
                return
            self._countdown_left -= 1
            left = self._countdown_left
        if left > 0:
            self._say(str(left))
            self._schedule_tick()
        else:
            self.finish_countdown()

    def finish_countdown(self) -> None:
        self._cancel_countdown()
        self._go_live()

    def _go_live(self) -> None:
        ctl = self.controller
        if ctl is None:
            return
        ctl.set_gate(countdown_visible=False)
        # a pause taken during the tutorial or countdown holds until resume()
        if not ctl.gate.blocks():
            self._clock_start()

    def pause(self, session_id: Optional[str] = None) -> str:
        if self.controller is None:
            return self.active_id or ""
        self.controller.set_gate(paused=True)
        self._clock_stop()
        if self.active_pipeline is not None:
            self.active_pipeline.pause()
        logger.info("session %s paused", self.active_id)
        self._emit(SessionEvent(EventType.SESSION_PAUSED, self.active_id or "", self.controller.exercise, time.time(), self.count))
        return self.active_id or ""

    def resume(self, session_id: Optional[str] = None) -> str:
        if self.controller is None or self.controller.gate.summary_visible:
            return self.active_id or ""
        self.controller.set_gate(paused=False)
        if not self.controller.gate.blocks():
            self._clock_start()
        if self.active_pipeline is not None:
            self.active_pipeline.resume()
        logger.info("session %s resumed", self.active_id)
        self._emit(SessionEvent(EventType.SESSION_RESUMED, self.active_id or "", self.controller.exercise, time.time(), self.count))
        return self.active_id or ""

    def stop(self, session_id: Optional[str] = None) -> FinalSummary:
        ctl = self._require()
        self._cancel_countdown()
        if self.active_pipeline is not None:
            self.active_pipeline.stop()
            if hasattr(self.active_pipeline, "join"):
                self.active_pipeline.join(timeout=1.0)
        final_state = ctl.close()
        self._clock_stop()

        summary = FinalSummary(
            session_id=self.active_id or "",
            exercise=ctl.exercise,
            total_reps=final_state.count,
            elapsed_s=self._elapsed,
            reason=self.end_reason or EndReason.USER_STOPPED,
        )
        with self._lock:
            self.controller = None
            self.active_pipeline = None
            self.active_id = None
        logger.info("session %s stopped: %d reps (%s)", summary.session_id, summary.total_reps, summary.reason.value)
        self._emit(SessionEvent(EventType.SESSION_STOPPED, summary.session_id, summary.exercise, time.time(), summary.total_reps))
        return summary

    def status(self, session_id: Optional[str] = None) -> SessionStatus:
        ctl = self.controller
        if ctl is None:
            return SessionStatus(session_id="", state="idle", count=0)
        g = ctl.gate
        if g.summary_visible:
            state = "ended"
        elif g.tutorial_visible and g.tutorials_enabled:
            state = "tutorial"
        elif g.countdown_visible:
            state = "countdown"
        elif g.paused:
            state = "paused"
        else:
            state = "running"
        return SessionStatus(
            session_id=self.active_id or "",
            state=state,
            count=ctl.count,
            exercise=ctl.exercise,
            elapsed_s=self.elapsed_s,
        )

    @property
    def elapsed_s(self) -> float:
        with self._lock:
            live = time.monotonic() - self._live_since if self._live_since is not None else 0.0
            return self._elapsed + live

    # ----- frames -----

    def set_web_mode(self, active: bool):
        self.web_mode = bool(active)

    def push_frame(self, raw: RawObservation, orientation: Optional[Union[str, Orientation]] = None) -> List[Event]:
        ctl = self.controller
        if ctl is None:
            return []
        if orientation is not None:
            ctl.set_orientation(orientation)
        return ctl.submit_raw(raw)

    def push_payload(self, payload: dict) -> List[Event]:
        """Feed one browser frame message (see web_pipeline.FramePayload)."""
        if isinstance(self.active_pipeline, WebFramePipeline):
            return self.active_pipeline.push(payload)
        return []

    # ----- callbacks -----

    def _on_event(self, ev: Event) -> None:
        if isinstance(ev, RepIncremented):
            self._say(str(ev.count))
        elif isinstance(ev, FormWarning):
            self._say(ev.message)
        elif isinstance(ev, SessionEnded):
            self.end_reason = ev.reason
            self._clock_stop()
            self._say(ev.message)
            logger.info("session %s ended: %s", self.active_id, ev.reason.value)
        self._emit(ev)

    def _on_error(self, msg: str):
        # called from the camera thread
        logger.error("pipeline error: %s", msg)
        self.end_reason = EndReason.PIPELINE_ERROR
        self._say("camera error")
        ctl = self.controller
        if ctl is not None:
            ctl.set_gate(summary_visible=True)
            self._clock_stop()
        self._emit({"type": "trace", "msg": f"pipeline error: {msg}"})

    # ----- helpers -----

    def _make_camera_pipeline(self, ctl: SessionController):
        from homegym.counter.pipeline import PosePipeline
        return PosePipeline(ctl.submit_raw, self.settings, on_error=self._on_error)

    def _require(self) -> SessionController:
        if self.controller is None:
            raise SessionClosedError("no active session")
        return self.controller

    def _cancel_countdown(self) -> None:
        with self._lock:
            if self._countdown is not None:
                self._countdown.cancel()
                self._countdown = None

    def _clock_start(self) -> None:
        with self._lock:
            if self._live_since is None:
                self._live_since = time.monotonic()

    def _clock_stop(self) -> None:
        with self._lock:
            if self._live_since is not None:
                self._elapsed += time.monotonic() - self._live_since
                self._live_since = None

    def _say(self, text: str) -> None:
        # Speak only if not in web mode (browser will TTS if web)
        if self.settings.enable_voice and not self.web_mode and text:
            self.tts.say(text)

    def _emit(self, ev) -> None:
        if self._event_sink is None:
            return
        payload = ev if isinstance(ev, dict) else to_payload(ev)
        try:
            self._event_sink(payload)
        except Exception:
            logger.exception("event sink failed")
