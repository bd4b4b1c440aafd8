from __future__ import annotations
import logging
import threading
import time
from typing import Callable, List, Optional

import cv2
import mediapipe as mp

from homegym.common.config import Settings
from homegym.common.events import Event, RepIncremented
from homegym.counter.landmarks import from_mediapipe
from homegym.counter.pose_core import RawObservation

logger = logging.getLogger(__name__)


class PosePipeline(threading.Thread):
    """
    Webcam -> MediaPipe Pose -> raw joint observations, on a daemon thread.
    Every observation is handed to `on_frame` (normally
    SessionController.submit_raw), which serializes evaluation itself.
    """
    def __init__(
            self,
            on_frame: Callable[[RawObservation], List[Event]],
            settings: Optional[Settings] = None,
            show_window: bool = False,
            on_error: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(name="pose-pipeline", daemon=True)
        self.on_frame = on_frame
        self.settings = settings or Settings()
        self.show_window = show_window
        self.on_error = on_error
        self._stop_evt = threading.Event()
        self._paused = threading.Event()
        self.cap = None
        self.pose = None
        self.count = 0

    def run(self):
        mp_pose = mp.solutions.pose
        s = self.settings
        try:
            self.cap = cv2.VideoCapture(s.camera_index)
            if not self.cap.isOpened():
                raise RuntimeError("Webcam not available")

            self.pose = mp_pose.Pose(
                min_detection_confidence=s.min_detection_confidence,
                min_tracking_confidence=s.min_tracking_confidence,
            )

            if self.show_window:
                try:
                    cv2.namedWindow("HomeGym", cv2.WINDOW_NORMAL)
                except cv2.error:
                    logger.warning("cannot open preview window; running headless")
                    self.show_window = False

            while not self._stop_evt.is_set():
                if self._paused.is_set():
                    time.sleep(0.05)
                    continue
                ok, frame = self.cap.read()
                if not ok:
                    time.sleep(0.01)
                    continue
                image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                res = self.pose.process(image)
                if res.pose_landmarks:
                    for ev in self.on_frame(from_mediapipe(res.pose_landmarks.landmark)):
                        if isinstance(ev, RepIncremented):
                            self.count = ev.count

                if self.show_window:
                    cv2.putText(frame, f"Count: {self.count}", (20, 40),
                                cv2.FONT_HERSHEY_SIMPLEX, 1, (0, 255, 0), 2)
                    cv2.imshow("HomeGym", frame)
                    # macOS: imshow requires waitKey even if we ignore keys
                    _ = cv2.waitKey(1)
        except Exception as e:
            logger.exception("pose pipeline failed")
            if self.on_error:
                self.on_error(str(e))
        finally:
            if self.cap is not None:
                self.cap.release()
            if self.pose is not None:
                self.pose.close()
            if self.show_window:
                cv2.destroyAllWindows()

    def stop(self):
        self._stop_evt.set()

    def pause(self):
        self._paused.set()

    def resume(self):
        self._paused.clear()
