from __future__ import annotations
import logging
import platform
import queue
import subprocess
import threading
import time
from typing import Optional

logger = logging.getLogger(__name__)

_PREWARM = object()


class TTSEngine:
    """
    Background speech queue. Cues are spoken in order on a single worker
    thread so a burst of rep numbers never blocks frame evaluation.
    """
    def __init__(self, prefer_mac_say: bool = True):
        self.prefer_mac_say = prefer_mac_say and platform.system() == "Darwin"
        self.q: "queue.Queue[object]" = queue.Queue()
        self._stop = threading.Event()
        self._pyttsx3 = None
        self._speaking = False
        self.worker = threading.Thread(target=self._run, name="tts", daemon=True)
        self.worker.start()

    def say(self, text: str):
        if not text:
            return
        self.q.put(text)

    def prewarm(self):
        """Load the speech backend ahead of the first cue."""
        self.q.put(_PREWARM)

    def is_speaking(self) -> bool:
        return bool(self._speaking or not self.q.empty())

    def wait_until_idle(self, timeout: Optional[float] = None):
        """Block until queued speech is done or `timeout` seconds pass."""
        t0 = time.monotonic()
        while self.is_speaking():
            if timeout is not None and (time.monotonic() - t0) >= timeout:
                return
            time.sleep(0.05)

    def shutdown(self):
        self._stop.set()
        self.worker.join(timeout=1.0)

    # ----- worker -----

    def _ensure_pyttsx3(self):
        if self._pyttsx3 is None:
            import pyttsx3  # lazy import
            self._pyttsx3 = pyttsx3.init()
        return self._pyttsx3

    def _speak(self, text: str):
        if self.prefer_mac_say:
            subprocess.run(["say", text], check=False)
        else:
            engine = self._ensure_pyttsx3()
            engine.say(text)
            engine.runAndWait()

    def _run(self):
        while not self._stop.is_set():
            try:
                item = self.q.get(timeout=0.1)
            except queue.Empty:
                continue
            self._speaking = True
            try:
                if item is _PREWARM:
                    if not self.prefer_mac_say:
                        self._ensure_pyttsx3()
                else:
                    self._speak(str(item))
            except Exception:
                logger.exception("speech failed for %r", item)
            finally:
                self._speaking = False
                self.q.task_done()
