from __future__ import annotations
import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, Field

ENV_PREFIX = "HOMEGYM_"


class Settings(BaseModel):
    enable_voice: bool = Field(True, description="Speak rep numbers and form cues")
    enable_tutorials: bool = Field(True, description="Show the positioning tutorial before a session")
    enable_countdown: bool = Field(True, description="Run a spoken countdown before counting starts")
    countdown_seconds: int = Field(5, ge=0, description="Length of the pre-exercise countdown")
    viewport_width: float = Field(1024.0, gt=0, description="Screen width that corrected joints are scaled to")
    viewport_height: float = Field(768.0, gt=0, description="Screen height that corrected joints are scaled to")
    camera_index: int = Field(0, ge=0, description="OpenCV capture device index")
    min_detection_confidence: float = Field(0.5, ge=0.0, le=1.0)
    min_tracking_confidence: float = Field(0.5, ge=0.0, le=1.0)

    @property
    def viewport(self) -> Tuple[float, float]:
        return (self.viewport_width, self.viewport_height)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from HOMEGYM_<FIELD> variables; unset fields keep defaults."""
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
