from __future__ import annotations
import math
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, NamedTuple, Optional, Tuple


class JointId(str, Enum):
    NOSE = "nose"
    NECK = "neck"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"
    ROOT = "root"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    PORTRAIT_UPSIDE_DOWN = "portrait_upside_down"
    LANDSCAPE_LEFT = "landscape_left"
    LANDSCAPE_RIGHT = "landscape_right"
    UNKNOWN = "unknown"


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Joint:
    x: float
    y: float
    confidence: float

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


class DegenerateAngleError(ValueError):
    """Raised when one ray of an angle has zero length."""


# Utility math

def distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def angle_3pt(a: Tuple[float, float], b: Tuple[float, float], c: Tuple[float, float]) -> float:
    """Return angle ABC in degrees with B as vertex (law of cosines)."""
    ab2 = (b[0] - a[0]) ** 2 + (b[1] - a[1]) ** 2
    cb2 = (b[0] - c[0]) ** 2 + (b[1] - c[1]) ** 2
    ac2 = (c[0] - a[0]) ** 2 + (c[1] - a[1]) ** 2
    if ab2 == 0.0 or cb2 == 0.0:
        raise DegenerateAngleError(f"zero-length ray at vertex {tuple(b)}")
    cos_b = (ab2 + cb2 - ac2) / math.sqrt(4.0 * ab2 * cb2)
    if not math.isfinite(cos_b):
        raise DegenerateAngleError(f"non-finite geometry at vertex {tuple(b)}")
    # float overshoot can push |cos| just past 1
    cos_b = max(-1.0, min(1.0, cos_b))
    return math.degrees(math.acos(cos_b))


class JointFrame(Mapping[JointId, Joint]):
    """
    One observation of the body: JointId -> Joint, already in screen space.
    Joints with confidence <= 0 or a non-finite coordinate are never stored.
    """
    __slots__ = ("_joints",)

    def __init__(self, joints: Optional[Mapping[JointId, Joint]] = None):
        kept: Dict[JointId, Joint] = {}
        for jid, joint in (joints or {}).items():
            if joint.confidence > 0 and math.isfinite(joint.x) and math.isfinite(joint.y):
                kept[JointId(jid)] = joint
        self._joints = MappingProxyType(kept)

    @classmethod
    def from_points(cls, points: Mapping[JointId, Tuple[float, float]], confidence: float = 1.0) -> "JointFrame":
        return cls({jid: Joint(float(p[0]), float(p[1]), confidence) for jid, p in points.items()})

    def __getitem__(self, jid: JointId) -> Joint:
        return self._joints[jid]

    def __iter__(self) -> Iterator[JointId]:
        return iter(self._joints)

    def __len__(self) -> int:
        return len(self._joints)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, JointFrame):
            return dict(self._joints) == dict(other._joints)
        return NotImplemented

    def __repr__(self) -> str:
        return f"JointFrame({dict(self._joints)!r})"

    def point(self, jid: JointId) -> Point:
        return self._joints[jid].point

    def has_all(self, joints: Iterable[JointId]) -> bool:
        return all(j in self._joints for j in joints)


# ----- coordinate correction -----

RawObservation = Mapping[JointId, Tuple[float, float, float]]


def correct_point(x: float, y: float, orientation: Orientation) -> Point:
    """Estimator space (normalized, y up) -> normalized screen space."""
    if orientation == Orientation.LANDSCAPE_LEFT:
        return Point(1.0 - x, y)
    return Point(x, 1.0 - y)


def correct_frame(
    raw: RawObservation,
    orientation: Orientation = Orientation.PORTRAIT,
    viewport: Tuple[float, float] = (1.0, 1.0),
) -> JointFrame:
    """Filter by confidence, undo the estimator's axes and scale to the viewport."""
    width, height = viewport
    joints: Dict[JointId, Joint] = {}
    for jid, (x, y, conf) in raw.items():
        if conf <= 0:
            continue
        p = correct_point(x, y, orientation)
        joints[JointId(jid)] = Joint(p.x * width, p.y * height, float(conf))
    return JointFrame(joints)
