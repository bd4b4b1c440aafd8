from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional, Tuple, Union

from homegym.counter.pose_core import (
    DegenerateAngleError,
    JointFrame,
    JointId as J,
    angle_3pt,
    distance,
)


class UnknownExerciseError(ValueError):
    pass


class ExerciseId(str, Enum):
    PUSH_UPS = "push_ups"
    BASIC_SQUATS = "basic_squats"
    WALL_SQUATS = "wall_squats"
    HIGH_KNEES = "high_knees"
    LATERAL_RAISES = "lateral_raises"
    FRONT_RAISES = "front_raises"
    PILATES_SIT_UPS = "pilates_sit_ups"
    LUNGES = "lunges"
    BICEP_CURLS = "bicep_curls"
    JUMPING_JACKS = "jumping_jacks"
    PLANKS = "planks"

    @property
    def display_name(self) -> str:
        return CATALOG[self].display_name

    @property
    def instructions(self) -> str:
        return CATALOG[self].instructions

    @classmethod
    def parse(cls, name: Union[str, "ExerciseId"]) -> "ExerciseId":
        found = lookup_exercise(name)
        if found is None:
            raise UnknownExerciseError(f"unknown exercise: {name!r}")
        return found


@dataclass(frozen=True)
class ExerciseInfo:
    display_name: str
    instructions: str


_DEFAULT_INSTRUCTIONS = "Position yourself so your full body is visible to the camera throughout the exercise."

CATALOG: Dict[ExerciseId, ExerciseInfo] = {
    ExerciseId.PUSH_UPS: ExerciseInfo(
        "Push-Ups",
        "Position your body facing the camera. Get your whole body in view and assume the push-up "
        "position. Maintain eye contact with the screen during your reps.",
    ),
    ExerciseId.BASIC_SQUATS: ExerciseInfo(
        "Basic Squats",
        "Stand parallel to the camera with feet shoulder-width apart and your full body visible. "
        "Bend your knees with a straight back until your thighs are parallel to the ground, then stand up.",
    ),
    ExerciseId.WALL_SQUATS: ExerciseInfo(
        "Wall Squats",
        "Stand parallel to the camera with your feet about 2 feet from the wall. Slide down until your "
        "thighs are parallel to the ground, hold, then push back up.",
    ),
    ExerciseId.HIGH_KNEES: ExerciseInfo(
        "High Knees",
        "Face the camera with your full body visible. Alternate lifting each knee towards your chest "
        "in a running motion at a steady pace.",
    ),
    ExerciseId.LATERAL_RAISES: ExerciseInfo(
        "Lateral Raises",
        "Face the camera with arms at your sides. Keep your upper body steady and raise your arms out "
        "to the sides until they are parallel to the ground.",
    ),
    ExerciseId.FRONT_RAISES: ExerciseInfo(
        "Front Raises",
        "Face the camera with arms at your sides. Keep your upper body steady and raise your arms "
        "straight out in front of you until they are parallel to the ground.",
    ),
    ExerciseId.PILATES_SIT_UPS: ExerciseInfo(
        "Pilates Sit-Ups Hybrid",
        "Lie on your back parallel to the camera with knees bent and feet flat. Stretch your arms out "
        "in front as you roll up and sit up, keeping your core tight.",
    ),
    ExerciseId.LUNGES: ExerciseInfo(
        "Lunges",
        "Stand parallel to the camera. Step forward and lower your body until both knees form "
        "90-degree angles, return, and repeat with the other leg.",
    ),
    ExerciseId.BICEP_CURLS: ExerciseInfo(
        "Bicep Curls - Simultaneous",
        "Face the camera with arms at your sides. Keep your upper body steady and curl both arms at "
        "the same time with your full arms visible.",
    ),
    ExerciseId.JUMPING_JACKS: ExerciseInfo(
        "Jumping Jacks",
        "Face the camera with feet together and arms at your sides. Keep your full body in view.",
    ),
    ExerciseId.PLANKS: ExerciseInfo(
        "Planks",
        "Position your body parallel to the camera in a forearm plank and keep your hips in line "
        "with your shoulders.",
    ),
}

_ALIASES: Dict[str, ExerciseId] = {}
for _ex, _info in CATALOG.items():
    _ALIASES[_ex.value] = _ex
    _ALIASES[_info.display_name.lower()] = _ex
_ALIASES["bicep curls"] = ExerciseId.BICEP_CURLS


def lookup_exercise(name: Union[str, ExerciseId, None]) -> Optional[ExerciseId]:
    """Resolve a machine value or display name; None when unknown."""
    if name is None:
        return None
    if isinstance(name, ExerciseId):
        return name
    return _ALIASES.get(str(name).strip().lower())


def exercise_instructions(name: Union[str, ExerciseId]) -> str:
    ex = lookup_exercise(name)
    return ex.instructions if ex is not None else _DEFAULT_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Features: each one reads the current frame only and returns None when a
# required joint is missing (or the geometry is degenerate).
# ---------------------------------------------------------------------------

Triple = Tuple[J, J, J]


@dataclass(frozen=True)
class PairedAngle:
    """Angle at the middle joint of each triple -> (left_deg, right_deg)."""
    left: Triple
    right: Triple
    kind: ClassVar[str] = "paired_angle"

    @property
    def joints(self) -> Tuple[J, ...]:
        return self.left + self.right

    def extract(self, frame: JointFrame) -> Optional[Tuple[float, float]]:
        if not frame.has_all(self.joints):
            return None
        try:
            return (
                angle_3pt(*(frame.point(j) for j in self.left)),
                angle_3pt(*(frame.point(j) for j in self.right)),
            )
        except DegenerateAngleError:
            return None


@dataclass(frozen=True)
class HeightComparison:
    """Per side: is `upper` joint higher on screen (smaller y) than `lower`?"""
    left: Tuple[J, J]
    right: Tuple[J, J]
    kind: ClassVar[str] = "height_comparison"

    @property
    def joints(self) -> Tuple[J, ...]:
        return self.left + self.right

    def extract(self, frame: JointFrame) -> Optional[Tuple[bool, bool]]:
        if not frame.has_all(self.joints):
            return None
        return (
            frame[self.left[0]].y < frame[self.left[1]].y,
            frame[self.right[0]].y < frame[self.right[1]].y,
        )


Signal = Callable[[JointFrame], bool]


@dataclass(frozen=True)
class Composite:
    """Named boolean signals over a fixed joint set -> {name: bool}."""
    joints: Tuple[J, ...]
    signals: Tuple[Tuple[str, Signal], ...]
    kind: ClassVar[str] = "composite"

    def extract(self, frame: JointFrame) -> Optional[Dict[str, bool]]:
        if not frame.has_all(self.joints):
            return None
        return {name: bool(fn(frame)) for name, fn in self.signals}


@dataclass(frozen=True)
class HipDrop:
    """Mean hip height minus mean shoulder height (positive = hips sagging)."""
    joints: ClassVar[Tuple[J, ...]] = (J.LEFT_SHOULDER, J.RIGHT_SHOULDER, J.LEFT_HIP, J.RIGHT_HIP)
    kind: ClassVar[str] = "hip_drop"

    def extract(self, frame: JointFrame) -> Optional[float]:
        if not frame.has_all(self.joints):
            return None
        shoulder_y = (frame[J.LEFT_SHOULDER].y + frame[J.RIGHT_SHOULDER].y) / 2
        hip_y = (frame[J.LEFT_HIP].y + frame[J.RIGHT_HIP].y) / 2
        return hip_y - shoulder_y


Feature = Union[PairedAngle, HeightComparison, Composite, HipDrop]


# ----- predicates over feature values -----

Predicate = Callable[[Any], bool]


def both_below(limit: float) -> Predicate:
    return lambda v: v[0] < limit and v[1] < limit


def both_at_most(limit: float) -> Predicate:
    return lambda v: v[0] <= limit and v[1] <= limit


def both_above(limit: float) -> Predicate:
    return lambda v: v[0] > limit and v[1] > limit


def either_true(v) -> bool:
    return bool(v[0] or v[1])


def neither_true(v) -> bool:
    return not (v[0] or v[1])


def all_of(*names: str) -> Predicate:
    return lambda v: all(v[n] for n in names)


def none_of(*names: str) -> Predicate:
    return lambda v: not any(v[n] for n in names)


# ----- composite signals -----

def arms_up(f: JointFrame) -> bool:
    return f[J.LEFT_WRIST].y < f[J.LEFT_SHOULDER].y and f[J.RIGHT_WRIST].y < f[J.RIGHT_SHOULDER].y


LEGS_OPEN_RATIO = 1.3


def legs_open(f: JointFrame) -> bool:
    hip_width = distance(f.point(J.LEFT_HIP), f.point(J.RIGHT_HIP))
    ankle_spread = distance(f.point(J.LEFT_ANKLE), f.point(J.RIGHT_ANKLE))
    return ankle_spread > hip_width * LEGS_OPEN_RATIO


def knees_above_hips(f: JointFrame) -> bool:
    return f[J.LEFT_KNEE].y < f[J.LEFT_HIP].y and f[J.RIGHT_KNEE].y < f[J.RIGHT_HIP].y


def shoulders_at_or_above_knees(f: JointFrame) -> bool:
    return f[J.LEFT_SHOULDER].y <= f[J.LEFT_KNEE].y and f[J.RIGHT_SHOULDER].y <= f[J.RIGHT_KNEE].y


def shoulders_below_knees(f: JointFrame) -> bool:
    return f[J.LEFT_SHOULDER].y > f[J.LEFT_KNEE].y and f[J.RIGHT_SHOULDER].y > f[J.RIGHT_KNEE].y


ELBOW_TO_KNEE_LIMIT = 50.0  # screen units


def elbow_near_knee(f: JointFrame) -> bool:
    return (
        distance(f.point(J.LEFT_ELBOW), f.point(J.LEFT_KNEE)) < ELBOW_TO_KNEE_LIMIT
        or distance(f.point(J.RIGHT_ELBOW), f.point(J.RIGHT_KNEE)) < ELBOW_TO_KNEE_LIMIT
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RepRule:
    """Two-phase rep counter: `enter` arms the active phase, `count` closes it."""
    feature: Feature
    enter: Predicate
    count: Predicate

    @property
    def joints(self) -> Tuple[J, ...]:
        return tuple(self.feature.joints)


@dataclass(frozen=True)
class FormRule:
    """Hold-style exercise judged by a scalar deviation instead of reps."""
    feature: HipDrop
    warning: float
    failure: float
    warning_message: str
    failure_message: str

    @property
    def joints(self) -> Tuple[J, ...]:
        return tuple(self.feature.joints)


Rule = Union[RepRule, FormRule]

ELBOWS = PairedAngle(
    left=(J.LEFT_SHOULDER, J.LEFT_ELBOW, J.LEFT_WRIST),
    right=(J.RIGHT_SHOULDER, J.RIGHT_ELBOW, J.RIGHT_WRIST),
)
KNEES = PairedAngle(
    left=(J.LEFT_HIP, J.LEFT_KNEE, J.LEFT_ANKLE),
    right=(J.RIGHT_HIP, J.RIGHT_KNEE, J.RIGHT_ANKLE),
)
ARMS = PairedAngle(
    left=(J.LEFT_ELBOW, J.LEFT_SHOULDER, J.LEFT_HIP),
    right=(J.RIGHT_ELBOW, J.RIGHT_SHOULDER, J.RIGHT_HIP),
)

_SQUAT = RepRule(KNEES, enter=both_at_most(90), count=both_above(160))
_RAISE = RepRule(ARMS, enter=both_above(70), count=both_below(30))

RULES: Mapping[ExerciseId, Rule] = {
    ExerciseId.PUSH_UPS: RepRule(ELBOWS, enter=both_below(120), count=both_above(160)),
    ExerciseId.BASIC_SQUATS: _SQUAT,
    ExerciseId.LUNGES: _SQUAT,
    ExerciseId.WALL_SQUATS: RepRule(KNEES, enter=both_below(90), count=both_above(160)),
    ExerciseId.HIGH_KNEES: RepRule(
        HeightComparison(left=(J.LEFT_KNEE, J.LEFT_HIP), right=(J.RIGHT_KNEE, J.RIGHT_HIP)),
        enter=either_true,
        count=neither_true,
    ),
    ExerciseId.BICEP_CURLS: RepRule(ELBOWS, enter=both_below(60), count=both_above(160)),
    ExerciseId.LATERAL_RAISES: _RAISE,
    ExerciseId.FRONT_RAISES: _RAISE,
    ExerciseId.JUMPING_JACKS: RepRule(
        Composite(
            joints=(
                J.LEFT_WRIST, J.RIGHT_WRIST, J.LEFT_SHOULDER, J.RIGHT_SHOULDER,
                J.LEFT_ANKLE, J.RIGHT_ANKLE, J.LEFT_HIP, J.RIGHT_HIP,
            ),
            signals=(("arms_up", arms_up), ("legs_open", legs_open)),
        ),
        enter=all_of("arms_up", "legs_open"),
        count=none_of("arms_up", "legs_open"),
    ),
    ExerciseId.PILATES_SIT_UPS: RepRule(
        Composite(
            joints=(
                J.LEFT_ELBOW, J.RIGHT_ELBOW, J.LEFT_KNEE, J.RIGHT_KNEE,
                J.LEFT_HIP, J.RIGHT_HIP, J.LEFT_SHOULDER, J.RIGHT_SHOULDER,
            ),
            signals=(
                ("knees_above_hips", knees_above_hips),
                ("shoulders_up", shoulders_at_or_above_knees),
                ("shoulders_down", shoulders_below_knees),
                ("elbow_near_knee", elbow_near_knee),
            ),
        ),
        enter=all_of("knees_above_hips", "shoulders_up", "elbow_near_knee"),
        count=all_of("knees_above_hips", "shoulders_down"),
    ),
    ExerciseId.PLANKS: FormRule(
        HipDrop(),
        warning=30.0,
        failure=50.0,
        warning_message="Keep your hips up",
        failure_message="Exercise ended. Your form dropped too low",
    ),
}


def lookup_rule(exercise: Union[str, ExerciseId, None]) -> Optional[Rule]:
    ex = lookup_exercise(exercise)
    return RULES.get(ex) if ex is not None else None
