import math

import pytest

from homegym.common.events import EndReason, FormWarning, RepIncremented, SessionEnded
from homegym.counter.detector import FormStatus, Phase, SessionState, step
from homegym.counter.pose_core import JointFrame, JointId as J
from homegym.counter.rules import ExerciseId

from conftest import elbows, frame, plank, pushup, raise_, squat


def run(exercise, frames, state=None):
    state = state or SessionState(exercise=exercise.value if hasattr(exercise, "value") else exercise)
    events = []
    for f in frames:
        state, evs = step(state, f)
        events.append(evs)
    return state, events


# ----- push-ups -----

def test_push_up_scenario():
    s = SessionState(exercise="push_ups")
    s, ev = step(s, pushup(100, 100))
    assert (s.phase, s.count, ev) == (Phase.ACTIVE, 0, [])
    s, ev = step(s, pushup(170, 170))
    assert (s.phase, s.count) == (Phase.RESTING, 1)
    assert ev == [RepIncremented(1)]
    s, ev = step(s, pushup(170, 170))
    assert (s.phase, s.count, ev) == (Phase.RESTING, 1, [])


def test_exit_without_prior_enter_never_counts():
    s, events = run(ExerciseId.PUSH_UPS, [pushup(170, 170)] * 5)
    assert s.count == 0
    assert not any(events)


def test_enter_needs_both_sides():
    s, _ = run(ExerciseId.PUSH_UPS, [pushup(100, 130), pushup(170, 170)])
    assert s.count == 0


def test_count_needs_both_sides():
    s, _ = run(ExerciseId.PUSH_UPS, [pushup(100, 100), pushup(170, 150)])
    assert (s.phase, s.count) == (Phase.ACTIVE, 0)


def test_repeated_frames_are_idempotent():
    s, _ = run(ExerciseId.PUSH_UPS, [pushup(100, 100), pushup(170, 170)])
    again, events = run(ExerciseId.PUSH_UPS, [pushup(170, 170)] * 3, state=s)
    assert again.count == s.count == 1
    assert not any(events)


def test_count_is_monotonic_and_one_per_cycle():
    frames = []
    for _ in range(4):
        frames += [pushup(100, 100), pushup(110, 110), pushup(140, 140), pushup(170, 170), pushup(175, 175)]
    s, events = run(ExerciseId.PUSH_UPS, frames)
    counts = [e.count for evs in events for e in evs]
    assert counts == [1, 2, 3, 4]
    assert s.count == 4


def test_jitter_between_thresholds_counts_once():
    # bounce in the dead band and across the exit line: only one full cycle
    frames = [pushup(110, 110), pushup(165, 165), pushup(130, 130), pushup(165, 165), pushup(150, 150)]
    s, events = run(ExerciseId.PUSH_UPS, frames)
    assert s.count == 1
    assert sum(len(e) for e in events) == 1


def test_missing_joint_keeps_phase_and_count():
    s, _ = run(ExerciseId.PUSH_UPS, [pushup(100, 100)])
    after, ev = step(s, pushup(170, 170, drop=(J.LEFT_ELBOW,)))
    assert ev == []
    assert (after.phase, after.count) == (Phase.ACTIVE, 0)
    # the rep still completes once the joint comes back
    after, ev = step(after, pushup(170, 170))
    assert ev == [RepIncremented(1)]


def test_last_pose_is_kept_even_without_transition():
    f = pushup(140, 140, drop=(J.RIGHT_WRIST,))
    s, _ = step(SessionState(exercise="push_ups"), f)
    assert s.last_pose == f


def test_unknown_exercise_accepts_frames_silently():
    s, events = run("burpees", [pushup(100, 100), pushup(170, 170)])
    assert s.count == 0 and not any(events)


def test_display_name_works_as_exercise_key():
    s, _ = run("Push-Ups", [pushup(100, 100), pushup(170, 170)])
    assert s.count == 1


# ----- other paired-angle exercises -----

@pytest.mark.parametrize("exercise,make,down,up", [
    (ExerciseId.BASIC_SQUATS, squat, 85, 170),
    (ExerciseId.LUNGES, squat, 88, 165),
    (ExerciseId.WALL_SQUATS, squat, 80, 170),
    (ExerciseId.BICEP_CURLS, pushup, 45, 170),
    (ExerciseId.LATERAL_RAISES, raise_, 85, 15),
    (ExerciseId.FRONT_RAISES, raise_, 75, 25),
])
def test_paired_angle_cycle(exercise, make, down, up):
    s, events = run(exercise, [make(up, up), make(down, down), make(up, up)])
    assert s.count == 1
    assert events[-1] == [RepIncremented(1)]


def _square_knees(hip_dx: float) -> JointFrame:
    # knee at the origin of each leg, hip straight up, ankle out to the side
    return JointFrame.from_points({
        J.LEFT_HIP: (100, 0), J.LEFT_KNEE: (100, 100), J.LEFT_ANKLE: (100 + hip_dx, 100),
        J.RIGHT_HIP: (300, 0), J.RIGHT_KNEE: (300, 100), J.RIGHT_ANKLE: (300 + hip_dx, 100),
    })


def test_basic_squat_enters_at_exactly_90_but_wall_squat_does_not():
    at_90 = _square_knees(100)
    basic, _ = step(SessionState(exercise="basic_squats"), at_90)
    wall, _ = step(SessionState(exercise="wall_squats"), at_90)
    assert basic.phase == Phase.ACTIVE
    assert wall.phase == Phase.RESTING


def test_bicep_curl_needs_deep_flexion():
    s, _ = run(ExerciseId.BICEP_CURLS, [pushup(100, 100), pushup(170, 170)])
    assert s.count == 0


# ----- high knees -----

def _knees_up(left: bool, right: bool) -> JointFrame:
    return JointFrame.from_points({
        J.LEFT_HIP: (450, 400), J.RIGHT_HIP: (550, 400),
        J.LEFT_KNEE: (450, 350 if left else 550), J.RIGHT_KNEE: (550, 350 if right else 550),
    })


def test_high_knees_counts_after_both_sides_drop():
    s, events = run(ExerciseId.HIGH_KNEES, [
        _knees_up(False, False),
        _knees_up(True, False),
        _knees_up(False, True),
        _knees_up(False, False),
        _knees_up(False, False),
    ])
    assert s.count == 1
    assert events[3] == [RepIncremented(1)]


# ----- jumping jacks -----

def _jack(arms_up: bool, legs_open: bool) -> JointFrame:
    wrist_y = 50 if arms_up else 350
    ankle_dx = 150 if legs_open else 20
    return JointFrame.from_points({
        J.LEFT_SHOULDER: (450, 200), J.RIGHT_SHOULDER: (550, 200),
        J.LEFT_WRIST: (420, wrist_y), J.RIGHT_WRIST: (580, wrist_y),
        J.LEFT_HIP: (470, 400), J.RIGHT_HIP: (530, 400),
        J.LEFT_ANKLE: (500 - ankle_dx, 700), J.RIGHT_ANKLE: (500 + ankle_dx, 700),
    })


def test_jumping_jacks_full_and_half_cycles():
    s, _ = run(ExerciseId.JUMPING_JACKS, [
        _jack(True, True),
        _jack(True, False),   # arms still up: not closed yet
        _jack(False, False),  # rep 1
        _jack(True, False),   # half jack never arms the phase
        _jack(False, False),
    ])
    assert s.count == 1


# ----- pilates sit-ups -----

def _situp(shoulder_y: float, elbow_gap: float) -> JointFrame:
    # lying on the back: knees raised above hips (smaller y)
    return JointFrame.from_points({
        J.LEFT_HIP: (400, 600), J.RIGHT_HIP: (410, 600),
        J.LEFT_KNEE: (550, 450), J.RIGHT_KNEE: (560, 450),
        J.LEFT_SHOULDER: (250, shoulder_y), J.RIGHT_SHOULDER: (260, shoulder_y),
        J.LEFT_ELBOW: (550 - elbow_gap, 450), J.RIGHT_ELBOW: (560 - elbow_gap, 450),
    })


def test_pilates_sit_up_cycle():
    s, events = run(ExerciseId.PILATES_SIT_UPS, [
        _situp(620, 200),  # lying down
        _situp(440, 30),   # sat up, elbows reach the knees
        _situp(620, 200),  # back down: rep
    ])
    assert s.count == 1
    assert events[2] == [RepIncremented(1)]


def test_pilates_needs_elbows_near_knees():
    s, _ = run(ExerciseId.PILATES_SIT_UPS, [_situp(440, 80), _situp(620, 200)])
    assert s.count == 0


# ----- planks -----

def test_plank_warning_then_failure_sequence():
    s, events = run(ExerciseId.PLANKS, [plank(10), plank(35), plank(10), plank(55)])
    assert events[0] == []
    assert events[1] == [FormWarning("Keep your hips up")]
    assert events[2] == []
    assert len(events[3]) == 1
    ended = events[3][0]
    assert isinstance(ended, SessionEnded) and ended.reason == EndReason.FORM_FAILURE
    assert s.form == FormStatus.FAILED and s.ended


def test_plank_warning_is_edge_triggered():
    s, events = run(ExerciseId.PLANKS, [plank(35), plank(40), plank(50), plank(31)])
    assert [len(e) for e in events] == [1, 0, 0, 0]
    assert s.form == FormStatus.WARNED


def test_plank_recovery_rearms_warning():
    _, events = run(ExerciseId.PLANKS, [plank(35), plank(30), plank(45)])
    assert [len(e) for e in events] == [1, 0, 1]


def test_plank_failure_is_terminal():
    s, events = run(ExerciseId.PLANKS, [plank(60), plank(70), plank(10), plank(35)])
    assert [len(e) for e in events] == [1, 0, 0, 0]
    assert s.ended


def test_plank_never_counts_reps():
    s, _ = run(ExerciseId.PLANKS, [plank(0)] * 3)
    assert s.count == 0 and s.phase == Phase.RESTING


def test_non_finite_joint_is_skipped_like_a_missing_one():
    points = elbows(170, 170)
    points[J.LEFT_WRIST] = (math.nan, math.nan)
    points[J.RIGHT_WRIST] = (math.nan, math.nan)
    s, events = run(ExerciseId.PUSH_UPS, [frame(points), pushup(170, 170)])
    assert s.phase == Phase.RESTING
    assert s.count == 0
    assert events == [[], []]
