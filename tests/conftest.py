from __future__ import annotations
import math
from typing import Dict, Tuple

import pytest

from homegym.common.config import Settings
from homegym.counter.pose_core import JointFrame, JointId as J
from homegym.counter.session import RepSessionManager

Pt = Tuple[float, float]


def limb(vertex: Pt, angle_deg: float, ref: Pt = (0.0, -1.0), length: float = 100.0) -> Tuple[Pt, Pt, Pt]:
    """(outer_a, vertex, outer_c) with `angle_deg` at the vertex; outer_a lies along `ref`."""
    vx, vy = vertex
    rx, ry = ref
    t = math.radians(angle_deg)
    cx = rx * math.cos(t) - ry * math.sin(t)
    cy = rx * math.sin(t) + ry * math.cos(t)
    return (vx + rx * length, vy + ry * length), vertex, (vx + cx * length, vy + cy * length)


def elbows(left: float, right: float) -> Dict[J, Pt]:
    ls, le, lw = limb((300.0, 400.0), left)
    rs, re, rw = limb((700.0, 400.0), right)
    return {
        J.LEFT_SHOULDER: ls, J.LEFT_ELBOW: le, J.LEFT_WRIST: lw,
        J.RIGHT_SHOULDER: rs, J.RIGHT_ELBOW: re, J.RIGHT_WRIST: rw,
    }


def knees(left: float, right: float) -> Dict[J, Pt]:
    lh, lk, la = limb((400.0, 500.0), left)
    rh, rk, ra = limb((600.0, 500.0), right)
    return {
        J.LEFT_HIP: lh, J.LEFT_KNEE: lk, J.LEFT_ANKLE: la,
        J.RIGHT_HIP: rh, J.RIGHT_KNEE: rk, J.RIGHT_ANKLE: ra,
    }


def arms(left: float, right: float) -> Dict[J, Pt]:
    # hip hangs straight below the shoulder; angle opens towards the elbow
    lh, ls, le = limb((400.0, 300.0), left, ref=(0.0, 1.0))
    rh, rs, re = limb((600.0, 300.0), right, ref=(0.0, 1.0))
    return {
        J.LEFT_HIP: lh, J.LEFT_SHOULDER: ls, J.LEFT_ELBOW: le,
        J.RIGHT_HIP: rh, J.RIGHT_SHOULDER: rs, J.RIGHT_ELBOW: re,
    }


def frame(points: Dict[J, Pt], drop: Tuple[J, ...] = ()) -> JointFrame:
    return JointFrame.from_points({j: p for j, p in points.items() if j not in drop})


def pushup(left: float, right: float, **kw) -> JointFrame:
    return frame(elbows(left, right), **kw)


def squat(left: float, right: float, **kw) -> JointFrame:
    return frame(knees(left, right), **kw)


def raise_(left: float, right: float, **kw) -> JointFrame:
    return frame(arms(left, right), **kw)


def plank(hip_drop: float) -> JointFrame:
    return JointFrame.from_points({
        J.LEFT_SHOULDER: (200.0, 300.0), J.RIGHT_SHOULDER: (220.0, 300.0),
        J.LEFT_HIP: (500.0, 300.0 + hip_drop), J.RIGHT_HIP: (520.0, 300.0 + hip_drop),
    })


class FakeTTS:
    def __init__(self):
        self.said = []
        self.prewarmed = 0

    def say(self, text: str):
        self.said.append(text)

    def prewarm(self):
        self.prewarmed += 1

    def wait_until_idle(self, timeout=None):
        return None


@pytest.fixture
def tts():
    return FakeTTS()


@pytest.fixture
def quiet_settings():
    """No tutorial, no countdown: frames count as soon as a session starts."""
    return Settings(enable_tutorials=False, enable_countdown=False)


@pytest.fixture
def manager(quiet_settings, tts):
    m = RepSessionManager(quiet_settings, tts=tts)
    yield m
    if m.controller is not None:
        m.stop()
