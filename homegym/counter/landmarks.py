from __future__ import annotations
from typing import Dict, Sequence, Tuple

from homegym.counter.pose_core import JointId as J

# MediaPipe Pose landmark indices (33-point model)
MP_INDEX: Dict[J, int] = {
    J.NOSE: 0,
    J.LEFT_EYE: 2,
    J.RIGHT_EYE: 5,
    J.LEFT_EAR: 7,
    J.RIGHT_EAR: 8,
    J.LEFT_SHOULDER: 11,
    J.RIGHT_SHOULDER: 12,
    J.LEFT_ELBOW: 13,
    J.RIGHT_ELBOW: 14,
    J.LEFT_WRIST: 15,
    J.RIGHT_WRIST: 16,
    J.LEFT_HIP: 23,
    J.RIGHT_HIP: 24,
    J.LEFT_KNEE: 25,
    J.RIGHT_KNEE: 26,
    J.LEFT_ANKLE: 27,
    J.RIGHT_ANKLE: 28,
}

# joints MediaPipe doesn't have, synthesized as the midpoint of a pair
MIDPOINTS: Dict[J, Tuple[J, J]] = {
    J.NECK: (J.LEFT_SHOULDER, J.RIGHT_SHOULDER),
    J.ROOT: (J.LEFT_HIP, J.RIGHT_HIP),
}


def from_mediapipe(landmarks: Sequence) -> Dict[J, Tuple[float, float, float]]:
    """
    MediaPipe landmarks (x, y normalized with origin top-left, `visibility`)
    -> raw observation in the estimator convention the counter expects:
    normalized, origin bottom-left, confidence in [0, 1].
    """
    raw: Dict[J, Tuple[float, float, float]] = {}
    for jid, idx in MP_INDEX.items():
        if idx >= len(landmarks):
            continue
        lm = landmarks[idx]
        conf = float(getattr(lm, "visibility", 1.0))
        raw[jid] = (float(lm.x), 1.0 - float(lm.y), max(0.0, min(1.0, conf)))

    for jid, (a, b) in MIDPOINTS.items():
        if a in raw and b in raw:
            ax, ay, ac = raw[a]
            bx, by, bc = raw[b]
            raw[jid] = ((ax + bx) / 2, (ay + by) / 2, min(ac, bc))
    return raw
