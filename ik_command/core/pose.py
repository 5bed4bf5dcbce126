from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Pose:
    """Rigid transform: position in meters, orientation as an (x, y, z, w) quaternion."""

    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    @classmethod
    def identity(cls) -> "Pose":
        return cls()

    @classmethod
    def from_arrays(cls, position: Sequence[float], orientation: Sequence[float]) -> "Pose":
        pos = tuple(float(v) for v in position)
        quat = np.asarray(orientation, dtype=float)
        norm = np.linalg.norm(quat)
        if norm > 0.0:
            quat = quat / norm
        else:
            quat = np.array([0.0, 0.0, 0.0, 1.0])
        return cls(position=pos, orientation=tuple(float(v) for v in quat))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pose":
        """
        Accepts {"position": {"x", "y", "z"}, "orientation": {"x", "y", "z", "w"}}
        or the same keys holding plain lists.
        """
        position = data.get("position", (0.0, 0.0, 0.0))
        orientation = data.get("orientation", (0.0, 0.0, 0.0, 1.0))
        if isinstance(position, dict):
            position = (position.get("x", 0.0), position.get("y", 0.0), position.get("z", 0.0))
        if isinstance(orientation, dict):
            orientation = (
                orientation.get("x", 0.0),
                orientation.get("y", 0.0),
                orientation.get("z", 0.0),
                orientation.get("w", 1.0),
            )
        if len(position) != 3 or len(orientation) != 4:
            raise ValueError("pose needs a 3-element position and a 4-element orientation")
        return cls.from_arrays(position, orientation)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        x, y, z = self.position
        qx, qy, qz, qw = self.orientation
        return {
            "position": {"x": x, "y": y, "z": z},
            "orientation": {"x": qx, "y": qy, "z": qz, "w": qw},
        }

    def position_error(self, other: "Pose") -> float:
        return float(np.linalg.norm(np.subtract(self.position, other.position)))

    def orientation_error(self, other: "Pose") -> float:
        """Shortest rotation angle (radians) between the two orientations."""
        dot = abs(float(np.dot(self.orientation, other.orientation)))
        dot = min(1.0, max(-1.0, dot))
        return 2.0 * math.acos(dot)
