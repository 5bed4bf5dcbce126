# core/ik/base.py
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..model.kinematic_model import GroupSpec
from ..pose import Pose


class Kinematics(Protocol):
    """Forward/inverse kinematics bound to one loaded robot model."""

    def link_pose(self, positions: Sequence[float], link_name: str) -> Pose:
        """Pose of link_name in the model frame for the given joint variables."""
        ...

    def solve_ik(
        self,
        group: GroupSpec,
        tip_link: str,
        seed: Sequence[float],
        target_pose: Pose,
        timeout: float,
    ) -> Optional[np.ndarray]:
        """Given a target pose for tip_link and a seed configuration,
        return the full solved variable vector, or None when no solution is
        found within the time budget. Variables outside the group keep their
        seed values.
        """
        ...

    def self_collisions(self, positions: Sequence[float]) -> List[Tuple[str, str]]:
        """Pairs of link names in contact for the given configuration."""
        ...

    def close(self) -> None:
        ...
