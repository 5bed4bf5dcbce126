import pybullet as p
import math
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import numpy as np

from ..model.kinematic_model import GroupSpec, KinematicModel
from ..pose import Pose

logger = logging.getLogger(__name__)


@dataclass
class IKSettings:
    max_iterations: int = 100
    residual_threshold: float = 1e-5
    position_tolerance: float = 1e-3   # meters
    orientation_tolerance: float = 1e-2   # radians
    group_damping: float = 0.1
    locked_damping: float = 1e3   # damping for joints outside the solved group
    unbounded_window: float = 2.0 * math.pi   # +- around the seed for variables without limits
    min_joint_range: float = 1e-3


class PyBulletKinematics:
    """
    Forward/inverse kinematics and self-collision queries for one robot loaded
    into its own DIRECT PyBullet client.
    Implements the Kinematics protocol.
    """

    def __init__(self, client_id: int, body_id: int, link_map: Dict[str, int],
                 joint_map: Dict[int, int], dof_variables: List[int],
                 settings: Optional[IKSettings] = None):
        """
        :param link_map: link name -> PyBullet link index (-1 for the base link).
        :param joint_map: variable index -> PyBullet joint index.
        :param dof_variables: variable index of each PyBullet degree of freedom, in DoF order.
        """
        self.client_id = client_id
        self.body_id = body_id
        self.link_map = dict(link_map)
        self.joint_map = dict(joint_map)
        self.dof_variables = list(dof_variables)
        self.settings = settings or IKSettings()
        self.model: Optional[KinematicModel] = None
        self._link_names = {index: name for name, index in self.link_map.items()}
        logger.info("PyBulletKinematics created for body %d on client %d (%d DoF)",
                    body_id, client_id, len(self.dof_variables))

    def attach(self, model: KinematicModel) -> None:
        self.model = model

    def _apply(self, positions: Sequence[float]) -> None:
        for var_index, joint_index in self.joint_map.items():
            p.resetJointState(self.body_id, joint_index, targetValue=float(positions[var_index]),
                              physicsClientId=self.client_id)

    def _current_link_pose(self, link_name: str) -> Pose:
        if link_name not in self.link_map:
            raise KeyError(f"Unknown link '{link_name}'")
        link_index = self.link_map[link_name]
        if link_index < 0:
            pos, orn = p.getBasePositionAndOrientation(self.body_id, physicsClientId=self.client_id)
        else:
            state = p.getLinkState(self.body_id, link_index, computeForwardKinematics=True,
                                   physicsClientId=self.client_id)
            pos, orn = state[4], state[5]  # URDF link frame, not the inertial frame
        return Pose.from_arrays(pos, orn)

    def link_pose(self, positions: Sequence[float], link_name: str) -> Pose:
        self._apply(positions)
        return self._current_link_pose(link_name)

    def _ik_limits(self, seed: np.ndarray, group_vars) -> Tuple[List[float], List[float], List[float]]:
        """
        Per-DoF lower/upper limits and ranges for calculateInverseKinematics.

        Bounded group variables use their joint limits, unbounded ones a window
        around the seed; variables outside the group are pinned to the seed.
        """
        lower, upper, ranges = [], [], []
        for var in self.dof_variables:
            value = float(seed[var])
            bounds = self.model.variable_bounds(var)
            if var not in group_vars:
                low = high = value
            elif bounds.bounded:
                low, high = bounds.min_position, bounds.max_position
            else:
                low = value - self.settings.unbounded_window
                high = value + self.settings.unbounded_window
            lower.append(low)
            upper.append(high)
            ranges.append(max(high - low, self.settings.min_joint_range))
        return lower, upper, ranges

    def solve_ik(self, group: GroupSpec, tip_link: str, seed: Sequence[float],
                 target_pose: Pose, timeout: float) -> Optional[np.ndarray]:
        if self.model is None:
            logger.error("IK requested before a model was attached")
            return None
        tip_index = self.link_map.get(tip_link)
        if tip_index is None or tip_index < 0:
            logger.error(f"Link '{tip_link}' cannot be used as an IK tip")
            return None

        seed = np.asarray(seed, dtype=float)
        group_vars = set(self.model.group_variable_indices(group))
        damping = [
            self.settings.group_damping if var in group_vars else self.settings.locked_damping
            for var in self.dof_variables
        ]
        lower, upper, ranges = self._ik_limits(seed, group_vars)
        group_joints = {self.model.joint_of_variable(var).name: self.model.joint_of_variable(var)
                        for var in group_vars}

        candidate = seed.copy()
        self._apply(candidate)
        deadline = time.monotonic() + max(timeout, 0.0)
        attempts = 0
        while True:
            attempts += 1
            raw = p.calculateInverseKinematics(
                self.body_id,
                tip_index,
                targetPosition=list(target_pose.position),
                targetOrientation=list(target_pose.orientation),
                jointDamping=damping,
                lowerLimits=lower,
                upperLimits=upper,
                jointRanges=ranges,
                restPoses=[float(seed[var]) for var in self.dof_variables],
                currentPositions=[float(candidate[var]) for var in self.dof_variables],
                maxNumIterations=self.settings.max_iterations,
                residualThreshold=self.settings.residual_threshold,
                physicsClientId=self.client_id,
            )
            candidate = seed.copy()
            for dof, var in enumerate(self.dof_variables):
                if var in group_vars:
                    candidate[var] = raw[dof]
            self._apply(candidate)
            reached = self._current_link_pose(tip_link)
            pos_err = reached.position_error(target_pose)
            rot_err = reached.orientation_error(target_pose)
            in_window = all(
                lower[dof] <= candidate[var] <= upper[dof]
                for dof, var in enumerate(self.dof_variables) if var in group_vars
            )
            if not in_window or not all(self.model.satisfies_bounds(joint, candidate)
                                        for joint in group_joints.values()):
                logger.debug("IK candidate for '%s' violates joint bounds", tip_link)
            elif pos_err <= self.settings.position_tolerance and rot_err <= self.settings.orientation_tolerance:
                logger.debug("IK converged for '%s' after %d attempts (pos_err=%.5f, rot_err=%.5f)",
                             tip_link, attempts, pos_err, rot_err)
                return candidate
            if time.monotonic() >= deadline:
                logger.debug("IK gave up for '%s' after %d attempts (pos_err=%.5f, rot_err=%.5f)",
                             tip_link, attempts, pos_err, rot_err)
                return None

    def self_collisions(self, positions: Sequence[float]) -> List[Tuple[str, str]]:
        self._apply(positions)
        p.performCollisionDetection(physicsClientId=self.client_id)
        contacts = p.getContactPoints(bodyA=self.body_id, bodyB=self.body_id,
                                      physicsClientId=self.client_id)
        pairs = set()
        for contact in contacts or ():
            link_a = self._link_names.get(contact[3], str(contact[3]))
            link_b = self._link_names.get(contact[4], str(contact[4]))
            pairs.add(tuple(sorted((link_a, link_b))))
        return sorted(pairs)

    def close(self) -> None:
        if p.isConnected(physicsClientId=self.client_id):
            p.disconnect(physicsClientId=self.client_id)
            logger.info("PyBullet client %d disconnected", self.client_id)
