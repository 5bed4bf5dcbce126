"""
Continuous-joint resolution.

IK solvers may return any 2*pi representative for a joint without position
limits. Committing that value directly makes the robot visibly unwind through
whole turns between two small handle drags, so each such variable is shifted
by whole turns to the representative closest to the seed. A shifted value
that leaves its joint's bounds is reverted to the solver's value.
"""
import math
import logging
from typing import List, Sequence

import numpy as np

from .model.kinematic_model import GroupSpec, JointType, KinematicModel

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def unwrap_toward(seed: float, value: float) -> float:
    """
    Shift value by whole turns toward seed.

    Takes floor(|seed - value| / 2pi) turns in the direction of the seed and,
    if that still leaves more than half a turn, exactly one more.
    """
    diff = seed - value
    hops = int(math.fabs(diff / TWO_PI))
    direction = math.copysign(1.0, diff)
    adjusted = value + TWO_PI * hops * direction
    if math.fabs(adjusted - seed) > math.pi:
        adjusted += TWO_PI * direction
    return adjusted


def resolvable_variables(model: KinematicModel, group: GroupSpec,
                         include_bounded_revolute: bool = False) -> List[int]:
    """Variables of the group that may be shifted by whole turns."""
    indices = []
    for index in model.group_variable_indices(group):
        if model.is_variable_continuous(index):
            indices.append(index)
        elif include_bounded_revolute and model.joint_of_variable(index).joint_type == JointType.REVOLUTE:
            indices.append(index)
    return indices


def resolve_continuous_joints(model: KinematicModel, seed: Sequence[float], solution: Sequence[float],
                              group: GroupSpec, include_bounded_revolute: bool = False) -> np.ndarray:
    """
    Return a copy of solution with every resolvable group variable moved to
    the 2pi representative nearest its seed value, unless that breaks the
    owning joint's bounds.

    seed and solution are full configuration vectors.
    """
    seed = np.asarray(seed, dtype=float)
    working = np.array(solution, dtype=float, copy=True)
    names = model.variable_names

    for index in resolvable_variables(model, group, include_bounded_revolute):
        raw = float(working[index])
        adjusted = unwrap_toward(float(seed[index]), raw)

        logger.debug("Normalize variable '%s'", names[index])
        logger.debug(" -> seed pos: %0.3f", seed[index])
        logger.debug(" ->  sol pos: %0.3f", raw)
        logger.debug(" ->     npos: %0.3f", adjusted)

        working[index] = adjusted
        joint = model.joint_of_variable(index)
        if not model.satisfies_bounds(joint, working):
            logger.warning("normalized value for '%s' out of bounds", names[index])
            working[index] = raw

    return working


class ContinuousJointResolver:
    """Configured entry point used by the feedback dispatcher."""

    def __init__(self, include_bounded_revolute: bool = False):
        self.include_bounded_revolute = include_bounded_revolute

    def resolve(self, model: KinematicModel, seed: Sequence[float], solution: Sequence[float],
                group: GroupSpec) -> np.ndarray:
        return resolve_continuous_joints(model, seed, solution, group, self.include_bounded_revolute)

    def __call__(self, model: KinematicModel, seed: Sequence[float], solution: Sequence[float],
                 group: GroupSpec) -> np.ndarray:
        return self.resolve(model, seed, solution, group)

