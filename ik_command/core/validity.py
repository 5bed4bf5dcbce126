import logging
from enum import Enum
from typing import Sequence

from .model.kinematic_model import KinematicModel

logger = logging.getLogger(__name__)


class Validity(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


class ValidityChecker:
    """Bounds plus (optionally) self-collision check of a configuration."""

    def __init__(self, check_self_collision: bool = True):
        self.check_self_collision = check_self_collision

    def check(self, model: KinematicModel, positions: Sequence[float]) -> Validity:
        for joint in model.joints:
            if not model.satisfies_bounds(joint, positions):
                logger.debug("Joint '%s' out of bounds", joint.name)
                return Validity.INVALID

        if not self.check_self_collision or model.kinematics is None:
            return Validity.VALID

        try:
            collisions = model.kinematics.self_collisions(positions)
        except Exception as e:
            logger.warning(f"Self-collision check failed: {e}")
            return Validity.UNKNOWN

        if collisions:
            logger.debug("Self collisions: %s", collisions)
            return Validity.INVALID
        return Validity.VALID
