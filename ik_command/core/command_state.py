import threading
import logging
from typing import List, Optional, Protocol, Sequence

import numpy as np

from ..utils.signals import Signal
from .model.kinematic_model import GroupSpec, KinematicModel
from .pose import Pose
from .validity import Validity, ValidityChecker

logger = logging.getLogger(__name__)


class ModelLoader(Protocol):
    def load(self, description: str) -> KinematicModel: ...


class RobotCommandState:
    """
    Owns the loaded kinematic model, the live joint configuration and the
    active joint group, and fans out notifications when any of them change.

    Notifications:
      model_loaded()               after a new model replaced the old one
      state_changed()              after any write to the configuration
      active_group_changed(name)   after the active group name changed

    All mutations happen under ``lock`` (reentrant), so observers may read
    the state from inside a notification.
    """

    def __init__(self, loader: ModelLoader, validity_checker: Optional[ValidityChecker] = None,
                 ik_timeout: float = 0.05):
        self.loader = loader
        self.validity_checker = validity_checker
        self.ik_timeout = ik_timeout
        self.lock = threading.RLock()

        self.model_loaded = Signal("model_loaded")
        self.state_changed = Signal("state_changed")
        self.active_group_changed = Signal("active_group_changed")

        self._model: Optional[KinematicModel] = None
        self._positions = np.zeros(0, dtype=float)
        self._description = ""
        self._active_group = ""

    # --- model ---------------------------------------------------------------

    @property
    def model(self) -> Optional[KinematicModel]:
        return self._model

    def is_model_loaded(self) -> bool:
        return self._model is not None

    @property
    def robot_description(self) -> str:
        return self._description

    def load_model(self, description: str) -> bool:
        """Replace the model; on failure the previous model and configuration stay in place."""
        with self.lock:
            try:
                model = self.loader.load(description)
            except Exception as e:
                logger.error(f"Failed to load robot from description: {e}")
                return False

            previous = self._model
            self._model = model
            self._positions = model.default_positions()
            self._description = description
            if previous is not None and previous.kinematics is not None and previous.kinematics is not model.kinematics:
                try:
                    previous.kinematics.close()
                except Exception as e:
                    logger.warning(f"Error releasing previous kinematics backend: {e}")

            logger.info("Robot '%s' loaded (%d variables)", model.name, model.variable_count)
            self.model_loaded.emit()
            self.state_changed.emit()
            return True

    # --- configuration -------------------------------------------------------

    @property
    def positions(self) -> np.ndarray:
        return self._positions.copy()

    def _require_model(self) -> KinematicModel:
        if self._model is None:
            raise RuntimeError("No robot model loaded")
        return self._model

    def variable_position(self, index: int) -> float:
        model = self._require_model()
        model.joint_of_variable(index)
        return float(self._positions[index])

    def set_variable(self, index: int, value: float) -> None:
        """Unconditional write; bounds are the caller's concern."""
        with self.lock:
            model = self._require_model()
            model.joint_of_variable(index)
            self._positions[index] = float(value)
            self.state_changed.emit()

    def set_variables(self, indices: Sequence[int], values: Sequence[float]) -> None:
        if len(indices) != len(values):
            raise ValueError(f"Got {len(values)} values for {len(indices)} variables")
        with self.lock:
            model = self._require_model()
            for index in indices:
                model.joint_of_variable(index)
            for index, value in zip(indices, values):
                self._positions[index] = float(value)
            self.state_changed.emit()

    def set_variable_positions(self, positions: Sequence[float]) -> None:
        with self.lock:
            model = self._require_model()
            if len(positions) != model.variable_count:
                raise ValueError(f"Expected {model.variable_count} variables, got {len(positions)}")
            self._positions = np.asarray(positions, dtype=float).copy()
            self.state_changed.emit()

    def is_variable_continuous(self, index: int) -> bool:
        return self._require_model().is_variable_continuous(index)

    def is_variable_angle(self, index: int) -> bool:
        model = self._model
        if model is None:
            logger.warning("Asking whether variable %d in uninitialized robot is an angle", index)
            return False
        return model.is_variable_angle(index)

    # --- groups --------------------------------------------------------------

    @property
    def active_group(self) -> str:
        return self._active_group

    def set_active_group(self, group_name: Optional[str]) -> None:
        group_name = group_name or ""
        with self.lock:
            if group_name == self._active_group:
                return
            self._active_group = group_name
            logger.info("Active joint group set to '%s'", group_name)
            self.active_group_changed.emit(group_name)

    def joint_group(self, group_name: str) -> Optional[GroupSpec]:
        model = self._model
        if model is None or not model.has_group(group_name):
            return None
        return model.group(group_name)

    def group_positions(self, group: GroupSpec) -> np.ndarray:
        model = self._require_model()
        return self._positions[model.group_variable_indices(group)].copy()

    def tip_links(self, group_name: str) -> List[str]:
        group = self.joint_group(group_name)
        if group is None:
            return []
        return self._model.tip_links(group)

    # --- kinematics ----------------------------------------------------------

    def link_pose(self, link_name: str) -> Pose:
        model = self._require_model()
        if model.kinematics is None:
            raise RuntimeError(f"Robot '{model.name}' has no kinematics backend")
        return model.kinematics.link_pose(self._positions, link_name)

    def solve_ik(self, group: GroupSpec, tip_link: str, target_pose: Pose) -> Optional[np.ndarray]:
        """IK from the current configuration; the result is returned, never committed."""
        with self.lock:
            model = self._require_model()
            if model.kinematics is None:
                logger.error("Robot '%s' has no IK solver", model.name)
                return None
            solution = model.kinematics.solve_ik(group, tip_link, self._positions.copy(), target_pose,
                                                 self.ik_timeout)
            if solution is None:
                return None
            solution = np.asarray(solution, dtype=float)
            if solution.shape != self._positions.shape:
                logger.error("IK solver returned %d variables, expected %d",
                             solution.size, self._positions.size)
                return None
            return solution

    def validity(self) -> Validity:
        if self._model is None or self.validity_checker is None:
            return Validity.UNKNOWN
        return self.validity_checker.check(self._model, self._positions)

    def variables_out_of_bounds(self) -> List[int]:
        model = self._model
        if model is None:
            return []
        return [
            i for i in range(model.variable_count)
            if not model.variable_bounds(i).contains(float(self._positions[i]))
        ]

    def describe_variables(self) -> List[dict]:
        model = self._model
        if model is None:
            return []
        out = []
        for i, name in enumerate(model.variable_names):
            bounds = model.variable_bounds(i)
            value = float(self._positions[i])
            angle = model.is_variable_angle(i)
            out.append({
                "index": i,
                "name": name,
                "position": value,
                "degrees": float(np.degrees(value)) if angle else None,
                "is_angle": angle,
                "continuous": model.is_variable_continuous(i),
                "bounded": bounds.bounded,
                "min": bounds.min_position if bounds.bounded else None,
                "max": bounds.max_position if bounds.bounded else None,
            })
        return out
