import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import pybullet as p

from .command_state import RobotCommandState
from .pose import Pose
from .validity import Validity

logger = logging.getLogger(__name__)

BASE_COLOR = 0.4
VALIDITY_COLORS: Dict[Validity, Tuple[float, float, float]] = {
    Validity.VALID: (BASE_COLOR, 1.0, BASE_COLOR),
    Validity.INVALID: (1.0, BASE_COLOR, BASE_COLOR),
    Validity.UNKNOWN: (BASE_COLOR, BASE_COLOR, BASE_COLOR),
}


def validity_color(validity: Validity, alpha: float = 0.8) -> Dict[str, float]:
    r, g, b = VALIDITY_COLORS.get(validity, VALIDITY_COLORS[Validity.UNKNOWN])
    return {"r": r, "g": g, "b": b, "a": alpha}


def compose(link_pose: Pose, position, orientation) -> Pose:
    pos, orn = p.multiplyTransforms(link_pose.position, link_pose.orientation, position, orientation)
    return Pose.from_arrays(pos, orn)


class RobotVisualizer:
    """
    Publishes a phantom of the commanded robot: one marker per link visual,
    tinted green/red/gray by the validity of the current configuration.
    """

    def __init__(self, state: RobotCommandState, publish: Callable[[List[Dict[str, Any]]], Any],
                 alpha: float = 0.8):
        self.state = state
        self.publish = publish
        self.alpha = alpha
        state.state_changed.connect(self.refresh)

    def build_markers(self) -> Optional[List[Dict[str, Any]]]:
        model = self.state.model
        if model is None:
            logger.warning("Robot not yet loaded")
            return None

        color = validity_color(self.state.validity(), self.alpha)
        ns = model.name + "_phantom"
        markers: List[Dict[str, Any]] = []
        marker_id = 0
        for link in model.links:
            if not link.visuals:
                continue
            try:
                link_pose = self.state.link_pose(link.name)
            except Exception as e:
                logger.error(f"Failed to compute pose of link '{link.name}': {e}")
                continue
            for visual in link.visuals:
                pose = compose(link_pose, visual.origin_position, visual.origin_orientation)
                markers.append({
                    "ns": ns,
                    "id": marker_id,
                    "type": visual.geometry,
                    "frame_id": model.model_frame,
                    "link": link.name,
                    "pose": pose.to_dict(),
                    "dimensions": list(visual.dimensions),
                    "mesh": visual.mesh,
                    "mesh_use_embedded_materials": False,
                    "color": dict(color),
                })
                marker_id += 1
        return markers

    def refresh(self) -> None:
        logger.debug("Updating robot visualization")
        markers = self.build_markers()
        if markers is None:
            return
        self.publish(markers)
