import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Union

from .command_state import RobotCommandState
from .markers import tip_name_from_marker_name
from .pose import Pose
from .resolver import ContinuousJointResolver

logger = logging.getLogger(__name__)


class EventKind(IntEnum):
    """Interactive-marker feedback event types."""
    KEEP_ALIVE = 0
    POSE_UPDATE = 1
    MENU_SELECT = 2
    BUTTON_CLICK = 3
    MOUSE_DOWN = 4
    MOUSE_UP = 5


_KIND_NAMES = {
    "keep-alive": EventKind.KEEP_ALIVE,
    "pose-update": EventKind.POSE_UPDATE,
    "menu-select": EventKind.MENU_SELECT,
    "button-click": EventKind.BUTTON_CLICK,
    "mouse-down": EventKind.MOUSE_DOWN,
    "mouse-up": EventKind.MOUSE_UP,
}


def parse_event_kind(value: Union[int, str, None]) -> Optional[EventKind]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            return EventKind(value)
        except ValueError:
            return None
    if isinstance(value, str):
        return _KIND_NAMES.get(value.strip().lower().replace("_", "-"))
    return None


@dataclass
class FeedbackEvent:
    handle_name: str
    event_kind: Optional[EventKind]
    pose: Pose = field(default_factory=Pose.identity)
    control_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackEvent":
        """
        Build an event from a feedback payload:
        {"handle_name": str, "event_kind": int|str, "pose": {...}, "control_name": str}
        ("marker_name" and "event_type" are accepted as aliases).
        """
        name = data.get("handle_name", data.get("marker_name"))
        if not isinstance(name, str) or not name:
            raise ValueError("feedback event needs a 'handle_name'")
        kind = parse_event_kind(data.get("event_kind", data.get("event_type")))
        pose_data = data.get("pose")
        pose = Pose.from_dict(pose_data) if isinstance(pose_data, dict) else Pose.identity()
        return cls(handle_name=name, event_kind=kind, pose=pose,
                   control_name=str(data.get("control_name", "")))


class FeedbackDispatcher:
    """
    Turns handle feedback into committed joint configurations:
    IK from the current configuration, continuous-joint resolution against
    that seed, then a single commit of the active group's variables.
    """

    def __init__(self, state: RobotCommandState, resolver: Optional[ContinuousJointResolver] = None):
        self.state = state
        self.resolver = resolver or ContinuousJointResolver()

    def __call__(self, event: FeedbackEvent) -> bool:
        return self.process_feedback(event)

    def process_feedback(self, event: FeedbackEvent) -> bool:
        logger.debug("Interactive marker feedback")
        logger.debug("  Marker: %s", event.handle_name)
        logger.debug("  Control: %s", event.control_name)
        logger.debug("  Event Type: %s", event.event_kind)

        if event.event_kind == EventKind.POSE_UPDATE:
            return self._process_pose_update(event)
        # keep-alive, menu, button, mouse and unknown events are ignored
        return False

    def _process_pose_update(self, event: FeedbackEvent) -> bool:
        tip_link = tip_name_from_marker_name(event.handle_name)

        with self.state.lock:
            model = self.state.model
            group_name = self.state.active_group
            if model is None:
                logger.error("Received pose feedback for '%s' without a robot model", event.handle_name)
                return False
            group = self.state.joint_group(group_name)
            if group is None:
                logger.error(f"Failed to retrieve joint group '{group_name}'")
                return False
            if not model.has_link(tip_link):
                logger.error(f"Marker '{event.handle_name}' does not name a link of '{model.name}'")
                return False

            seed = self.state.positions
            solution = self.state.solve_ik(group, tip_link, event.pose)
            if solution is None:
                logger.info("No IK solution for link '%s' at the requested pose", tip_link)
                return False

            resolved = self.resolver.resolve(model, seed, solution, group)
            indices = model.group_variable_indices(group)
            self.state.set_variables(indices, [resolved[i] for i in indices])
            return True
