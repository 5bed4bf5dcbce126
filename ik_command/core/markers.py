import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .command_state import RobotCommandState
from .pose import Pose

logger = logging.getLogger(__name__)

SERVER_ID = "phantom_controls"


def marker_name_from_tip_name(tip_name: str) -> str:
    return tip_name + "_controls"


def tip_name_from_marker_name(marker_name: str) -> str:
    cut = marker_name.rfind("_control")
    if cut < 0:
        return marker_name
    return marker_name[:cut]


class InteractionMode(str, Enum):
    MOVE_AXIS = "move_axis"
    ROTATE_AXIS = "rotate_axis"


@dataclass(frozen=True)
class HandleControl:
    name: str
    interaction_mode: InteractionMode
    orientation: Tuple[float, float, float, float]  # (w, x, y, z) as sent to the host
    orientation_mode: str = "inherit"
    always_visible: bool = False


def six_dof_controls() -> List[HandleControl]:
    """Rotate/move pairs about the x, z and y axes."""
    controls = []
    for axis, orientation in (("x", (1.0, 1.0, 0.0, 0.0)),
                              ("z", (1.0, 0.0, 1.0, 0.0)),
                              ("y", (1.0, 0.0, 0.0, 1.0))):
        controls.append(HandleControl(f"rotate_{axis}", InteractionMode.ROTATE_AXIS, orientation))
        controls.append(HandleControl(f"move_{axis}", InteractionMode.MOVE_AXIS, orientation))
    return controls


@dataclass(frozen=True)
class ControlHandle:
    name: str
    tip_link: str
    frame_id: str
    description: str
    scale: float = 0.20
    pose: Pose = field(default_factory=Pose.identity)
    controls: Tuple[HandleControl, ...] = ()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "tip_link": self.tip_link,
            "frame_id": self.frame_id,
            "description": self.description,
            "scale": self.scale,
            "pose": self.pose.to_dict(),
            "controls": [
                {
                    "name": c.name,
                    "interaction_mode": c.interaction_mode.value,
                    "orientation_mode": c.orientation_mode,
                    "orientation": dict(zip(("w", "x", "y", "z"), c.orientation)),
                    "always_visible": c.always_visible,
                }
                for c in self.controls
            ],
        }


FeedbackCallback = Callable[..., object]


class HandleHost(Protocol):
    """The interactive-handle server that mirrors the handles we own."""

    def insert(self, handle: ControlHandle, feedback_cb: FeedbackCallback) -> None: ...
    def set_pose(self, name: str, pose: Pose, frame_id: str) -> bool: ...
    def clear(self) -> None: ...
    def apply_changes(self) -> None: ...


class MarkerSessionManager:
    """
    Keeps one 6-DOF control handle per tip link of the active joint group.

    Handles are rebuilt wholesale when the model or the active group changes,
    and re-posed (never recreated) when the configuration changes.
    """

    def __init__(self, state: RobotCommandState, host: HandleHost, feedback_callback: FeedbackCallback,
                 scale: float = 0.20):
        self.state = state
        self.host = host
        self.feedback_callback = feedback_callback
        self.scale = scale
        self._handles: Dict[str, ControlHandle] = {}

        state.model_loaded.connect(self.update_robot_model)
        state.active_group_changed.connect(self.update_active_group)
        state.state_changed.connect(self.update_robot_state)

    # --- notification handlers ----------------------------------------------

    def update_robot_model(self) -> None:
        self.reinit()

    def update_active_group(self, group_name: str) -> None:
        self.reinit()

    def update_robot_state(self) -> None:
        self.update_poses()

    # --- queries -------------------------------------------------------------

    @property
    def handles(self) -> Dict[str, ControlHandle]:
        return dict(self._handles)

    @property
    def handle_names(self) -> List[str]:
        return [handle.name for handle in self._handles.values()]

    def is_initialized(self) -> bool:
        return bool(self._handles)

    def handle_for_tip(self, tip_link: str) -> Optional[ControlHandle]:
        return self._handles.get(tip_link)

    # --- lifecycle -----------------------------------------------------------

    def reinit(self) -> None:
        """Called whenever the robot model or active joint group changes."""
        logger.info("Setup interactive markers for robot")
        logger.info(" -> Remove any existing markers")
        self.host.clear()
        self._handles.clear()

        model = self.state.model
        group_name = self.state.active_group
        if model is None or not group_name:
            if model is None:
                logger.warning("No robot model to initialize interactive markers from")
            if not group_name:
                logger.warning("No active joint group to initialize interactive markers from")
            self.host.apply_changes()
            return

        if not model.has_group(group_name):
            logger.error(f"Failed to retrieve joint group '{group_name}'")
            self.host.apply_changes()
            return

        controls = tuple(six_dof_controls())
        for tip_link in model.tip_links(model.group(group_name)):
            logger.info("Adding interactive marker for controlling pose of link %s", tip_link)
            handle = ControlHandle(
                name=marker_name_from_tip_name(tip_link),
                tip_link=tip_link,
                frame_id=model.model_frame,
                description=f"ik control of link {tip_link}",
                scale=self.scale,
                pose=Pose.identity(),
                controls=controls,
            )
            self.host.insert(handle, self.feedback_callback)
            self._handles[tip_link] = handle

        self.host.apply_changes()

    def update_poses(self) -> None:
        """Push the current pose of every tip link into its handle."""
        if not self._handles:
            return
        model = self.state.model
        if model is None:
            return

        for tip_link, handle in list(self._handles.items()):
            try:
                pose = self.state.link_pose(tip_link)
            except Exception as e:
                logger.error(f"Failed to compute pose of link '{tip_link}': {e}")
                continue
            if not self.host.set_pose(handle.name, pose, model.model_frame):
                logger.error(f"Failed to set pose of interactive marker '{handle.name}'")
                continue
            self._handles[tip_link] = replace(handle, pose=pose)

        self.host.apply_changes()
