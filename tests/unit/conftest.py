from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest  # type: ignore[import]

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ik_command.core.command_state import RobotCommandState  # noqa: E402
from ik_command.core.model.kinematic_model import (  # noqa: E402
    GroupSpec,
    JointSpec,
    JointType,
    KinematicModel,
    LinkSpec,
    ModelLoadError,
    VariableBounds,
    VisualGeometry,
)
from ik_command.core.pose import Pose  # noqa: E402
from ik_command.core.validity import ValidityChecker  # noqa: E402


class FakeKinematics:
    """
    Scriptable kinematics backend.

    link_pose puts every link at x = sum of all variables, so any change of the
    configuration moves every handle. solve_ik returns ``solution`` (a vector,
    None, or a callable taking the call arguments).
    """

    def __init__(self):
        self.solution = None
        self.collisions = []
        self.collision_error: Optional[Exception] = None
        self.ik_calls: List[dict] = []
        self.pose_calls: List[str] = []
        self.closed = False

    def link_pose(self, positions, link_name):
        self.pose_calls.append(link_name)
        return Pose(position=(float(np.sum(positions)), 0.0, 0.0))

    def solve_ik(self, group, tip_link, seed, target_pose, timeout):
        self.ik_calls.append({
            "group": group.name,
            "tip_link": tip_link,
            "seed": np.array(seed, dtype=float),
            "target": target_pose,
            "timeout": timeout,
        })
        if callable(self.solution):
            return self.solution(group, tip_link, seed, target_pose)
        if self.solution is None:
            return None
        return np.array(self.solution, dtype=float)

    def self_collisions(self, positions):
        if self.collision_error is not None:
            raise self.collision_error
        return list(self.collisions)

    def close(self):
        self.closed = True


def build_arm_model(kinematics=None, name="test_arm") -> KinematicModel:
    """
    base_link -shoulder(continuous)-> link1 -elbow(revolute +-2)-> link2
    -wrist(continuous, +-4)-> link3 -tool_joint(fixed)-> tool
    tool -left_finger_joint(prismatic)-> left_finger
    tool -right_finger_joint(prismatic)-> right_finger

    Variables: 0 shoulder, 1 elbow, 2 wrist, 3 left finger, 4 right finger.
    """
    box = VisualGeometry(geometry="box", dimensions=(0.1, 0.1, 0.2), origin_position=(0.0, 0.0, 0.1))
    mesh = VisualGeometry(geometry="mesh", dimensions=(1.0, 1.0, 1.0), mesh="meshes/tool.stl")
    links = [
        LinkSpec("base_link"),
        LinkSpec("link1", "shoulder", (box,)),
        LinkSpec("link2", "elbow", (box,)),
        LinkSpec("link3", "wrist"),
        LinkSpec("tool", "tool_joint", (mesh,)),
        LinkSpec("left_finger", "left_finger_joint"),
        LinkSpec("right_finger", "right_finger_joint"),
    ]
    finger_limits = (VariableBounds.limits(0.0, 0.04),)
    joints = [
        JointSpec("shoulder", JointType.CONTINUOUS, "base_link", "link1"),
        JointSpec("elbow", JointType.REVOLUTE, "link1", "link2", (VariableBounds.limits(-2.0, 2.0),)),
        JointSpec("wrist", JointType.CONTINUOUS, "link2", "link3", (VariableBounds.limits(-4.0, 4.0),)),
        JointSpec("tool_joint", JointType.FIXED, "link3", "tool"),
        JointSpec("left_finger_joint", JointType.PRISMATIC, "tool", "left_finger", finger_limits),
        JointSpec("right_finger_joint", JointType.PRISMATIC, "tool", "right_finger", finger_limits),
    ]
    groups = {
        "arm": GroupSpec("arm", ("shoulder", "elbow", "wrist", "tool_joint")),
        "hand": GroupSpec("hand", ("left_finger_joint", "right_finger_joint")),
        "whole_body": GroupSpec("whole_body", tuple(j.name for j in joints)),
    }
    return KinematicModel(name=name, root_link="base_link", links=links, joints=joints,
                          groups=groups, kinematics=kinematics)


class FakeLoader:
    """Loads ``build_arm_model`` for the descriptions it knows, fails otherwise."""

    def __init__(self, known=("test_arm",)):
        self.known = set(known)
        self.loaded: List[KinematicModel] = []

    def load(self, description):
        if description not in self.known:
            raise ModelLoadError(f"Cannot parse robot description '{description}'")
        model = build_arm_model(FakeKinematics(), name=description)
        self.loaded.append(model)
        return model


class RecordingHost:
    """HandleHost that records every call and mirrors the live handle set."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.live: Dict[str, object] = {}
        self.poses: Dict[str, Pose] = {}
        self.callbacks: Dict[str, Callable] = {}
        self.failing_names = set()

    def insert(self, handle, feedback_cb):
        self.calls.append(("insert", handle.name))
        self.live[handle.name] = handle
        self.poses[handle.name] = handle.pose
        self.callbacks[handle.name] = feedback_cb

    def set_pose(self, name, pose, frame_id):
        self.calls.append(("set_pose", name))
        if name in self.failing_names or name not in self.live:
            return False
        self.poses[name] = pose
        return True

    def clear(self):
        self.calls.append(("clear",))
        self.live.clear()
        self.poses.clear()
        self.callbacks.clear()

    def apply_changes(self):
        self.calls.append(("apply",))

    def reset_calls(self):
        self.calls = []


class SignalRecorder:
    """Connects to signals and records (signal name, args) in emission order."""

    def __init__(self, *signals):
        self.events: List[tuple] = []
        for signal in signals:
            signal.connect(self._make_handler(signal.name))

    def _make_handler(self, name):
        def handler(*args):
            self.events.append((name,) + args)
        return handler

    def names(self):
        return [event[0] for event in self.events]

    def count(self, name):
        return self.names().count(name)


@pytest.fixture
def arm_model():
    return build_arm_model(FakeKinematics())


@pytest.fixture
def loader():
    return FakeLoader(known=("test_arm", "other_arm"))


@pytest.fixture
def state(loader):
    return RobotCommandState(loader, validity_checker=ValidityChecker(check_self_collision=True))


@pytest.fixture
def loaded_state(state):
    assert state.load_model("test_arm")
    return state


@pytest.fixture
def host():
    return RecordingHost()
