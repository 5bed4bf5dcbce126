from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - import hints only during type-checking
    from ..ik.base import Kinematics

logger = logging.getLogger(__name__)


class JointType(str, Enum):
    FIXED = "fixed"
    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"
    PRISMATIC = "prismatic"
    PLANAR = "planar"
    FLOATING = "floating"


_VARIABLE_SUFFIXES: Dict[JointType, Tuple[str, ...]] = {
    JointType.FIXED: (),
    JointType.REVOLUTE: ("",),
    JointType.CONTINUOUS: ("",),
    JointType.PRISMATIC: ("",),
    JointType.PLANAR: ("x", "y", "theta"),
    JointType.FLOATING: ("trans_x", "trans_y", "trans_z", "rot_x", "rot_y", "rot_z", "rot_w"),
}


class ModelLoadError(RuntimeError):
    """Raised when a robot description cannot be turned into a kinematic model."""


@dataclass(frozen=True)
class VariableBounds:
    min_position: float = -math.inf
    max_position: float = math.inf
    bounded: bool = False

    @classmethod
    def unbounded(cls) -> "VariableBounds":
        return cls()

    @classmethod
    def limits(cls, lower: float, upper: float) -> "VariableBounds":
        return cls(min_position=float(lower), max_position=float(upper), bounded=True)

    def contains(self, value: float, margin: float = 0.0) -> bool:
        if not self.bounded:
            return True
        return self.min_position - margin <= value <= self.max_position + margin

    def default_value(self) -> float:
        if not self.bounded or self.contains(0.0):
            return 0.0
        return 0.5 * (self.min_position + self.max_position)


def default_bounds(joint_type: JointType) -> List[VariableBounds]:
    """Bounds used for a joint when the description does not provide any."""
    if joint_type == JointType.PLANAR:
        return [VariableBounds.unbounded()] * 3
    if joint_type == JointType.FLOATING:
        return [VariableBounds.unbounded()] * 3 + [VariableBounds.limits(-1.0, 1.0)] * 4
    if joint_type == JointType.FIXED:
        return []
    return [VariableBounds.unbounded()]


@dataclass(frozen=True)
class VisualGeometry:
    """One visual element of a link, expressed in the link frame."""

    geometry: str  # "mesh", "box", "sphere", "cylinder", "capsule"
    dimensions: Tuple[float, ...] = ()
    mesh: str = ""
    origin_position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    origin_orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    rgba: Tuple[float, float, float, float] = (0.5, 0.5, 0.5, 1.0)


@dataclass(frozen=True)
class LinkSpec:
    name: str
    parent_joint: Optional[str] = None
    visuals: Tuple[VisualGeometry, ...] = ()


@dataclass(frozen=True)
class JointSpec:
    name: str
    joint_type: JointType
    parent_link: str
    child_link: str
    bounds: Tuple[VariableBounds, ...] = ()
    first_variable_index: int = -1

    @property
    def variable_count(self) -> int:
        return len(_VARIABLE_SUFFIXES[self.joint_type])

    @property
    def variable_names(self) -> List[str]:
        return [
            self.name if not suffix else f"{self.name}/{suffix}"
            for suffix in _VARIABLE_SUFFIXES[self.joint_type]
        ]

    @property
    def variable_indices(self) -> List[int]:
        return list(range(self.first_variable_index, self.first_variable_index + self.variable_count))


@dataclass(frozen=True)
class GroupSpec:
    name: str
    joints: Tuple[str, ...]


@dataclass
class KinematicModel:
    """
    Immutable-once-built description of a robot: links, joints, variables and
    named joint groups, plus the kinematics backend bound to it.

    Joints are given in topological order (parents before children). Variable
    indices are assigned in joint order.
    """

    name: str
    root_link: str
    links: List[LinkSpec]
    joints: List[JointSpec]
    groups: Dict[str, GroupSpec] = field(default_factory=dict)
    kinematics: Optional["Kinematics"] = None

    def __post_init__(self):
        self._links_by_name: Dict[str, LinkSpec] = {link.name: link for link in self.links}
        if self.root_link not in self._links_by_name:
            raise ModelLoadError(f"Root link '{self.root_link}' is not a link of '{self.name}'")

        indexed: List[JointSpec] = []
        next_index = 0
        for joint in self.joints:
            bounds = joint.bounds or tuple(default_bounds(joint.joint_type))
            if len(bounds) != joint.variable_count:
                raise ModelLoadError(
                    f"Joint '{joint.name}' has {len(bounds)} bounds for {joint.variable_count} variables"
                )
            for link_name in (joint.parent_link, joint.child_link):
                if link_name not in self._links_by_name:
                    raise ModelLoadError(f"Joint '{joint.name}' references unknown link '{link_name}'")
            indexed.append(JointSpec(
                name=joint.name,
                joint_type=joint.joint_type,
                parent_link=joint.parent_link,
                child_link=joint.child_link,
                bounds=tuple(bounds),
                first_variable_index=next_index,
            ))
            next_index += joint.variable_count
        self.joints = indexed

        self._joints_by_name: Dict[str, JointSpec] = {joint.name: joint for joint in self.joints}
        self._joint_by_child: Dict[str, JointSpec] = {joint.child_link: joint for joint in self.joints}
        self._variable_joint: List[JointSpec] = []
        self._variable_names: List[str] = []
        for joint in self.joints:
            self._variable_joint.extend([joint] * joint.variable_count)
            self._variable_names.extend(joint.variable_names)

        for group in self.groups.values():
            for joint_name in group.joints:
                if joint_name not in self._joints_by_name:
                    raise ModelLoadError(f"Group '{group.name}' references unknown joint '{joint_name}'")

    # --- variables -----------------------------------------------------------

    @property
    def model_frame(self) -> str:
        return self.root_link

    @property
    def variable_count(self) -> int:
        return len(self._variable_names)

    @property
    def variable_names(self) -> List[str]:
        return list(self._variable_names)

    def joint_of_variable(self, index: int) -> JointSpec:
        if index < 0 or index >= len(self._variable_joint):
            raise IndexError(f"Variable index {index} out of range for '{self.name}'")
        return self._variable_joint[index]

    def variable_bounds(self, index: int) -> VariableBounds:
        joint = self.joint_of_variable(index)
        return joint.bounds[index - joint.first_variable_index]

    def is_variable_continuous(self, index: int) -> bool:
        joint = self.joint_of_variable(index)
        if joint.joint_type == JointType.CONTINUOUS:
            return True
        if joint.joint_type == JointType.PLANAR and self._variable_names[index].endswith("/theta"):
            return not self.variable_bounds(index).bounded
        return False

    def is_variable_angle(self, index: int) -> bool:
        joint = self.joint_of_variable(index)
        if joint.joint_type in (JointType.REVOLUTE, JointType.CONTINUOUS):
            return True
        return self.is_variable_continuous(index)

    def satisfies_bounds(self, joint: JointSpec, positions: Sequence[float], margin: float = 0.0) -> bool:
        for offset, bounds in enumerate(joint.bounds):
            if not bounds.contains(float(positions[joint.first_variable_index + offset]), margin):
                return False
        return True

    def default_positions(self) -> np.ndarray:
        positions = np.zeros(self.variable_count, dtype=float)
        for joint in self.joints:
            for offset, bounds in enumerate(joint.bounds):
                positions[joint.first_variable_index + offset] = bounds.default_value()
            if joint.joint_type == JointType.FLOATING:
                positions[joint.first_variable_index + 6] = 1.0
        return positions

    # --- links and joints ----------------------------------------------------

    @property
    def link_names(self) -> List[str]:
        return [link.name for link in self.links]

    def has_link(self, name: str) -> bool:
        return name in self._links_by_name

    def link(self, name: str) -> LinkSpec:
        return self._links_by_name[name]

    def joint(self, name: str) -> JointSpec:
        return self._joints_by_name[name]

    def parent_link_of(self, link_name: str) -> Optional[str]:
        joint = self._joint_by_child.get(link_name)
        return joint.parent_link if joint else None

    def chain_joints(self, base_link: str, tip_link: str) -> List[str]:
        """Names of the movable and fixed joints from base_link down to tip_link."""
        if not self.has_link(base_link) or not self.has_link(tip_link):
            raise ModelLoadError(f"Chain {base_link} -> {tip_link} references an unknown link")
        chain: List[str] = []
        link_name = tip_link
        while link_name != base_link:
            joint = self._joint_by_child.get(link_name)
            if joint is None:
                raise ModelLoadError(f"Link '{tip_link}' is not a descendant of '{base_link}'")
            chain.append(joint.name)
            link_name = joint.parent_link
        chain.reverse()
        return chain

    # --- groups --------------------------------------------------------------

    @property
    def group_names(self) -> List[str]:
        return list(self.groups.keys())

    def has_group(self, name: Optional[str]) -> bool:
        return bool(name) and name in self.groups

    def group(self, name: str) -> GroupSpec:
        return self.groups[name]

    def group_variable_indices(self, group: GroupSpec) -> List[int]:
        indices: List[int] = []
        for joint_name in group.joints:
            indices.extend(self._joints_by_name[joint_name].variable_indices)
        return indices

    def group_links(self, group: GroupSpec) -> List[str]:
        members = {self._joints_by_name[name].child_link for name in group.joints}
        return [link.name for link in self.links if link.name in members]

    def tip_links(self, group: GroupSpec) -> List[str]:
        """Links of the group that are not the parent of another link in the group."""
        links = self.group_links(group)
        parents = {self.parent_link_of(name) for name in links}
        return [name for name in links if name not in parents]

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "model_frame": self.model_frame,
            "variables": self.variable_names,
            "groups": self.group_names,
        }
