import os
import tempfile
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pybullet as p
import pybullet_data

from ..ik.pybullet_kinematics import IKSettings, PyBulletKinematics
from .kinematic_model import (
    GroupSpec,
    JointSpec,
    JointType,
    KinematicModel,
    LinkSpec,
    ModelLoadError,
    VariableBounds,
    VisualGeometry,
)

logger = logging.getLogger(__name__)

_GEOMETRY_NAMES = {
    p.GEOM_SPHERE: "sphere",
    p.GEOM_BOX: "box",
    p.GEOM_CYLINDER: "cylinder",
    p.GEOM_MESH: "mesh",
    p.GEOM_CAPSULE: "capsule",
}


class PyBulletModelLoader:
    """
    Builds a KinematicModel from a URDF robot description using PyBullet.

    The description is either a path to a URDF file or the URDF XML itself.
    Joint groups come from configuration, e.g.

        groups:
          arm:
            chain: {base_link: base_link, tip_link: tool0}
          gripper:
            joints: [finger_joint_1, finger_joint_2]

    Without configured groups a single group named after the robot spans
    every joint.
    """

    def __init__(self, groups: Optional[Dict[str, Any]] = None,
                 ik_settings: Optional[IKSettings] = None,
                 self_collision: bool = True):
        self.groups = groups or {}
        self.ik_settings = ik_settings or IKSettings()
        self.self_collision = self_collision

    def load(self, description: str) -> KinematicModel:
        if not description or not description.strip():
            raise ModelLoadError("Empty robot description")

        urdf_path, is_temporary = self._resolve_description(description)
        client = p.connect(p.DIRECT)
        try:
            p.setAdditionalSearchPath(pybullet_data.getDataPath(), physicsClientId=client)
            flags = 0
            if self.self_collision:
                flags = p.URDF_USE_SELF_COLLISION | p.URDF_USE_SELF_COLLISION_EXCLUDE_ALL_PARENTS
            try:
                body = p.loadURDF(urdf_path, useFixedBase=True, flags=flags, physicsClientId=client)
            except p.error as e:
                raise ModelLoadError(f"PyBullet could not load robot description: {e}") from e
            model = self._build_model(client, body)
        except Exception:
            p.disconnect(physicsClientId=client)
            raise
        finally:
            if is_temporary:
                os.unlink(urdf_path)

        logger.info("Loaded robot '%s' with %d variables and groups %s",
                    model.name, model.variable_count, model.group_names)
        return model

    def _resolve_description(self, description: str) -> Tuple[str, bool]:
        if description.lstrip().startswith("<"):
            with tempfile.NamedTemporaryFile("w", suffix=".urdf", delete=False) as f:
                f.write(description)
            return f.name, True
        path = Path(description).expanduser()
        if not path.is_file():
            raise ModelLoadError(f"Robot description '{description}' is neither URDF XML nor an existing file")
        return str(path), False

    def _build_model(self, client: int, body: int) -> KinematicModel:
        base_name, robot_name = (s.decode("utf-8") for s in p.getBodyInfo(body, physicsClientId=client))
        visuals = self._read_visuals(client, body)

        links = [LinkSpec(name=base_name, visuals=tuple(visuals.get(-1, ())))]
        link_map = {base_name: -1}
        index_to_link = {-1: base_name}
        joints: List[JointSpec] = []
        movable: List[Tuple[str, int]] = []

        # PyBullet getJointInfo returns:
        # (jointIndex, jointName, jointType, qIndex, uIndex, flags, jointDamping,
        #  jointFriction, jointLowerLimit, jointUpperLimit, jointMaxForce,
        #  jointMaxVelocity, linkName, jointAxis, parentFramePos, parentFrameOrn, parentIndex)
        for i in range(p.getNumJoints(body, physicsClientId=client)):
            info = p.getJointInfo(body, i, physicsClientId=client)
            joint_name = info[1].decode("utf-8")
            link_name = info[12].decode("utf-8")
            joint_type, bounds = self._joint_type(joint_name, info[2], info[8], info[9])

            parent_link = index_to_link[info[16]]
            index_to_link[i] = link_name
            link_map[link_name] = i
            links.append(LinkSpec(name=link_name, parent_joint=joint_name, visuals=tuple(visuals.get(i, ()))))
            joints.append(JointSpec(
                name=joint_name,
                joint_type=joint_type,
                parent_link=parent_link,
                child_link=link_name,
                bounds=tuple(bounds),
            ))
            if joint_type != JointType.FIXED:
                movable.append((joint_name, i))

        skeleton = KinematicModel(name=robot_name, root_link=base_name, links=links, joints=joints)
        groups = self._build_groups(skeleton)

        joint_map: Dict[int, int] = {}
        dof_variables: List[int] = []
        for joint_name, joint_index in movable:
            var_index = skeleton.joint(joint_name).first_variable_index
            joint_map[var_index] = joint_index
            dof_variables.append(var_index)

        kinematics = PyBulletKinematics(client, body, link_map, joint_map, dof_variables, self.ik_settings)
        model = KinematicModel(
            name=robot_name,
            root_link=base_name,
            links=links,
            joints=joints,
            groups=groups,
            kinematics=kinematics,
        )
        kinematics.attach(model)
        return model

    @staticmethod
    def _joint_type(name: str, pb_type: int, lower: float, upper: float) -> Tuple[JointType, List[VariableBounds]]:
        if pb_type == p.JOINT_FIXED:
            return JointType.FIXED, []
        if pb_type == p.JOINT_REVOLUTE:
            # PyBullet reports lower > upper for joints without limits (URDF "continuous")
            if lower > upper:
                return JointType.CONTINUOUS, [VariableBounds.unbounded()]
            return JointType.REVOLUTE, [VariableBounds.limits(lower, upper)]
        if pb_type == p.JOINT_PRISMATIC:
            if lower > upper:
                return JointType.PRISMATIC, [VariableBounds.unbounded()]
            return JointType.PRISMATIC, [VariableBounds.limits(lower, upper)]
        raise ModelLoadError(f"Joint '{name}' has unsupported PyBullet joint type {pb_type}")

    def _build_groups(self, skeleton: KinematicModel) -> Dict[str, GroupSpec]:
        if not self.groups:
            return {skeleton.name: GroupSpec(name=skeleton.name, joints=tuple(j.name for j in skeleton.joints))}

        groups: Dict[str, GroupSpec] = {}
        for group_name, definition in self.groups.items():
            if isinstance(definition, (list, tuple)):
                joint_names = list(definition)
            elif isinstance(definition, dict) and "chain" in definition:
                chain = definition["chain"]
                joint_names = skeleton.chain_joints(chain["base_link"], chain["tip_link"])
            elif isinstance(definition, dict) and "joints" in definition:
                joint_names = list(definition["joints"])
            else:
                raise ModelLoadError(f"Group '{group_name}' needs a 'chain' or 'joints' definition")
            for joint_name in joint_names:
                try:
                    skeleton.joint(joint_name)
                except KeyError:
                    raise ModelLoadError(f"Group '{group_name}' references unknown joint '{joint_name}'") from None
            groups[group_name] = GroupSpec(name=group_name, joints=tuple(joint_names))
        return groups

    @staticmethod
    def _read_visuals(client: int, body: int) -> Dict[int, List[VisualGeometry]]:
        """
        Visual shapes per PyBullet link index, re-expressed in the URDF link frame
        (PyBullet reports them relative to the link's inertial frame).
        """
        visuals: Dict[int, List[VisualGeometry]] = {}
        for shape in p.getVisualShapeData(body, physicsClientId=client):
            link_index, geom_type = shape[1], shape[2]
            geometry = _GEOMETRY_NAMES.get(geom_type)
            if geometry is None:
                continue
            inertial_pos, inertial_orn = p.getDynamicsInfo(body, link_index, physicsClientId=client)[3:5]
            inv_pos, inv_orn = p.invertTransform(inertial_pos, inertial_orn)
            pos, orn = p.multiplyTransforms(inv_pos, inv_orn, shape[5], shape[6])
            mesh = shape[4].decode("utf-8") if isinstance(shape[4], bytes) else str(shape[4])
            visuals.setdefault(link_index, []).append(VisualGeometry(
                geometry=geometry,
                dimensions=tuple(float(d) for d in shape[3]),
                mesh=mesh if geometry == "mesh" else "",
                origin_position=tuple(pos),
                origin_orientation=tuple(orn),
                rgba=tuple(shape[7]),
            ))
        return visuals
