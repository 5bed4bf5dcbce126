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

__all__ = [
    "GroupSpec",
    "JointSpec",
    "JointType",
    "KinematicModel",
    "LinkSpec",
    "ModelLoadError",
    "VariableBounds",
    "VisualGeometry",
]
