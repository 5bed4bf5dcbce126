from .base import Kinematics

__all__ = ["Kinematics"]
