"""Interactive 6-DOF handle to joint-space command core."""

__version__ = "0.1.0"
