# utils/logger.py
import logging
import sys

def setup_logging(level=logging.INFO, component_levels=None):
    """
    Set up logging configuration for the entire application.
    This configures the root logger with a formatter that includes the logger name.

    :param level: Default logging level for the root logger.
    :param component_levels: Dict of component names to their logging levels, e.g., {'ik_command.core.resolver': logging.DEBUG}
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout
    )

    # Set specific levels for components
    if component_levels:
        for component, comp_level in component_levels.items():
            logging.getLogger(component).setLevel(comp_level)


component_levels = {
    'ik_command.api': logging.INFO,
    'ik_command.core.feedback': logging.INFO,
    'ik_command.core.resolver': logging.INFO,
    'ik_command.core.markers': logging.INFO,
    'ik_command.core.visualization': logging.WARNING,
    'engineio': logging.WARNING,
    'socketio': logging.WARNING,
}
setup_logging(component_levels=component_levels)

# Create a logger instance for import
logger = logging.getLogger()
