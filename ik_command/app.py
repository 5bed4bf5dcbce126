# app.py
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from pathlib import Path
from typing import Optional
import logging
import argparse

from .api.robot_routes import robot_bp
from .api.config_routes import config_bp
from .api.ws_routes import init_websocket_events, has_active_connections
from .api.handle_host import SocketIOHandleHost
from .core.command_state import RobotCommandState
from .core.feedback import FeedbackDispatcher
from .core.ik.pybullet_kinematics import IKSettings
from .core.markers import MarkerSessionManager
from .core.model.loader import PyBulletModelLoader
from .core.resolver import ContinuousJointResolver
from .core.validity import ValidityChecker
from .core.visualization import RobotVisualizer
from .utils.config_manager import ConfigManager
import ik_command.utils.logger  # noqa: F401  Import to trigger logging setup

logger = logging.getLogger(__name__)

socketio = SocketIO(cors_allowed_origins="*")

def build_ik_settings(config_manager: ConfigManager) -> IKSettings:
    return IKSettings(
        max_iterations=int(config_manager.get('ik.max_iterations', 100)),
        residual_threshold=float(config_manager.get('ik.residual_threshold', 1e-5)),
        position_tolerance=float(config_manager.get('ik.position_tolerance', 1e-3)),
        orientation_tolerance=float(config_manager.get('ik.orientation_tolerance', 1e-2)),
    )

def create_app(config_path: Optional[str] = None, robot_description: Optional[str] = None,
               group: Optional[str] = None):
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes
    socketio.init_app(app)

    config_manager = ConfigManager(Path(config_path) if config_path else None)

    loader = PyBulletModelLoader(
        groups=config_manager.get('robot.groups') or {},
        ik_settings=build_ik_settings(config_manager),
        self_collision=bool(config_manager.get('validity.check_self_collision', True)),
    )
    validity_checker = ValidityChecker(
        check_self_collision=bool(config_manager.get('validity.check_self_collision', True))
    )
    command_state = RobotCommandState(
        loader,
        validity_checker=validity_checker,
        ik_timeout=float(config_manager.get('ik.timeout', 0.05)),
    )

    handle_host = SocketIOHandleHost(emit=lambda event, data: socketio.emit(event, data))
    resolver = ContinuousJointResolver(
        include_bounded_revolute=bool(config_manager.get('resolver.include_bounded_revolute', False))
    )
    dispatcher = FeedbackDispatcher(command_state, resolver)
    marker_manager = MarkerSessionManager(
        command_state,
        handle_host,
        dispatcher,
        scale=float(config_manager.get('markers.scale', 0.2)),
    )

    def publish_markers(markers):
        if has_active_connections():
            socketio.emit("robot_markers", {"markers": markers})

    visualizer = RobotVisualizer(
        command_state,
        publish_markers,
        alpha=float(config_manager.get('visualization.alpha', 0.8)),
    )

    app.config['config_manager'] = config_manager
    app.config['persist_robot_description'] = bool(config_path)
    app.config['command_state'] = command_state
    app.config['handle_host'] = handle_host
    app.config['marker_manager'] = marker_manager
    app.config['visualizer'] = visualizer

    # Register blueprints
    app.register_blueprint(robot_bp, url_prefix='/api/robot')
    app.register_blueprint(config_bp, url_prefix='/api/config')

    # Initialize WebSocket event handlers
    init_websocket_events(socketio, handle_host)

    description = robot_description or config_manager.get('robot.description')
    if description:
        if command_state.load_model(description):
            model = command_state.model
            active_group = group or config_manager.get('robot.active_group') or model.group_names[0]
            if command_state.joint_group(active_group) is None:
                logger.error(f"Configured joint group '{active_group}' does not exist")
            else:
                command_state.set_active_group(active_group)
        else:
            logger.error("Robot description from configuration could not be loaded")

    return app

def main(argv=None):
    parser = argparse.ArgumentParser(description="Run the interactive IK command server")
    parser.add_argument('--config', help="Path to a YAML configuration file")
    parser.add_argument('--robot-description', help="URDF file path (or XML) to load at startup")
    parser.add_argument('--group', help="Joint group to control at startup")
    parser.add_argument('--host', help="Interface to bind")
    parser.add_argument('--port', type=int, help="Port to listen on")
    args = parser.parse_args(argv)

    app = create_app(args.config, args.robot_description, args.group)
    config_manager = app.config['config_manager']
    host = args.host or config_manager.get('server.host', '0.0.0.0')
    port = args.port or int(config_manager.get('server.port', 5000))
    socketio.run(app, host=host, port=port, debug=False)

if __name__ == "__main__":
    main()
