# api/robot_routes.py
from flask import Blueprint, request, jsonify, current_app
import logging
import math

logger = logging.getLogger(__name__)

robot_bp = Blueprint('robot', __name__)


def _state():
    return current_app.config['command_state']


@robot_bp.route('/load', methods=['POST'])
def load_robot():
    payload = request.get_json(silent=True)
    if not payload:
        return jsonify({"error": "No payload"}), 400

    description = payload.get('description')
    if not description or not isinstance(description, str):
        return jsonify({"error": "Please provide a robot description (URDF path or XML)"}), 400

    state = _state()
    if not state.load_model(description):
        return jsonify({"error": "Failed to load robot from robot description"}), 422

    config_manager = current_app.config.get('config_manager')
    if config_manager is not None and current_app.config.get('persist_robot_description', False):
        try:
            config_manager.set('robot.description', description)
            config_manager.save_config()
        except Exception as e:
            logger.warning(f"Failed to persist robot description: {e}")

    model = state.model
    logger.info("Robot loaded via API: %s", model.name)
    return jsonify({"status": "loaded", "name": model.name, "groups": model.group_names})


@robot_bp.route('/groups', methods=['GET'])
def get_groups():
    state = _state()
    model = state.model
    if model is None:
        return jsonify({"error": "Robot not yet loaded"}), 409
    groups = {
        name: {
            "joints": list(model.group(name).joints),
            "tip_links": model.tip_links(model.group(name)),
        }
        for name in model.group_names
    }
    return jsonify({"groups": groups, "active_group": state.active_group})


@robot_bp.route('/active_group', methods=['PUT'])
def set_active_group():
    payload = request.get_json(silent=True)
    if payload is None or 'group' not in payload:
        return jsonify({"error": "Missing 'group' in payload"}), 400

    group_name = payload['group'] or ""
    state = _state()
    if group_name and state.joint_group(group_name) is None:
        return jsonify({"error": f"Unknown joint group '{group_name}'"}), 400

    state.set_active_group(group_name)
    return jsonify({"active_group": state.active_group, "tip_links": state.tip_links(state.active_group)})


@robot_bp.route('/state', methods=['GET'])
def get_state():
    state = _state()
    marker_manager = current_app.config.get('marker_manager')
    model = state.model
    with state.lock:
        body = {
            "loaded": model is not None,
            "name": model.name if model else None,
            "robot_description": state.robot_description,
            "active_group": state.active_group,
            "tip_links": state.tip_links(state.active_group),
            "handles": marker_manager.handle_names if marker_manager else [],
            "variables": state.describe_variables(),
            "validity": state.validity().value,
        }
    return jsonify(body)


@robot_bp.route('/variables/<int:index>', methods=['PUT'])
def set_variable(index):
    payload = request.get_json(silent=True)
    if not payload or 'value' not in payload:
        return jsonify({"error": "Missing 'value' in payload"}), 400

    value = payload['value']
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return jsonify({"error": "'value' must be a finite number"}), 400

    state = _state()
    model = state.model
    if model is None:
        return jsonify({"error": "Robot not yet loaded"}), 409
    if index < 0 or index >= model.variable_count:
        return jsonify({"error": f"Invalid variable index {index}"}), 404

    if payload.get('degrees', False):
        if not state.is_variable_angle(index):
            return jsonify({"error": f"Variable '{model.variable_names[index]}' is not an angle"}), 400
        value = math.radians(value)

    logger.debug("Joint variable %d set to %f", index, value)
    state.set_variable(index, value)
    return jsonify({"index": index, "name": model.variable_names[index], "position": state.variable_position(index)})


@robot_bp.route('/feedback', methods=['POST'])
def post_feedback():
    payload = request.get_json(silent=True)
    if not payload:
        return jsonify({"error": "No payload"}), 400
    handle_host = current_app.config['handle_host']
    committed = handle_host.handle_feedback(payload)
    return jsonify({"committed": committed})
