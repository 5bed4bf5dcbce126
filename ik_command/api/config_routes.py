from flask import Blueprint, request, jsonify, current_app
import logging

config_bp = Blueprint('config', __name__)
logger = logging.getLogger(__name__)

@config_bp.route('', methods=['GET'])
def get_config():
    """Get current configuration."""
    try:
        config_manager = current_app.config['config_manager']
        return jsonify(config_manager.snapshot())
    except Exception as e:
        logger.error(f"Failed to get config: {e}")
        return jsonify({"error": str(e)}), 500

@config_bp.route('', methods=['PUT'])
def update_config():
    """Update and persist configuration. Settings are read at startup."""
    try:
        new_config = request.get_json(silent=True)
        if not new_config or not isinstance(new_config, dict):
            return jsonify({"error": "No config data provided"}), 400

        config_manager = current_app.config['config_manager']
        config_manager.config = new_config
        config_manager.save_config()
        logger.info("Configuration updated")
        return jsonify({"message": "Configuration updated successfully"})
    except Exception as e:
        logger.error(f"Failed to update config: {e}")
        return jsonify({"error": str(e)}), 500
