from flask_socketio import emit
import logging

logger = logging.getLogger(__name__)

# Global connection tracking
active_connections = 0

def init_websocket_events(socketio, handle_host):
    """Initialize WebSocket event handlers."""

    @socketio.on("connect")
    def ws_connect():
        global active_connections
        active_connections += 1
        logger.info(f"Client connected. Active connections: {active_connections}")
        emit("status", {"msg": "Connected to IK command backend"})
        emit("handle_init", handle_host.snapshot())

    @socketio.on("disconnect")
    def ws_disconnect(*args):
        global active_connections
        active_connections -= 1
        logger.info(f"Client disconnected. Active connections: {active_connections}")

    @socketio.on("handle_feedback")
    def ws_handle_feedback(data):
        if not isinstance(data, dict):
            logger.warning("Ignoring handle feedback that is not an object: %r", data)
            return {"committed": False}
        committed = handle_host.handle_feedback(data)
        return {"committed": committed}

def get_active_connection_count():
    """Get the current number of active websocket connections."""
    return active_connections

def has_active_connections():
    """Check if there are any active websocket connections."""
    return active_connections > 0
