import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.feedback import FeedbackEvent
from ..core.markers import SERVER_ID, ControlHandle, FeedbackCallback
from ..core.pose import Pose

logger = logging.getLogger(__name__)


class SocketIOHandleHost:
    """
    Interactive-handle server backed by Socket.IO.

    Mutations are buffered until apply_changes(), which emits one
    ``handle_update`` event: {server_id, seq_num, erases, inserts, poses}.
    Clients apply erases before inserts. Feedback arriving from clients is
    routed to the callback registered with the handle.
    """

    def __init__(self, emit: Optional[Callable[[str, Dict[str, Any]], None]] = None,
                 server_id: str = SERVER_ID):
        self.emit = emit
        self.server_id = server_id
        self.seq_num = 0
        self._lock = threading.RLock()
        self._handles: Dict[str, ControlHandle] = {}
        self._callbacks: Dict[str, FeedbackCallback] = {}
        self._pending_inserts: Dict[str, ControlHandle] = {}
        self._pending_poses: Dict[str, Dict[str, Any]] = {}
        self._pending_erases: Set[str] = set()

    def insert(self, handle: ControlHandle, feedback_cb: FeedbackCallback) -> None:
        with self._lock:
            self._handles[handle.name] = handle
            self._callbacks[handle.name] = feedback_cb
            self._pending_inserts[handle.name] = handle
            self._pending_poses.pop(handle.name, None)

    def set_pose(self, name: str, pose: Pose, frame_id: str) -> bool:
        with self._lock:
            handle = self._handles.get(name)
            if handle is None:
                return False
            handle = replace(handle, pose=pose, frame_id=frame_id)
            self._handles[name] = handle
            if name in self._pending_inserts:
                self._pending_inserts[name] = handle
            else:
                self._pending_poses[name] = {"name": name, "frame_id": frame_id, "pose": pose.to_dict()}
            return True

    def clear(self) -> None:
        with self._lock:
            self._pending_erases.update(self._handles)
            self._handles.clear()
            self._callbacks.clear()
            self._pending_inserts.clear()
            self._pending_poses.clear()

    def apply_changes(self) -> None:
        with self._lock:
            if not (self._pending_erases or self._pending_inserts or self._pending_poses):
                return
            self.seq_num += 1
            payload = {
                "server_id": self.server_id,
                "seq_num": self.seq_num,
                "erases": sorted(self._pending_erases),
                "inserts": [handle.to_dict() for handle in self._pending_inserts.values()],
                "poses": list(self._pending_poses.values()),
            }
            self._pending_erases.clear()
            self._pending_inserts.clear()
            self._pending_poses.clear()

        if self.emit is not None:
            try:
                self.emit("handle_update", payload)
            except Exception as e:
                logger.error(f"Error emitting handle update: {e}")

    @property
    def handle_names(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def snapshot(self) -> Dict[str, Any]:
        """Full handle set, sent to clients when they connect."""
        with self._lock:
            return {
                "server_id": self.server_id,
                "seq_num": self.seq_num,
                "handles": [handle.to_dict() for handle in self._handles.values()],
            }

    def handle_feedback(self, data: Dict[str, Any]) -> bool:
        try:
            event = FeedbackEvent.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed handle feedback: {e}")
            return False

        with self._lock:
            callback = self._callbacks.get(event.handle_name)
        if callback is None:
            logger.warning("Feedback for unknown handle '%s'", event.handle_name)
            return False
        return bool(callback(event))
