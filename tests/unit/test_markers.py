from __future__ import annotations

import pytest  # type: ignore[import]

from ik_command.core.markers import (  # noqa: E402
    InteractionMode,
    MarkerSessionManager,
    marker_name_from_tip_name,
    six_dof_controls,
    tip_name_from_marker_name,
)
from ik_command.core.pose import Pose  # noqa: E402


def _noop_feedback(event):
    return False


@pytest.fixture
def manager(state, host):
    return MarkerSessionManager(state, host, _noop_feedback, scale=0.3)


def test_marker_names_round_trip():
    for tip in ("tool", "l_gripper_control_link", "wrist_3_link", "a"):
        assert tip_name_from_marker_name(marker_name_from_tip_name(tip)) == tip
    assert marker_name_from_tip_name("tool") == "tool_controls"
    assert tip_name_from_marker_name("tool_control") == "tool"
    assert tip_name_from_marker_name("plain_name") == "plain_name"


def test_six_dof_controls():
    controls = six_dof_controls()
    assert [c.name for c in controls] == ["rotate_x", "move_x", "rotate_z", "move_z", "rotate_y", "move_y"]
    assert {c.interaction_mode for c in controls} == {InteractionMode.MOVE_AXIS, InteractionMode.ROTATE_AXIS}
    assert all(c.orientation_mode == "inherit" for c in controls)


def test_no_handles_until_a_group_is_active(manager, state, host, caplog):
    with caplog.at_level("WARNING"):
        state.load_model("test_arm")

    assert host.live == {}
    assert not manager.is_initialized()
    assert "No active joint group" in caplog.text


def test_one_handle_per_tip_of_the_active_group(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("arm")

    assert set(host.live) == {"tool_controls"}
    handle = host.live["tool_controls"]
    assert handle.tip_link == "tool"
    assert handle.frame_id == "base_link"
    assert handle.description == "ik control of link tool"
    assert handle.scale == 0.3
    assert handle.pose == Pose.identity()
    assert len(handle.controls) == 6
    assert host.callbacks["tool_controls"] is _noop_feedback

    state.set_active_group("whole_body")
    assert set(host.live) == {"left_finger_controls", "right_finger_controls"}
    assert manager.handle_names == ["left_finger_controls", "right_finger_controls"]


def test_group_switch_removes_old_handles_before_adding_new_ones(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("arm")
    host.reset_calls()

    state.set_active_group("hand")

    assert host.calls[0] == ("clear",)
    inserted = [call[1] for call in host.calls if call[0] == "insert"]
    assert inserted == ["left_finger_controls", "right_finger_controls"]
    assert host.calls[-1] == ("apply",)
    assert "tool_controls" not in host.live


def test_clearing_the_group_removes_all_handles(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("arm")

    state.set_active_group("")

    assert host.live == {}
    assert not manager.is_initialized()


def test_unknown_group_leaves_no_handles(manager, state, host, caplog):
    state.load_model("test_arm")
    state.set_active_group("arm")

    with caplog.at_level("ERROR"):
        state.set_active_group("legs")

    assert host.live == {}
    assert "Failed to retrieve joint group 'legs'" in caplog.text


def test_reloading_the_model_rebuilds_handles(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("arm")
    host.reset_calls()

    state.load_model("other_arm")

    assert ("clear",) in host.calls
    assert set(host.live) == {"tool_controls"}


def test_state_changes_repose_handles_without_recreating_them(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("hand")
    host.reset_calls()

    state.set_variable(0, 0.5)

    assert [c for c in host.calls if c[0] in ("insert", "clear")] == []
    assert ("set_pose", "left_finger_controls") in host.calls
    assert ("set_pose", "right_finger_controls") in host.calls
    assert host.calls[-1] == ("apply",)
    assert host.poses["left_finger_controls"].position == (0.5, 0.0, 0.0)
    assert manager.handle_for_tip("left_finger").pose.position == (0.5, 0.0, 0.0)


def test_update_poses_is_idempotent(manager, state, host):
    state.load_model("test_arm")
    state.set_active_group("arm")
    state.set_variable(2, 1.25)

    manager.update_poses()
    first = dict(host.poses)
    manager.update_poses()

    assert host.poses == first
    assert set(host.live) == {"tool_controls"}


def test_host_refusing_a_pose_is_logged_and_others_still_update(manager, state, host, caplog):
    state.load_model("test_arm")
    state.set_active_group("hand")
    host.failing_names.add("left_finger_controls")

    with caplog.at_level("ERROR"):
        state.set_variable(3, 0.02)

    assert "Failed to set pose of interactive marker 'left_finger_controls'" in caplog.text
    assert host.poses["right_finger_controls"].position == pytest.approx((0.02, 0.0, 0.0))
