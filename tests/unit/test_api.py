from __future__ import annotations

import math

import pytest  # type: ignore[import]
import yaml

pytest.importorskip("pybullet")

from conftest import FakeLoader  # noqa: E402
from ik_command.app import create_app, socketio  # noqa: E402
from ik_command.utils.config_manager import DEFAULT_CONFIG_PATH  # noqa: E402

FEEDBACK = {
    "handle_name": "tool_controls",
    "event_kind": "pose_update",
    "control_name": "move_x",
    "pose": {"position": {"x": 0.3, "y": 0.0, "z": 0.5},
             "orientation": {"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0}},
}


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({
        "robot": {"description": "", "active_group": "", "groups": {}},
        "ik": {"timeout": 0.05},
        "markers": {"scale": 0.25},
        "validity": {"check_self_collision": True},
    }))
    return path


@pytest.fixture
def app(config_path):
    app = create_app(config_path=str(config_path))
    app.config['TESTING'] = True
    app.config['command_state'].loader = FakeLoader(known=("test_arm",))
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def load_arm(client):
    response = client.post('/api/robot/load', json={"description": "test_arm"})
    assert response.status_code == 200
    response = client.put('/api/robot/active_group', json={"group": "arm"})
    assert response.status_code == 200


def test_requests_before_a_robot_is_loaded(client):
    assert client.get('/api/robot/groups').status_code == 409
    assert client.put('/api/robot/variables/0', json={"value": 1.0}).status_code == 409

    body = client.get('/api/robot/state').get_json()
    assert body["loaded"] is False
    assert body["handles"] == []
    assert body["validity"] == "unknown"


def test_load_robot(client, config_path):
    assert client.post('/api/robot/load', json={}).status_code == 400
    assert client.post('/api/robot/load', json={"description": 42}).status_code == 400
    assert client.post('/api/robot/load', json={"description": "unknown_robot"}).status_code == 422

    response = client.post('/api/robot/load', json={"description": "test_arm"})

    assert response.status_code == 200
    body = response.get_json()
    assert body["name"] == "test_arm"
    assert body["groups"] == ["arm", "hand", "whole_body"]
    saved = yaml.safe_load(config_path.read_text())
    assert saved["robot"]["description"] == "test_arm"


def test_groups_and_active_group(client):
    client.post('/api/robot/load', json={"description": "test_arm"})

    groups = client.get('/api/robot/groups').get_json()
    assert groups["groups"]["hand"]["tip_links"] == ["left_finger", "right_finger"]
    assert groups["active_group"] == ""

    assert client.put('/api/robot/active_group', json={}).status_code == 400
    assert client.put('/api/robot/active_group', json={"group": "legs"}).status_code == 400

    response = client.put('/api/robot/active_group', json={"group": "hand"})
    assert response.get_json() == {"active_group": "hand", "tip_links": ["left_finger", "right_finger"]}

    state = client.get('/api/robot/state').get_json()
    assert state["handles"] == ["left_finger_controls", "right_finger_controls"]


def test_state_lists_variables(client):
    load_arm(client)

    body = client.get('/api/robot/state').get_json()

    assert body["loaded"] is True
    assert body["active_group"] == "arm"
    assert body["tip_links"] == ["tool"]
    assert body["handles"] == ["tool_controls"]
    assert body["validity"] == "valid"
    assert [v["name"] for v in body["variables"]] == [
        "shoulder", "elbow", "wrist", "left_finger_joint", "right_finger_joint"]


def test_set_variable(client, app):
    load_arm(client)

    response = client.put('/api/robot/variables/0', json={"value": 90, "degrees": True})
    assert response.status_code == 200
    assert response.get_json()["position"] == pytest.approx(math.pi / 2)

    response = client.put('/api/robot/variables/3', json={"value": 0.02})
    assert response.get_json()["position"] == pytest.approx(0.02)

    assert client.put('/api/robot/variables/3', json={"value": 1, "degrees": True}).status_code == 400
    assert client.put('/api/robot/variables/9', json={"value": 0.1}).status_code == 404
    assert client.put('/api/robot/variables/0', json={"value": "ten"}).status_code == 400
    assert client.put('/api/robot/variables/0', json={}).status_code == 400

    state = app.config['command_state']
    assert state.variable_position(0) == pytest.approx(math.pi / 2)


def test_feedback_over_http(client, app):
    load_arm(client)
    state = app.config['command_state']
    state.model.kinematics.solution = [0.1, 0.2, 0.3, 0.0, 0.0]

    response = client.post('/api/robot/feedback', json=FEEDBACK)

    assert response.get_json() == {"committed": True}
    assert list(state.positions) == pytest.approx([0.1, 0.2, 0.3, 0.0, 0.0])
    assert client.post('/api/robot/feedback', json={"handle_name": "nope_controls", "event_kind": 1}).get_json() == \
        {"committed": False}
    assert client.post('/api/robot/feedback', json={}).status_code == 400


def test_config_routes(client, config_path):
    body = client.get('/api/config').get_json()
    assert body["markers"]["scale"] == 0.25

    assert client.put('/api/config', json=[1, 2]).status_code == 400

    body["markers"]["scale"] = 0.4
    assert client.put('/api/config', json=body).status_code == 200
    assert yaml.safe_load(config_path.read_text())["markers"]["scale"] == 0.4


def test_websocket_session(app, client):
    load_arm(client)
    app.config['command_state'].model.kinematics.solution = [0.0, 0.5, 0.0, 0.0, 0.0]

    ws = socketio.test_client(app)
    try:
        received = {message["name"]: message["args"] for message in ws.get_received()}
        assert "status" in received
        snapshot = received["handle_init"][0]
        assert [h["name"] for h in snapshot["handles"]] == ["tool_controls"]

        ack = ws.emit("handle_feedback", FEEDBACK, callback=True)
        assert ack == {"committed": True}

        updates = [m for m in ws.get_received() if m["name"] == "handle_update"]
        assert updates
        assert updates[-1]["args"][0]["poses"][0]["name"] == "tool_controls"
    finally:
        ws.disconnect()


def test_load_without_a_user_config_leaves_the_packaged_defaults_alone():
    default_text = DEFAULT_CONFIG_PATH.read_text()
    app = create_app()
    app.config['command_state'].loader = FakeLoader(known=("test_arm",))

    response = app.test_client().post('/api/robot/load', json={"description": "test_arm"})

    assert response.status_code == 200
    assert DEFAULT_CONFIG_PATH.read_text() == default_text
    assert app.config['config_manager'].get('robot.description') == ''
