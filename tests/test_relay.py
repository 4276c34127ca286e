import pytest

from conftest import make_drawing, make_token
from errors import ValidationError
from relay import apply_patch, validate_patch
from schemas.events import PatchOperation, PatchPayload
from schemas.state import RoomState


def patch(path, value=None, op="update"):
    return validate_patch(PatchPayload.model_validate({"op": op, "path": path, "value": value}))


@pytest.fixture
def state():
    return RoomState.new("room", "gm")


def test_token_update_sets_entity(state):
    apply_patch(state, patch(["tokens", "t-1"], make_token()))
    assert state.tokens["t-1"].to_wire() == make_token()


def test_token_update_fills_defaults():
    result = patch(["tokens", "t-1"], {"id": "t-1", "type": "PROP", "x": 1, "y": 2, "src": "chest.png"})
    wire = result.to_wire()["value"]
    assert wire["layer"] == "TOKEN"
    assert wire["statusRings"] == []
    assert wire["visible"] is True


def test_same_update_twice_is_idempotent(state):
    p = patch(["tokens", "t-1"], make_token())
    once = apply_patch(state, p).to_wire()
    twice = apply_patch(state, p).to_wire()
    assert once == twice


def test_remove_entity(state):
    apply_patch(state, patch(["drawings", "d-1"], make_drawing()))
    apply_patch(state, patch(["drawings", "d-1"], op="remove"))
    assert state.drawings == {}


def test_remove_missing_entity_is_noop(state):
    apply_patch(state, patch(["tokens", "nope"], op="remove"))
    assert state.tokens == {}


def test_config_replaced_wholesale(state):
    apply_patch(state, patch(["config"], {"gridSize": 70, "snapToGrid": True}))
    assert state.config.grid_size == 70
    assert state.config.snap_to_grid is True
    assert state.config.grid_opacity == 0.2


def test_timer_set_and_cleared(state):
    timer = {"id": "tm", "durationSec": 60, "remainingSec": 60, "status": "RUNNING", "updatedAt": 1700000000000}
    apply_patch(state, patch(["timer"], timer))
    assert state.timer.label == "Timer"
    assert state.timer.status == "RUNNING"

    apply_patch(state, patch(["timer"], None))
    assert state.timer is None


def test_map_remove_sets_null(state):
    apply_patch(state, patch(["map"], {"url": "http://x/map.png", "width": 800, "height": 600}))
    assert state.map.offset.x == 0
    apply_patch(state, patch(["map"], op="remove"))
    assert state.map is None


def test_fog_add_appends_and_update_replaces(state):
    shape = {"id": "f-1", "type": "rect", "points": [0, 0, 10, 10]}
    apply_patch(state, patch(["fog"], shape, op="add"))
    apply_patch(state, patch(["fog"], dict(shape, id="f-2"), op="add"))
    assert [s.id for s in state.fog] == ["f-1", "f-2"]

    apply_patch(state, patch(["fog"], [shape]))
    assert [s.id for s in state.fog] == ["f-1"]


def test_whole_collection_replace(state):
    apply_patch(state, patch(["tokens"], {"t-1": make_token(), "t-2": make_token("t-2")}))
    assert set(state.tokens) == {"t-1", "t-2"}


def test_missing_op_defaults_to_update():
    payload = PatchPayload.model_validate({"path": ["timer"], "value": None})
    assert payload.operation == PatchOperation.UPDATE


@pytest.mark.parametrize("path, value, op", [
    (["players", "g-1"], {}, "update"),
    (["tokens", "t-1", "x"], 5, "update"),
    (["config"], None, "remove"),
    (["map"], {"url": "m.png", "width": 1, "height": 1}, "add"),
    (["tokens", "t-1"], {"id": "t-1", "type": "DRAGON", "x": 0, "y": 0, "src": "x"}, "update"),
    (["tokens", "t-1"], make_token("t-2"), "update"),
    (["tokens"], {"t-1": make_token("t-9")}, "update"),
    (["drawings", "d-1"], {"id": "d-1"}, "update"),
])
def test_rejected_patches(path, value, op):
    with pytest.raises(ValidationError):
        patch(path, value, op)
