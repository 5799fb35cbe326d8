"""Tests for inverse command and parameter synthesis."""

import pytest

from aegis_guard import ChangeType
from aegis_guard.rollback.inversion import infer_change_type, invert_command, invert_params


class TestInvertCommand:
    """Tests for invert_command()."""

    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("spawn_actor", "delete_actor"),
            ("create_actor", "delete_actor"),
            ("delete_actor", "spawn_actor"),
            ("modify_actor", "modify_actor"),
            ("move_actor", "move_actor"),
            ("create_blueprint", "delete_blueprint"),
            ("delete_material", "create_material"),
            ("import_asset", "delete_asset"),
        ],
    )
    def test_table_entries(self, command, expected):
        assert invert_command(command) == expected

    def test_namespaced_command_keeps_prefix(self):
        assert invert_command("editor.delete_actor") == "editor.spawn_actor"

    def test_unmatched_falls_back_to_modify(self):
        assert invert_command("create_widget") == "modify_widget"
        assert invert_command("delete_widget") == "modify_widget"

    def test_unrelated_command_unchanged(self):
        assert invert_command("set_property") == "set_property"


class TestInvertParams:
    """Tests for invert_params()."""

    def test_delete_restores_previous_state(self):
        params = invert_params("delete_actor", "/A", {"class": "BP_X", "location": [1, 2, 3]})
        assert params == {
            "class": "BP_X",
            "location": [1, 2, 3],
            "actor_path": "/A",
            "target": "/A",
        }

    def test_create_references_target(self):
        params = invert_params("spawn_actor", "/A", {"ignored": True})
        assert params == {"actor_path": "/A", "target": "/A", "path": "/A"}

    def test_modify_sets_previous_properties(self):
        params = invert_params("modify_actor", "/A", {"scale": 2})
        assert params["properties"] == {"scale": 2}
        assert params["scale"] == 2
        assert params["actor_path"] == "/A"

    def test_move_restores_location_and_rotation(self):
        previous = {"location": [0, 0, 0], "rotation": [0, 90, 0]}
        params = invert_params("move_actor", "/A", previous)
        assert params["location"] == [0, 0, 0]
        assert params["rotation"] == [0, 90, 0]
        assert params["previous_path"] == "/A"

    def test_identity_keys_win_over_previous_state(self):
        previous = {"actor_path": "/Stale", "target": "/Stale", "location": [1, 1, 1]}
        params = invert_params("move_actor", "/A", previous)
        assert params["actor_path"] == "/A"
        assert params["target"] == "/A"

    def test_default_is_previous_state_verbatim(self):
        previous = {"value": 1}
        params = invert_params("rename_thing", "/A", previous)
        assert params == previous
        assert params is not previous


class TestInferChangeType:
    @pytest.mark.parametrize(
        ("command", "expected"),
        [
            ("spawn_actor", ChangeType.CREATE),
            ("add_component", ChangeType.CREATE),
            ("remove_component", ChangeType.DELETE),
            ("move_actor", ChangeType.MOVE),
            ("set_property", ChangeType.MODIFY),
        ],
    )
    def test_inference(self, command, expected):
        assert infer_change_type(command) == expected
