"""Tests for the aegis-guard CLI."""

import json

from aegis_guard import __version__
from aegis_guard.cli import main


class TestCli:
    """Tests for CLI subcommands."""

    def test_version(self, capsys):
        assert main(["version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_inspect_defaults(self, capsys):
        assert main(["inspect"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["executor"]["timeout_seconds"] == 30.0

    def test_check_config(self, tmp_path, capsys):
        path = tmp_path / "aegis_config.yaml"
        path.write_text("executor:\n  timeout_seconds: 5\n")
        assert main(["check-config", str(path)]) == 0
        assert "timeout=5s" in capsys.readouterr().out

    def test_check_config_missing_file(self, tmp_path, capsys):
        assert main(["check-config", str(tmp_path / "missing.yaml")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_assess(self, capsys):
        changes = json.dumps([{"type": "delete", "target": f"/A_{i}"} for i in range(11)])
        assert main(["assess", "--command", "delete_actors", "--changes", changes]) == 0
        out = capsys.readouterr().out
        assert "Risk level:    high" in out
        assert "Auto-approve:  False" in out

    def test_assess_rejects_bad_change_type(self, capsys):
        changes = json.dumps([{"type": "explode", "target": "/A"}])
        assert main(["assess", "--command", "x", "--changes", changes]) == 1

    def test_invert(self, capsys):
        assert (
            main(
                [
                    "invert",
                    "--command",
                    "delete_actor",
                    "--target",
                    "/A",
                    "--previous",
                    '{"class": "BP_X"}',
                ]
            )
            == 0
        )
        data = json.loads(capsys.readouterr().out)
        assert data["command"] == "spawn_actor"
        assert data["params"]["class"] == "BP_X"
