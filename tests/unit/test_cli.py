"""Unit tests for the command line interface."""

import pytest
from unittest.mock import AsyncMock, patch

from rich.console import Console

from ctrsnap import cli
from ctrsnap.models.errors import RuntimeConnectionError


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("ctrsnap.cli.setup_logging"):
        yield


class TestParser:
    def test_run_defaults(self):
        args = cli.build_parser().parse_args(["run"])
        assert args.command == "run"
        assert args.no_snapshot is False

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_settings_overrides(self, monkeypatch):
        monkeypatch.delenv("CONTAINER_ID", raising=False)
        args = cli.build_parser().parse_args(
            [
                "--namespace",
                "ci",
                "run",
                "--no-snapshot",
                "--image",
                "docker.io/library/redis:7",
                "--container-id",
                "cache",
            ]
        )

        settings = cli.settings_from_args(args)

        assert settings.containerd_namespace == "ci"
        assert settings.snapshot_enabled is False
        assert settings.image_ref == "docker.io/library/redis:7"
        assert settings.container_id == "cache"

    def test_unset_options_keep_defaults(self):
        args = cli.build_parser().parse_args(["cleanup"])
        settings = cli.settings_from_args(args)
        assert settings.snapshot_enabled is True


class TestMain:
    def test_run_exit_code(self):
        with patch("ctrsnap.cli.run_orchestration", AsyncMock(return_value=127)):
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["run"])

        assert exc_info.value.code == 127

    def test_cleanup_exit_code(self):
        with patch("ctrsnap.cli.run_cleanup", AsyncMock(return_value=0)) as run_cleanup:
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["cleanup"])

        assert exc_info.value.code == 0
        run_cleanup.assert_awaited_once()

    def test_ps_table(self, monkeypatch):
        console = Console(record=True, width=120)
        monkeypatch.setattr(cli, "console", console)
        rows = [("nginx-server", "docker.io/library/nginx:latest", "running")]

        with patch("ctrsnap.cli.list_containers", AsyncMock(return_value=rows)):
            cli.main(["ps"])

        output = console.export_text()
        assert "nginx-server" in output
        assert "running" in output

    def test_ps_connection_error(self, monkeypatch):
        console = Console(record=True, width=120)
        monkeypatch.setattr(cli, "console", console)
        error = RuntimeConnectionError("/run/containerd/containerd.sock")

        with patch("ctrsnap.cli.list_containers", AsyncMock(side_effect=error)):
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["ps"])

        assert exc_info.value.code == 1
        assert "cannot connect" in console.export_text()

    def test_empty_table(self):
        console = Console(record=True, width=80)
        console.print(cli.render_containers([]))
        assert "No containers" in console.export_text()
