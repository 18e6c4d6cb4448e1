"""Test the command-line interface"""

import pytest
from click.testing import CliRunner

from tube_publisher import __version__
from tube_publisher.cli import cli
from tube_publisher.transfer import SessionState, SessionStateStore


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(temp_dir, monkeypatch):
    """A working directory with a config.yaml pointing into temp_dir"""
    monkeypatch.chdir(temp_dir)
    (temp_dir / "config.yaml").write_text(f"""
youtube:
  access_token: "yt-token"
storage:
  backend: local
upload:
  state_file: "{temp_dir}/state.json"
output:
  directory: "{temp_dir}/out"
""", encoding="utf-8")
    return temp_dir


class TestArguments:
    """Test option validation"""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_arguments_shows_help(self, runner):
        result = runner.invoke(cli, [])

        assert result.exit_code == 0
        assert "--upload" in result.output

    @pytest.mark.parametrize("args", [
        ["--resume", "--status"],
        ["--upload", "video.mp4"],
        ["--preview", "--status"],
    ])
    def test_usage_errors(self, runner, args):
        result = runner.invoke(cli, args)

        assert result.exit_code == 2

    def test_playlist_needs_desired(self, runner, temp_dir):
        ids = temp_dir / "ids.txt"
        ids.write_text("a\n", encoding="utf-8")

        result = runner.invoke(cli, ["--playlist", "PL1", "--playlist", "PL2", "--desired", str(ids)])

        assert result.exit_code == 2

    def test_missing_config(self, runner, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(cli, ["--status"])

        assert result.exit_code == 1


class TestStateCommands:
    """Test --status and --abandon against the state file"""

    def test_status_idle(self, runner, workdir):
        result = runner.invoke(cli, ["--status"])

        assert result.exit_code == 0
        assert "No upload in progress." in result.output

    def test_status_and_abandon(self, runner, workdir):
        store = SessionStateStore(workdir / "state.json")
        store.save(SessionState("https://upload.example/s", "videos/day-01.mp4", 1048576))

        status = runner.invoke(cli, ["--status"])

        assert status.exit_code == 0
        assert "videos/day-01.mp4" in status.output
        assert "1.0 MB" in status.output

        abandoned = runner.invoke(cli, ["--abandon"])

        assert abandoned.exit_code == 0
        assert "Abandoned upload of videos/day-01.mp4." in abandoned.output
        assert not store.exists()

    def test_unreadable_state_file(self, runner, workdir):
        state_file = workdir / "state.json"
        state_file.write_text("{not json", encoding="utf-8")

        status = runner.invoke(cli, ["--status"])

        assert status.exit_code == 0
        assert "unreadable" in status.output

        abandoned = runner.invoke(cli, ["--abandon"])

        assert abandoned.exit_code == 0
        assert "Removed unreadable upload state" in abandoned.output
        assert not state_file.exists()
