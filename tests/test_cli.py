"""Tests for the dvdi command line."""

import fcntl
import json

import pytest
import yaml

from dvdi import __main__ as cli
from dvdi.isolator.isolator import VolumeIsolator


@pytest.fixture
def config_file(tmp_path, executor, monkeypatch):
    config = tmp_path / "dvdi.yaml"
    config.write_text(yaml.safe_dump({
        "mount_list_path": str(tmp_path / "state" / "dvdimounts.pb"),
        "require_root": False,
    }))
    original_init = VolumeIsolator.__init__

    def init_with_fake(self, settings=None, executor_arg=None, repository=None):
        original_init(self, settings, executor, repository)

    monkeypatch.setattr(VolumeIsolator, "__init__", init_with_fake)
    return config


def _run(config_file, *argv):
    return cli.main(["--config", str(config_file), *argv])


class TestCli:
    def test_prepare_cleanup_cycle(self, config_file, executor, capsys):
        assert _run(config_file, "prepare", "c1", "--env", "DVDI_VOLUME_NAME=v1") == 0
        result = json.loads(capsys.readouterr().out)
        assert result["success"] is True
        assert result["attached"] == ["rexray/v1"]

        # a fresh process reloads the ledger from disk
        assert _run(config_file, "prepare", "c2", "--env", "DVDI_VOLUME_NAME=v1") == 0
        assert executor.mounted() == ["v1"]
        capsys.readouterr()

        assert _run(config_file, "status") == 0
        status = yaml.safe_load(capsys.readouterr().out)
        assert [m["containerid"] for m in status["mounts"]] == ["c1", "c2"]

        assert _run(config_file, "cleanup", "c1") == 0
        assert _run(config_file, "cleanup", "c2") == 0
        assert executor.unmounted() == ["v1"]

    def test_prepare_failure_exit_code(self, config_file, executor, capsys):
        assert _run(config_file, "prepare", "c1", "--env", "DVDI_VOLUME_NAME=v1;reboot") == 1
        assert json.loads(capsys.readouterr().out)["success"] is False
        assert executor.calls == []

    def test_recover_detaches_orphans(self, config_file, executor, capsys):
        _run(config_file, "prepare", "a", "--env", "DVDI_VOLUME_NAME=va")
        _run(config_file, "prepare", "b", "--env", "DVDI_VOLUME_NAME=vb")
        capsys.readouterr()

        assert _run(config_file, "recover", "--running", "a:4242:/work/a", "--orphan", "b") == 0
        assert json.loads(capsys.readouterr().out)["detached"] == ["rexray/vb"]
        assert executor.unmounted() == ["vb"]

    def test_bad_env_pair_is_usage_error(self, config_file):
        with pytest.raises(SystemExit) as excinfo:
            _run(config_file, "prepare", "c1", "--env", "NOEQUALS")
        assert excinfo.value.code == 2

    def test_parse_run_state(self):
        state = cli._parse_run_state("c1:99:/var/lib/work")
        assert (state.container_id, state.pid, state.directory) == ("c1", 99, "/var/lib/work")
        assert cli._parse_run_state("c2").pid is None

    def test_lock_released_after_run(self, config_file, tmp_path):
        _run(config_file, "status")
        with open(tmp_path / "state" / "dvdimounts.pb.lock") as f:
            # raises BlockingIOError if still held
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    @pytest.mark.parametrize("argv", [
        ["prepare", "", "--env", "DVDI_VOLUME_NAME=v1"],
        ["cleanup", " "],
    ])
    def test_empty_container_id_is_usage_error(self, config_file, executor, argv):
        with pytest.raises(SystemExit) as excinfo:
            _run(config_file, *argv)
        assert excinfo.value.code == 2
        assert executor.calls == []
