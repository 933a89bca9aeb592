"""
Tests for the evtq command line

These tests validate:
- Host URI parsing ([[domain/]user:password@]hostname)
- Backup and live runs end to end against an in-memory host
- Metadata import/export and --stats reporting
- Column selection, date formats and --save-config
- Exit statuses and error reporting
"""

import gzip

import orjson
import pytest
import yaml

from evtq.cli import build_parser, main, parse_host_uri
from evtq.errors import ConfigError
from tests.factories import make_event, string_fields, template


@pytest.fixture
def run(fake_host, tmp_path):
    """Run main() against the fake host and an isolated config directory."""
    def _run(*argv):
        return main(list(argv), host_factory=lambda: fake_host, config_dir=tmp_path / "cfg")
    return _run


@pytest.fixture
def backup(fake_host):
    fake_host.add_provider("Service Control Manager", {(7036, 0): template("param1", "param2")})
    events = [
        make_event(record_id=1, provider="Service Control Manager", event_id=7036,
                   fields=string_fields("Print Spooler", "running")),
        make_event(record_id=2, provider="Service Control Manager", event_id=7036,
                   fields=string_fields("Print Spooler", "stopped")),
        make_event(record_id=3, provider="Microsoft-Windows-Kernel", event_id=1),
    ]
    fake_host.add_backup("system.evtx", events)
    return "system.evtx"


def read_lines(path):
    return [orjson.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


# =============================================================================
# Host URIs
# =============================================================================

class TestParseHostUri:
    """Remote login parsing."""

    def test_full_uri(self):
        hostname, creds = parse_host_uri("lab1/Admin:MyPassw0rd@server1.lab")
        assert hostname == "server1.lab"
        assert (creds.domain, creds.user, creds.password) == ("lab1", "Admin", "MyPassw0rd")

    def test_default_domain(self):
        hostname, creds = parse_host_uri("Admin:secret@server1")
        assert hostname == "server1"
        assert creds.domain == "."

    def test_password_may_contain_at(self):
        hostname, creds = parse_host_uri("Admin:p@ss@server1")
        assert hostname == "server1"
        assert creds.password == "p@ss"

    @pytest.mark.parametrize("uri", ["localhost", ".", "", "LOCALHOST"])
    def test_local_host(self, uri):
        assert parse_host_uri(uri) == (None, None)

    def test_plain_remote(self):
        assert parse_host_uri("server1") == ("server1", None)

    @pytest.mark.parametrize("uri", ["Admin@server1", ":pw@server1"])
    def test_missing_password(self, uri):
        with pytest.raises(ConfigError):
            parse_host_uri(uri)


class TestParser:
    """Argument layout."""

    def test_sources_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--from-backup", "a.evtx", "--from-host"])

    def test_formats_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--to-json", "--to-tsv"])

    def test_from_host_default(self):
        assert build_parser().parse_args(["--from-host"]).from_host == "localhost"


# =============================================================================
# Runs
# =============================================================================

class TestBackupRun:
    """--from-backup end to end."""

    def test_json_to_file(self, run, backup, tmp_path):
        out = tmp_path / "events.json"
        assert run("--from-backup", backup, "--to-json", str(out)) == 0
        objs = read_lines(out)
        assert [o["record_number"] for o in objs] == [1, 2, 3]
        assert objs[0]["param1"] == "Print Spooler"
        assert len(objs[2]) == 6

    def test_stdout_default(self, run, backup, capsys):
        assert run("--from-backup", backup) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 3

    def test_tsv(self, run, backup, capsys):
        assert run("--from-backup", backup, "--to-tsv") == 0
        lines = capsys.readouterr().out.splitlines()
        assert all(line.count("\t") == 9 for line in lines)

    def test_limit(self, run, backup, capsys):
        assert run("--from-backup", backup, "-n", "2") == 0
        assert len(capsys.readouterr().out.splitlines()) == 2

    def test_limit_must_be_positive(self, run, backup):
        with pytest.raises(SystemExit):
            run("--from-backup", backup, "-n", "0")

    def test_append(self, run, backup, tmp_path):
        out = tmp_path / "events.json"
        run("--from-backup", backup, "--to-json", str(out))
        run("--from-backup", backup, "--to-json", str(out), "-a")
        assert len(read_lines(out)) == 6

    def test_gzip(self, run, backup, tmp_path):
        out = tmp_path / "events.json.gz"
        assert run("--from-backup", backup, "--to-json", str(out), "-z") == 0
        with gzip.open(out, "rt", encoding="utf-8") as f:
            assert len(f.read().splitlines()) == 3

    def test_queued_output(self, run, backup, tmp_path):
        out = tmp_path / "events.json"
        assert run("--from-backup", backup, "--to-json", str(out), "--queued-output") == 0
        assert len(read_lines(out)) == 3

    def test_columns(self, run, backup, capsys):
        assert run("--from-backup", backup, "--to-tsv", "-O", "recordid,variant2") == 0
        assert capsys.readouterr().out.splitlines() == ["1\trunning", "2\tstopped", "3\t"]

    def test_json_columns_and_datefmt(self, run, backup, capsys):
        assert run("--from-backup", backup, "--columns", "timestamp,variant1", "--datefmt", "%Y-%m-%d") == 0
        first = orjson.loads(capsys.readouterr().out.splitlines()[0])
        assert first == {"timestamp": "2024-01-02", "param1": "Print Spooler"}

    def test_bad_columns(self, run, backup, capsys):
        assert run("--from-backup", backup, "--to-csv", "-O", "variant1,...") == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "after '...'" in captured.err

    def test_stats(self, run, backup, capsys):
        assert run("--from-backup", backup, "-s", "--to-tsv", "-") == 0
        err = capsys.readouterr().err.splitlines()
        assert "2  Service Control Manager-7036-0" in err
        assert "1  Microsoft-Windows-Kernel-1-0" in err
        assert "3  total (2 distinct events)" in err

    def test_missing_backup(self, run, capsys):
        assert run("--from-backup", "missing.evtx") == 1
        assert " [!] Error:" in capsys.readouterr().err

    def test_unwritable_output(self, run, backup, tmp_path):
        assert run("--from-backup", backup, "--to-json", str(tmp_path / "no" / "dir" / "x.json")) == 1

    def test_bad_config(self, run, backup, tmp_path):
        (tmp_path / "cfg").mkdir()
        (tmp_path / "cfg" / "config.yaml").write_text("pipeline:\n  mode: parallel\n")
        assert run("--from-backup", backup) == 1


class TestLiveRun:
    """--from-host end to end."""

    def test_dump_existing_no_wait(self, run, fake_host, capsys):
        fake_host.add_channel("Application", [make_event(record_id=n) for n in range(3)])
        fake_host.add_channel("System", [make_event(record_id=n) for n in range(2)])
        assert run("--from-host", "--dump-existing", "--no-wait", "--quiescence", "0.05") == 0
        assert len(capsys.readouterr().out.splitlines()) == 5
        assert fake_host.open_handles() == []

    def test_remote_credentials(self, run, fake_host, capsys):
        fake_host.add_channel("Application")
        assert run("--from-host", "dom/user:pw@server1", "--no-wait", "--quiescence", "0.05") == 0
        assert fake_host.sessions[0]["hostname"] == "server1"
        assert fake_host.sessions[0]["password"] == "pw"

    def test_bad_uri(self, run, capsys):
        assert run("--from-host", "user@server1", "--no-wait") == 1
        assert "username:password" in capsys.readouterr().err

    def test_list_channels(self, run, fake_host, capsys):
        fake_host.add_channel("Application")
        fake_host.add_channel("Security")
        assert run("--list-channels") == 0
        assert capsys.readouterr().out.splitlines() == ["Application", "Security"]


class TestMetadataFlags:
    """--import-metadata / --export-metadata / --no-system-metadata."""

    def test_export(self, run, backup, tmp_path, capsys):
        cache = tmp_path / "meta.json"
        assert run("--export-metadata", str(cache)) == 0
        assert orjson.loads(cache.read_bytes()) == {
            "Service Control Manager-7036-0": ["param1", "param2"]
        }
        assert capsys.readouterr().out == ""

    def test_import_without_system(self, run, backup, tmp_path, capsys):
        cache = tmp_path / "meta.json"
        cache.write_bytes(orjson.dumps({"Service Control Manager-7036-0": ["Service", "State"]}))
        assert run("--from-backup", backup, "--no-system-metadata", "--import-metadata", str(cache)) == 0
        first = orjson.loads(capsys.readouterr().out.splitlines()[0])
        assert first["Service"] == "Print Spooler"
        assert first["State"] == "running"

    def test_no_system_metadata_falls_back(self, run, backup, capsys):
        assert run("--from-backup", backup, "--no-system-metadata") == 0
        first = orjson.loads(capsys.readouterr().out.splitlines()[0])
        assert first["field0"] == "Print Spooler"

    def test_malformed_import(self, run, backup, tmp_path, capsys):
        cache = tmp_path / "meta.json"
        cache.write_text("{broken")
        assert run("--from-backup", backup, "--import-metadata", str(cache)) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert " [!] Error:" in captured.err


class TestSaveConfig:
    """--save-config."""

    def test_effective_settings_saved(self, run, tmp_path, capsys):
        assert run("--to-csv", "--columns", "provider,eventid", "--quiescence", "2.5", "--save-config") == 0
        saved = yaml.safe_load((tmp_path / "cfg" / "config.yaml").read_text())
        assert saved["output"]["format"] == "csv"
        assert saved["output"]["columns"] == "provider,eventid"
        assert saved["live"]["quiescence_interval"] == 2.5
        assert capsys.readouterr().out == ""

    def test_saved_settings_used_next_run(self, run, backup, capsys):
        assert run("--to-tsv", "-O", "recordid", "--save-config") == 0
        assert run("--from-backup", backup) == 0
        assert capsys.readouterr().out.splitlines() == ["1", "2", "3"]

    def test_invalid_settings_not_saved(self, run, tmp_path):
        assert run("--columns", "bogus", "--save-config") == 1
        assert not (tmp_path / "cfg" / "config.yaml").exists()
