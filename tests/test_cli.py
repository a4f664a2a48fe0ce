"""
Tests for the command-line interface in simulation mode.
"""

import json
import tempfile
from pathlib import Path

import pytest

from site_provisioner.cli import EXIT_CONFIG, EXIT_OK, create_parser, main


HOSTS = "# local hosts file\n127.0.0.1 localhost\n"


def write_site(directory: str, **overrides) -> Path:
    data = {
        "IIS-Site-Name": "demo",
        "App-Pool-Name": "demoPool",
        "IIS-App-Pool-Dot-Net-Version": "v4.0",
        "bindings": ["demo.localtest.me", "demo.example.com"],
        "provisioner": {"logging": {"level": "error"}},
    }
    data.update(overrides)
    path = Path(directory) / "site.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def write_hosts(directory: str) -> Path:
    path = Path(directory) / "hosts"
    path.write_text(HOSTS, encoding="ascii")
    return path


class TestParser:
    def test_apply_options(self) -> None:
        args = create_parser().parse_args(
            ["apply", "site.json", "--dry-run", "--store", "file", "-o", "out.json"]
        )

        assert args.command == "apply"
        assert args.config == "site.json"
        assert args.dry_run is True
        assert args.store == "file"
        assert args.output == "out.json"

    def test_unknown_store_rejected(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["apply", "site.json", "--store", "vault"])

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == EXIT_OK
        assert "usage" in capsys.readouterr().out


class TestValidateCommand:
    def test_valid_document(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_site(tmpdir)

            assert main(["validate", str(path)]) == EXIT_OK

            out = capsys.readouterr().out
            assert "demo.localtest.me, demo.example.com" in out

    def test_invalid_document(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_site(tmpdir, bindings=[])

            assert main(["validate", str(path)]) == EXIT_CONFIG
            assert "bindings" in capsys.readouterr().err

    def test_null_hosts_section(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_site(tmpdir, provisioner={"hosts": None})

            assert main(["validate", str(path)]) == EXIT_CONFIG
            assert "provisioner.hosts" in capsys.readouterr().err

    def test_missing_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert main(["validate", str(Path(tmpdir) / "missing.json")]) == EXIT_CONFIG


class TestApplyDryRun:
    def test_dry_run_leaves_hosts_file_untouched(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            site = write_site(tmpdir)
            hosts = write_hosts(tmpdir)
            output = Path(tmpdir) / "out" / "result.json"

            code = main([
                "apply", str(site), "--dry-run",
                "--hosts-file", str(hosts), "--output", str(output),
            ])

            assert code == EXIT_OK
            assert hosts.read_text(encoding="ascii") == HOSTS

            result = json.loads(output.read_text(encoding="utf-8"))
            assert result["site_name"] == "demo"
            assert result["app_pool_created"] is True
            assert [b["certificate"] for b in result["bindings"]] == ["issued", "issued"]
            assert [b["hosts"] for b in result["bindings"]] == ["skipped", "added"]

            out = capsys.readouterr().out
            assert "Site available at: https://demo.localtest.me" in out

    def test_dry_run_with_missing_hosts_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            site = write_site(tmpdir)

            code = main([
                "apply", str(site), "--dry-run",
                "--hosts-file", str(Path(tmpdir) / "no-hosts"),
            ])

            assert code == EXIT_OK
            assert not (Path(tmpdir) / "no-hosts").exists()

    def test_config_error_exit_code(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            site = write_site(tmpdir, bindings=["bad host"])

            assert main(["apply", str(site), "--dry-run"]) == EXIT_CONFIG

    def test_unknown_log_format_exit_code(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            site = write_site(tmpdir, provisioner={"logging": {"output_format": "xml"}})
            hosts = write_hosts(tmpdir)

            code = main(["apply", str(site), "--dry-run", "--hosts-file", str(hosts)])

            assert code == EXIT_CONFIG
            assert "output_format" in capsys.readouterr().err
