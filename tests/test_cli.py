import json
from pathlib import Path

import pytest

from conftest import failing_cargo, fake_cargo, fake_docker
from relaypack.cli import EXIT_CONFIG, EXIT_FAILED, EXIT_OK, main


@pytest.fixture()
def cli_config(tmp_path: Path, bin_dir: Path, source_dir: Path, node_template: Path, no_relaypack_env, monkeypatch):
    monkeypatch.delenv("CARGO_TARGET_DIR", raising=False)
    monkeypatch.chdir(tmp_path)
    cargo = fake_cargo(bin_dir, node_template)
    docker = fake_docker(bin_dir)
    p = tmp_path / "relaypack.yaml"
    p.write_text(
        f"source_dir: {source_dir}\n"
        f"state_dir: {tmp_path / 'state'}\n"
        f"build:\n  toolchain: {cargo}\n"
        f"engine:\n  executable: {docker}\n",
        encoding="utf-8",
    )
    return p


def test_run_prints_handoff(cli_config, capsys):
    assert main(["run"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "IMAGE_ASSEMBLED" in out
    assert "image relaypack/kusama-local:latest" in out
    assert "run docker" in out
    assert "docker-compose -f docker-compose-validator.yml up --build" in out


def test_run_dry_run(cli_config, bin_dir: Path, capsys):
    assert main(["run", "--dry-run", "--tag", "node:dry"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "STAGED" in out
    assert "rendered " in out
    assert not (bin_dir / "docker.log").exists()


def test_run_failure_exit_code(cli_config, bin_dir: Path, tmp_path: Path, capsys):
    broken = failing_cargo(bin_dir)
    text = cli_config.read_text(encoding="utf-8").replace(str(bin_dir / "cargo"), str(broken))
    cli_config.write_text(text, encoding="utf-8")

    assert main(["run"]) == EXIT_FAILED
    err = capsys.readouterr().err
    assert "[build]" in err
    assert "exit status: 101" in err
    assert "--from build" in err


def test_unwritable_spec_dir_exit_code(cli_config, tmp_path: Path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    cli_config.write_text(
        cli_config.read_text(encoding="utf-8") + f"spec:\n  output_dir: {blocker / 'out'}\n", encoding="utf-8"
    )

    assert main(["run"]) == EXIT_FAILED
    err = capsys.readouterr().err
    assert "[spec]" in err
    assert "cannot write chain spec" in err
    assert "--from spec" in err


def test_config_error_exit_code(cli_config, capsys):
    bad = cli_config.parent / "bad.yaml"
    bad.write_text(cli_config.read_text(encoding="utf-8") + "image:\n  manifest:\n    ports: [1]\n", encoding="utf-8")
    assert main(["-c", str(bad), "run"]) == EXIT_CONFIG
    assert "configuration error" in capsys.readouterr().err


def test_render_prints_dockerfile(cli_config, capsys):
    assert main(["render"]) == EXIT_OK
    out = capsys.readouterr().out
    assert out.startswith("FROM debian:buster-slim\n")
    assert out.rstrip().endswith('CMD ["/polkadot/polkadot"]')


def test_profiles_listing(tmp_path: Path, capsys):
    assert main(["profiles", "--project-root", str(tmp_path)]) == EXIT_OK
    out = capsys.readouterr().out
    assert "kusama-local\tKusama Local Testnet" in out


def test_runs_listing_and_show(cli_config, capsys):
    main(["run"])
    capsys.readouterr()

    assert main(["runs"]) == EXIT_OK
    line = capsys.readouterr().out.strip().splitlines()[0]
    run_id = line.split("\t")[0]
    assert line.endswith("IMAGE_ASSEMBLED\tsucceeded")

    assert main(["runs", run_id]) == EXIT_OK
    assert json.loads(capsys.readouterr().out)["run_id"] == run_id

    assert main(["runs", "no-such-run"]) == EXIT_FAILED
