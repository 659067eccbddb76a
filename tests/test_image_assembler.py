from pathlib import Path

import pytest

from conftest import fake_docker, inspect_payload
from relaypack.core.errors import ImageAssemblyFailure
from relaypack.core.image.engine import ContainerEngine
from relaypack.core.image.manifest import ImageManifest
from relaypack.core.steps.image_assembler import assemble_image
from relaypack.core.steps.stager import stage_artifacts


@pytest.fixture()
def staged(tmp_path: Path, node_binary: Path):
    spec = tmp_path / "kusama-local.json"
    spec.write_text('{"name": "kusama-local"}', encoding="utf-8")
    return stage_artifacts(node_binary, spec, tmp_path / "staging")


def _assemble(staged, tmp_path, engine, **kw):
    return assemble_image(
        staged,
        ImageManifest(),
        tag="relaypack/kusama-local:test",
        engine=engine,
        work_dir=tmp_path / "work",
        **kw,
    )


def test_dry_run_renders_without_engine(tmp_path: Path, staged):
    engine = ContainerEngine(str(tmp_path / "no-such-docker"))
    out = _assemble(staged, tmp_path, engine, dry_run=True)

    assert out.built is False
    assert out.image_id is None
    text = out.dockerfile_path.read_text(encoding="utf-8")
    assert text.startswith("FROM debian:buster-slim\n")
    assert 'CMD ["/polkadot/polkadot"]' in text
    # Dockerfile is outside the build context
    assert out.dockerfile_path.parent != staged.staging_dir
    assert sorted(p.name for p in staged.staging_dir.iterdir()) == ["kusama-local.json", "polkadot"]


def test_build_invokes_engine_with_staging_context(tmp_path: Path, bin_dir: Path, staged):
    docker = fake_docker(bin_dir)
    out = _assemble(staged, tmp_path, ContainerEngine(str(docker)))

    assert out.built is True
    assert out.image_id == "sha256:0123456789abcdef"
    assert out.verification == {"ok": True, "problems": []}

    calls = (bin_dir / "docker.log").read_text(encoding="utf-8").splitlines()
    build = calls[0].split()
    assert build[:3] == ["build", "-t", "relaypack/kusama-local:test"]
    assert build[3:5] == ["-f", str(tmp_path / "work" / "Dockerfile")]
    assert build[-1] == str(staged.staging_dir)
    assert not any(c.startswith("run") for c in calls)


def test_pull_flag_passed(tmp_path: Path, bin_dir: Path, staged):
    docker = fake_docker(bin_dir)
    _assemble(staged, tmp_path, ContainerEngine(str(docker)), pull=True, verify=False)
    first = (bin_dir / "docker.log").read_text(encoding="utf-8").splitlines()[0]
    assert "--pull" in first.split()


def test_base_image_unavailable(tmp_path: Path, bin_dir: Path, staged):
    docker = fake_docker(
        bin_dir,
        build_exit=1,
        build_stderr="ERROR: pull access denied for debian, repository does not exist",
    )
    with pytest.raises(ImageAssemblyFailure) as ei:
        _assemble(staged, tmp_path, ContainerEngine(str(docker)))

    err = ei.value
    assert "base image unavailable" in err.message
    assert err.returncode == 1
    assert "pull access denied" in err.stderr
    assert err.command[1] == "build"
    assert "[image]" in str(err)


def test_account_creation_failure(tmp_path: Path, bin_dir: Path, staged):
    docker = fake_docker(bin_dir, build_exit=1, build_stderr="useradd: UID 1000 is not unique")
    with pytest.raises(ImageAssemblyFailure, match="service account could not be created"):
        _assemble(staged, tmp_path, ContainerEngine(str(docker)))


def test_missing_staged_artifact(tmp_path: Path, bin_dir: Path, staged):
    staged.spec.unlink()
    docker = fake_docker(bin_dir)
    with pytest.raises(ImageAssemblyFailure, match="staged spec missing"):
        _assemble(staged, tmp_path, ContainerEngine(str(docker)))
    assert not (bin_dir / "docker.log").exists()


def test_engine_not_installed(tmp_path: Path, staged):
    with pytest.raises(ImageAssemblyFailure, match="container engine not found"):
        _assemble(staged, tmp_path, ContainerEngine(str(tmp_path / "no-such-docker")))


def test_verification_catches_root_user_and_extra_port(tmp_path: Path, bin_dir: Path, staged):
    bad = inspect_payload(
        User="",
        ExposedPorts={"30333/tcp": {}, "9933/tcp": {}, "9944/tcp": {}, "22/tcp": {}},
    )
    docker = fake_docker(bin_dir, inspect=bad)
    with pytest.raises(ImageAssemblyFailure) as ei:
        _assemble(staged, tmp_path, ContainerEngine(str(docker)))
    msg = ei.value.message
    assert "does not match manifest" in msg
    assert "privileged user" in msg
    assert "exposed ports" in msg


def test_verification_can_be_skipped(tmp_path: Path, bin_dir: Path, staged):
    docker = fake_docker(bin_dir, inspect=inspect_payload(User="root"))
    out = _assemble(staged, tmp_path, ContainerEngine(str(docker)), verify=False)
    assert out.built is True
    assert out.verification is None
