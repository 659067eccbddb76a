import json
import os
import stat
from pathlib import Path

import pytest

from relaypack.core.config.models import PipelineConfig
from relaypack.core.observability.metrics import reset_metrics


NODE_SCRIPT = """#!/bin/sh
# stand-in for the relay-chain node binary
case "$1" in
  --version)
    echo "polkadot 0.9.0-test"
    ;;
  build-spec)
    shift
    chain=""
    while [ $# -gt 0 ]; do
      case "$1" in
        --chain) chain="$2"; shift 2 ;;
        *) shift ;;
      esac
    done
    printf '{"name": "%s", "id": "%s_testnet", "chainType": "Local", "bootNodes": []}\\n' "$chain" "$chain"
    ;;
  *)
    echo "unsupported: $*" >&2
    exit 1
    ;;
esac
"""


def write_script(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def fake_cargo(bin_dir: Path, node_template: Path, *, name: str = "cargo") -> Path:
    """Toolchain stand-in: 'compiles' by copying the node template into target/release."""
    return write_script(
        bin_dir / name,
        f"""#!/bin/sh
echo "$@" >> "{bin_dir}/cargo.log"
mkdir -p target/release
cp "{node_template}" target/release/polkadot
chmod 755 target/release/polkadot
echo "Finished release [optimized] target(s)" >&2
""",
    )


def failing_cargo(bin_dir: Path) -> Path:
    return write_script(
        bin_dir / "cargo-broken",
        """#!/bin/sh
echo "error[E0425]: cannot find value \\`x\\` in this scope" >&2
exit 101
""",
    )


def inspect_payload(**config_overrides) -> list:
    config = {
        "User": "polkadot",
        "ExposedPorts": {"30333/tcp": {}, "9933/tcp": {}, "9944/tcp": {}},
        "Volumes": {"/data": {}},
        "Cmd": ["/polkadot/polkadot"],
        "Entrypoint": None,
    }
    config.update(config_overrides)
    return [{"Id": "sha256:0123456789abcdef", "Config": config}]


def fake_docker(bin_dir: Path, *, inspect: list | None = None, build_exit: int = 0, build_stderr: str = "") -> Path:
    inspect_file = bin_dir / "inspect.json"
    inspect_file.write_text(json.dumps(inspect if inspect is not None else inspect_payload()), encoding="utf-8")
    return write_script(
        bin_dir / "docker",
        f"""#!/bin/sh
echo "$@" >> "{bin_dir}/docker.log"
if [ "$1" = "build" ]; then
  if [ {build_exit} -ne 0 ]; then
    echo "{build_stderr}" >&2
    exit {build_exit}
  fi
  exit 0
fi
if [ "$1" = "image" ] && [ "$2" = "inspect" ]; then
  if [ "$3" = "--format" ]; then
    echo "sha256:0123456789abcdef"
    exit 0
  fi
  cat "{inspect_file}"
  exit 0
fi
echo "unexpected: $*" >&2
exit 1
""",
    )


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def bin_dir(tmp_path: Path) -> Path:
    d = tmp_path / "bin"
    d.mkdir()
    return d


@pytest.fixture()
def node_template(tmp_path: Path) -> Path:
    return write_script(tmp_path / "templates" / "polkadot", NODE_SCRIPT)


@pytest.fixture()
def node_binary(tmp_path: Path) -> Path:
    """A built release binary, as the Builder would leave it."""
    return write_script(tmp_path / "src" / "target" / "release" / "polkadot", NODE_SCRIPT)


@pytest.fixture()
def source_dir(tmp_path: Path) -> Path:
    d = tmp_path / "src"
    d.mkdir(exist_ok=True)
    (d / "Cargo.toml").write_text('[package]\nname = "polkadot"\n', encoding="utf-8")
    return d


@pytest.fixture()
def pipeline_config(tmp_path: Path, source_dir: Path, bin_dir: Path, node_template: Path):
    """Config wired to the fake toolchain and fake docker."""
    cargo = fake_cargo(bin_dir, node_template)
    docker = fake_docker(bin_dir)

    def _make(**overrides) -> PipelineConfig:
        data = {
            "source_dir": str(source_dir),
            "state_dir": str(tmp_path / "state"),
            "profile": "kusama-local",
            "build": {"toolchain": str(cargo)},
            "engine": {"executable": str(docker)},
        }
        for k, v in overrides.items():
            if isinstance(v, dict) and isinstance(data.get(k), dict):
                data[k] = {**data[k], **v}
            else:
                data[k] = v
        return PipelineConfig(**data)

    return _make


@pytest.fixture()
def no_relaypack_env(monkeypatch):
    for k in list(os.environ):
        if k.startswith("RELAYPACK_"):
            monkeypatch.delenv(k, raising=False)
    yield
