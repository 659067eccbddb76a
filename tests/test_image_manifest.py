import pytest
from pydantic import ValidationError

from relaypack.core.image.manifest import ImageManifest, ServiceAccount, default_manifest, port_mismatch
from relaypack.core.profiles.models import ChainProfile, NodePorts


def test_defaults_match_stock_layout():
    m = ImageManifest()
    assert m.account.name == "polkadot"
    assert m.account.home == "/polkadot"
    assert m.binary_path == "/polkadot/polkadot"
    assert m.link_path == "/polkadot/.local/share/polkadot"
    assert m.spec_destination("kusama-local.json") == "/polkadot/kusama-local.json"
    assert m.ports == [30333, 9933, 9944]
    assert m.volume == "/data"
    assert m.default_command == ["/polkadot/polkadot"]


@pytest.mark.parametrize(
    "account",
    [
        {"name": "root"},
        {"uid": 0},
        {"gid": 0},
    ],
)
def test_privileged_account_rejected(account):
    with pytest.raises(ValidationError):
        ServiceAccount(**account)


def test_removal_list_cannot_cover_artifacts_or_data():
    with pytest.raises(ValidationError, match="would delete"):
        ImageManifest(remove_paths=["/polkadot"])
    with pytest.raises(ValidationError, match="would delete"):
        ImageManifest(remove_paths=["/"])
    with pytest.raises(ValidationError, match="would delete"):
        ImageManifest(remove_paths=["/data"])
    # prefix of a name is not containment
    ImageManifest(remove_paths=["/polka"])


def test_binary_path_follows_account_home():
    m = ImageManifest(account={"home": "/srv/node"})
    assert m.binary_path == "/srv/node/polkadot"
    assert m.default_command == ["/srv/node/polkadot"]
    assert m.spec_destination("kusama-local.json") == "/srv/node/kusama-local.json"

    explicit = ImageManifest(account={"home": "/srv/node"}, binary_path="/opt/polkadot")
    assert explicit.binary_path == "/opt/polkadot"


def test_command_must_run_the_node_binary():
    with pytest.raises(ValidationError, match="must start with the node binary"):
        ImageManifest(command=["/bin/sh", "-c", "/polkadot/polkadot"])
    m = ImageManifest(command=["/polkadot/polkadot", "--chain", "/polkadot/kusama-local.json"])
    assert m.default_command[0] == "/polkadot/polkadot"


def test_ports_and_volume_validation():
    with pytest.raises(ValidationError):
        ImageManifest(ports=[30333, 30333])
    with pytest.raises(ValidationError):
        ImageManifest(ports=[70000])
    with pytest.raises(ValidationError, match="must be the data dir"):
        ImageManifest(volume="/chain")


def test_binary_mode_must_be_executable_octal():
    with pytest.raises(ValidationError):
        ImageManifest(binary_mode="0644")
    with pytest.raises(ValidationError):
        ImageManifest(binary_mode="rwx")


def test_default_manifest_uses_profile_ports():
    cp = ChainProfile(name="custom", node_ports=NodePorts(p2p=30444, rpc=9955, ws=9966))
    m = default_manifest(cp)
    assert m.ports == [30444, 9955, 9966]
    assert port_mismatch(m, cp) is None


def test_port_mismatch_reported():
    cp = ChainProfile(name="kusama-local")
    m = ImageManifest(ports=[30333, 9933])
    msg = port_mismatch(m, cp)
    assert msg is not None
    assert "missing=[9944]" in msg
