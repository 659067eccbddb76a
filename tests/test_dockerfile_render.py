import json

from relaypack.core.image.dockerfile import describe, render_dockerfile
from relaypack.core.image.manifest import ImageManifest


def _render(**kw):
    return render_dockerfile(ImageManifest(**kw), binary_name="polkadot", spec_name="kusama-local.json")


def test_directive_order():
    bm = _render()
    assert bm.ops() == ["FROM", "RUN", "COPY", "COPY", "USER", "EXPOSE", "VOLUME", "CMD"]
    assert bm.directives[0] == ("FROM", "debian:buster-slim")


def test_account_created_before_copy_and_surface_removed_before_copy():
    bm = _render()
    run = bm.find("RUN")[0]
    assert run.index("useradd") < run.index("chown")
    assert run.index("ln -s /data /polkadot/.local/share/polkadot") < run.index("rm -rf /usr/bin /usr/sbin")
    assert "-u 1000" in run and "-d /polkadot" in run and "-s /bin/sh" in run
    assert bm.ops().index("RUN") < bm.ops().index("COPY")


def test_no_run_after_copy():
    ops = _render().ops()
    first_copy = ops.index("COPY")
    assert "RUN" not in ops[first_copy:]


def test_ownership_is_service_account():
    bm = _render()
    copies = bm.find("COPY")
    assert copies == [
        "--chown=polkadot:polkadot --chmod=0755 polkadot /polkadot/polkadot",
        "--chown=polkadot:polkadot kusama-local.json /polkadot/kusama-local.json",
    ]
    assert "chown -R polkadot:polkadot /data" in bm.find("RUN")[0]
    assert bm.find("USER") == ["polkadot"]
    assert "root" not in " ".join(bm.find("USER") + copies)


def test_custom_home_moves_binary_and_command():
    bm = _render(account={"home": "/srv/node"})
    assert bm.find("COPY")[0] == "--chown=polkadot:polkadot --chmod=0755 polkadot /srv/node/polkadot"
    assert json.loads(bm.find("CMD")[0]) == ["/srv/node/polkadot"]
    assert "/polkadot/polkadot" not in bm.text


def test_ports_volume_and_exec_form_cmd():
    bm = _render()
    assert bm.find("EXPOSE") == ["30333 9933 9944"]
    assert bm.find("VOLUME") == ['["/data"]']
    assert json.loads(bm.find("CMD")[0]) == ["/polkadot/polkadot"]
    assert "ENTRYPOINT" not in bm.ops()


def test_removed_paths_appear_only_in_removal():
    bm = _render(remove_paths=["/usr/bin", "/usr/sbin", "/usr/local/bin"])
    run = bm.find("RUN")[0]
    assert run.rstrip().endswith("rm -rf /usr/bin /usr/sbin /usr/local/bin")


def test_no_removal_when_list_empty():
    run = _render(remove_paths=[]).find("RUN")[0]
    assert "rm -rf" not in run


def test_labels_sorted_and_quoted():
    bm = _render(labels={"org.opencontainers.image.revision": "abc", "io.relaypack.chain": "kusama-local"})
    assert bm.find("LABEL") == [
        'io.relaypack.chain="kusama-local"',
        'org.opencontainers.image.revision="abc"',
    ]


def test_rendering_is_deterministic():
    assert _render().text == _render().text
    assert _render().sha256 == _render().sha256


def test_describe_runtime():
    d = describe(ImageManifest())
    assert d == {"user": "polkadot", "ports": [9933, 9944, 30333], "volumes": ["/data"], "cmd": ["/polkadot/polkadot"]}


def test_parse_directives_joins_continuations_and_skips_comments():
    from relaypack.core.image.dockerfile import parse_directives

    text = "# header\nFROM scratch\n\nRUN a && \\\n    b\nCMD [\"/x\"]\n"
    assert parse_directives(text) == [("FROM", "scratch"), ("RUN", "a && \\\n    b"), ("CMD", '["/x"]')]
