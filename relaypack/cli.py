from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from relaypack.core.config.loader import load_config, resolve_state_dir
from relaypack.core.errors import ConfigurationError, PipelineError
from relaypack.core.image.dockerfile import render_dockerfile
from relaypack.core.pipeline.models import STEP_ORDER
from relaypack.core.pipeline.orchestrator import resolve, run_pipeline
from relaypack.core.pipeline.store import RunStore
from relaypack.core.profiles.registry import ChainProfileRegistry

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if getattr(args, "source", None):
        out["source_dir"] = args.source
    if getattr(args, "profile", None):
        out["profile"] = args.profile
    if getattr(args, "state_dir", None):
        out["state_dir"] = args.state_dir
    if getattr(args, "tag", None):
        out.setdefault("image", {})["tag"] = args.tag
    if getattr(args, "dry_run", False):
        out.setdefault("image", {})["dry_run"] = True
    if getattr(args, "per_run_staging", False):
        out.setdefault("staging", {})["per_run"] = True
    if getattr(args, "verify_determinism", False):
        out.setdefault("spec", {})["verify_determinism"] = True
    return out


def _cmd_run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config, overrides=_overrides(args))
    try:
        run = run_pipeline(cfg, resume_from=args.from_step)
    except PipelineError as e:
        print(str(e), file=sys.stderr)
        if e.run_id:
            print(f"run {e.run_id} halted; fix the cause and re-run with --from {e.step}", file=sys.stderr)
        return EXIT_FAILED

    print(f"run {run.run_id}: {run.state.value}")
    if cfg.image.dry_run:
        print(f"rendered {run.outputs.get('image', {}).get('dockerfile_path')}")
    else:
        print(f"image {run.image_tag}")
        print("run docker")
        print(run.handoff)
    return EXIT_OK


def _cmd_render(args: argparse.Namespace) -> int:
    cfg = load_config(args.config, overrides=_overrides(args))
    rp = resolve(cfg)
    bm = render_dockerfile(rp.manifest, binary_name=rp.binary_path.name, spec_name=rp.spec_path.name)
    sys.stdout.write(bm.text)
    return EXIT_OK


def _cmd_profiles(args: argparse.Namespace) -> int:
    reg = ChainProfileRegistry(Path(args.project_root))
    for name in reg.list_names():
        cp = reg.get(name)
        print(f"{name}\t{cp.display_name or ''}" if cp else name)
    return EXIT_OK


def _cmd_runs(args: argparse.Namespace) -> int:
    cfg = load_config(args.config, overrides=_overrides(args))
    store = RunStore(resolve_state_dir(cfg))
    if args.run_id:
        run = store.load(args.run_id)
        if run is None:
            print(f"run not found: {args.run_id}", file=sys.stderr)
            return EXIT_FAILED
        print(json.dumps(run.to_dict(), indent=2, sort_keys=True))
        return EXIT_OK
    for r in store.list_runs(limit=args.limit):
        print(f"{r['run_id']}\t{r['profile']}\t{r['state']}\t{r['status']}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="relaypack", description="Build and containerize a relay-chain node")
    ap.add_argument("-c", "--config", type=Path, default=None, help="Pipeline config (default ./relaypack.yaml)")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--source", help="Node source tree (default: enclosing git checkout)")
        p.add_argument("--profile", help="Chain profile, e.g. kusama-local")
        p.add_argument("--state-dir", dest="state_dir", help="Run records and default staging root")

    p_run = sub.add_parser("run", help="Build, export spec, stage and assemble the image")
    _common(p_run)
    p_run.add_argument("--tag", help="Image tag (default relaypack/<profile>:latest)")
    p_run.add_argument(
        "--from",
        dest="from_step",
        choices=[s.value for s in STEP_ORDER],
        default=None,
        help="Resume from this step using outputs of an earlier run",
    )
    p_run.add_argument("--dry-run", action="store_true", help="Render the Dockerfile but do not call the engine")
    p_run.add_argument("--per-run-staging", action="store_true", help="Stage into a directory unique to this run")
    p_run.add_argument("--verify-determinism", action="store_true", help="Export the chain spec twice and compare")
    p_run.set_defaults(func=_cmd_run)

    p_render = sub.add_parser("render", help="Print the Dockerfile for the configured profile")
    _common(p_render)
    p_render.set_defaults(func=_cmd_render)

    p_profiles = sub.add_parser("profiles", help="List chain profiles")
    p_profiles.add_argument("--project-root", default=".")
    p_profiles.set_defaults(func=_cmd_profiles)

    p_runs = sub.add_parser("runs", help="List runs, or show one")
    _common(p_runs)
    p_runs.add_argument("run_id", nargs="?")
    p_runs.add_argument("--limit", type=int, default=20)
    p_runs.set_defaults(func=_cmd_runs)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    raise SystemExit(main())
