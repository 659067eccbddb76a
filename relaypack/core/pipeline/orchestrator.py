from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from relaypack.core.config.loader import config_fingerprint, resolve_source_dir, resolve_state_dir
from relaypack.core.config.models import PipelineConfig
from relaypack.core.errors import (
    BuildFailure,
    ConfigurationError,
    PipelineError,
    StagingFailure,
)
from relaypack.core.image.engine import ContainerEngine
from relaypack.core.image.manifest import ImageManifest, default_manifest, port_mismatch
from relaypack.core.observability.metrics import observe_run, observe_step
from relaypack.core.profiles.models import ChainProfile
from relaypack.core.profiles.registry import ChainProfileRegistry
from relaypack.core.release.release_metadata import build_release_metadata, write_release_metadata
from relaypack.core.steps.builder import binary_path_for, build_release, describe_binary
from relaypack.core.steps.image_assembler import assemble_image
from relaypack.core.steps.models import BuildOutput, ImageOutput, SpecOutput, StagingOutput
from relaypack.core.steps.spec_generator import describe_spec, generate_spec
from relaypack.core.steps.stager import stage_artifacts

from .models import STEP_ORDER, STEP_TRANSITIONS, PipelineEvent, PipelineRun, PipelineState, PipelineStep
from .state_machine import ensure_transition, is_terminal, next_step, start_state
from .store import RunStore

log = logging.getLogger("relaypack.pipeline")


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{ts}-{uuid.uuid4().hex[:8]}"


def _under(base: Path, p: Path) -> Path:
    return p if p.is_absolute() else base / p


@dataclass(frozen=True)
class ResolvedPipeline:
    """Every path and setting a run needs, fixed before the first step."""

    config: PipelineConfig
    source_dir: Path
    state_dir: Path
    profile: ChainProfile
    manifest: ImageManifest
    binary_path: Path
    spec_path: Path
    staging_root: Path
    image_tag: str

    def staging_dir(self, run_id: str) -> Path:
        if self.config.staging.per_run:
            return self.staging_root / run_id
        return self.staging_root


def resolve(config: PipelineConfig, *, registry: Optional[ChainProfileRegistry] = None) -> ResolvedPipeline:
    """Resolve config into concrete paths, profile and image manifest.

    Raises ConfigurationError for anything that would make a later step
    fail for a reason knowable up front, including exposed ports that do not
    match the node ports of the chain profile.
    """
    source_dir = resolve_source_dir(config)
    project_root = config.project_root or source_dir
    registry = registry or ChainProfileRegistry(project_root)
    profile = registry.resolve(config.profile)

    overrides: Dict[str, Any] = dict(config.image.manifest)
    labels = dict(overrides.get("labels") or {})
    labels.setdefault("io.relaypack.chain", profile.name)
    overrides["labels"] = labels
    try:
        manifest = default_manifest(profile, **overrides)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"invalid image manifest: {e}") from e

    mismatch = port_mismatch(manifest, profile)
    if mismatch:
        raise ConfigurationError(mismatch)

    state_dir = resolve_state_dir(config)
    spec_dir = _under(source_dir, config.spec.output_dir) if config.spec.output_dir else source_dir
    staging_root = (
        _under(source_dir, config.staging.dir) if config.staging.dir else state_dir / "staging" / profile.name
    )

    return ResolvedPipeline(
        config=config,
        source_dir=source_dir,
        state_dir=state_dir,
        profile=profile,
        manifest=manifest,
        binary_path=binary_path_for(source_dir, config.build),
        spec_path=spec_dir / profile.spec_file(),
        staging_root=staging_root,
        image_tag=config.image_tag(),
    )


class _RunRecorder:
    def __init__(self, run: PipelineRun, store: RunStore):
        self.run = run
        self.store = store

    def emit(self, event_type: str, *, step: Optional[PipelineStep] = None, payload: Optional[Dict[str, Any]] = None) -> None:
        ev = PipelineEvent.mk(
            event_type,
            self.run.run_id,
            step=step.value if step is not None else None,
            state=self.run.state,
            payload=payload,
        )
        self.run.events.append(ev)
        self.store.append_events([ev])

    def save(self) -> None:
        self.run.updated_ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self.store.save(self.run)


Output = Union[BuildOutput, SpecOutput, StagingOutput, ImageOutput]


def _execute(rec: _RunRecorder, step: PipelineStep, fn: Callable[[], Output], *, advance: bool = True) -> Output:
    rec.emit("StepStarted", step=step)
    rec.save()
    started = time.monotonic()
    try:
        out = fn()
    except PipelineError as e:
        observe_step(step.value, "failed", time.monotonic() - started)
        rec.emit("StepFailed", step=step, payload=e.to_dict())
        raise
    except KeyboardInterrupt:
        observe_step(step.value, "cancelled", time.monotonic() - started)
        rec.emit("StepCancelled", step=step)
        raise
    except Exception as e:
        observe_step(step.value, "failed", time.monotonic() - started)
        rec.emit("StepFailed", step=step, payload={"kind": type(e).__name__, "message": str(e)})
        raise

    observe_step(step.value, "succeeded", time.monotonic() - started)
    if advance:
        dst = STEP_TRANSITIONS[step][1]
        ensure_transition(rec.run.state, dst)
        rec.run.state = dst
    rec.run.outputs[step.value] = out.to_dict()
    rec.emit("StepCompleted", step=step, payload={"output": out.to_dict()})
    rec.save()
    return out


def _resume_point(run: PipelineRun) -> Optional[str]:
    """Step an operator re-runs from after a failure in the run's current state."""
    step = next_step(run.state)
    return step.value if step is not None else None


def _recover(step: PipelineStep, rp: ResolvedPipeline, staging_dir: Path) -> Output:
    """Rebuild the output of a step that an earlier run already completed."""
    if step is PipelineStep.BUILD:
        if not rp.binary_path.is_file():
            raise BuildFailure(f"cannot resume: no release binary at {rp.binary_path}")
        try:
            return describe_binary(rp.binary_path, rp.source_dir)
        except OSError as e:
            raise BuildFailure(f"cannot resume: unreadable release binary {rp.binary_path}: {e}") from e
    if step is PipelineStep.SPEC:
        return describe_spec(rp.spec_path, rp.profile)
    if step is PipelineStep.STAGE:
        artifacts = {
            "binary": staging_dir / rp.binary_path.name,
            "spec": staging_dir / rp.spec_path.name,
        }
        for role, p in artifacts.items():
            if not p.is_file():
                raise StagingFailure(f"cannot resume: staged {role} missing at {p}")
        return StagingOutput(staging_dir=staging_dir, artifacts=artifacts)
    raise ValueError(f"step {step.value} has no recoverable output")


def run_pipeline(
    config: PipelineConfig,
    *,
    resume_from: Optional[Union[str, PipelineStep]] = None,
    registry: Optional[ChainProfileRegistry] = None,
    engine: Optional[ContainerEngine] = None,
    run_id: Optional[str] = None,
) -> PipelineRun:
    """Run build -> spec -> stage -> image, strictly in order.

    The first failing step raises its PipelineError (tagged with the run id)
    after the run record is persisted; the run keeps the state reached so the
    operator can fix the cause and resume from that step. Nothing is retried.
    """
    rp = resolve(config, registry=registry)
    first = PipelineStep(resume_from) if resume_from is not None else PipelineStep.BUILD
    if first is PipelineStep.IMAGE and config.staging.per_run:
        raise ConfigurationError("cannot resume from image with per-run staging directories")

    engine = engine or ContainerEngine(
        config.engine.executable,
        buildkit=config.engine.buildkit,
        extra_build_args=config.engine.extra_build_args,
    )
    store = RunStore(rp.state_dir)
    run_id = run_id or new_run_id()
    staging_dir = rp.staging_dir(run_id)
    now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    run = PipelineRun(
        run_id=run_id,
        profile=rp.profile.name,
        config_fingerprint=config_fingerprint(config),
        state=start_state(first),
        status="running",
        created_ts=now,
        updated_ts=now,
        resumed_from=first.value if resume_from is not None else None,
        image_tag=rp.image_tag,
        staging_dir=str(staging_dir),
    )
    rec = _RunRecorder(run, store)
    rec.emit("RunStarted", payload={"source_dir": str(rp.source_dir), "first_step": first.value})
    log.info("run %s: profile=%s source=%s first_step=%s", run_id, rp.profile.name, rp.source_dir, first.value)

    first_idx = STEP_ORDER.index(first)
    try:
        done: Dict[PipelineStep, Any] = {}
        for step in STEP_ORDER[:first_idx]:
            done[step] = _recover(step, rp, staging_dir)
            run.outputs[step.value] = done[step].to_dict()

        if first_idx <= 0:
            done[PipelineStep.BUILD] = _execute(
                rec, PipelineStep.BUILD, lambda: build_release(rp.source_dir, config.build)
            )
        if first_idx <= 1:
            binary: Path = done[PipelineStep.BUILD].binary_path
            done[PipelineStep.SPEC] = _execute(
                rec,
                PipelineStep.SPEC,
                lambda: generate_spec(
                    binary,
                    rp.profile,
                    rp.spec_path,
                    disable_default_bootnode=config.spec.disable_default_bootnode,
                    raw=config.spec.raw,
                    verify_determinism=config.spec.verify_determinism,
                    check_name=config.spec.check_name,
                    timeout=config.spec.timeout_seconds,
                ),
            )
        if first_idx <= 2:
            done[PipelineStep.STAGE] = _execute(
                rec,
                PipelineStep.STAGE,
                lambda: stage_artifacts(
                    done[PipelineStep.BUILD].binary_path,
                    done[PipelineStep.SPEC].spec_path,
                    staging_dir,
                    lock=config.staging.lock,
                ),
            )
        image: ImageOutput = _execute(
            rec,
            PipelineStep.IMAGE,
            lambda: assemble_image(
                done[PipelineStep.STAGE],
                rp.manifest,
                tag=rp.image_tag,
                engine=engine,
                work_dir=store.run_dir(run_id),
                pull=config.image.pull,
                verify=config.image.verify,
                dry_run=config.image.dry_run,
                timeout=config.image.timeout_seconds,
            ),
            advance=not config.image.dry_run,
        )
        metadata = build_release_metadata(
            run_id=run_id,
            build=done[PipelineStep.BUILD],
            spec=done[PipelineStep.SPEC],
            staging=done[PipelineStep.STAGE],
            image=image,
        )
        write_release_metadata(store.run_dir(run_id), metadata)
    except PipelineError as e:
        e.run_id = run_id
        run.status = "failed"
        run.error = {**e.to_dict(), "resume_from": _resume_point(run)}
        rec.emit("RunFailed", payload={"kind": e.kind, "step": e.step})
        rec.save()
        observe_run("failed")
        log.error("run %s failed in state %s: %s", run_id, run.state.value, e)
        raise
    except KeyboardInterrupt:
        run.status = "cancelled"
        rec.emit("RunCancelled")
        rec.save()
        observe_run("cancelled")
        log.warning("run %s cancelled in state %s", run_id, run.state.value)
        raise
    except Exception as e:
        run.status = "failed"
        run.error = {"kind": type(e).__name__, "message": str(e), "resume_from": _resume_point(run)}
        rec.emit("RunFailed", payload={"kind": type(e).__name__})
        rec.save()
        observe_run("failed")
        log.exception("run %s failed unexpectedly in state %s", run_id, run.state.value)
        raise

    run.status = "succeeded"
    if is_terminal(run.state):
        run.handoff = f"docker-compose -f {config.compose_file} up --build"
    rec.emit("RunCompleted", payload={"image_tag": rp.image_tag, "image_built": image.built})
    rec.save()
    observe_run("succeeded")
    log.info("run %s finished in state %s; next: %s", run_id, run.state.value, run.handoff)
    return run
