"""Guest lifecycle: create (provision + persist) and the two-stage boot."""

from __future__ import annotations

import dataclasses
import subprocess
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from vmrunner.args import Command
from vmrunner.builder import Stage, build_command
from vmrunner.constants import DEFAULT_POOL
from vmrunner.exceptions import ConfigLoadError, GuestNotFound, ManagerError, ProcessExecutionError
from vmrunner.models import VMConfig
from vmrunner.persistence import load_config, save_config
from vmrunner.storage import ZFS, GuestLayout, guest_lock, provision, resolve_pool, write_device_map
from vmrunner.utils import log


class BootState(str, Enum):
    NOT_STARTED = "not-started"
    BOOTLOADER_RUNNING = "bootloader-running"
    BOOTLOADER_COMPLETE = "bootloader-complete"
    HYPERVISOR_RUNNING = "hypervisor-running"
    HYPERVISOR_EXITED = "hypervisor-exited"
    FAILED = "failed"


_TRANSITIONS = {
    BootState.NOT_STARTED: {BootState.BOOTLOADER_RUNNING},
    BootState.BOOTLOADER_RUNNING: {BootState.BOOTLOADER_COMPLETE},
    BootState.BOOTLOADER_COMPLETE: {BootState.HYPERVISOR_RUNNING},
    BootState.HYPERVISOR_RUNNING: {BootState.HYPERVISOR_EXITED},
    BootState.HYPERVISOR_EXITED: set(),
    BootState.FAILED: set(),
}

TERMINAL_STATES = frozenset({BootState.HYPERVISOR_EXITED, BootState.FAILED})


class BootSequence:
    """Inspectable state of one ``start`` invocation."""

    def __init__(self, uuid: str) -> None:
        self.uuid = uuid
        self.state = BootState.NOT_STARTED
        self.history: List[BootState] = [BootState.NOT_STARTED]
        self.error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: BootState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ManagerError(f"invalid boot transition for {self.uuid}: {self.state.value} -> {new_state.value}")
        self._set(new_state)

    def fail(self, error: BaseException) -> None:
        if self.done:
            raise ManagerError(f"boot sequence for {self.uuid} already finished ({self.state.value})")
        self.error = error
        self._set(BootState.FAILED)

    def _set(self, new_state: BootState) -> None:
        log("DEBUG", f"Boot {self.uuid}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


Runner = Callable[[Command, Stage], subprocess.CompletedProcess]


def run_command(command: Command, stage: Stage) -> subprocess.CompletedProcess:
    """Run a stage binary to completion, logging its captured output."""
    stage = Stage(stage)
    log("INFO", f"Running {stage.value}: {command}")
    try:
        result = subprocess.run(command.argv, capture_output=True, text=True, check=False)
    except (OSError, ValueError) as exc:
        raise ProcessExecutionError(
            stage.value, None, message=f"unable to run {stage.value} ({command.binary_path}): {exc}"
        ) from exc

    if result.stdout:
        log("INFO", f"{stage.value} stdout: {result.stdout.rstrip()}")
    if result.stderr:
        log("WARN" if result.returncode else "INFO", f"{stage.value} stderr: {result.stderr.rstrip()}")
    if result.returncode != 0:
        raise ProcessExecutionError(stage.value, result.returncode, result.stderr or "")
    return result


def _layout_for(uuid: str, pool: Optional[str], zfs: ZFS) -> GuestLayout:
    return GuestLayout(pool=resolve_pool(pool or DEFAULT_POOL, zfs), uuid=uuid)


def create(cfg: VMConfig, zfs: Optional[ZFS] = None, lock_dir: Optional[Path] = None) -> VMConfig:
    """Provision storage for ``cfg`` and persist it; returns the stored config.

    The config file is written only after every dataset and the boot volume
    exist, so a failed create never leaves a startable guest behind. Running
    create again for an existing UUID replaces its config.json; a WARN is
    logged when the stored config changes.
    """
    zfs = zfs or ZFS()
    layout = _layout_for(cfg.uuid, cfg.pool, zfs)
    with guest_lock(cfg.uuid, lock_dir):
        provision(layout, cfg.disk_size, zfs)
        stored = dataclasses.replace(
            cfg,
            pool=layout.pool,
            disk_device=cfg.disk_device or str(layout.zvol_path),
        )
        if layout.config_file.exists():
            _warn_if_replaced(stored, layout)
        write_device_map(layout)
        save_config(stored, layout)
    log("SUCCESS", f"Created VM {stored.name or stored.short_name} ({stored.uuid}) on {layout.dataset}")
    return stored


def _warn_if_replaced(cfg: VMConfig, layout: GuestLayout) -> None:
    try:
        previous = load_config(layout)
    except ConfigLoadError as exc:
        log("WARN", f"Replacing unreadable config {layout.config_file}: {exc}")
        return
    if previous != cfg:
        log("WARN", f"Overwriting existing config for {cfg.uuid} at {layout.config_file}")


def _load_guest(uuid: str, pool: Optional[str], zfs: ZFS) -> Tuple[GuestLayout, VMConfig]:
    layout = _layout_for(uuid, pool, zfs)
    if not zfs.dataset_exists(layout.dataset):
        raise GuestNotFound(uuid, layout.dataset)
    return layout, load_config(layout)


def describe(uuid: str, pool: Optional[str] = None, zfs: Optional[ZFS] = None) -> VMConfig:
    """Persisted config of a provisioned guest."""
    _, cfg = _load_guest(uuid, pool, zfs or ZFS())
    return cfg


def plan(uuid: str, pool: Optional[str] = None, zfs: Optional[ZFS] = None) -> List[Command]:
    """Both stage commands for a provisioned guest, in execution order."""
    zfs = zfs or ZFS()
    layout, cfg = _load_guest(uuid, pool, zfs)
    return [build_command(stage, cfg, layout) for stage in (Stage.BOOTLOADER, Stage.HYPERVISOR)]


def start(
    uuid: str,
    pool: Optional[str] = None,
    zfs: Optional[ZFS] = None,
    runner: Optional[Runner] = None,
    sequence: Optional[BootSequence] = None,
    lock_dir: Optional[Path] = None,
) -> BootSequence:
    """Boot a provisioned guest: grub-bhyve first, then bhyve.

    Blocks until the bhyve process exits. Any failure moves the sequence to
    FAILED and propagates; nothing is retried.
    """
    zfs = zfs or ZFS()
    runner = runner or run_command
    if sequence is None:
        sequence = BootSequence(uuid)
    try:
        with guest_lock(uuid, lock_dir):
            layout, cfg = _load_guest(uuid, pool, zfs)

            bootloader = build_command(Stage.BOOTLOADER, cfg, layout)
            sequence.advance(BootState.BOOTLOADER_RUNNING)
            runner(bootloader, Stage.BOOTLOADER)
            sequence.advance(BootState.BOOTLOADER_COMPLETE)

            hypervisor = build_command(Stage.HYPERVISOR, cfg, layout)
            sequence.advance(BootState.HYPERVISOR_RUNNING)
            runner(hypervisor, Stage.HYPERVISOR)
            sequence.advance(BootState.HYPERVISOR_EXITED)
    except Exception as exc:
        if not sequence.done:
            sequence.fail(exc)
        raise
    log("SUCCESS", f"VM {cfg.name or cfg.short_name} exited")
    return sequence
