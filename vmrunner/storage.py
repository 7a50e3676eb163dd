"""ZFS-backed guest storage: dataset layout, provisioning and per-guest locks."""

from __future__ import annotations

import fcntl
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from vmrunner.constants import (
    BOOT_DISK_ID,
    CONFIG_FILE_NAME,
    DEVICE_MAP_NAME,
    GUEST_CHILD_FILESYSTEMS,
    GUEST_DISK_NAME,
    LOCK_DIR,
    MOUNT_ROOT,
    ZFS_PATH,
    ZPOOL_PATH,
    ZVOL_DEV_DIR,
)
from vmrunner.exceptions import GuestBusyError, ProvisioningError
from vmrunner.utils import ensure_directory, log, run


class ZFS:
    """Thin wrapper over the ``zpool``/``zfs`` command-line tools."""

    def __init__(self, zfs_path: str = ZFS_PATH, zpool_path: str = ZPOOL_PATH) -> None:
        self.zfs_path = zfs_path
        self.zpool_path = zpool_path

    def list_pools(self) -> List[str]:
        try:
            result = run([self.zpool_path, "list", "-H", "-o", "name"], capture_output=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise ProvisioningError(f"unable to list zpools: {exc}") from exc
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def dataset_exists(self, name: str) -> bool:
        try:
            result = run(
                [self.zfs_path, "list", "-H", "-o", "name", name],
                check=False,
                capture_output=True,
            )
        except OSError as exc:
            raise ProvisioningError(f"unable to query dataset {name}: {exc}", path=name) from exc
        return result.returncode == 0

    def create_filesystem(self, name: str) -> None:
        run([self.zfs_path, "create", name], capture_output=True)

    def create_volume(self, name: str, size: str) -> None:
        run([self.zfs_path, "create", "-V", size, name], capture_output=True)


@dataclass(frozen=True)
class GuestLayout:
    """Deterministic dataset and file paths for one guest."""

    pool: str
    uuid: str
    root: Optional[Path] = None

    @property
    def dataset(self) -> str:
        return f"{self.pool}/{self.uuid}"

    @property
    def child_filesystems(self) -> List[str]:
        return [f"{self.dataset}/{child}" for child in GUEST_CHILD_FILESYSTEMS]

    @property
    def disk_dataset(self) -> str:
        return f"{self.dataset}/{GUEST_DISK_NAME}"

    @property
    def path(self) -> Path:
        return (self.root or MOUNT_ROOT) / self.dataset

    @property
    def zvol_path(self) -> Path:
        return ZVOL_DEV_DIR / self.disk_dataset

    @property
    def device_map(self) -> Path:
        return self.path / DEVICE_MAP_NAME

    @property
    def config_file(self) -> Path:
        return self.path / CONFIG_FILE_NAME


def resolve_pool(explicit: Optional[str], zfs: ZFS) -> str:
    """Return the pool to place guests on.

    An explicit pool always wins. Without one, the host must report exactly
    one pool; guessing between several would scatter guests across pools.
    """
    if explicit:
        return explicit
    pools = zfs.list_pools()
    if not pools:
        raise ProvisioningError("unable to find zpool: no pools reported by the host")
    if len(pools) > 1:
        raise ProvisioningError(
            f"multiple zpools found ({', '.join(pools)}); set VM_POOL or pass --pool to choose one"
        )
    log("INFO", f"Using zpool: {pools[0]}")
    return pools[0]


def provision(layout: GuestLayout, disk_size: str, zfs: ZFS) -> None:
    """Create the guest datasets and boot volume; skips whatever already exists."""
    for name in [layout.dataset] + layout.child_filesystems:
        if zfs.dataset_exists(name):
            log("DEBUG", f"Filesystem {name} already exists")
            continue
        log("INFO", f"Creating ZFS filesystem {name}")
        try:
            zfs.create_filesystem(name)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise ProvisioningError(f"unable to create vm filesystem {name}: {_stderr(exc)}", path=name) from exc

    volume = layout.disk_dataset
    if zfs.dataset_exists(volume):
        log("DEBUG", f"Volume {volume} already exists")
        return
    log("INFO", f"Creating ZFS volume {volume} ({disk_size})")
    try:
        zfs.create_volume(volume, disk_size)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise ProvisioningError(f"unable to create vm volume {volume}: {_stderr(exc)}", path=volume) from exc


def write_device_map(layout: GuestLayout) -> Path:
    """Map the firmware boot disk to the guest's zvol for grub-bhyve."""
    target = layout.device_map
    try:
        target.write_text(f"({BOOT_DISK_ID}) {layout.zvol_path}\n")
    except OSError as exc:
        raise ProvisioningError(f"Cannot write {target}: {exc}", path=str(target)) from exc
    log("INFO", f"Wrote device map {target}")
    return target


@contextmanager
def guest_lock(uuid: str, lock_dir: Optional[Path] = None) -> Iterator[Path]:
    """Hold an exclusive, non-blocking flock for one guest.

    Lock files are left in place after release; removing them would let two
    processes lock different inodes for the same guest.
    """
    if lock_dir is None:
        lock_dir = LOCK_DIR
    ensure_directory(lock_dir)
    lock_path = lock_dir / f"{uuid}.lock"
    with open(lock_path, "w", encoding="utf-8") as handle:
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise GuestBusyError(f"Guest {uuid} is locked by another invocation ({lock_path})") from exc
        try:
            yield lock_path
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


def _stderr(exc: Exception) -> str:
    stderr = getattr(exc, "stderr", None)
    if stderr:
        return str(stderr).strip()
    return str(exc)
