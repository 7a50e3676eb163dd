"""Shared test fixtures: an in-memory ZFS stand-in and isolated host paths."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Dict, List

import pytest

from vmrunner.constants import ENV_KEYS
from vmrunner.models import VMConfig
from vmrunner.storage import GuestLayout

GUEST_UUID = "1234abcd-5678-4def-8123-567890abcdef"


class FakeZFS:
    """Records datasets in memory and mirrors filesystems as directories under ``root``."""

    def __init__(self, root: Path, pools: List[str] = None) -> None:
        self.root = root
        self.pools = ["tank"] if pools is None else list(pools)
        self.datasets: Dict[str, str] = {}
        self.created: List[str] = []
        self.fail_on: set = set()

    def list_pools(self) -> List[str]:
        return list(self.pools)

    def dataset_exists(self, name: str) -> bool:
        return name in self.datasets

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise subprocess.CalledProcessError(1, ["zfs", "create", name], stderr="cannot create: permission denied")

    def create_filesystem(self, name: str) -> None:
        self._check(name)
        self.datasets[name] = "filesystem"
        self.created.append(name)
        (self.root / name).mkdir(parents=True, exist_ok=True)

    def create_volume(self, name: str, size: str) -> None:
        self._check(name)
        self.datasets[name] = f"volume:{size}"
        self.created.append(name)


@pytest.fixture(autouse=True)
def isolated_host_paths(tmp_path, monkeypatch):
    """Keep mounts and lock files inside the test's tmp directory."""
    import vmrunner.launcher as launcher_module
    import vmrunner.storage as storage_module

    mount_root = tmp_path / "mnt"
    mount_root.mkdir()
    monkeypatch.setattr(storage_module, "MOUNT_ROOT", mount_root)
    monkeypatch.setattr(storage_module, "LOCK_DIR", tmp_path / "locks")
    monkeypatch.setattr(launcher_module, "DEFAULT_POOL", None)
    return mount_root


@pytest.fixture
def fake_zfs(isolated_host_paths) -> FakeZFS:
    return FakeZFS(isolated_host_paths)


@pytest.fixture
def layout(isolated_host_paths) -> GuestLayout:
    return GuestLayout(pool="tank", uuid=GUEST_UUID)


@pytest.fixture
def default_vm_config() -> VMConfig:
    """The reference guest: 2 vCPUs, 512M, virtio-blk on the tank zvol."""
    return VMConfig(
        uuid=GUEST_UUID,
        name="vm1",
        vcpus=2,
        ram="512M",
        disk_driver="virtio-blk",
        disk_device=f"/dev/zvol/tank/{GUEST_UUID}/disk0",
        host_bridge="hostbridge",
        lpc="lpc",
        wire_guest_memory=True,
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads."""
    for key in list(ENV_KEYS) + ["VM_CONFIG_FILE"]:
        monkeypatch.delenv(key, raising=False)
