"""Data models for bhyve-vm-runner."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class VMConfig:
    """Identity and resources of one guest.

    Built once at the CLI boundary, persisted by ``create`` and read back
    verbatim by ``start``.
    """

    uuid: str
    name: str = ""
    vcpus: int = 1
    boot_partition: str = "hd0,msdos1"
    ram: str = "256M"
    disk_driver: str = "virtio-blk"
    disk_device: str = ""
    disk_size: str = "256M"
    nic_driver: str = "virtio-net"
    nic_device: str = ""
    nic_id: str = ""
    serial_console1: str = ""
    serial_console2: str = ""
    host_bridge: str = "hostbridge"
    lpc: str = "lpc"
    pool: Optional[str] = None
    # bhyve behaviour flags
    gen_acpi_tables: bool = True  # -A
    inc_guest_core_mem: bool = False  # -C
    exit_on_unemu_ioport: bool = False  # -e
    exit_on_pause: bool = True  # -P
    yield_cpu_on_hlt: bool = True  # -H
    ignore_unimplemented_msr_access: bool = False  # -w
    force_msi_interrupts: bool = False  # -W
    apic_x2_mode: bool = False  # -x
    disable_mp_table_generation: bool = False  # -Y
    wire_guest_memory: bool = True  # -S

    @property
    def short_name(self) -> str:
        """UUID up to the first hyphen; bhyve VM names cannot contain one."""
        # TODO: detect collisions between guests sharing a first UUID segment
        return self.uuid.split("-")[0]

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def field_names(cls) -> tuple:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VMConfig":
        """Build a VMConfig from a mapping, ignoring unknown members."""
        known = set(cls.field_names())
        return cls(**{key: value for key, value in data.items() if key in known})
