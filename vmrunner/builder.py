"""Translate a VMConfig into grub-bhyve and bhyve command lines."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional

from vmrunner.args import Command, Device, DeviceList, KeyValue
from vmrunner.constants import (
    BHYVE_PATH,
    GRUB_BHYVE_PATH,
    KEY_APIC_X2_MODE,
    KEY_BOOT_PARTITION,
    KEY_DISABLE_MP_TABLE_GENERATION,
    KEY_DISK_DEVICE,
    KEY_EXIT_ON_PAUSE,
    KEY_EXIT_ON_UNEMU_IOPORT,
    KEY_FORCE_MSI_INTERRUPTS,
    KEY_GEN_ACPI_TABLES,
    KEY_HOST_BRIDGE,
    KEY_IGNORE_UNIMPLEMENTED_MSR_ACCESS,
    KEY_INC_GUEST_CORE_MEM,
    KEY_LPC,
    KEY_NAME,
    KEY_NIC_DEVICE,
    KEY_RAM,
    KEY_SERIAL_CONSOLE1,
    KEY_UUID,
    KEY_VCPUS,
    KEY_WIRE_GUEST_MEMORY,
    KEY_YIELD_CPU_ON_HLT,
    PCI_SLOT_DISK,
    PCI_SLOT_HOSTBRIDGE,
    PCI_SLOT_LPC,
    PCI_SLOT_NIC,
    SERIAL_PORT_NAME,
)
from vmrunner.exceptions import UnsupportedArgument
from vmrunner.models import VMConfig
from vmrunner.storage import GuestLayout


class Stage(str, Enum):
    BOOTLOADER = "grub-bhyve"
    HYPERVISOR = "bhyve"


BINARY_PATHS = {
    Stage.BOOTLOADER: GRUB_BHYVE_PATH,
    Stage.HYPERVISOR: BHYVE_PATH,
}

# Literal command-line order for each stage.
RELEVANT_KEYS = {
    Stage.BOOTLOADER: [
        KEY_WIRE_GUEST_MEMORY,
        KEY_DISK_DEVICE,
        KEY_BOOT_PARTITION,
        KEY_SERIAL_CONSOLE1,
        KEY_RAM,
        KEY_UUID,
    ],
    Stage.HYPERVISOR: [
        KEY_GEN_ACPI_TABLES,
        KEY_YIELD_CPU_ON_HLT,
        KEY_EXIT_ON_PAUSE,
        KEY_WIRE_GUEST_MEMORY,
        KEY_VCPUS,
        KEY_RAM,
        KEY_DISK_DEVICE,
        KEY_SERIAL_CONSOLE1,
        KEY_NAME,
        KEY_HOST_BRIDGE,
        KEY_LPC,
        KEY_UUID,
    ],
}

_EMPTY = Device()


def _flag(enabled: bool, flag: str) -> Device:
    return Device(flag=flag) if enabled else _EMPTY


def _valued(flag: str, value: str) -> Device:
    return Device(flag=flag, arg=value) if value else _EMPTY


def build_grub_bhyve_arg(cfg: VMConfig, key: str, layout: GuestLayout) -> Device:
    if key == KEY_WIRE_GUEST_MEMORY:
        return _flag(cfg.wire_guest_memory, "-S")
    if key == KEY_DISK_DEVICE:
        return Device(flag="-m", arg=str(layout.device_map))
    if key == KEY_BOOT_PARTITION:
        return _valued("-r", cfg.boot_partition)
    if key == KEY_SERIAL_CONSOLE1:
        return _valued("-c", cfg.serial_console1)
    if key == KEY_RAM:
        return Device(flag="-M", arg=cfg.ram)
    if key == KEY_NAME:
        return Device(arg=cfg.name)
    if key == KEY_UUID:
        return Device(arg=cfg.short_name)
    raise UnsupportedArgument(key, Stage.BOOTLOADER.value)


_BHYVE_FLAGS: Dict[str, Callable[[VMConfig], Device]] = {
    KEY_GEN_ACPI_TABLES: lambda cfg: _flag(cfg.gen_acpi_tables, "-A"),
    KEY_INC_GUEST_CORE_MEM: lambda cfg: _flag(cfg.inc_guest_core_mem, "-C"),
    KEY_EXIT_ON_UNEMU_IOPORT: lambda cfg: _flag(cfg.exit_on_unemu_ioport, "-e"),
    KEY_YIELD_CPU_ON_HLT: lambda cfg: _flag(cfg.yield_cpu_on_hlt, "-H"),
    KEY_EXIT_ON_PAUSE: lambda cfg: _flag(cfg.exit_on_pause, "-P"),
    KEY_WIRE_GUEST_MEMORY: lambda cfg: _flag(cfg.wire_guest_memory, "-S"),
    KEY_IGNORE_UNIMPLEMENTED_MSR_ACCESS: lambda cfg: _flag(cfg.ignore_unimplemented_msr_access, "-w"),
    KEY_FORCE_MSI_INTERRUPTS: lambda cfg: _flag(cfg.force_msi_interrupts, "-W"),
    KEY_APIC_X2_MODE: lambda cfg: _flag(cfg.apic_x2_mode, "-x"),
    KEY_DISABLE_MP_TABLE_GENERATION: lambda cfg: _flag(cfg.disable_mp_table_generation, "-Y"),
}


def build_bhyve_arg(cfg: VMConfig, key: str, layout: GuestLayout) -> Device:
    if key in _BHYVE_FLAGS:
        return _BHYVE_FLAGS[key](cfg)
    if key == KEY_VCPUS:
        return Device(flag="-c", arg=str(cfg.vcpus))
    if key == KEY_RAM:
        return Device(flag="-m", arg=cfg.ram)
    if key == KEY_DISK_DEVICE:
        return Device(flag="-s", slot=PCI_SLOT_DISK, emulation=cfg.disk_driver, conf=KeyValue(cfg.disk_device))
    if key == KEY_NIC_DEVICE:
        if not cfg.nic_device:
            return _EMPTY
        return Device(flag="-s", slot=PCI_SLOT_NIC, emulation=cfg.nic_driver, conf=KeyValue("id", cfg.nic_id))
    if key == KEY_BOOT_PARTITION:
        return _valued("-r", cfg.boot_partition)
    if key == KEY_SERIAL_CONSOLE1:
        if not cfg.serial_console1:
            return _EMPTY
        return Device(flag="-l", emulation=SERIAL_PORT_NAME, conf=KeyValue(cfg.serial_console1))
    if key == KEY_HOST_BRIDGE:
        return Device(flag="-s", slot=PCI_SLOT_HOSTBRIDGE, emulation=cfg.host_bridge)
    if key == KEY_LPC:
        return Device(flag="-s", slot=PCI_SLOT_LPC, emulation=cfg.lpc)
    if key == KEY_NAME:
        return Device(arg=cfg.name)
    if key == KEY_UUID:
        return Device(arg=cfg.short_name)
    raise UnsupportedArgument(key, Stage.HYPERVISOR.value)


_RESOLVERS = {
    Stage.BOOTLOADER: build_grub_bhyve_arg,
    Stage.HYPERVISOR: build_bhyve_arg,
}


def build_command(stage: Stage, cfg: VMConfig, layout: GuestLayout, keys: Optional[List[str]] = None) -> Command:
    """Resolve every relevant key for ``stage`` into a ready-to-run Command.

    A key that cannot be resolved aborts the whole build; no partial command
    is returned.
    """
    stage = Stage(stage)
    resolve = _RESOLVERS[stage]
    devices = DeviceList()
    for key in RELEVANT_KEYS[stage] if keys is None else keys:
        try:
            devices.append(resolve(cfg, key, layout))
        except UnsupportedArgument as exc:
            raise UnsupportedArgument(
                key, stage.value, f"unable to build {stage.value} command: argument {key!r}: {exc}"
            ) from exc
    return Command(binary_path=BINARY_PATHS[stage], devices=devices)
