"""Global constants and path configuration for bhyve-vm-runner."""

from __future__ import annotations

import os
import re
from pathlib import Path

GRUB_BHYVE_PATH = "/usr/local/sbin/grub-bhyve"
BHYVE_PATH = "/usr/sbin/bhyve"
ZFS_PATH = "zfs"
ZPOOL_PATH = "zpool"

# Explicit pool for guest datasets; required on hosts with more than one pool.
DEFAULT_POOL = os.environ.get("VM_POOL") or None
# Where guest datasets are mounted; ZFS mounts <pool>/<uuid> at <root>/<pool>/<uuid>.
MOUNT_ROOT = Path(os.environ.get("VMRUNNER_MOUNT_ROOT", "/"))
LOCK_DIR = Path(os.environ.get("VMRUNNER_LOCK_DIR", "/var/run/vmrunner"))
ZVOL_DEV_DIR = Path("/dev/zvol")

GUEST_CHILD_FILESYSTEMS = ("firmware", "iso")
GUEST_DISK_NAME = "disk0"
DEVICE_MAP_NAME = "device.map"
CONFIG_FILE_NAME = "config.json"
BOOT_DISK_ID = "hd0"

# Config keys, as they appear in config files and the per-stage key lists.
KEY_NAME = "vmname"
KEY_UUID = "uuid"
KEY_VCPUS = "vcpus"
KEY_BOOT_PARTITION = "bootpartition"
KEY_RAM = "ram"
KEY_DISK_DRIVER = "diskdriver"
KEY_DISK_DEVICE = "diskdevice"
KEY_DISK_SIZE = "disksize"
KEY_NIC_DRIVER = "nicdriver"
KEY_NIC_DEVICE = "nicdevice"
KEY_NIC_ID = "nicid"
KEY_SERIAL_CONSOLE1 = "serialconsole1"
KEY_SERIAL_CONSOLE2 = "serialconsole2"
KEY_HOST_BRIDGE = "hostbridge"
KEY_LPC = "lpc"
KEY_POOL = "pool"
KEY_GEN_ACPI_TABLES = "genacpitables"
KEY_INC_GUEST_CORE_MEM = "incguestcoremem"
KEY_EXIT_ON_UNEMU_IOPORT = "exitonunemuioport"
KEY_EXIT_ON_PAUSE = "exitonpause"
KEY_YIELD_CPU_ON_HLT = "yieldcpuonhlt"
KEY_IGNORE_UNIMPLEMENTED_MSR_ACCESS = "ignoreunimplementedmsraccess"
KEY_FORCE_MSI_INTERRUPTS = "forcemsiinterrupts"
KEY_APIC_X2_MODE = "apicx2mode"
KEY_DISABLE_MP_TABLE_GENERATION = "disablemptablegeneration"
KEY_WIRE_GUEST_MEMORY = "wireguestmemory"

# Config key -> VMConfig field name.
KEY_FIELDS = {
    KEY_NAME: "name",
    KEY_UUID: "uuid",
    KEY_VCPUS: "vcpus",
    KEY_BOOT_PARTITION: "boot_partition",
    KEY_RAM: "ram",
    KEY_DISK_DRIVER: "disk_driver",
    KEY_DISK_DEVICE: "disk_device",
    KEY_DISK_SIZE: "disk_size",
    KEY_NIC_DRIVER: "nic_driver",
    KEY_NIC_DEVICE: "nic_device",
    KEY_NIC_ID: "nic_id",
    KEY_SERIAL_CONSOLE1: "serial_console1",
    KEY_SERIAL_CONSOLE2: "serial_console2",
    KEY_HOST_BRIDGE: "host_bridge",
    KEY_LPC: "lpc",
    KEY_POOL: "pool",
    KEY_GEN_ACPI_TABLES: "gen_acpi_tables",
    KEY_INC_GUEST_CORE_MEM: "inc_guest_core_mem",
    KEY_EXIT_ON_UNEMU_IOPORT: "exit_on_unemu_ioport",
    KEY_EXIT_ON_PAUSE: "exit_on_pause",
    KEY_YIELD_CPU_ON_HLT: "yield_cpu_on_hlt",
    KEY_IGNORE_UNIMPLEMENTED_MSR_ACCESS: "ignore_unimplemented_msr_access",
    KEY_FORCE_MSI_INTERRUPTS: "force_msi_interrupts",
    KEY_APIC_X2_MODE: "apic_x2_mode",
    KEY_DISABLE_MP_TABLE_GENERATION: "disable_mp_table_generation",
    KEY_WIRE_GUEST_MEMORY: "wire_guest_memory",
}

# Environment variable -> config key.
ENV_KEYS = {
    "VM_NAME": KEY_NAME,
    "VM_UUID": KEY_UUID,
    "VM_CPUS": KEY_VCPUS,
    "VM_BOOT_PARTITION": KEY_BOOT_PARTITION,
    "VM_RAM": KEY_RAM,
    "VM_DISK_DRIVER": KEY_DISK_DRIVER,
    "VM_DISK_DEVICE": KEY_DISK_DEVICE,
    "VM_DISK_SIZE": KEY_DISK_SIZE,
    "VM_NIC_DRIVER": KEY_NIC_DRIVER,
    "VM_NIC_DEVICE": KEY_NIC_DEVICE,
    "VM_NIC_ID": KEY_NIC_ID,
    "VM_SERIAL_CONSOLE1": KEY_SERIAL_CONSOLE1,
    "VM_SERIAL_CONSOLE2": KEY_SERIAL_CONSOLE2,
    "VM_HOST_BRIDGE": KEY_HOST_BRIDGE,
    "VM_LPC": KEY_LPC,
    "VM_POOL": KEY_POOL,
    "VM_ACPI": KEY_GEN_ACPI_TABLES,
    "VM_INCLUDE_GUEST_MEM": KEY_INC_GUEST_CORE_MEM,
    "VM_EXIT_ON_UNEMU_IOPORT": KEY_EXIT_ON_UNEMU_IOPORT,
    "VM_EXIT_ON_PAUSE": KEY_EXIT_ON_PAUSE,
    "VM_YIELD_ON_HLT": KEY_YIELD_CPU_ON_HLT,
    "VM_IGNORE_UNIMP_MSR": KEY_IGNORE_UNIMPLEMENTED_MSR_ACCESS,
    "VM_FORCE_MSI": KEY_FORCE_MSI_INTERRUPTS,
    "VM_APIC_X2": KEY_APIC_X2_MODE,
    "VM_DISABLE_MPTABLE": KEY_DISABLE_MP_TABLE_GENERATION,
    "VM_WIRE_GUEST_MEMORY": KEY_WIRE_GUEST_MEMORY,
}

# Fixed PCI slots on the emulated bus.
PCI_SLOT_HOSTBRIDGE = "0"
PCI_SLOT_DISK = "4"
PCI_SLOT_NIC = "5"
PCI_SLOT_LPC = "31"

SERIAL_PORT_NAME = "com1"

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

SIZE_RE = re.compile(r"^\d+[KMGTkmgt]?$")
