"""CLI entry points for bhyve-vm-runner."""

from __future__ import annotations

import argparse
import dataclasses
from pathlib import Path
from typing import Any, Dict, List, Optional

from vmrunner.config import parse_env
from vmrunner.constants import KEY_FIELDS
from vmrunner.exceptions import ManagerError
from vmrunner.launcher import create, describe, plan, start
from vmrunner.models import VMConfig
from vmrunner.utils import log

# (option, config key, help)
_VALUE_OPTIONS = [
    ("--name", "vmname", "Virtual Machine Name"),
    ("--uuid", "uuid", "VM UUID. A UUID is randomly generated by default."),
    ("--vcpus", "vcpus", "Number of vCPUs"),
    ("--bootpartition", "bootpartition", "Partition to boot, e.g. hd0,msdos1"),
    ("--ram", "ram", "RAM e.g. 256M, 1G"),
    ("--diskdriver", "diskdriver", "Disk driver emulation"),
    ("--diskdevice", "diskdevice", "Path to disk image/block device (defaults to the guest zvol)"),
    ("--disksize", "disksize", "Disk size e.g. 256M, 10G"),
    ("--nicdriver", "nicdriver", "NIC driver emulation"),
    ("--nicdevice", "nicdevice", "NIC device name e.g. vmnic0"),
    ("--nicid", "nicid", "NIC device ID e.g. a vmnic uuid"),
    ("--serialconsole1", "serialconsole1", "Serial console 1 device, e.g. /dev/nmdm0A"),
    ("--serialconsole2", "serialconsole2", "Serial console 2 device"),
    ("--hostbridge", "hostbridge", "Host bridge emulation (hostbridge or amd_hostbridge)"),
    ("--lpc", "lpc", "LPC PCI-ISA bridge emulation"),
    ("--pool", "pool", "ZFS pool for guest datasets"),
]

_FLAG_OPTIONS = [
    ("--acpi", "genacpitables", "Generate ACPI tables (-A)"),
    ("--include-guest-mem", "incguestcoremem", "Include guest memory in core file (-C)"),
    ("--exit-on-unemu-ioport", "exitonunemuioport", "Exit on access to an unemulated I/O port (-e)"),
    ("--yield-cpu-on-hlt", "yieldcpuonhlt", "Yield the vCPU thread on HLT (-H)"),
    ("--ignore-unimp-msr-access", "ignoreunimplementedmsraccess", "Ignore unimplemented MSR accesses (-w)"),
    ("--force-msi", "forcemsiinterrupts", "Force MSI instead of MSI-X for virtio (-W)"),
    ("--exit-on-pause", "exitonpause", "Exit the vCPU on PAUSE (-P)"),
    ("--wire-guest-memory", "wireguestmemory", "Wire guest memory (-S)"),
    ("--apicx2", "apicx2mode", "Configure the local APIC in x2APIC mode (-x)"),
    ("--disable-mptable", "disablemptablegeneration", "Disable MPtable generation (-Y)"),
]


def show_config(cfg: VMConfig) -> None:
    """Print a VM configuration, one field per line."""
    for field in dataclasses.fields(cfg):
        print(f"  {field.name}: {getattr(cfg, field.name)}")


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for _, key, _ in _VALUE_OPTIONS + _FLAG_OPTIONS:
        value = getattr(args, KEY_FIELDS[key])
        if value is not None:
            overrides[key] = value
    return overrides


def cmd_create(args: argparse.Namespace) -> int:
    cfg = parse_env(_overrides(args), config_path=args.config)
    log("INFO", "=== Configuration ===")
    show_config(cfg)
    if args.show_config:
        return 0
    stored = create(cfg)
    print(stored.uuid)
    return 0


def cmd_start(args: argparse.Namespace) -> int:
    if args.dry_run:
        for command in plan(args.uuid, pool=args.pool):
            print(command)
        return 0
    sequence = start(args.uuid, pool=args.pool)
    log("INFO", f"Boot sequence: {' -> '.join(state.value for state in sequence.history)}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    show_config(describe(args.uuid, pool=args.pool))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bhyve-vm-runner", description="Provision and boot bhyve guests on ZFS")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create a Virtual Machine")
    create_parser.add_argument("--config", "-j", type=Path, default=None, help="YAML or JSON configuration file")
    for option, key, help_text in _VALUE_OPTIONS:
        kwargs: Dict[str, Any] = {"dest": KEY_FIELDS[key], "default": None, "help": help_text}
        if key == "vcpus":
            kwargs["type"] = int
        create_parser.add_argument(option, **kwargs)
    for option, key, help_text in _FLAG_OPTIONS:
        create_parser.add_argument(
            option,
            dest=KEY_FIELDS[key],
            action=argparse.BooleanOptionalAction,
            default=None,
            help=help_text,
        )
    create_parser.add_argument("--show-config", action="store_true", help="Show resolved VM configuration and exit")
    create_parser.set_defaults(func=cmd_create)

    start_parser = subparsers.add_parser("start", aliases=["run"], help="Start a Virtual Machine")
    start_parser.add_argument("uuid", help="UUID of the VM to start")
    start_parser.add_argument("--pool", default=None, help="ZFS pool holding the guest")
    start_parser.add_argument("--dry-run", action="store_true", help="Print the grub-bhyve and bhyve commands and exit")
    start_parser.set_defaults(func=cmd_start)

    show_parser = subparsers.add_parser("show", help="Show the stored configuration of a Virtual Machine")
    show_parser.add_argument("uuid", help="UUID of the VM")
    show_parser.add_argument("--pool", default=None, help="ZFS pool holding the guest")
    show_parser.set_defaults(func=cmd_show)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except ManagerError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        log("ERROR", "This is likely a bug.")
        import traceback

        traceback.print_exc()
        return 1
