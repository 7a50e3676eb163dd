"""Structured bhyve/grub-bhyve command-line arguments."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class KeyValue:
    """A ``key`` or ``key=value`` pair, e.g. ``id=vmnic0``."""

    key: str
    value: str = ""

    def __str__(self) -> str:
        if not self.value:
            return self.key
        return f"{self.key}={self.value}"


@dataclass(frozen=True)
class Device:
    """One unit of command-line syntax.

    Either a plain flag/positional (``-c 2``, ``vm1``) or a PCI-slot style
    descriptor (``-s 4,virtio-blk,/dev/zvol/tank/guest/disk0``). The descriptor
    operand joins the non-empty members of (slot, emulation, conf) with commas.
    """

    flag: str = ""
    arg: str = ""
    slot: str = ""
    emulation: str = ""
    conf: KeyValue = field(default_factory=lambda: KeyValue(""))

    def operand(self) -> str:
        active = [part for part in (self.slot, self.emulation, str(self.conf)) if part]
        return self.arg + ",".join(active)

    def is_empty(self) -> bool:
        return not self.flag and not self.operand()

    def to_args(self) -> List[str]:
        operand = self.operand()
        return [token for token in (self.flag, operand) if token]

    def __str__(self) -> str:
        return " ".join(self.to_args())


class DeviceList(list):
    """Ordered devices; order is the literal command-line order."""

    def to_args(self) -> List[str]:
        args: List[str] = []
        for device in self:
            if device.is_empty():
                continue
            args.extend(device.to_args())
        return args

    def __str__(self) -> str:
        return " ".join(str(device) for device in self if not device.is_empty())


@dataclass
class Command:
    binary_path: str
    devices: DeviceList = field(default_factory=DeviceList)

    @property
    def args(self) -> List[str]:
        return self.devices.to_args()

    @property
    def argv(self) -> List[str]:
        return [self.binary_path] + self.args

    def __str__(self) -> str:
        rendered = str(self.devices)
        return f"{self.binary_path} {rendered}" if rendered else self.binary_path
