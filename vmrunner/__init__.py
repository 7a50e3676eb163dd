"""bhyve-vm-runner package."""

__all__ = [
    "args",
    "builder",
    "cli",
    "config",
    "constants",
    "exceptions",
    "launcher",
    "models",
    "persistence",
    "storage",
    "utils",
]
