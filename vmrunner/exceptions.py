"""Custom exceptions for bhyve-vm-runner."""

from __future__ import annotations

from typing import Optional


class ManagerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigLoadError(ManagerError):
    """Persisted guest config is missing, unreadable or malformed."""


class UnsupportedArgument(ManagerError):
    """A config key has no command-line mapping for the requested stage."""

    def __init__(self, key: str, stage: Optional[str] = None, message: Optional[str] = None) -> None:
        self.key = key
        self.stage = stage
        if message is None:
            message = f"no such flag: {key}"
            if stage:
                message += f" (stage {stage})"
        super().__init__(message)


class ProvisioningError(ManagerError):
    """A dataset or volume could not be created, or no pool could be chosen."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class GuestNotFound(ManagerError):
    def __init__(self, uuid: str, dataset: Optional[str] = None) -> None:
        self.uuid = uuid
        self.dataset = dataset
        where = f" (dataset {dataset})" if dataset else ""
        super().__init__(f"A VM with UUID {uuid} does not exist{where}")


class ProcessExecutionError(ManagerError):
    """A stage binary failed to launch or exited non-zero."""

    def __init__(self, stage: str, returncode: Optional[int], stderr: str = "", message: Optional[str] = None) -> None:
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            message = f"{stage} failed with exit status {returncode}"
            if stderr.strip():
                message += f": {stderr.strip()}"
        super().__init__(message)


class GuestBusyError(ManagerError):
    """Another invocation holds the lock for this guest."""
