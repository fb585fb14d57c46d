"""
Command results -- explicit success / failure variants.

Responsibility:
    ``CommandResult`` is what a caller gets back from
    ``CommandExecutor.execute``: either the command's value or a structured
    description of why it did not apply.  Domain exceptions never cross the
    executor boundary.

Statuses:
    SUCCEEDED  the transaction committed; ``value`` holds the DTO
    REJECTED   a domain rule refused the command; nothing was written
    FATAL      the session cannot be recovered (refresh failed); the caller
               must drop its credentials and re-authenticate
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from backoffice_kernel.exceptions import BackofficeKernelError

T = TypeVar("T")


class CommandStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"
    FATAL = "fatal"


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """Result of executing a command."""

    status: CommandStatus
    command: str
    value: T | None = None
    error_code: str | None = None
    error_category: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None

    @property
    def is_success(self) -> bool:
        return self.status == CommandStatus.SUCCEEDED

    @property
    def is_fatal(self) -> bool:
        return self.status == CommandStatus.FATAL

    @classmethod
    def succeeded(cls, command: str, value: T) -> CommandResult[T]:
        return cls(status=CommandStatus.SUCCEEDED, command=command, value=value)

    @classmethod
    def from_error(
        cls,
        command: str,
        error: BackofficeKernelError,
        *,
        fatal: bool = False,
    ) -> CommandResult[Any]:
        details = {
            k: v for k, v in vars(error).items()
            if not k.startswith("_")
        }
        return cls(
            status=CommandStatus.FATAL if fatal else CommandStatus.REJECTED,
            command=command,
            error_code=error.code,
            error_category=error.category,
            message=str(error),
            details=details or None,
        )
