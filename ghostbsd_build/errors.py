"""Error types for the build pipeline.

Every error carries a stable ``code`` string so that callers (the CLI and
the stage sequencer) can report failures without parsing messages.
"""

from __future__ import annotations

from collections.abc import Sequence

# Error code constants
HOST_ERROR = "host_environment"
CONFIGURATION_ERROR = "configuration"
EXTERNAL_TOOL_ERROR = "external_tool"
RESOURCE_STATE_ERROR = "resource_state"


class BuildError(Exception):
    """Base error for all build pipeline failures."""

    def __init__(self, message: str, code: str = "build_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class HostEnvironmentError(BuildError):
    """The build host cannot run a build (not root, unsupported kernel)."""

    def __init__(self, message: str, code: str = HOST_ERROR) -> None:
        super().__init__(message, code=code)


class ConfigurationError(BuildError):
    """A manifest, config file or selector for the requested build is invalid."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message, code=code)


class ExternalToolError(BuildError):
    """An external command or network fetch did not succeed.

    Attributes:
        argv: The command that failed, if the failure came from a command.
        exit_code: Process exit code (None if the process never ran).
        diagnostic: Error output reported by the tool.
    """

    def __init__(
        self,
        message: str,
        argv: Sequence[str] | None = None,
        exit_code: int | None = None,
        diagnostic: str = "",
        code: str = EXTERNAL_TOOL_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.argv = list(argv) if argv is not None else None
        self.exit_code = exit_code
        self.diagnostic = diagnostic


class ResourceStateError(BuildError):
    """A mount point or the storage pool is in an unexpected state."""

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        code: str = RESOURCE_STATE_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.resource = resource


__all__ = [
    "BuildError",
    "CONFIGURATION_ERROR",
    "ConfigurationError",
    "EXTERNAL_TOOL_ERROR",
    "ExternalToolError",
    "HOST_ERROR",
    "HostEnvironmentError",
    "RESOURCE_STATE_ERROR",
    "ResourceStateError",
]
