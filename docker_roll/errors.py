"""
Error kinds raised during a rollout.

Every error the CLI knows how to report derives from RolloutError and
maps to exit code 1.
"""


class RolloutError(Exception):
    """Base class for all rollout failures."""


class ConfigError(RolloutError):
    """Missing or invalid configuration, detected before any side effect."""


class PrerequisiteError(RolloutError):
    """A required external tool is not available."""


class DescriptorError(RolloutError):
    """The base service descriptor could not be located or parsed."""


class RuntimeCommandError(RolloutError):
    """A container runtime command (build, up, down) failed."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"'{command}' failed with exit code {returncode}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)


class StartFailure(RolloutError):
    """The new instance never became discoverable after start."""


class HealthTimeout(RolloutError):
    """The health gate exhausted its attempts without a healthy response."""


class CleanupError(RolloutError):
    """A stop, remove or delete step failed. Logged, never escalated."""
