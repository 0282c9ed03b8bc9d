"""Error taxonomy for the installer.

Everything raised deliberately by this package derives from ``InstallError``
so the CLI can print a summary and exit non-zero.  Unexpected exceptions
(bugs, I/O errors outside the retry loops) propagate unchanged.
"""

from __future__ import annotations


class InstallError(RuntimeError):
    """Base class for errors reported to the user."""


class PolicyError(InstallError):
    """A repository policy was violated.  The message carries the remediation."""


class ResourceError(InstallError):
    """A required tool, file or folder is missing or unusable."""


class TransientRetryExceededError(InstallError):
    """A bounded retry loop gave up."""


class InvalidOptionsError(InstallError, ValueError):
    """The requested combination of options is not supported."""


class LocalVersionMismatchError(PolicyError):
    """A dependency on a workspace project asks for a version that project doesn't have."""

    def __init__(self, package_name: str, specifier: str, local_version: str) -> None:
        super().__init__(
            f'The dependency "{package_name}" is requested as "{specifier}", but the workspace project '
            f'"{package_name}" has version {local_version}, which does not satisfy it'
        )
