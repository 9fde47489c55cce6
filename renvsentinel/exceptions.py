"""Custom exceptions for renvsentinel."""


class RenvSentinelError(Exception):
    """Base exception for all renvsentinel errors.

    ``remediation`` holds the recovery steps shown to the user.
    """

    def __init__(self, message: str, remediation: list[str] | None = None):
        self.remediation = remediation or []
        super().__init__(message)


class ConfigError(RenvSentinelError):
    """Raised when a configuration file cannot be read or has unknown keys."""


class ManifestError(RenvSentinelError):
    """Raised when the DESCRIPTION file is missing, read-only, or cannot be rewritten."""


class LockfileError(RenvSentinelError):
    """Raised when renv.lock is missing, corrupt, or cannot be rewritten."""


class RuntimeProbeError(RenvSentinelError):
    """Raised when the reference image cannot report its renv version."""
