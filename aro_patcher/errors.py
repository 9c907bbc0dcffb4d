#!/usr/bin/env python3
"""Exception types shared by the ARO tools.

Every error carries the process exit code it maps to:
    0: Normal exit
    1: Abnormal exit due to external error (input, cluster, CLI failure)
    2: Abnormal exit due to script error (validation, usage, unexpected)
"""


class AroToolError(Exception):
    """Base class for all errors that abort a run"""

    exit_code = 2

    def __init__(self, message, exit_code=None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(AroToolError):
    """Required environment configuration is missing or invalid"""

    exit_code = 1


class CommandError(AroToolError):
    """An external oc/az command failed"""

    exit_code = 1

    def __init__(self, message, command=None, exit_code=None):
        super().__init__(message, exit_code=exit_code)
        self.command = command


class PodReadinessError(AroToolError):
    """Expected pods did not reach Running within the allowed attempts"""

    exit_code = 1


class CertificateValidationError(AroToolError):
    """Certificate material is malformed or the key does not match the certificate"""

    exit_code = 2


class UsageError(AroToolError):
    """Unsupported command-line parameters"""

    exit_code = 2
