#!/usr/bin/env python3
"""
ARO Certificate Patcher and Infra Node Mover - Modular Components.

This package contains the components of the Azure Red Hat OpenShift
operational tools, broken down into logical modules for maintainability
and testing.

Modules:
- print_manager: Handles all output formatting and printing
- errors: Exception types carrying process exit codes
- arguments_parser: Command-line argument parsing (-h/--help only)
- configuration: Environment parsing and the per-run context
- tool_locator: One-shot resolution of the oc/az executables
- tool_installer: Download/installation of missing CLI tools
- hosts_manager: Temporary hosts file overrides for private clusters
- utilities: oc/az command execution with retries and login helpers
- certificate_loader: Certificate bundle loading and key/certificate validation
- patch_applier: Idempotent certificate patches of cluster resources
- convergence_poller: Bounded rollout and pod readiness polling
- infra_mover: Moves router, registry and monitoring onto infra nodes
- orchestrator: High-level workflows and exit code handling
"""

from .arguments_parser import ArgumentsParser
from .certificate_loader import CertificateBundle, KeyVaultCertificateSource, load_certificate_bundle
from .configuration import CertToolConfig, InfraMoverConfig, RunContext
from .convergence_poller import ConvergencePoller, ConvergenceSnapshot, wait_for_pods
from .errors import (
    AroToolError,
    CertificateValidationError,
    CommandError,
    ConfigurationError,
    PodReadinessError,
    UsageError,
)
from .hosts_manager import HostsFileManager
from .infra_mover import InfraNodeMover
from .orchestrator import (
    CertificatePatchOrchestrator,
    InfraMoveOrchestrator,
    build_dependencies,
    handle_successful_completion,
    run_tool,
)
from .patch_applier import PatchApplier, PatchTarget, build_certificate_targets
from .print_manager import PrintManager, printer, set_debug_mode
from .tool_installer import ToolInstaller
from .tool_locator import ToolPaths, locate_tools
from .utilities import execute_az_command, execute_oc_command, format_runtime

__all__ = [
    "ArgumentsParser",
    "CertificateBundle",
    "KeyVaultCertificateSource",
    "load_certificate_bundle",
    "CertToolConfig",
    "InfraMoverConfig",
    "RunContext",
    "ConvergencePoller",
    "ConvergenceSnapshot",
    "wait_for_pods",
    "AroToolError",
    "CertificateValidationError",
    "CommandError",
    "ConfigurationError",
    "PodReadinessError",
    "UsageError",
    "HostsFileManager",
    "InfraNodeMover",
    "CertificatePatchOrchestrator",
    "InfraMoveOrchestrator",
    "build_dependencies",
    "handle_successful_completion",
    "run_tool",
    "PatchApplier",
    "PatchTarget",
    "build_certificate_targets",
    "PrintManager",
    "printer",
    "set_debug_mode",
    "ToolInstaller",
    "ToolPaths",
    "locate_tools",
    "execute_az_command",
    "execute_oc_command",
    "format_runtime",
]
