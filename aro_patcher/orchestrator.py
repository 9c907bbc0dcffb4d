#!/usr/bin/env python3
"""Orchestrator module: workflow management for the certificate patcher and infra mover."""

import functools
import os
import time
from typing import Any, Callable, Dict, List, Optional

from .certificate_loader import load_certificate_bundle
from .configuration import STATE_NOT_STARTED, RunContext
from .convergence_poller import ConvergencePoller
from .errors import AroToolError, ConfigurationError
from .hosts_manager import HostsFileManager, cluster_host_entries
from .infra_mover import InfraNodeMover
from .patch_applier import PatchApplier, PatchTarget, build_certificate_targets
from .print_manager import printer as default_printer
from .tool_installer import ToolInstaller
from .tool_locator import locate_tools, require_tools
from .utilities import az_login, execute_az_command, execute_oc_command, format_runtime, oc_login


class CertificatePatchOrchestrator:
    """
    Orchestrates the certificate replacement workflow on an ARO cluster:
    tools -> hosts overrides -> logins -> certificate retrieval and validation
    -> idempotent patches -> convergence polling.
    """

    TOTAL_STEPS = 8

    def __init__(self, **dependencies: Any) -> None:
        """
        Initialize the orchestrator with all required dependencies.

        Args:
            **dependencies: All required function and class dependencies including:
                - printer: PrintManager instance for output formatting
                - execute_oc_command / execute_az_command: CLI executors (unbound to a path)
                - format_runtime: Function to format time durations
                - locate_tools / require_tools: Tool resolution functions
                - ToolInstaller, HostsFileManager, PatchApplier, ConvergencePoller: class constructors
                - cluster_host_entries, load_certificate_bundle, oc_login, az_login: workflow functions
        """
        # Core dependencies
        self.printer = dependencies["printer"]
        self.execute_oc_command = dependencies["execute_oc_command"]
        self.execute_az_command = dependencies["execute_az_command"]
        self.format_runtime = dependencies["format_runtime"]

        # Tool resolution
        self.locate_tools = dependencies["locate_tools"]
        self.require_tools = dependencies["require_tools"]

        # Class constructors
        self.ToolInstaller = dependencies["ToolInstaller"]
        self.HostsFileManager = dependencies["HostsFileManager"]
        self.PatchApplier = dependencies["PatchApplier"]
        self.ConvergencePoller = dependencies["ConvergencePoller"]

        # Workflow functions
        self.cluster_host_entries = dependencies["cluster_host_entries"]
        self.load_certificate_bundle = dependencies["load_certificate_bundle"]
        self.oc_login = dependencies["oc_login"]
        self.az_login = dependencies["az_login"]

        self.hosts_manager = None

    def _resolve_tools(self, context: RunContext, current_step: int) -> int:
        config = context.config
        require_az = config.uses_key_vault
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Resolving CLI tools")

        tools = self.locate_tools(context.work_dir, require_az=require_az, printer=self.printer)
        missing = tools.missing(require_az=require_az)
        if missing and config.install_tools:
            self.printer.print_info(f"Installing missing tools: {', '.join(missing)}")
            installer = self.ToolInstaller(context.work_dir, printer=self.printer)
            installer.install_missing(missing, ocp_version=config.ocp_version)
            tools = self.locate_tools(context.work_dir, require_az=require_az, printer=self.printer)

        context.tools = self.require_tools(tools, require_az=require_az)
        self.printer.print_success(f"Using oc: {context.tools.oc}")
        if require_az:
            self.printer.print_success(f"Using az: {context.tools.az}")
        return current_step + 1

    def _bind_executors(self, context: RunContext):
        oc = functools.partial(self.execute_oc_command, oc_path=context.tools.oc)
        az = functools.partial(self.execute_az_command, az_path=context.tools.az) if context.tools.az else None
        return oc, az

    def _update_hosts(self, context: RunContext, current_step: int) -> int:
        config = context.config
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Adding API and OAuth host overrides")
        if not config.update_hosts:
            self.printer.print_info("UPDATE_HOSTS disabled - relying on DNS")
            return current_step + 1

        self.hosts_manager = self.HostsFileManager(config.hosts_file, printer=self.printer)
        entries = self.cluster_host_entries(config.api_host, config.api_ip, config.ingress_host, config.ingress_ip)
        self.hosts_manager.add_entries(entries)
        return current_step + 1

    def _cleanup_hosts(self) -> None:
        if self.hosts_manager is None:
            return
        try:
            self.hosts_manager.remove_entries()
        except OSError as e:
            self.printer.print_warning(f"Failed to clean up hosts entries: {e}")
        self.hosts_manager = None

    def _login(self, context: RunContext, oc: Callable, az: Optional[Callable], current_step: int) -> int:
        config = context.config
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Logging in to the OCP cluster")
        self.oc_login(config.api_server, config.username, config.password, oc, printer=self.printer)
        current_step += 1

        self.printer.print_step(current_step, self.TOTAL_STEPS, "Logging in to Azure")
        if az is None or config.azure is None:
            self.printer.print_info("Certificate supplied through environment - Azure login not required")
        else:
            azure = config.azure
            self.az_login(azure.client_id, azure.client_secret, azure.tenant_id, az, printer=self.printer)
        return current_step + 1

    def _prepare_certificates(self, context: RunContext, az: Optional[Callable], current_step: int):
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Retrieving certificates")
        bundle = self.load_certificate_bundle(context.config, execute_az_command=az, printer=self.printer)
        current_step += 1

        # Validation happens before any cluster mutation
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Validating certificate and key")
        context.details["fingerprint"] = bundle.validate(printer=self.printer)
        cert_files = bundle.write_files(os.path.join(context.work_dir, "aro-certs"))
        self.printer.print_info(f"Certificate files written to {os.path.dirname(cert_files.key)}")
        return cert_files, current_step + 1

    def _tracked(self, targets: List[PatchTarget]):
        operators, deployments = [], []
        for target in targets:
            operators.extend(name for name in target.tracked_operators if name not in operators)
            deployments.extend(item for item in target.tracked_deployments if item not in deployments)
        return operators, deployments

    def _apply_patches(self, context: RunContext, oc: Callable, cert_files: Any, current_step: int):
        config = context.config
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Patching cluster certificates")

        targets = build_certificate_targets(config, include_root_ca=bool(cert_files.ca))
        if not cert_files.ca:
            self.printer.print_warning("No root CA certificate available - skipping proxy/cluster trusted CA patch")

        poller = self.ConvergencePoller(
            oc, printer=self.printer, interval=config.poll_interval, max_iterations=config.poll_iterations
        )
        operators, deployments = self._tracked(targets)
        baseline = poller.capture(operators, deployments)

        applier = self.PatchApplier(oc, printer=self.printer, manifest_dir=os.path.dirname(cert_files.key))
        applied_targets = []
        for target in targets:
            self.printer.print_info(f"Attempting to patch {target.label}")
            result = applier.apply(target, cert_files, context)
            if result.applied:
                applied_targets.append(target)

        return poller, baseline, applied_targets, current_step + 1

    def _wait_for_rollout(self, poller: Any, baseline: Any, applied_targets: List[PatchTarget], current_step: int):
        self.printer.print_step(current_step, self.TOTAL_STEPS, "Waiting for cluster components to settle")
        operators, deployments = self._tracked(applied_targets)
        if not operators and not deployments:
            self.printer.print_info("No rollout to wait for")
            return None

        tracked_keys = {f"{namespace}/{name}" for namespace, name in deployments}
        baseline.operators = {name: status for name, status in baseline.operators.items() if name in operators}
        baseline.deployments = {key: status for key, status in baseline.deployments.items() if key in tracked_keys}

        result = poller.wait_for_convergence(baseline)
        if not result.converged:
            self.printer.print_warning("Rollout still in progress - verify cluster operators manually")
        return result

    def process_certificate_patch(self, context: RunContext) -> None:
        """
        Run the full certificate patch workflow.

        Args:
            context: RunContext holding CertToolConfig; its state counter tracks
                     how far cluster mutation got
        """
        current_step = 1
        try:
            current_step = self._resolve_tools(context, current_step)
            oc, az = self._bind_executors(context)
            current_step = self._update_hosts(context, current_step)
            current_step = self._login(context, oc, az, current_step)
            cert_files, current_step = self._prepare_certificates(context, az, current_step)
            poller, baseline, applied, current_step = self._apply_patches(context, oc, cert_files, current_step)
            context.details["convergence"] = self._wait_for_rollout(poller, baseline, applied, current_step)
        finally:
            self._cleanup_hosts()

        handle_successful_completion(context, self.printer, self.format_runtime, "Certificate patch")


class InfraMoveOrchestrator:
    """Orchestrates moving platform workloads onto infra nodes"""

    def __init__(self, **dependencies: Any) -> None:
        self.printer = dependencies["printer"]
        self.execute_oc_command = dependencies["execute_oc_command"]
        self.format_runtime = dependencies["format_runtime"]
        self.locate_tools = dependencies["locate_tools"]
        self.require_tools = dependencies["require_tools"]
        self.oc_login = dependencies["oc_login"]
        self.InfraNodeMover = dependencies["InfraNodeMover"]

    def process_infra_move(self, context: RunContext) -> None:
        config = context.config
        tools = self.locate_tools(context.work_dir, require_az=False, printer=self.printer)
        context.tools = self.require_tools(tools, require_az=False)
        oc = functools.partial(self.execute_oc_command, oc_path=context.tools.oc)

        if config.wants_login:
            self.oc_login(config.api_server, config.username, config.password, oc, printer=self.printer)
        else:
            self.printer.print_info("ARO_API_URL not provided - using the current oc context")

        mover = self.InfraNodeMover(config, oc, printer=self.printer)
        mover.run(context)
        handle_successful_completion(context, self.printer, self.format_runtime, "Infra node move")


def handle_successful_completion(context: RunContext, printer: Any, format_runtime: Callable, operation: str) -> None:
    """Summarize applied and skipped changes with the total runtime"""
    total_runtime = format_runtime(context.start_time, time.time())
    printer.print_header(f"{operation} completed successfully!")
    for name in context.applied:
        printer.print_success(f"Applied: {name}")
    for name in context.skipped:
        printer.print_info(f"Skipped (already present): {name}")
    printer.print_info(f"Total runtime: {total_runtime}")


def run_tool(workflow: Callable[[RunContext], None], printer: Any, usage_text: str = "") -> int:
    """
    Run a workflow and translate its outcome into a process exit code.

    Mirrors a shell ERR/EXIT trap: every abort prints a message, and when the
    cluster was already being changed a degraded-state warning is added.

    Args:
        workflow: Callable receiving the RunContext; fills context.config itself
        printer: PrintManager instance for output
        usage_text: Printed when the configuration could not be loaded

    Returns:
        int: 0 success, 1 external/input error, 2 script error
    """
    context = RunContext(config=None)
    try:
        workflow(context)
    except AroToolError as e:
        if isinstance(e, ConfigurationError) and context.config is None and usage_text:
            print(usage_text)
        return _report_failure(context, printer, str(e), e.exit_code)
    except KeyboardInterrupt:
        return _report_failure(context, printer, "Interrupted - Unexpected exit occurred!", 2)
    except Exception as e:
        printer.print_error(f"{type(e).__name__}: {e}")
        return _report_failure(context, printer, "Unexpected exit occurred!", 2)

    printer.print_info("Command completed successfully")
    return 0


def _report_failure(context: RunContext, printer: Any, message: str, exit_code: int) -> int:
    if context.state != STATE_NOT_STARTED:
        printer.print_warning("Operation failed to complete successfully - Cluster can be in a degraded state")
    printer.print_error(f"ERROR: {message}")
    return exit_code


def build_dependencies(**overrides: Any) -> Dict[str, Any]:
    """Default dependency set for both orchestrators; overrides replace single entries"""
    dependencies = {
        "printer": default_printer,
        "execute_oc_command": execute_oc_command,
        "execute_az_command": execute_az_command,
        "format_runtime": format_runtime,
        "locate_tools": locate_tools,
        "require_tools": require_tools,
        "ToolInstaller": ToolInstaller,
        "HostsFileManager": HostsFileManager,
        "PatchApplier": PatchApplier,
        "ConvergencePoller": ConvergencePoller,
        "InfraNodeMover": InfraNodeMover,
        "cluster_host_entries": cluster_host_entries,
        "load_certificate_bundle": load_certificate_bundle,
        "oc_login": oc_login,
        "az_login": az_login,
    }
    dependencies.update(overrides)
    return dependencies
