#!/usr/bin/env python3
"""Convergence Poller module: bounded polling of rollouts after a patch."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import PodReadinessError
from .utilities import count_jsonpath_items


@dataclass(frozen=True)
class DeploymentStatus:
    generation: int = 0
    observed_generation: int = 0
    replicas: int = 0
    updated_replicas: int = 0
    available_replicas: int = 0

    @property
    def is_rolled_out(self) -> bool:
        return (
            self.observed_generation >= self.generation
            and self.updated_replicas == self.replicas
            and self.available_replicas == self.replicas
        )

    @classmethod
    def from_resource(cls, data: Dict[str, Any]) -> "DeploymentStatus":
        status = data.get("status", {})
        return cls(
            generation=data.get("metadata", {}).get("generation", 0),
            observed_generation=status.get("observedGeneration", 0),
            replicas=data.get("spec", {}).get("replicas", status.get("replicas", 0)),
            updated_replicas=status.get("updatedReplicas", 0),
            available_replicas=status.get("availableReplicas", 0),
        )


@dataclass(frozen=True)
class OperatorStatus:
    available: bool = False
    progressing: bool = False
    degraded: bool = False
    progressing_since: str = ""

    @property
    def is_stable(self) -> bool:
        return self.available and not self.progressing and not self.degraded

    @classmethod
    def from_resource(cls, data: Dict[str, Any]) -> "OperatorStatus":
        conditions = {c.get("type"): c for c in data.get("status", {}).get("conditions", [])}

        def _flag(condition_type):
            return conditions.get(condition_type, {}).get("status") == "True"

        return cls(
            available=_flag("Available"),
            progressing=_flag("Progressing"),
            degraded=_flag("Degraded"),
            progressing_since=conditions.get("Progressing", {}).get("lastTransitionTime", ""),
        )


@dataclass
class ConvergenceSnapshot:
    """Observed deployment counters and operator conditions at one point in time"""

    deployments: Dict[str, Optional[DeploymentStatus]] = field(default_factory=dict)
    operators: Dict[str, Optional[OperatorStatus]] = field(default_factory=dict)


@dataclass
class ConvergenceResult:
    converged: bool
    iterations: int
    pending: List[str] = field(default_factory=list)


def deployment_key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class ConvergencePoller:
    """
    Polls operators and deployments touched by a patch until they settle.

    A target counts as settled once it is stable again and has visibly reacted
    to the patch compared to the baseline snapshot (new deployment generation,
    or an operator that went through Progressing). Polling stops after
    max_iterations whatever the outcome.
    """

    def __init__(
        self,
        execute_oc_command: Callable,
        printer: Any = None,
        interval: float = 30,
        max_iterations: int = 40,
    ) -> None:
        self.execute_oc_command = execute_oc_command
        self.printer = printer
        self.interval = interval
        self.max_iterations = max_iterations

    def _get_deployment(self, namespace: str, name: str) -> Optional[DeploymentStatus]:
        data = self.execute_oc_command(
            ["get", "deployment", name, "-n", namespace, "-o", "json"], json_output=True, printer=self.printer
        )
        return DeploymentStatus.from_resource(data) if data else None

    def _get_operator(self, name: str) -> Optional[OperatorStatus]:
        data = self.execute_oc_command(
            ["get", "clusteroperator", name, "-o", "json"], json_output=True, printer=self.printer
        )
        return OperatorStatus.from_resource(data) if data else None

    def capture(
        self, operators: Iterable[str] = (), deployments: Iterable[Tuple[str, str]] = ()
    ) -> ConvergenceSnapshot:
        """Take a snapshot of the given cluster operators and (namespace, name) deployments"""
        snapshot = ConvergenceSnapshot()
        for name in operators:
            snapshot.operators[name] = self._get_operator(name)
        for namespace, name in deployments:
            snapshot.deployments[deployment_key(namespace, name)] = self._get_deployment(namespace, name)
        return snapshot

    def pending_targets(
        self,
        baseline: ConvergenceSnapshot,
        current: ConvergenceSnapshot,
        seen_progressing: Iterable[str] = (),
        require_change: bool = True,
    ) -> List[str]:
        """Names of tracked targets that have not settled yet"""
        seen_progressing = set(seen_progressing)
        pending = []

        for name, status in current.operators.items():
            before = baseline.operators.get(name)
            reacted = (
                not require_change
                or name in seen_progressing
                or before is None
                or (status is not None and status.progressing_since != before.progressing_since)
            )
            if status is None or not status.is_stable or not reacted:
                pending.append(f"clusteroperator/{name}")

        for key, status in current.deployments.items():
            before = baseline.deployments.get(key)
            reacted = (
                not require_change
                or before is None
                or (status is not None and status.generation > before.generation)
            )
            if status is None or not status.is_rolled_out or not reacted:
                pending.append(f"deployment/{key}")

        return pending

    def wait_for_convergence(self, baseline: ConvergenceSnapshot, require_change: bool = True) -> ConvergenceResult:
        """
        Re-poll the targets of baseline every interval, at most max_iterations times.

        Args:
            baseline: Snapshot captured before the patch
            require_change: Only count a target as settled once it differs from baseline

        Returns:
            ConvergenceResult: converged=False when the iteration bound was hit
        """
        operators = list(baseline.operators)
        deployments = [tuple(key.split("/", 1)) for key in baseline.deployments]
        seen_progressing = set()
        pending: List[str] = []

        for iteration in range(1, self.max_iterations + 1):
            current = self.capture(operators, deployments)
            seen_progressing.update(
                name for name, status in current.operators.items() if status is not None and status.progressing
            )
            pending = self.pending_targets(baseline, current, seen_progressing, require_change)

            if not pending:
                if self.printer:
                    self.printer.print_success(f"All tracked components settled after {iteration} check(s)")
                return ConvergenceResult(converged=True, iterations=iteration)

            if self.printer:
                self.printer.print_info(
                    f"[{iteration}/{self.max_iterations}] Waiting for: {', '.join(pending)}"
                )
            if iteration < self.max_iterations:
                time.sleep(self.interval)

        if self.printer:
            self.printer.print_warning(
                f"Components still settling after {self.max_iterations} checks: {', '.join(pending)}"
            )
        return ConvergenceResult(converged=False, iterations=self.max_iterations, pending=pending)


def wait_for_pods(
    label: str,
    namespace: str,
    expected_pods: int,
    execute_oc_command: Callable,
    printer: Any = None,
    attempts: int = 10,
    interval: float = 10,
) -> int:
    """
    Wait until exactly expected_pods pods matching label are Running.

    Returns:
        int: Number of running pods found

    Raises:
        PodReadinessError: If the count is not reached within attempts checks
    """
    if printer:
        printer.print_info(f"Checking pod labels {label} in namespace {namespace}...")

    running = 0
    for attempt in range(1, attempts + 1):
        output = execute_oc_command(
            [
                "get",
                "pod",
                "-l",
                label,
                "--field-selector=status.phase==Running",
                "-o",
                "jsonpath={.items[*].metadata.name}",
                "-n",
                namespace,
            ],
            printer=printer,
        )
        running = count_jsonpath_items(output)
        if running == expected_pods:
            if printer:
                printer.print_success(f"Found {running} expected pod(s) running for {label}")
            return running

        if attempt < attempts:
            if printer:
                printer.print_info(f"{running}/{expected_pods} pods running, sleep {interval}s and check again")
            time.sleep(interval)

    raise PodReadinessError(
        f"Expected {expected_pods} running pod(s) for {label} in {namespace}, found {running}"
    )
