#!/usr/bin/env python3
"""Infra Mover module: moves router, registry and monitoring onto infra nodes."""

import json
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from .convergence_poller import wait_for_pods
from .errors import CommandError, ConfigurationError
from .print_manager import printer as default_printer
from .patch_applier import apply_manifest, apply_merge_patch, get_jsonpath_value
from .utilities import count_jsonpath_items

INGRESS_OPERATOR_NAMESPACE = "openshift-ingress-operator"
MONITORING_NAMESPACE = "openshift-monitoring"
MONITORING_CONFIGMAP = "cluster-monitoring-config"

MONITORING_COMPONENTS = (
    "alertmanagerMain",
    "prometheusK8s",
    "prometheusOperator",
    "grafana",
    "k8sPrometheusAdapter",
    "kubeStateMetrics",
    "telemeterClient",
    "openshiftStateMetrics",
)


def infra_tolerations(taint_key: str, taint_value: str) -> List[Dict[str, str]]:
    return [
        {"effect": "NoSchedule", "key": taint_key, "value": taint_value},
        {"effect": "NoExecute", "key": taint_key, "value": taint_value},
    ]


def monitoring_expectations() -> List[Tuple[str, int]]:
    """(pod label, running pods) pairs checked after the monitoring stack moves"""
    return [
        ("app=alertmanager", 3),
        ("app=grafana", 1),
        ("app.kubernetes.io/name=kube-state-metrics", 1),
        ("k8s-app=openshift-state-metrics", 1),
        ("name=prometheus-adapter", 2),
        ("app=prometheus", 2),
    ]


class InfraNodeMover:
    """Relabels and tolerates platform workloads onto infrastructure nodes"""

    def __init__(self, config: Any, execute_oc_command: Callable, printer: Any = None) -> None:
        """
        Initialize InfraNodeMover.

        Args:
            config: InfraMoverConfig
            execute_oc_command: Bound oc executor
            printer: PrintManager instance for output
        """
        self.config = config
        self.execute_oc_command = execute_oc_command
        self.printer = printer if printer is not None else default_printer

    @property
    def node_selector(self) -> Dict[str, str]:
        return {self.config.infra_label: ""}

    @property
    def tolerations(self) -> List[Dict[str, str]]:
        return infra_tolerations(self.config.taint_key, self.config.taint_value)

    def _wait(self, label: str, namespace: str, expected: int) -> int:
        return wait_for_pods(
            label,
            namespace,
            expected,
            self.execute_oc_command,
            printer=self.printer,
            attempts=self.config.pod_check_attempts,
            interval=self.config.pod_check_interval,
        )

    def _already_placed(self, resource: str, jsonpath: str, expected: Any, namespace: Optional[str] = None) -> bool:
        """True when the resource field already equals expected and FORCE is not set"""
        if self.config.force:
            return False
        current = get_jsonpath_value(resource, jsonpath, self.execute_oc_command, namespace=namespace, printer=self.printer)
        if not current:
            return False
        try:
            return json.loads(current) == expected
        except ValueError:
            return False

    def check_infra_nodes(self) -> int:
        """
        Count infra nodes and abort when fewer than the configured minimum are available.

        Raises:
            CommandError: If nodes cannot be listed
            ConfigurationError: If not enough infra nodes are available
        """
        output = self.execute_oc_command(
            ["get", "nodes", "-l", self.config.infra_label, "-o", "jsonpath={.items[*].metadata.name}"],
            printer=self.printer,
        )
        if output is None:
            raise CommandError("Failed to list infra nodes")

        infra_nodes = count_jsonpath_items(output)
        if infra_nodes < self.config.min_infra_nodes:
            raise ConfigurationError(
                f"Required at least {self.config.min_infra_nodes} infra nodes to be available, found {infra_nodes}"
            )

        self.printer.print_success(f"Available infra nodes: {infra_nodes}")
        return infra_nodes

    def move_router(self) -> bool:
        """Move the default router onto infra nodes and scale it; returns False if nothing had to change"""
        self.printer.print_info("Moving default Router")
        node_placement = {
            "nodeSelector": {"matchLabels": self.node_selector},
            "tolerations": self.tolerations,
        }
        desired = (
            ("{.spec.nodePlacement}", {"nodePlacement": node_placement}, node_placement),
            ("{.spec.replicas}", {"replicas": self.config.router_replicas}, self.config.router_replicas),
        )

        changed = False
        for jsonpath, spec, expected in desired:
            if self._already_placed(
                "ingresscontroller/default", jsonpath, expected, namespace=INGRESS_OPERATOR_NAMESPACE
            ):
                self.printer.print_info(f"Default Router {jsonpath} already set - skipping patch")
                continue
            apply_merge_patch(
                "ingresscontroller/default",
                {"spec": spec},
                self.execute_oc_command,
                namespace=INGRESS_OPERATOR_NAMESPACE,
                printer=self.printer,
            )
            changed = True

        self._wait(
            "ingresscontroller.operator.openshift.io/deployment-ingresscontroller=default",
            "openshift-ingress",
            self.config.router_replicas,
        )
        self.printer.print_success("Default Router moved")
        return changed

    def move_registry(self) -> bool:
        """Move the image registry onto infra nodes; returns False if already placed"""
        self.printer.print_info("Moving Registry")
        resource = "configs.imageregistry.operator.openshift.io/cluster"

        placed = self._already_placed(resource, "{.spec.nodeSelector}", self.node_selector)
        if placed:
            self.printer.print_info("Registry already placed on infra nodes - skipping patch")
        else:
            apply_merge_patch(
                resource,
                {"spec": {"nodeSelector": self.node_selector, "tolerations": self.tolerations}},
                self.execute_oc_command,
                printer=self.printer,
            )

        self._wait("docker-registry=default", "openshift-image-registry", self.config.registry_replicas)
        self.printer.print_success("Default Registry moved")
        return not placed

    def build_monitoring_configmap(self) -> Dict[str, Any]:
        """cluster-monitoring-config placing every monitoring component on infra nodes"""
        # Fresh dicts per component so the YAML carries no anchors/aliases
        config = {
            component: {"nodeSelector": self.node_selector, "tolerations": self.tolerations}
            for component in MONITORING_COMPONENTS
        }
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": MONITORING_CONFIGMAP, "namespace": MONITORING_NAMESPACE},
            "data": {"config.yaml": yaml.safe_dump(config, default_flow_style=False, sort_keys=False)},
        }

    def move_monitoring(self) -> None:
        """Apply the monitoring config map and wait for each component's pods"""
        self.printer.print_info("Moving Monitoring stack")
        manifest_path = os.path.join(self.config.work_dir, "cluster-monitoring-configmap.yaml")
        apply_manifest(self.build_monitoring_configmap(), manifest_path, self.execute_oc_command, printer=self.printer)

        for label, expected in monitoring_expectations():
            self._wait(label, MONITORING_NAMESPACE, expected)
        self.printer.print_success("Monitoring stack moved")

    def run(self, context: Any) -> None:
        """Execute the full move; each stage bumps the run state"""
        self.printer.print_info("Moving apps into infra nodes...")
        self.check_infra_nodes()

        context.advance(1)
        context.record("router", self.move_router())
        context.advance(2)
        context.record("registry", self.move_registry())
        context.advance(3)
        self.move_monitoring()
        context.record("monitoring", True)
