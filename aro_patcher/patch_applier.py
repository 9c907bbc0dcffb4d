#!/usr/bin/env python3
"""Patch Applier module: idempotent certificate patches of cluster resources."""

import base64
import json
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from .configuration import (
    STATE_API_SERVER,
    STATE_INGRESS,
    STATE_MGMT_INGRESS,
    STATE_ROOT_CA,
)
from .errors import CommandError
from .print_manager import printer as default_printer

OPENSHIFT_CONFIG_NAMESPACE = "openshift-config"
INGRESS_NAMESPACE = "openshift-ingress"
INGRESS_OPERATOR_NAMESPACE = "openshift-ingress-operator"


@dataclass(frozen=True)
class PatchTarget:
    """A cluster resource that should reference a certificate secret or config map"""

    label: str
    resource: str
    resource_namespace: Optional[str]
    presence_jsonpath: str
    object_kind: str
    object_name: str
    object_namespace: str
    patch: Dict[str, Any]
    state: int
    tracked_operators: Tuple[str, ...] = ()
    tracked_deployments: Tuple[Tuple[str, str], ...] = ()


@dataclass
class PatchResult:
    target: PatchTarget
    applied: bool
    previous: str = ""


def build_root_ca_target(configmap_name: str) -> PatchTarget:
    return PatchTarget(
        label="root CA",
        resource="proxy/cluster",
        resource_namespace=None,
        presence_jsonpath="{.spec.trustedCA.name}",
        object_kind="ConfigMap",
        object_name=configmap_name,
        object_namespace=OPENSHIFT_CONFIG_NAMESPACE,
        patch={"spec": {"trustedCA": {"name": configmap_name}}},
        state=STATE_ROOT_CA,
    )


def build_api_server_target(secret_name: str, api_host: str) -> PatchTarget:
    return PatchTarget(
        label="API server certificate",
        resource="apiserver/cluster",
        resource_namespace=None,
        presence_jsonpath="{.spec.servingCerts.namedCertificates[*].servingCertificate.name}",
        object_kind="Secret",
        object_name=secret_name,
        object_namespace=OPENSHIFT_CONFIG_NAMESPACE,
        patch={
            "spec": {
                "servingCerts": {
                    "namedCertificates": [{"names": [api_host], "servingCertificate": {"name": secret_name}}]
                }
            }
        },
        state=STATE_API_SERVER,
        tracked_operators=("kube-apiserver",),
    )


def build_ingress_target(secret_name: str, controller: str = "default", state: int = STATE_INGRESS) -> PatchTarget:
    label = "ingress certificate" if controller == "default" else f"management ingress certificate ({controller})"
    return PatchTarget(
        label=label,
        resource=f"ingresscontroller/{controller}",
        resource_namespace=INGRESS_OPERATOR_NAMESPACE,
        presence_jsonpath="{.spec.defaultCertificate.name}",
        object_kind="Secret",
        object_name=secret_name,
        object_namespace=INGRESS_NAMESPACE,
        patch={"spec": {"defaultCertificate": {"name": secret_name}}},
        state=state,
        tracked_operators=("ingress",),
        tracked_deployments=((INGRESS_NAMESPACE, f"router-{controller}"),),
    )


def build_certificate_targets(config: Any, include_root_ca: bool = True) -> List[PatchTarget]:
    """Patch targets in the order they are applied"""
    targets = []
    if include_root_ca:
        targets.append(build_root_ca_target(config.ca_configmap_name))
    targets.append(build_api_server_target(config.api_secret_name, config.api_host))
    targets.append(build_ingress_target(config.ingress_secret_name))
    if config.mgmt_ingress_controller:
        targets.append(
            build_ingress_target(config.mgmt_ingress_secret_name, config.mgmt_ingress_controller, STATE_MGMT_INGRESS)
        )
    return targets


def _read(path: str) -> str:
    with open(path, "r") as f:
        return f.read()


def build_object_manifest(target: PatchTarget, cert_files: Any) -> Dict[str, Any]:
    """
    Build the ConfigMap/Secret manifest the patched resource will reference.

    Args:
        target: Patch target describing the object
        cert_files: CertificateFiles with key/cert/ca paths

    Returns:
        dict: Kubernetes manifest
    """
    metadata = {"name": target.object_name, "namespace": target.object_namespace}

    if target.object_kind == "ConfigMap":
        if not cert_files.ca:
            raise CommandError(f"No root CA available for {target.label}")
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": metadata,
            "data": {"ca-bundle.crt": _read(cert_files.ca)},
        }

    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": metadata,
        "data": {
            "tls.crt": base64.b64encode(_read(cert_files.cert).encode()).decode(),
            "tls.key": base64.b64encode(_read(cert_files.key).encode()).decode(),
        },
    }


def _namespace_args(namespace: Optional[str]) -> List[str]:
    return ["-n", namespace] if namespace else []


def get_jsonpath_value(
    resource: str, jsonpath: str, execute_oc_command: Callable, namespace: Optional[str] = None, printer: Any = None
) -> str:
    """Read a field of a cluster resource; raises CommandError if the resource cannot be read"""
    output = execute_oc_command(
        ["get", resource, *_namespace_args(namespace), "-o", f"jsonpath={jsonpath}"], printer=printer
    )
    if output is None:
        raise CommandError(f"Failed to read {resource}")
    return output.strip()


def apply_merge_patch(
    resource: str, patch: Dict[str, Any], execute_oc_command: Callable, namespace: Optional[str] = None, printer: Any = None
) -> str:
    """Merge-patch a cluster resource; raises CommandError on failure"""
    output = execute_oc_command(
        ["patch", resource, *_namespace_args(namespace), "--type=merge", "-p", json.dumps(patch)], printer=printer
    )
    if output is None:
        raise CommandError(f"Failed to patch {resource}")
    return output


def apply_manifest(manifest: Dict[str, Any], path: str, execute_oc_command: Callable, printer: Any = None) -> str:
    """Write a manifest as YAML and 'oc apply' it; raises CommandError on failure"""
    # Secrets hold the private key: created 0600, never widened by umask or a previous file
    mode = 0o600 if manifest.get("kind") == "Secret" else 0o644
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    if manifest.get("kind") == "Secret":
        os.fchmod(fd, 0o600)
    with os.fdopen(fd, "w") as f:
        yaml.safe_dump(manifest, f, default_flow_style=False, sort_keys=False)

    output = execute_oc_command(["apply", "-f", path], printer=printer)
    if output is None:
        raise CommandError(f"Failed to apply {manifest['kind']} {manifest['metadata']['name']}")
    return output


class PatchApplier:
    """Applies certificate patches at most once per run unless forced"""

    def __init__(self, execute_oc_command: Callable, printer: Any = None, manifest_dir: str = ".") -> None:
        """
        Initialize PatchApplier.

        Args:
            execute_oc_command: Bound oc executor
            printer: PrintManager instance for output
            manifest_dir: Directory generated manifests are written to
        """
        self.execute_oc_command = execute_oc_command
        self.printer = printer if printer is not None else default_printer
        self.manifest_dir = manifest_dir
        self._applied_this_run: set = set()

    def is_present(self, target: PatchTarget) -> Tuple[bool, str]:
        """Check whether the owning resource already references the desired name"""
        current = get_jsonpath_value(
            target.resource,
            target.presence_jsonpath,
            self.execute_oc_command,
            namespace=target.resource_namespace,
            printer=self.printer,
        )
        return target.object_name in current.split(), current

    def apply(self, target: PatchTarget, cert_files: Any, context: Any) -> PatchResult:
        """
        Create the certificate object and point the owning resource at it.

        Args:
            target: What to patch
            cert_files: CertificateFiles with the validated material
            context: RunContext; its force flag and state counter are honored

        Returns:
            PatchResult: applied=False when the patch was skipped
        """
        key = (target.resource, target.resource_namespace, target.object_name)
        if key in self._applied_this_run:
            self.printer.print_info(f"{target.label} already patched during this run - skipping")
            context.record(target.label, applied=False)
            return PatchResult(target, applied=False)

        present, current = self.is_present(target)
        if present and not context.force:
            self.printer.print_info(
                f"{target.label} already references '{target.object_name}' in {target.resource} - skipping. "
                "Use FORCE=true environment variable to override"
            )
            context.record(target.label, applied=False)
            return PatchResult(target, applied=False, previous=current)

        if present:
            self.printer.print_warning(f"FORCE set - re-applying {target.label}")

        context.advance(target.state)
        self.printer.print_info(
            f"Creating {target.object_kind} {target.object_namespace}/{target.object_name} for {target.label}"
        )
        manifest = build_object_manifest(target, cert_files)
        manifest_path = os.path.join(self.manifest_dir, f"{target.object_namespace}-{target.object_name}.yaml")
        apply_manifest(manifest, manifest_path, self.execute_oc_command, printer=self.printer)

        self.printer.print_info(f"Patching {target.resource} to reference '{target.object_name}'")
        apply_merge_patch(
            target.resource,
            target.patch,
            self.execute_oc_command,
            namespace=target.resource_namespace,
            printer=self.printer,
        )

        self._applied_this_run.add(key)
        context.record(target.label, applied=True)
        self.printer.print_success(f"{target.label} patched")
        return PatchResult(target, applied=True, previous=current)
