#!/usr/bin/env python3
"""Configuration module: environment variables resolved once into run settings."""

import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError

TRUE_VALUES = ("1", "yes", "true")

CERT_TOOL_REQUIRED = (
    "ARO_API_IP",
    "ARO_API_URL",
    "ARO_INGRESS_IP",
    "ARO_USERNAME",
    "ARO_PASSWORD",
)

AZURE_VARIABLES = (
    "AZ_CLIENT_ID",
    "AZ_CLIENT_SECRET",
    "AZ_TENANT_ID",
    "AZ_VAULT_NAME",
    "AZ_CERT_NAME",
)

# Linear progress markers, reported when a run aborts part way
STATE_NOT_STARTED = 0
STATE_ROOT_CA = 1
STATE_API_SERVER = 2
STATE_INGRESS = 3
STATE_MGMT_INGRESS = 4


def parse_flag(value: Optional[str], default: bool = False) -> bool:
    """Interpret 1/yes/true (any case) as enabled; unset falls back to default."""
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in TRUE_VALUES


def parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def normalize_host(url: str) -> str:
    """Strip scheme, port and path from an API/ingress URL, leaving the host name."""
    host = url.strip()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0]
    return host.split(":", 1)[0]


def derive_ingress_host(api_host: str) -> str:
    """Build apps.<cluster domain> from api.<cluster domain>"""
    if "." not in api_host:
        raise ConfigurationError(f"Cannot derive ARO_INGRESS_URL from ARO_API_URL: {api_host}")
    return f"apps.{api_host.split('.', 1)[1]}"


def _require(environ: Mapping[str, str], name: str) -> str:
    value = environ.get(name, "")
    if not value:
        raise ConfigurationError(f"{name} is not provided")
    return value


@dataclass(frozen=True)
class AzureSettings:
    client_id: str
    client_secret: str
    tenant_id: str
    vault_name: str
    cert_name: str
    ca_cert_name: Optional[str] = None


@dataclass(frozen=True)
class CertToolConfig:
    """Settings of the certificate patcher, read from the environment."""

    api_ip: str
    api_host: str
    ingress_ip: str
    ingress_host: str
    username: str
    password: str
    azure: Optional[AzureSettings]
    tls_key: Optional[str]
    tls_cert: Optional[str]
    tls_chain: Optional[str]
    tls_ca: Optional[str]
    ocp_version: str = "4.7"
    force: bool = False
    ca_configmap_name: str = "custom-ca"
    api_secret_name: str = "api-certs"
    ingress_secret_name: str = "ingress-certs"
    mgmt_ingress_controller: Optional[str] = None
    mgmt_ingress_secret_name: str = "mgmt-ingress-certs"
    update_hosts: bool = True
    hosts_file: str = "/etc/hosts"
    install_tools: bool = True
    poll_interval: int = 30
    poll_iterations: int = 40
    work_dir: str = "."
    debug: bool = False

    @property
    def api_server(self) -> str:
        return f"https://{self.api_host}:6443"

    @property
    def uses_key_vault(self) -> bool:
        return not (self.tls_key and self.tls_cert)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, printer: Any = None) -> "CertToolConfig":
        """
        Build the certificate patcher settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            printer: Printer instance for derived-value notices

        Returns:
            CertToolConfig: Validated settings

        Raises:
            ConfigurationError: If a required variable is missing or malformed
        """
        if environ is None:
            environ = os.environ

        for name in CERT_TOOL_REQUIRED:
            _require(environ, name)

        api_host = normalize_host(environ["ARO_API_URL"])
        if environ.get("ARO_INGRESS_URL"):
            ingress_host = normalize_host(environ["ARO_INGRESS_URL"])
        else:
            ingress_host = derive_ingress_host(api_host)
            if printer:
                printer.print_info(f"ARO_INGRESS_URL is not provided - built from ARO_API_URL: {ingress_host}")

        tls_key = environ.get("TLS_KEY") or None
        tls_cert = environ.get("TLS_CERT") or None
        if bool(tls_key) != bool(tls_cert):
            raise ConfigurationError("TLS_KEY and TLS_CERT must be provided together")

        azure = None
        if not tls_key:
            # Without inline PEM material the certificate has to come from the Key Vault
            for name in AZURE_VARIABLES:
                _require(environ, name)
        if all(environ.get(name) for name in AZURE_VARIABLES):
            azure = AzureSettings(
                client_id=environ["AZ_CLIENT_ID"],
                client_secret=environ["AZ_CLIENT_SECRET"],
                tenant_id=environ["AZ_TENANT_ID"],
                vault_name=environ["AZ_VAULT_NAME"],
                cert_name=environ["AZ_CERT_NAME"],
                ca_cert_name=environ.get("AZ_CA_CERT_NAME") or None,
            )

        return cls(
            api_ip=environ["ARO_API_IP"],
            api_host=api_host,
            ingress_ip=environ["ARO_INGRESS_IP"],
            ingress_host=ingress_host,
            username=environ["ARO_USERNAME"],
            password=environ["ARO_PASSWORD"],
            azure=azure,
            tls_key=tls_key,
            tls_cert=tls_cert,
            tls_chain=environ.get("TLS_CHAIN") or None,
            tls_ca=environ.get("TLS_CA") or None,
            ocp_version=environ.get("OCP_VERSION") or "4.7",
            force=parse_flag(environ.get("FORCE")),
            ca_configmap_name=environ.get("CA_CONFIGMAP_NAME") or "custom-ca",
            api_secret_name=environ.get("API_SECRET_NAME") or "api-certs",
            ingress_secret_name=environ.get("INGRESS_SECRET_NAME") or "ingress-certs",
            mgmt_ingress_controller=environ.get("MGMT_INGRESS_CONTROLLER") or None,
            mgmt_ingress_secret_name=environ.get("MGMT_INGRESS_SECRET_NAME") or "mgmt-ingress-certs",
            update_hosts=parse_flag(environ.get("UPDATE_HOSTS"), default=True),
            hosts_file=environ.get("HOSTS_FILE") or "/etc/hosts",
            install_tools=parse_flag(environ.get("INSTALL_TOOLS"), default=True),
            poll_interval=parse_int(environ, "POLL_INTERVAL", 30),
            poll_iterations=parse_int(environ, "POLL_ITERATIONS", 40),
            work_dir=environ.get("WORK_DIR") or environ.get("HOME") or ".",
            debug=parse_flag(environ.get("DEBUG")),
        )


@dataclass(frozen=True)
class InfraMoverConfig:
    """Settings of the infra-node mover, read from the environment."""

    infra_label: str = "node-role.kubernetes.io/infra"
    taint_key: str = "infra"
    taint_value: str = "reserved"
    min_infra_nodes: int = 3
    router_replicas: int = 3
    registry_replicas: int = 2
    pod_check_attempts: int = 10
    pod_check_interval: int = 10
    api_host: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    force: bool = False
    work_dir: str = "."
    debug: bool = False

    @property
    def api_server(self) -> Optional[str]:
        if not self.api_host:
            return None
        return f"https://{self.api_host}:6443"

    @property
    def wants_login(self) -> bool:
        return bool(self.api_host and self.username and self.password)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "InfraMoverConfig":
        if environ is None:
            environ = os.environ

        login_values = [environ.get(name) for name in ("ARO_API_URL", "ARO_USERNAME", "ARO_PASSWORD")]
        if any(login_values) and not all(login_values):
            raise ConfigurationError("ARO_API_URL, ARO_USERNAME and ARO_PASSWORD must be provided together")

        return cls(
            infra_label=environ.get("INFRA_NODE_LABEL") or "node-role.kubernetes.io/infra",
            taint_key=environ.get("INFRA_TAINT_KEY") or "infra",
            taint_value=environ.get("INFRA_TAINT_VALUE") or "reserved",
            min_infra_nodes=parse_int(environ, "MIN_INFRA_NODES", 3),
            router_replicas=parse_int(environ, "ROUTER_REPLICAS", 3),
            registry_replicas=parse_int(environ, "REGISTRY_REPLICAS", 2),
            pod_check_attempts=parse_int(environ, "POD_CHECK_ATTEMPTS", 10),
            pod_check_interval=parse_int(environ, "POD_CHECK_INTERVAL", 10),
            api_host=normalize_host(environ["ARO_API_URL"]) if environ.get("ARO_API_URL") else None,
            username=environ.get("ARO_USERNAME") or None,
            password=environ.get("ARO_PASSWORD") or None,
            force=parse_flag(environ.get("FORCE")),
            work_dir=environ.get("WORK_DIR") or environ.get("HOME") or ".",
            debug=parse_flag(environ.get("DEBUG")),
        )


@dataclass
class RunContext:
    """Mutable per-run state threaded through every step."""

    config: Any
    tools: Any = None
    state: int = STATE_NOT_STARTED
    start_time: float = field(default_factory=time.time)
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def force(self) -> bool:
        return bool(getattr(self.config, "force", False))

    @property
    def work_dir(self) -> str:
        return getattr(self.config, "work_dir", ".")

    def advance(self, state: int) -> None:
        """Record that the run is about to mutate the cluster at this stage."""
        self.state = state

    def record(self, target_name: str, applied: bool) -> None:
        (self.applied if applied else self.skipped).append(target_name)
