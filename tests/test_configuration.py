#!/usr/bin/env python3
"""
Pytest tests for environment driven configuration.
"""

import os
import sys

import pytest

# Add parent directory to path for module imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from aro_patcher.configuration import (  # noqa: E402
    STATE_API_SERVER,
    STATE_NOT_STARTED,
    CertToolConfig,
    InfraMoverConfig,
    RunContext,
    derive_ingress_host,
    normalize_host,
    parse_flag,
    parse_int,
)
from aro_patcher.errors import ConfigurationError  # noqa: E402


class TestParsing:
    @pytest.mark.parametrize("value", ["1", "yes", "true", "TRUE", "Yes", " true "])
    def test_truthy_flags(self, value):
        assert parse_flag(value) is True

    @pytest.mark.parametrize("value", ["0", "no", "false", "y", "on", "enabled"])
    def test_other_values_are_false(self, value):
        assert parse_flag(value) is False

    def test_unset_flag_uses_default(self):
        assert parse_flag(None) is False
        assert parse_flag("", default=True) is True

    def test_parse_int(self):
        assert parse_int({"N": "5"}, "N", 1) == 5
        assert parse_int({}, "N", 7) == 7

    @pytest.mark.parametrize("raw", ["abc", "-1", "1.5"])
    def test_parse_int_rejects_invalid(self, raw):
        with pytest.raises(ConfigurationError, match="N"):
            parse_int({"N": raw}, "N", 1)

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("api.cluster.example.com", "api.cluster.example.com"),
            ("https://api.cluster.example.com:6443", "api.cluster.example.com"),
            ("https://api.cluster.example.com:6443/", "api.cluster.example.com"),
        ],
    )
    def test_normalize_host(self, url, expected):
        assert normalize_host(url) == expected

    def test_derive_ingress_host(self):
        assert derive_ingress_host("api.cluster.example.com") == "apps.cluster.example.com"

    def test_derive_ingress_host_requires_domain(self):
        with pytest.raises(ConfigurationError):
            derive_ingress_host("localhost")


class TestCertToolConfig:
    """Test certificate patcher settings"""

    def test_inline_pem_configuration(self, cert_tool_env, mock_printer):
        config = CertToolConfig.from_env(cert_tool_env, printer=mock_printer)

        assert config.api_host == "api.mycluster.example.com"
        assert config.ingress_host == "apps.mycluster.example.com"
        assert config.api_server == "https://api.mycluster.example.com:6443"
        assert config.uses_key_vault is False
        assert config.azure is None
        assert config.force is False
        assert config.poll_interval == 0
        assert config.poll_iterations == 3
        mock_printer.print_info.assert_called_once()

    def test_defaults(self, cert_tool_env):
        config = CertToolConfig.from_env(cert_tool_env)

        assert config.ocp_version == "4.7"
        assert config.ca_configmap_name == "custom-ca"
        assert config.api_secret_name == "api-certs"
        assert config.ingress_secret_name == "ingress-certs"
        assert config.mgmt_ingress_controller is None
        assert config.update_hosts is True
        assert config.install_tools is True

    def test_explicit_ingress_url(self, cert_tool_env):
        cert_tool_env["ARO_INGRESS_URL"] = "https://apps.other.example.com"

        assert CertToolConfig.from_env(cert_tool_env).ingress_host == "apps.other.example.com"

    @pytest.mark.parametrize("name", ["ARO_API_IP", "ARO_API_URL", "ARO_INGRESS_IP", "ARO_USERNAME", "ARO_PASSWORD"])
    def test_missing_required_variable(self, cert_tool_env, name):
        del cert_tool_env[name]

        with pytest.raises(ConfigurationError, match=f"{name} is not provided"):
            CertToolConfig.from_env(cert_tool_env)

    def test_key_without_certificate_is_rejected(self, cert_tool_env):
        del cert_tool_env["TLS_CERT"]

        with pytest.raises(ConfigurationError, match="together"):
            CertToolConfig.from_env(cert_tool_env)

    def test_key_vault_requires_azure_variables(self, cert_tool_env, azure_env):
        del cert_tool_env["TLS_KEY"]
        del cert_tool_env["TLS_CERT"]
        cert_tool_env.update(azure_env)
        del cert_tool_env["AZ_VAULT_NAME"]

        with pytest.raises(ConfigurationError, match="AZ_VAULT_NAME"):
            CertToolConfig.from_env(cert_tool_env)

    def test_key_vault_configuration(self, cert_tool_env, azure_env):
        del cert_tool_env["TLS_KEY"]
        del cert_tool_env["TLS_CERT"]
        cert_tool_env.update(azure_env)
        cert_tool_env["AZ_CA_CERT_NAME"] = "root-ca"

        config = CertToolConfig.from_env(cert_tool_env)

        assert config.uses_key_vault is True
        assert config.azure.vault_name == "my-vault"
        assert config.azure.cert_name == "aro-wildcard"
        assert config.azure.ca_cert_name == "root-ca"

    def test_force_and_management_ingress(self, cert_tool_env):
        cert_tool_env["FORCE"] = "Yes"
        cert_tool_env["MGMT_INGRESS_CONTROLLER"] = "mgmt"

        config = CertToolConfig.from_env(cert_tool_env)

        assert config.force is True
        assert config.mgmt_ingress_controller == "mgmt"

    def test_invalid_poll_interval(self, cert_tool_env):
        cert_tool_env["POLL_INTERVAL"] = "soon"

        with pytest.raises(ConfigurationError, match="POLL_INTERVAL"):
            CertToolConfig.from_env(cert_tool_env)


class TestInfraMoverConfig:
    def test_defaults(self):
        config = InfraMoverConfig.from_env({})

        assert config.infra_label == "node-role.kubernetes.io/infra"
        assert config.taint_key == "infra"
        assert config.taint_value == "reserved"
        assert config.min_infra_nodes == 3
        assert config.router_replicas == 3
        assert config.wants_login is False
        assert config.api_server is None

    def test_login_settings(self):
        config = InfraMoverConfig.from_env(
            {"ARO_API_URL": "api.c.example.com", "ARO_USERNAME": "kubeadmin", "ARO_PASSWORD": "pw"}
        )

        assert config.wants_login is True
        assert config.api_server == "https://api.c.example.com:6443"

    def test_partial_login_settings_are_rejected(self):
        with pytest.raises(ConfigurationError, match="together"):
            InfraMoverConfig.from_env({"ARO_API_URL": "api.c.example.com"})


class TestRunContext:
    def test_state_and_records(self, run_context_factory):
        context = run_context_factory(force=True)

        assert context.state == STATE_NOT_STARTED
        assert context.force is True

        context.advance(STATE_API_SERVER)
        context.record("API server certificate", applied=True)
        context.record("root CA", applied=False)

        assert context.state == STATE_API_SERVER
        assert context.applied == ["API server certificate"]
        assert context.skipped == ["root CA"]

    def test_context_without_config(self):
        context = RunContext(config=None)

        assert context.force is False
        assert context.work_dir == "."
