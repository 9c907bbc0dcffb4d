#!/usr/bin/env python3
"""Arguments Parser module for the ARO tools.

Both tools take their whole configuration from environment variables, so the
only supported flag is -h/--help.
"""

import argparse

from .errors import UsageError

CERT_TOOL_USAGE = """\
All parameters should be passed via environment variables:
    ARO_API_IP          - ARO API IP Address
    ARO_API_URL         - ARO API URL
    ARO_INGRESS_IP      - ARO Ingress IP Address
    ARO_INGRESS_URL     - ARO Ingress Name (Optional - built from ARO_API_URL)
    ARO_USERNAME        - ARO Cluster Admin User Name
    ARO_PASSWORD        - ARO Cluster Admin User Password

    AZ_CLIENT_ID        - Client ID to be used to access Azure API via CLI
    AZ_CLIENT_SECRET    - Client ID secret
    AZ_TENANT_ID        - Tenant ID to be used to access Azure API via CLI
    AZ_VAULT_NAME       - Name of the Azure Vault storing certificate
    AZ_CERT_NAME        - Name of the Certificate in the Vault
    AZ_CA_CERT_NAME     - Name of the root CA secret in the Vault (Optional)

    TLS_KEY / TLS_CERT  - PEM key and certificate (alternative to the Vault)
    TLS_CHAIN / TLS_CA  - PEM issuer chain and root CA (Optional)

    OCP_VERSION         - OCP cli version to use (Optional - 4.7 is default)
    FORCE               - Overwrite certs if already present (Optional)
    MGMT_INGRESS_CONTROLLER - Ingress controller serving management traffic (Optional)
    UPDATE_HOSTS        - Add API/OAuth names to the hosts file (Optional - true)
    INSTALL_TOOLS       - Install oc/az when missing (Optional - true)
    DEBUG               - Show executed commands (Optional)
"""

INFRA_MOVER_USAGE = """\
All parameters should be passed via environment variables:
    INFRA_NODE_LABEL    - Infra node label (Optional - node-role.kubernetes.io/infra)
    INFRA_TAINT_KEY     - Infra taint key (Optional - infra)
    INFRA_TAINT_VALUE   - Infra taint value (Optional - reserved)
    MIN_INFRA_NODES     - Minimum infra nodes required (Optional - 3)
    ROUTER_REPLICAS     - Default router replicas (Optional - 3)
    REGISTRY_REPLICAS   - Expected image registry pods (Optional - 2)
    POD_CHECK_ATTEMPTS  - Pod readiness checks per component (Optional - 10)
    POD_CHECK_INTERVAL  - Seconds between pod readiness checks (Optional - 10)
    ARO_API_URL / ARO_USERNAME / ARO_PASSWORD - Login (Optional - current context)
    FORCE               - Re-apply placement even if already present (Optional)
    DEBUG               - Show executed commands (Optional)
"""


class ArgumentsParser:
    """Handles command-line argument parsing for the environment-driven tools"""

    @staticmethod
    def build_parser(description, usage_text):
        """Create a parser whose help lists the supported environment variables"""
        return argparse.ArgumentParser(
            description=description,
            epilog=usage_text,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

    @staticmethod
    def parse_arguments(argv=None, description="", usage_text=CERT_TOOL_USAGE):
        """
        Parse command-line arguments, rejecting anything besides -h/--help.

        Args:
            argv: Argument list (defaults to sys.argv[1:])
            description: Tool description shown in help
            usage_text: Environment variable listing shown in help

        Returns:
            argparse.Namespace: Parsed (empty) arguments

        Raises:
            UsageError: If any extra parameter is provided
        """
        parser = ArgumentsParser.build_parser(description, usage_text)
        args, extra = parser.parse_known_args(argv)

        if extra:
            parser.print_help()
            raise UsageError(
                "Command line parameters will be ignored - all data should be passed via environment variables"
            )

        return args
