#!/usr/bin/env python3
"""
ARO Certificate Patcher

Replaces the API server and ingress serving certificates of an Azure Red Hat
OpenShift cluster, and registers the issuing root CA as a trusted CA.

ARO provisioning does not issue CA-signed certificates for the API and ingress
endpoints when a custom domain is used, and private clusters cannot be reached
from pipeline agents. This tool is meant to run in an Azure container instance
in the same subnet as the cluster:
    - installs the oc and az clients when missing
    - points the API and OAuth names at the private endpoint IPs
    - retrieves the certificate from Key Vault (or TLS_* variables)
    - logs in and applies the patches, skipping those already present

All parameters are passed through environment variables; see --help.
"""

import sys

from aro_patcher import (
    ArgumentsParser,
    CertificatePatchOrchestrator,
    CertToolConfig,
    build_dependencies,
    printer,
    run_tool,
    set_debug_mode,
)
from aro_patcher.arguments_parser import CERT_TOOL_USAGE


def run_certificate_patcher(context, argv=None, environ=None, dependencies=None):
    """
    Parse arguments and configuration, then patch the cluster certificates.

    Args:
        context: RunContext filled in by this function
        argv: Command-line arguments (defaults to sys.argv[1:])
        environ: Environment mapping (defaults to os.environ)
        dependencies: Optional orchestrator dependency overrides
    """
    ArgumentsParser.parse_arguments(
        argv, description="Replace ARO API and ingress certificates", usage_text=CERT_TOOL_USAGE
    )

    config = CertToolConfig.from_env(environ, printer=printer)
    set_debug_mode(config.debug)
    context.config = config

    printer.print_header("ARO Certificate Patch Tool")
    orchestrator = CertificatePatchOrchestrator(**build_dependencies(**(dependencies or {})))
    orchestrator.process_certificate_patch(context)


def main(argv=None):
    return run_tool(lambda context: run_certificate_patcher(context, argv), printer, usage_text=CERT_TOOL_USAGE)


if __name__ == "__main__":
    sys.exit(main())
