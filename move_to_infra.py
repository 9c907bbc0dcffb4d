#!/usr/bin/env python3
"""
ARO Infra Node Mover

Moves the default router, the image registry and the monitoring stack of an
ARO cluster onto infrastructure nodes, following
https://access.redhat.com/solutions/5034771

Infra nodes are expected to carry:
    label:  node-role.kubernetes.io/infra: ""
    taints: infra=reserved:NoSchedule, infra=reserved:NoExecute
"""

import sys

from aro_patcher import (
    ArgumentsParser,
    InfraMoveOrchestrator,
    InfraMoverConfig,
    build_dependencies,
    printer,
    run_tool,
    set_debug_mode,
)
from aro_patcher.arguments_parser import INFRA_MOVER_USAGE


def run_infra_mover(context, argv=None, environ=None, dependencies=None):
    """Parse arguments and configuration, then move platform workloads onto infra nodes."""
    ArgumentsParser.parse_arguments(
        argv, description="Move ARO platform workloads onto infra nodes", usage_text=INFRA_MOVER_USAGE
    )

    config = InfraMoverConfig.from_env(environ)
    set_debug_mode(config.debug)
    context.config = config

    printer.print_header("ARO Infra Node Mover")
    orchestrator = InfraMoveOrchestrator(**build_dependencies(**(dependencies or {})))
    orchestrator.process_infra_move(context)


def main(argv=None):
    return run_tool(lambda context: run_infra_mover(context, argv), printer, usage_text=INFRA_MOVER_USAGE)


if __name__ == "__main__":
    sys.exit(main())
