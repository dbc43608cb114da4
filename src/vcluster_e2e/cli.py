"""
Command line entry point for the vcluster e2e harness.

Examples:
    NAMESPACE=vcluster CLUSTER_NAME=vcluster LOCAL_PORT=14550 vcluster-e2e
    vcluster-e2e --name my-vcluster --local-port 14550 --scenario create_and_converge

Exit codes: 0 all scenarios passed, 1 a scenario failed, 2 configuration or
bootstrap failed, 130 interrupted.
"""

import argparse
import asyncio
import logging
import signal
import sys
from contextlib import AbstractAsyncContextManager

from vcluster_e2e.constants import (
    EXIT_BOOTSTRAP_FAILED,
    EXIT_CANCELLED,
    EXIT_OK,
    EXIT_SCENARIO_FAILED,
)
from vcluster_e2e.errors import HarnessError, PollCancelledError
from vcluster_e2e.observability.logging import HarnessLogger, setup_structured_logging
from vcluster_e2e.observability.tracing import setup_tracing, shutdown_tracing
from vcluster_e2e.services.bootstrapper import ConnectionBootstrapper
from vcluster_e2e.services.scenario_runner import RunReport, ScenarioRunner
from vcluster_e2e.services.scenarios import (
    SCENARIOS_BY_NAME,
    Scenario,
    ScenarioContext,
    select_scenarios,
)
from vcluster_e2e.settings import Settings
from vcluster_e2e.settings import settings as env_settings
from vcluster_e2e.utils.kubernetes import ClientHandle


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vcluster-e2e",
        description="Run end-to-end scenarios against a virtual cluster",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--namespace", "-n", help="Host namespace of the virtual cluster"
    )
    parser.add_argument("--name", help="Virtual cluster name (CLUSTER_NAME)")
    parser.add_argument(
        "--local-port", type=int, help="Local port for the tunnel (LOCAL_PORT)"
    )
    parser.add_argument(
        "--scenario",
        "-s",
        action="append",
        choices=sorted(SCENARIOS_BY_NAME),
        help="Scenario to run (repeatable, default: all in order)",
    )
    parser.add_argument(
        "--shared-connection",
        action="store_true",
        help="Bootstrap once and share the connection across scenarios",
    )
    parser.add_argument("--log-level", help="Log level (default: LOG_LEVEL or INFO)")
    parser.add_argument(
        "--text-logs", action="store_true", help="Plain text logs instead of JSON"
    )
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with command line flags layered on top."""
    updates: dict[str, object] = {}
    if args.namespace is not None:
        updates["namespace"] = args.namespace
    if args.name is not None:
        updates["cluster_name"] = args.name
    if args.local_port is not None:
        updates["local_port"] = args.local_port
    if args.shared_connection:
        updates["connection_per_scenario"] = False
    if args.log_level:
        updates["log_level"] = args.log_level
    if args.text_logs:
        updates["json_logs"] = False
    return settings.model_copy(update=updates)


async def run_suite(
    settings: Settings,
    scenarios: tuple[Scenario, ...],
    logger: logging.Logger,
    cancel_event: asyncio.Event | None = None,
    bootstrapper: ConnectionBootstrapper | None = None,
) -> int:
    """
    Connect to the configured target and run the scenarios.

    Returns:
        Process exit code
    """
    try:
        target = settings.target()
    except HarnessError as e:
        logger.error(str(e))
        return EXIT_BOOTSTRAP_FAILED

    bootstrapper = bootstrapper or ConnectionBootstrapper.from_settings(
        settings, logger=logger.getChild("bootstrap")
    )
    context = ScenarioContext(
        settings=settings,
        log=HarnessLogger(logger.getChild("scenarios")),
        cancel_event=cancel_event,
    )

    if settings.connection_per_scenario:

        def connect() -> AbstractAsyncContextManager[ClientHandle]:
            return bootstrapper.connect(target, cancel_event=cancel_event)

        report = await ScenarioRunner(context, connect=connect).run(scenarios)
    else:
        try:
            async with bootstrapper.connect(target, cancel_event=cancel_event) as handle:
                context.handle = handle
                report = await ScenarioRunner(context).run(scenarios)
        except PollCancelledError as e:
            logger.warning(str(e))
            return EXIT_CANCELLED
        except HarnessError as e:
            logger.error(f"Bootstrap failed: {e}")
            return EXIT_BOOTSTRAP_FAILED

    return _report_exit_code(report, logger)


def _report_exit_code(report: RunReport, logger: logging.Logger) -> int:
    for line in report.summary().splitlines():
        logger.info(line)
    if report.cancelled:
        return EXIT_CANCELLED
    if report.passed:
        return EXIT_OK
    return EXIT_SCENARIO_FAILED


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass


async def _main(
    settings: Settings, scenarios: tuple[Scenario, ...], logger: logging.Logger
) -> int:
    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)
    return await run_suite(settings, scenarios, logger, cancel_event=cancel_event)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(env_settings, args)

    logger = setup_structured_logging(
        log_level=settings.log_level,
        enable_json_formatting=settings.json_logs,
        correlation_id_enabled=settings.correlation_ids,
    )
    setup_tracing(
        enabled=settings.tracing_enabled, endpoint=settings.tracing_endpoint
    )

    try:
        return asyncio.run(_main(settings, select_scenarios(args.scenario), logger))
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_CANCELLED
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
