import argparse
from typing import Callable, List, Optional

from .chaos_fleet import ChaosFleet
from .faults.fault_base import ModuleContext
from .faults.registry import ModuleRegistry, build_registry
from .fleet.report import ConsoleReporter, render_confirmation
from .self_heal import CHECK_OK, SelfHealRunner
from .utils.alerts import Alerter, WebhookAlertSink
from .utils.config import ChaosFleetConfig, load_config
from .utils.constants import (
    DEFAULT_ROUND_TIMEOUT,
    EXIT_OK,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    FLEET_STRATEGIES,
)
from .utils.exceptions import ChaosFleetError, CampaignInterrupted, PrerequisiteError
from .utils.functions import has_command, split_csv
from .utils.runtime import ContainerRuntime, DockerRuntime, create_runtime
from .utils.state import RunState
from .utils.log import get_logger, setup_logging


logger = get_logger(__name__)

OPTIONAL_TOOLS = {
    "dig": "dig (bind-utils)",
    "smartctl": "smartctl (smartmontools)",
    "sudo": "sudo",
}

EPILOG = """Examples:
  chaos-fleet --rounds 3 --modules dns,postgres --self-heal
  chaos-fleet --dry-run --list-modules
  chaos-fleet --restore --modules docker-socket
  chaos-fleet --modules postgres --self-heal --fleet-strategy report
"""


class ChaosFleetArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1 like every other startup error."""

    def error(self, message):
        self.print_usage()
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not an integer")
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = ChaosFleetArgumentParser(
        prog="chaos-fleet",
        description="Inject faults into a container fleet, measure recovery and verify there is no collateral damage.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--rounds", default=1, type=positive_int, help="Number of test rounds (default: 1)")
    parser.add_argument("--modules", default=None, type=str, help="Comma-separated module list (default: all)")
    parser.add_argument("--self-heal", action="store_true", help="Heal broken modules and fleet damage during the campaign")
    parser.add_argument("--restore", action="store_true", help="Emergency restore from the last snapshot and exit")
    parser.add_argument("--dry-run", action="store_true", help="Show what would happen without doing it")
    parser.add_argument("--list-modules", action="store_true", help="List available modules and exit")
    parser.add_argument("--config", default=None, type=str, help="Load a YAML config file")
    parser.add_argument("--timeout", default=DEFAULT_ROUND_TIMEOUT, type=positive_int, help=f"Recovery timeout in seconds (default: {DEFAULT_ROUND_TIMEOUT})")
    parser.add_argument("--no-fleet", action="store_true", help="Skip fleet-wide container verification")
    parser.add_argument("--fleet-strategy", default=None, choices=FLEET_STRATEGIES, help="Fleet heal strategy (default: restart)")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument("--health-check", action="store_true", help="Run one check/heal sweep over all modules and the fleet, then exit")
    return parser


def apply_overrides(config: ChaosFleetConfig, args: argparse.Namespace) -> ChaosFleetConfig:
    """CLI flags win over the config file."""
    if args.verbose:
        config.general.verbose = True
    if args.dry_run:
        config.general.dry_run = True
    if args.fleet_strategy:
        config.fleet.strategy = args.fleet_strategy
    return config


def check_prerequisites(docker: DockerRuntime) -> None:
    if not has_command(docker.binary):
        raise PrerequisiteError(f"Missing required tools: {docker.binary}")
    optional_missing = [label for cmd, label in OPTIONAL_TOOLS.items() if not has_command(cmd)]
    if optional_missing:
        logger.warning(f"Missing optional tools (some modules may be limited): {', '.join(optional_missing)}")
    if not docker.ping():
        raise PrerequisiteError("Docker is not accessible. Ensure the daemon is running and you have permissions.")


def confirm(
    text: str,
    dry_run: bool,
    assume_yes: bool,
    input_fn: Callable[[str], str] = input,
    output: Callable[[str], None] = print
) -> bool:
    output(text)
    if dry_run:
        output("Dry-run mode: no changes will be made.\n")
        return True
    if assume_yes:
        return True
    try:
        answer = input_fn("This will inject faults into your system. Continue? [y/N] ")
    except EOFError:
        answer = ""
    if answer.strip() in ("y", "Y", "yes", "YES"):
        return True
    output("Aborted.")
    return False


def print_modules(registry: ModuleRegistry, runner: SelfHealRunner, output: Callable[[str], None] = print) -> None:
    if len(registry) == 0:
        logger.warning("No modules registered")
        return
    output("Registered modules:")
    for name, description in runner.list_modules():
        lines = description.splitlines() or [""]
        output(f"  {name:<20} {lines[0]}")
        for line in lines[1:]:
            output(f"  {'':<20} {line}")


def restore_modules(modules: List[str], runner: SelfHealRunner, output: Callable[[str], None] = print) -> int:
    output("Emergency Restore\n")
    failures = 0
    for name in modules:
        logger.action(f"Restoring: {name}")
        if runner.run_module_restore(name) != CHECK_OK:
            failures += 1
    if failures:
        logger.error(f"Restore completed with {failures} failure(s)")
        return EXIT_FAILURE
    logger.info("Restore complete")
    return EXIT_OK


def main(
    argv: Optional[List[str]] = None,
    input_fn: Callable[[str], str] = input,
    docker: Optional[DockerRuntime] = None,
    fleet_runtime: Optional[ContainerRuntime] = None
) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=None)

    try:
        config = apply_overrides(load_config(args.config), args)
    except ChaosFleetError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    setup_logging(verbose=config.general.verbose, log_file=config.general.log_file)
    dry_run = config.general.dry_run

    state = RunState(base_dir=config.general.state_dir)
    try:
        #-------------
        # run context
        #-------------
        state.open()
        sink = None
        if config.alerts.webhook_url:
            sink = WebhookAlertSink(config.alerts.webhook_url, title=config.alerts.title)
        alerter = Alerter(state, sink=sink, cooldown=config.alerts.cooldown)
        docker = docker or DockerRuntime()
        ctx = ModuleContext(state, alerter, docker=docker, settings=config.modules, dry_run=dry_run)
        registry = build_registry(ctx)

        if args.list_modules:
            print_modules(registry, SelfHealRunner(registry, docker, state, config=config))
            return EXIT_OK

        check_prerequisites(docker)
        if fleet_runtime is None:
            if config.fleet.runtime == "docker":
                fleet_runtime = docker
            else:
                fleet_runtime = create_runtime(
                    config.fleet.runtime,
                    namespace=config.fleet.namespace,
                    context=config.fleet.kube_context
                )
        runner = SelfHealRunner(registry, fleet_runtime, state, config=config)

        if args.health_check:
            return min(runner.run_all_health_checks(), EXIT_FAILURE)

        modules = registry.select(split_csv(args.modules))
        if args.restore:
            return restore_modules(modules, runner)

        #----------
        # campaign
        #----------
        fleet_enabled = not args.no_fleet
        text = render_confirmation(
            rounds=args.rounds,
            modules=modules,
            self_heal=args.self_heal,
            dry_run=dry_run,
            timeout=args.timeout,
            fleet_enabled=fleet_enabled,
            strategy=config.fleet.strategy
        )
        if not confirm(text, dry_run, args.yes, input_fn=input_fn):
            return EXIT_OK

        fleet = ChaosFleet(
            registry,
            fleet_runtime,
            state,
            alerter,
            config=config,
            self_heal=args.self_heal,
            fleet_enabled=fleet_enabled
        )
        graph = fleet.init_fleet() if fleet_enabled else None
        reporter = ConsoleReporter(args.timeout, graph=graph)
        result = fleet.run_campaign(modules, rounds=args.rounds, timeout=args.timeout, callbacks=[reporter])
        return result.exit_code
    except CampaignInterrupted:
        return EXIT_INTERRUPTED
    except ChaosFleetError as e:
        logger.error(str(e))
        return EXIT_FAILURE
    finally:
        state.teardown()


if __name__ == "__main__":
    raise SystemExit(main())
