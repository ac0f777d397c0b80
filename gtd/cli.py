"""Command-line interface for gtd."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from gtd import __version__
from gtd.agents.factory import AUTO, PROVIDER_PRIORITY, detect_installed_providers
from gtd.config import GtdConfig
from gtd.errors import GtdError
from gtd.infer_step import Step
from gtd.workflow import Workflow


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gtd",
        description="Advance a plan-build-learn loop driven by git history and an agent CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Do whatever comes next in the current repository
  gtd

  # Show the next step without running an agent
  gtd --dry-run

  # Force a specific agent and a shorter inactivity timeout
  gtd --agent claude --timeout 120

  # List agents and whether they are installed
  gtd --list-agents
""",
    )

    # Configuration
    config_group = parser.add_argument_group("configuration")
    config_group.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to configuration file (default: gtd.yaml)",
    )
    config_group.add_argument(
        "--repo",
        type=Path,
        default=Path.cwd(),
        help="Path to the repository (default: current directory)",
    )
    config_group.add_argument(
        "--file",
        "-f",
        dest="plan_file",
        metavar="PATH",
        help="Plan file relative to the repository (default: TODO.md)",
    )
    config_group.add_argument(
        "--agent",
        "-a",
        choices=[*PROVIDER_PRIORITY, AUTO],
        help="Agent to run (default: auto)",
    )
    config_group.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Abort the agent after this many seconds without output (0 disables)",
    )
    config_group.add_argument(
        "--test-cmd",
        metavar="COMMAND",
        help="Command run after each build package",
    )

    # Utility commands
    util_group = parser.add_argument_group("utilities")
    util_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the next step without executing it",
    )
    util_group.add_argument(
        "--list-agents",
        action="store_true",
        help="List supported agents and exit",
    )
    util_group.add_argument(
        "--list-steps",
        action="store_true",
        help="List all workflow steps and exit",
    )
    util_group.add_argument(
        "--init-config",
        action="store_true",
        help="Create a default configuration file and exit",
    )

    # Output
    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress non-essential output",
    )
    output_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Stream agent activity and explain the inferred step",
    )

    # Version
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def handle_list_agents() -> int:
    """List supported agents in auto-detection order."""
    print("Agents (auto tries them in this order):\n")
    for provider_id, installed in detect_installed_providers().items():
        status = "installed" if installed else "not found"
        print(f"  {provider_id:<10} {status}")
    print()
    return 0


def handle_list_steps() -> int:
    """List all workflow steps."""
    from gtd.phases import PHASES

    print("Workflow steps:\n")
    for step in Step:
        phase_class = PHASES[step]
        print(f"  {step.value}")
        if phase_class.__doc__:
            print(f"      {phase_class.__doc__.strip()}")
    print()
    return 0


def handle_init_config(path: Path | None = None) -> int:
    """Create a default configuration file."""
    config = GtdConfig()
    config_path = path or Path("gtd.yaml")

    if config_path.exists():
        print(f"Configuration file already exists: {config_path}")
        response = input("Overwrite? [y/N] ")
        if response.lower() != "y":
            return 1

    config.save(config_path)
    print(f"Created configuration file: {config_path}")
    return 0


def apply_overrides(config: GtdConfig, parsed: argparse.Namespace) -> None:
    """Apply command-line flags on top of file and environment settings."""
    if parsed.plan_file:
        config.file = parsed.plan_file
    if parsed.agent:
        config.agent.provider = parsed.agent
    if parsed.timeout is not None:
        config.agent.inactivity_timeout = parsed.timeout
    if parsed.test_cmd is not None:
        config.test_cmd = parsed.test_cmd


def main(args: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    # Handle utility commands
    if parsed.list_agents:
        return handle_list_agents()

    if parsed.list_steps:
        return handle_list_steps()

    if parsed.init_config:
        return handle_init_config(parsed.config)

    try:
        config = GtdConfig.load(parsed.config, base_dir=parsed.repo)
        apply_overrides(config, parsed)

        workflow = Workflow(parsed.repo, config, verbose=parsed.verbose, quiet=parsed.quiet)

        if parsed.dry_run:
            step, reason = workflow.dry_run()
            print(f"Next step: {step.value}")
            print(f"Reason: {reason}")
            return 0

        result = workflow.run()
        # Guard aborts are expected in headless runs
        return 0 if result.success or result.aborted else 1

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    except GtdError as e:
        print(f"[gtd] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
