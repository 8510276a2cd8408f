"""
Command-line interface for the workshop simulation.

    workshop-sim validate <scenario>   Check a scenario document
    workshop-sim use <scenario>        Check it and save it as the default
    workshop-sim status                Show the saved session
    workshop-sim headless              JSON-lines runner on stdin/stdout
    workshop-sim serve                 HTTP/WebSocket API
"""

import argparse
import logging
import sys
from pathlib import Path

from ..engine import WorkshopSimulation
from ..scenario.catalog import ScenarioCatalog, ScenarioValidationError
from .config import Config, apply_env_overrides, load_config, set_scenario
from .renderer import console, show_error, show_outcomes, show_scenario, show_status

logger = logging.getLogger(__name__)


def _setup_logging(level: str, stream=None) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
        stream=stream,
    )


def _load_config(args) -> Config:
    config = apply_env_overrides(load_config(args.state_dir))
    if getattr(args, "scenario", None):
        config["scenario_path"] = args.scenario
    return config


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_validate(args) -> int:
    try:
        catalog = ScenarioCatalog.from_file(args.path)
    except ScenarioValidationError as e:
        show_error(str(e))
        return 1
    show_scenario(catalog)
    console.print("[green3]Scenario is valid[/green3]")
    return 0


def cmd_use(args) -> int:
    """Validate a scenario and make it the configured default."""
    try:
        catalog = ScenarioCatalog.from_file(args.path)
    except ScenarioValidationError as e:
        show_error(str(e))
        return 1
    path = str(Path(args.path).resolve())
    if not set_scenario(path, args.state_dir):
        show_error(f"Could not save configuration in {args.state_dir}")
        return 1
    console.print(f"[green3]Using {catalog.title}[/green3] [dim]({path})[/dim]")
    return 0


def cmd_status(args) -> int:
    config = _load_config(args)
    try:
        sim = WorkshopSimulation.from_config(config)
    except ScenarioValidationError as e:
        show_error(str(e))
        return 1

    if not sim.initialize():
        console.print("[dim]No saved session; showing a fresh one[/dim]")
    show_status(sim.status())
    if args.outcomes:
        show_outcomes(sim.outcomes())
    return 0


def cmd_headless(args) -> int:
    from .headless import run_headless

    config = _load_config(args)
    try:
        run_headless(config, seed=args.seed)
    except ScenarioValidationError as e:
        logger.error("%s", e)
        return 1
    return 0


def cmd_serve(args) -> int:
    from ..api.main import serve

    config = _load_config(args)
    serve(config, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workshop-sim",
        description="AidCraft workshop simulation",
    )
    parser.add_argument(
        "--state-dir",
        default="state",
        help="Directory for saved sessions and config (default: state)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    validate = sub.add_parser("validate", help="Validate a scenario document")
    validate.add_argument("path", help="Scenario .json/.yaml file")
    validate.set_defaults(func=cmd_validate)

    use = sub.add_parser("use", help="Validate a scenario and save it as the default")
    use.add_argument("path", help="Scenario .json/.yaml file")
    use.set_defaults(func=cmd_use)

    status = sub.add_parser("status", help="Show the saved session")
    status.add_argument("--scenario", help="Scenario file (default: configured or bundled)")
    status.add_argument("--outcomes", action="store_true", help="Also score the session")
    status.set_defaults(func=cmd_status)

    headless = sub.add_parser("headless", help="JSON-lines runner on stdin/stdout")
    headless.add_argument("--scenario", help="Scenario file (default: configured or bundled)")
    headless.add_argument("--seed", type=int, default=None, help="Seed for the random source")
    headless.set_defaults(func=cmd_headless)

    serve = sub.add_parser("serve", help="Run the HTTP/WebSocket API")
    serve.add_argument("--scenario", help="Scenario file (default: configured or bundled)")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = args.log_level or apply_env_overrides(load_config(args.state_dir)).get("log_level", "INFO")
    # Headless output is a JSON stream; keep logs off stdout
    _setup_logging(level, stream=sys.stderr)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
