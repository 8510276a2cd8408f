"""
Workshop simulation API server entry point.

Run with:
    workshop-sim serve

Or with uvicorn directly:
    uvicorn workshop_sim.api.main:get_app --factory --host 127.0.0.1 --port 8000

Configuration comes from the state directory's config file, overridden by
WORKSHOP_SIM_SCENARIO, WORKSHOP_SIM_STATE_DIR and WORKSHOP_SIM_LOG_LEVEL.
"""

import argparse
import logging
import os

import uvicorn

from ..interface.config import Config, apply_env_overrides, load_config
from .server import create_app

logger = logging.getLogger(__name__)


def get_app():
    """Factory function for creating the FastAPI app."""
    state_dir = os.environ.get("WORKSHOP_SIM_STATE_DIR", "state")
    config = apply_env_overrides(load_config(state_dir))
    return create_app(config=config)


def serve(config: Config, host: str = "127.0.0.1", port: int = 8000):
    """Run the API server for an already-resolved config."""
    logger.info("Starting workshop API on %s:%d", host, port)
    logger.info("  Scenario: %s", config.get("scenario_path") or "bundled")
    logger.info("  State dir: %s", config.get("state_dir"))

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=str(config.get("log_level", "INFO")).lower(),
    )


def main():
    """Main entry point for the workshop API server."""
    parser = argparse.ArgumentParser(description="Workshop Simulation API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--state-dir", default=None, help="State directory (default: state)")
    parser.add_argument("--scenario", default=None, help="Scenario file (default: bundled)")
    args = parser.parse_args()

    if args.state_dir:
        os.environ["WORKSHOP_SIM_STATE_DIR"] = args.state_dir
    state_dir = os.environ.get("WORKSHOP_SIM_STATE_DIR", "state")

    config = apply_env_overrides(load_config(state_dir))
    if args.scenario:
        config["scenario_path"] = args.scenario

    logging.basicConfig(
        level=getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
    )
    serve(config, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
