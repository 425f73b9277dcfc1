"""
Command line entry point.

Examples:
    # Pipe transport, file descriptors handed over by the host
    plughost -i 3 -o 4 -f ./plugins

    # Socket transport
    plughost --host 127.0.0.1 --port 49494 --password secret -f ./plugins -f ~/more-plugins

    # Only load two plugins
    plughost -i 3 -o 4 -f ./plugins --whiteListedPlugins "assets, layers"
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .common.logging_setup import LogSettings, setup_logging
from .engine import HostEngine
from .framework.configuration import HostConfiguration, load_configuration
from .framework.connection import build_options, parse_handle
from .framework.lifecycle import EXIT_INIT_FAILURE, EXIT_UNCAUGHT_EXCEPTION, LifecycleOrchestrator
from .framework.plugin_management import SandboxContext, parse_whitelist
from .infrastructure.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 49494
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PASSWORD = "password"


def build_parser() -> argparse.ArgumentParser:
    # -h is the host flag, so help is only available as --help
    parser = argparse.ArgumentParser(
        prog="plughost",
        description="Run the plugin host.",
        add_help=False,
    )
    parser.add_argument("-p", "--port", type=int, default=DEFAULT_PORT, help="engine host server port")
    parser.add_argument("-h", "--host", default=DEFAULT_HOST, help="engine host server host")
    parser.add_argument("-P", "--password", default=DEFAULT_PASSWORD, help="engine host server password")
    parser.add_argument("-i", "--input", type=parse_handle, default=None,
                        help="file descriptor or path of input pipe")
    parser.add_argument("-o", "--output", type=parse_handle, default=None,
                        help="file descriptor or path of output pipe")
    parser.add_argument("-f", "--pluginfolder", action="append", default=None,
                        help="folder to search for plugins (can be used multiple times)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="include verbose logging in stdout")
    parser.add_argument("--engineVersion", dest="engine_version",
                        help="tell the engine the host's version so it isn't queried at startup (optional)")
    parser.add_argument("--enginePath", dest="engine_path",
                        help="tell the engine the host's path so it isn't queried at startup (optional)")
    parser.add_argument("--engineBinaryPath", dest="engine_binary_path",
                        help="tell the engine the host's binary location so it isn't queried at startup (optional)")
    parser.add_argument("--engineLogPath", dest="engine_log_path",
                        help="log root directory")
    parser.add_argument("--whiteListedPlugins", dest="whitelisted_plugins",
                        help="a comma separated list of plugin names that are ok to run (optional)")
    parser.add_argument("-c", "--config", dest="config_path",
                        help="YAML configuration file (optional)")
    parser.add_argument("--help", action="help", help="display help message")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the host and return the process exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    if not args.engine_log_path:
        print("No log location received via 'engineLogPath'; may use a non-standard location")

    log_settings = LogSettings(log_root=args.engine_log_path, verbose=args.verbose)
    try:
        configuration = load_configuration(args.config_path)
    except ConfigurationError as e:
        setup_logging(log_settings)
        logger.error(f"Invalid configuration: {e}", extra={"error": e.to_dict()})
        logger.error(f"Exiting with code {EXIT_INIT_FAILURE}: Engine failed to initialize: {e}")
        return EXIT_INIT_FAILURE

    setup_logging(
        log_settings,
        level=configuration.logging.level,
        log_format=configuration.logging.format,
        file_output=configuration.logging.file_output,
    )

    options = build_options(vars(args), configuration.to_engine_dict())
    orchestrator = LifecycleOrchestrator(
        engine_factory=lambda sandbox: _create_engine(sandbox, configuration),
        options=options,
        plugin_folders=args.pluginfolder or [],
        whitelist_names=parse_whitelist(args.whitelisted_plugins),
        sandbox=SandboxContext(),
        handle_signals=True,
    )

    try:
        return asyncio.run(orchestrator.run())
    except Exception as e:
        logger.error(f"Uncaught exception: {e}", exc_info=True)
        orchestrator.shutdown_engine()
        logger.error(f"Exiting with code {EXIT_UNCAUGHT_EXCEPTION}: Uncaught exception: {e}")
        return EXIT_UNCAUGHT_EXCEPTION


def _create_engine(sandbox: SandboxContext, configuration: HostConfiguration) -> HostEngine:
    return HostEngine(sandbox, configuration)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
