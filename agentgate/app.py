"""agentgate main application entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from agentgate.engine.config import apply_log_level

LOG_DIR = Path.home() / ".agentgate" / "logs"
LOG_FILE_NAME = "agentgate-server.log"


def configure_server_logging(log_dir: Path = LOG_DIR, log_level: str | None = None) -> Path:
    """Root logger to a rotating file plus stderr. Returns the log file path."""
    if log_level is None:
        log_level = os.getenv("AGENTGATE_LOG_LEVEL", "INFO")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    apply_log_level(log_level)
    return log_file


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="agentgate",
        description=(
            "agentgate: tool-calling agent with human approval. "
            "Without --server, arguments are passed to agentgate-run."
        ),
    )
    parser.add_argument(
        "--server", action="store_true",
        help="Start HTTP+SSE server mode",
    )
    parser.add_argument(
        "--host", default="127.0.0.1",
        help="Server bind address",
    )
    parser.add_argument(
        "--port", type=int, default=0,
        help="Server port (0=random available port)",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file for engine, provider and servers",
    )
    parser.add_argument(
        "--tools-file", metavar="PATH",
        help="Python file that exports a register_tools(registry) function",
    )
    args, rest = parser.parse_known_args(argv)

    if not args.server:
        from agentgate.engine.cli import main as run_main

        forwarded = list(rest)
        if args.config:
            forwarded += ["--config", args.config]
        if args.tools_file:
            forwarded += ["--tools-file", args.tools_file]
        run_main(forwarded)
        return

    from agentgate.adapters.orchestrator import OrchestratorBridge
    from agentgate.engine.yaml_config import find_config_file, load_yaml_config
    from agentgate.server.server import AgentGateServer

    log_file = configure_server_logging()
    logger = logging.getLogger(__name__)
    logger.info(
        "Starting agentgate server mode cwd=%s port=%s config=%s log=%s",
        Path.cwd(),
        args.port,
        args.config or "<none>",
        log_file,
    )

    # Auto-discover .agentgate/agentgate.yaml (preferred) or agentgate.yaml
    config_path = Path(args.config) if args.config else find_config_file()
    if config_path is not None:
        logger.info("Using config: %s (exists=%s)", config_path, config_path.exists())
    else:
        logger.info("No config file found; using defaults")
    yaml_config = load_yaml_config(config_path) if config_path is not None else None
    if yaml_config is not None:
        apply_log_level(yaml_config.engine.log_level)

    bridge = OrchestratorBridge()
    bridge.configure(yaml_config, tools_file=args.tools_file)

    server = AgentGateServer(bridge, host=args.host, port=args.port)
    asyncio.run(server.start())
    sys.exit(0)


if __name__ == "__main__":
    main()
