"""Command line interface for envtag-bridge."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from libenvtag import DiscoverySettings, create_discovery

from envtag_bridge.bridge import Bridge, BridgeSettings
from envtag_bridge.registry import Snapshot, release_registry
from envtag_bridge.sinks import JsonLinesSink

logger = logging.getLogger("envtag_bridge")


def setup_logging(level: str = "info", log_file: str | None = None) -> None:
    """Configure logging on stderr, leaving stdout to the delta stream."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def load_config(path: str) -> dict[str, Any]:
    """Load configuration from YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def save_config(path: str, config: dict[str, Any]) -> None:
    """Write configuration to a YAML file."""
    with open(path, "w") as f:
        yaml.safe_dump(config, f, sort_keys=False)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="envtag-bridge",
        description="envtag-bridge - Environmental tag readings as JSON deltas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Deltas are written to stdout, one JSON document per line.\n"
            "Newly discovered tags start disabled; enable them in the config\n"
            "file or pass --enable-all."
        ),
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--backend", "-b",
        type=str,
        help="Discovery backend (manual, simulated, replay)",
    )
    parser.add_argument(
        "--tags",
        type=int,
        help="Number of simulated tags",
    )
    parser.add_argument(
        "--interval",
        type=float,
        help="Seconds between readings for simulated and replayed tags",
    )
    parser.add_argument(
        "--replay",
        type=str,
        help="Capture file to replay (implies --backend replay)",
    )
    parser.add_argument(
        "--enable-all",
        action="store_true",
        help="Enable every tag as it is discovered",
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Write discovered tag settings back to the config file on exit",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Log file path",
    )

    return parser.parse_args(argv)


def build_settings(
    config: dict[str, Any], args: argparse.Namespace
) -> tuple[BridgeSettings, DiscoverySettings]:
    """Merge file configuration and command line overrides."""
    bridge_settings = BridgeSettings.model_validate(config.get("bridge") or {})

    discovery_config = dict(config.get("discovery") or {})
    if args.replay:
        discovery_config["backend"] = "replay"
        discovery_config["path"] = args.replay
    if args.backend:
        discovery_config["backend"] = args.backend
    if args.tags is not None:
        discovery_config["tags"] = args.tags
    if args.interval is not None:
        discovery_config["interval"] = args.interval
    discovery_settings = DiscoverySettings.model_validate(discovery_config)

    return bridge_settings, discovery_settings


async def run_bridge(
    bridge: Bridge,
    tags: dict[str, Any],
    enable_all: bool = False,
) -> None:
    """Run the bridge until interrupted."""
    stop_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Shutdown requested...")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    def enable_new_tags(snapshot: Snapshot) -> None:
        for source in snapshot:
            if source.id not in tags and not bridge.config_store.get(source.id).enabled:
                bridge.config_store.set(source.id, {"enabled": True})
                logger.info(f"Enabled tag {source.id}")

    try:
        await bridge.start(tags)

        unsubscribe = None
        if enable_all and bridge.registry is not None:
            unsubscribe = bridge.registry.subscribe(enable_new_tags)

        logger.info("Bridge running. Press Ctrl+C to stop.")
        await stop_event.wait()

        if unsubscribe:
            unsubscribe()
    finally:
        logger.info(f"Status: {bridge.status()}")
        await bridge.stop()
        await release_registry()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load config file if specified
    config: dict[str, Any] = {}
    if args.config:
        config_path = Path(args.config)
        if config_path.exists():
            try:
                config = load_config(str(config_path))
            except yaml.YAMLError as e:
                print(f"Error: Invalid configuration: {e}", file=sys.stderr)
                return 1
            if not isinstance(config, dict):
                print(
                    f"Error: Invalid configuration: {config_path} must contain a mapping",
                    file=sys.stderr,
                )
                return 1
        elif not args.save_config:
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            return 1

    # Setup logging
    log_config = config.get("logging") or {}
    setup_logging(
        level=args.log_level or log_config.get("level", "info"),
        log_file=args.log_file or log_config.get("file"),
    )
    if config:
        logger.info(f"Loaded config from {args.config}")

    try:
        bridge_settings, discovery_settings = build_settings(config, args)
    except ValidationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    tags = config.get("tags") or {}
    if not isinstance(tags, dict):
        logger.warning("Ignoring 'tags' section: expected a mapping of tag id to settings")
        tags = {}

    bridge = Bridge(
        sink=JsonLinesSink(sys.stdout),
        discovery_factory=lambda: create_discovery(discovery_settings),
        settings=bridge_settings,
    )

    try:
        asyncio.run(run_bridge(bridge, tags, enable_all=args.enable_all))
    except KeyboardInterrupt:
        pass

    if args.save_config and args.config:
        config["tags"] = bridge.config_store.to_dict()
        save_config(args.config, config)
        logger.info(f"Saved {len(config['tags'])} tag settings to {args.config}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
