#!/usr/bin/env python3
"""
quorum-agent - Main Entry Point

Command line front end of the node agent: inspect and edit the shared cluster
configuration, render the local service config, and start or stop the managed
service on this host.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Dict, List, Optional

from .agent import NodeAgent
from .config import ConfigFormat, ConfigManager, initialize_settings
from .coordination.instance_config import ConfigKey, normalize_key
from .coordination.properties import dump_properties
from .observability.logging import LogConfig, LogFormat, LogLevel, setup_logging
from .utils.error_handling import AgentError, error_handler

logger = logging.getLogger(__name__)

# sysexits EX_TEMPFAIL: the same command may succeed when re-run
EXIT_RETRY = 75


def parse_assignments(assignments: List[str]) -> Dict[ConfigKey, str]:
    """Parse ``KEY=VALUE`` arguments into config changes."""
    changes = {}
    for assignment in assignments:
        name, separator, value = assignment.partition("=")
        if not separator:
            raise ValueError(f"Expected KEY=VALUE, got '{assignment}'")
        try:
            changes[normalize_key(name.strip())] = value
        except KeyError:
            raise ValueError(f"Unknown config key '{name.strip()}'") from None
    return changes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quorum-agent",
        description="Node agent for a quorum-replicated service sharing its config through a blob store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config agent.yaml show-config
  %(prog)s --config agent.yaml set client-port=2181 servers-spec=S:1:host-a,S:2:host-b
  %(prog)s --config agent.yaml --log-level DEBUG restart
        """,
    )

    parser.add_argument('--config', help='Agent settings file (YAML, JSON or .env)')
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=None,
        help='Override the configured logging level',
    )
    parser.add_argument('--lock-timeout', type=float, default=None, help='Seconds to wait for the config lock')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('show-config', help='Print the shared cluster config and its version')
    set_parser = subparsers.add_parser('set', help='Change cluster config values under the config lock')
    set_parser.add_argument('assignments', nargs='+', metavar='KEY=VALUE')
    subparsers.add_parser('members', help='Print the server list and this host\'s entry')
    subparsers.add_parser('render', help='Print the process config this host would write')
    subparsers.add_parser('start', help='Render the config and start the managed service')
    subparsers.add_parser('stop', help='Stop the managed service')
    subparsers.add_parser('restart', help='Stop, then start the managed service')
    subparsers.add_parser('lock-markers', help='List the config lock markers currently visible')
    settings_parser = subparsers.add_parser('show-settings', help='Print the effective agent settings')
    settings_parser.add_argument(
        '--format', choices=[item.value for item in ConfigFormat], default=ConfigFormat.YAML.value, dest='output_format'
    )

    return parser


async def run_command(agent: NodeAgent, args: argparse.Namespace) -> int:
    if args.command == 'show-config':
        loaded = await agent.load_config()
        print(f"# version {loaded.version}")
        print(dump_properties(loaded.config.to_properties()), end="")
        return 0

    if args.command == 'set':
        loaded = await agent.update_config(parse_assignments(args.assignments), lock_timeout=args.lock_timeout)
        print(f"Stored cluster config version {loaded.version}")
        return 0

    if args.command == 'members':
        state = await agent.membership()
        print(json.dumps(state.to_dict(), indent=2))
        return 0

    if args.command == 'render':
        text = await agent.render_config()
        if text is None:
            print("Process details are incomplete; nothing to render", file=sys.stderr)
            return 1
        print(text, end="")
        return 0

    if args.command == 'start':
        return 0 if await agent.start() else 1

    if args.command == 'stop':
        reports = await agent.stop()
        print(json.dumps({kind.value: report.to_dict() for kind, report in reports.items()}, indent=2))
        return 0 if all(report.stopped for report in reports.values()) else 1

    if args.command == 'restart':
        return 0 if await agent.restart() else 1

    if args.command == 'lock-markers':
        for marker in await agent.lock_markers():
            print(f"{marker.created_ms}\t{marker.host}\t{marker.key}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace) -> int:
    config_manager = ConfigManager()
    if args.config:
        config_manager.add_config_file(args.config)
    settings = initialize_settings(config_manager)

    monitoring = settings.monitoring
    setup_logging(
        LogConfig(
            level=LogLevel((args.log_level or monitoring.logging_level).upper()),
            format=LogFormat(monitoring.log_format),
            output_file=monitoring.log_file,
            max_file_size=monitoring.log_max_bytes,
            backup_count=monitoring.log_backup_count,
            hostname=settings.agent.hostname,
        )
    )

    if args.command == 'show-settings':
        print(config_manager.export_config(ConfigFormat(args.output_format)))
        return 0

    agent = NodeAgent.from_settings(settings)
    try:
        return await run_command(agent, args)
    finally:
        await agent.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'set':
        try:
            parse_assignments(args.assignments)
        except ValueError as e:
            parser.error(str(e))

    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except AgentError as e:
        error_context = error_handler.handle_error(e, operation=args.command)
        print(f"Error: {e.message}", file=sys.stderr)
        for suggestion in error_context.recovery_suggestions:
            print(f"  - {suggestion}", file=sys.stderr)
        return EXIT_RETRY if error_context.recoverable else 1


if __name__ == "__main__":
    sys.exit(main())
