#!/usr/bin/env python3
"""
Main entry point for handsfreectl, the command line client of the handsfree daemon.
"""

import argparse
import asyncio
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from handsfreectl.client import connect_to_daemon, is_daemon_unreachable
from handsfreectl.config import load_config
from handsfreectl.errors import HandsfreeError, MalformedResponseError
from handsfreectl.protocol import (
    AckResponse,
    ErrorResponse,
    OutputMode,
    ShutdownCommand,
    StartCommand,
    StateChangeResponse,
    StatusCommand,
    StatusResponse,
    StopCommand,
    ToggleCommand,
)
from handsfreectl.socket_path import get_socket_path

logger = logging.getLogger("handsfreectl")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class CommandFailed(HandsfreeError):
    """A command did not succeed; the message is shown to the user"""


def get_version():
    try:
        return version("handsfreectl")
    except PackageNotFoundError:
        return "unknown"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="handsfreectl",
        description="Control the handsfree transcription daemon",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)
    output_choices = [mode.value for mode in OutputMode]

    start = subparsers.add_parser("start", help="Starts the transcription")
    start.add_argument("--output", choices=output_choices, help="Where transcribed text goes (default: keyboard)")

    subparsers.add_parser("stop", help="Stops the transcription")

    toggle = subparsers.add_parser("toggle", help="Toggles the transcription state (starts if idle, stops if running)")
    toggle.add_argument("--output", choices=output_choices, help="Output mode used when starting")

    subparsers.add_parser("status", help="Gets the current status of the daemon")
    subparsers.add_parser("watch", help="Watch for status changes")
    subparsers.add_parser("shutdown", help="Tells the daemon to shut down gracefully")

    return parser


def setup_logging(verbose, logging_config):
    level = logging.DEBUG if verbose else getattr(logging, logging_config.level.upper())
    handlers = [logging.StreamHandler()]  # stderr, stdout is for command output
    if logging_config.file:
        try:
            handlers.append(logging.FileHandler(logging_config.file))
        except OSError as e:
            print(f"Warning: Could not open log file {logging_config.file}: {e}", file=sys.stderr)

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def build_command(args, config):
    """Map a parsed CLI command to its protocol command"""
    if args.command == "start":
        output = OutputMode(args.output) if args.output else config.client.output
        return StartCommand(output_mode=output)
    if args.command == "toggle":
        return ToggleCommand(output_mode=OutputMode(args.output) if args.output else None)
    if args.command == "stop":
        return StopCommand()
    if args.command == "shutdown":
        return ShutdownCommand()
    raise ValueError(f"No daemon command for {args.command!r}")


async def run_status(connection):
    logger.debug("Sending status command")
    response = await connection.send_command(StatusCommand())

    if isinstance(response, StatusResponse):
        print(response.status.state)
        if response.status.last_error:
            print(response.status.last_error)
    elif isinstance(response, ErrorResponse):
        raise CommandFailed(f"Daemon Error: {response.message}")
    else:
        logger.warning(f"Received unexpected response for status command: {response}")


async def run_watch(connection):
    stream = await connection.subscribe()

    async for item in stream:
        if isinstance(item, MalformedResponseError):
            logger.warning(str(item))
        elif isinstance(item, (StateChangeResponse, StatusResponse)):
            print(f"State changed: {item.status.state}")
            if item.status.last_error:
                print(f"Error: {item.status.last_error}")
            sys.stdout.flush()
        elif isinstance(item, ErrorResponse):
            logger.error(f"Daemon Error: {item.message}")

    logger.debug("Stream closed")


async def run_simple(connection, command):
    logger.debug(f"Sending command: {command}")
    response = await connection.send_command(command)

    if isinstance(response, AckResponse):
        print("OK")
    elif isinstance(response, StatusResponse):
        logger.warning("Received unexpected status response for non-status command")
        print("OK")
    elif isinstance(response, ErrorResponse):
        raise CommandFailed(f"Daemon Error: {response.message}")
    else:
        logger.warning(f"Received unexpected response: {response}")


async def dispatch(args, config, socket_path):
    """Run one CLI command against the daemon, returning the exit code"""
    try:
        connection = await connect_to_daemon(
            socket_path,
            response_timeout=config.client.response_timeout_seconds,
        )
    except OSError as e:
        if args.command == "status" and is_daemon_unreachable(e):
            print("Inactive")
            return 0
        raise CommandFailed(
            f"Connection Error: Failed to connect to daemon socket at {socket_path}: {e}. Is the daemon running?"
        ) from e

    async with connection:
        if args.command == "status":
            await run_status(connection)
        elif args.command == "watch":
            await run_watch(connection)
        else:
            await run_simple(connection, build_command(args, config))

    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(args.verbose, config.logging)

    socket_path = get_socket_path()

    try:
        return asyncio.run(dispatch(args, config, socket_path))
    except CommandFailed as e:
        print(f"Error: {e}", file=sys.stderr)
    except (HandsfreeError, OSError) as e:
        print(f"Error: Communication Error: {e}", file=sys.stderr)
    except KeyboardInterrupt:
        return 130
    return 1


if __name__ == "__main__":
    sys.exit(main())
