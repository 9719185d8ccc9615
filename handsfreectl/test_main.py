"""Tests for the handsfreectl command line"""

import asyncio
import logging

import pytest

from handsfreectl import main
from handsfreectl.client import connect_to_daemon
from handsfreectl.config import Config, LoggingConfig
from handsfreectl.main import CommandFailed, build_command, build_parser, dispatch, setup_logging
from handsfreectl.mock_daemon import MockDaemon
from handsfreectl.protocol import (
    AckResponse,
    OutputMode,
    ShutdownCommand,
    StartCommand,
    StopCommand,
    ToggleCommand,
)


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point the runtime and config directories at an empty temp dir"""
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setattr(main, "setup_logging", lambda verbose, logging_config: None)
    return tmp_path


def parse(*argv):
    return build_parser().parse_args(list(argv))


def test_parse_start_defaults_to_config_output():
    args = parse("start")
    assert args.output is None
    assert build_command(args, Config()) == StartCommand(output_mode=OutputMode.KEYBOARD)


def test_parse_start_clipboard():
    args = parse("start", "--output", "clipboard")
    assert build_command(args, Config()) == StartCommand(output_mode=OutputMode.CLIPBOARD)


def test_start_uses_configured_output():
    config = Config()
    config.client.output = OutputMode.CLIPBOARD
    assert build_command(parse("start"), config) == StartCommand(output_mode=OutputMode.CLIPBOARD)


def test_parse_toggle():
    assert build_command(parse("toggle"), Config()) == ToggleCommand()
    assert build_command(parse("toggle", "--output", "keyboard"), Config()) == ToggleCommand(
        output_mode=OutputMode.KEYBOARD
    )


def test_parse_simple_commands():
    assert build_command(parse("stop"), Config()) == StopCommand()
    assert build_command(parse("shutdown"), Config()) == ShutdownCommand()
    assert parse("status").command == "status"
    assert parse("watch").command == "watch"


def test_parse_invalid_command():
    with pytest.raises(SystemExit) as excinfo:
        parse("invalid_command")
    assert excinfo.value.code == 2


def test_parse_invalid_output_mode():
    with pytest.raises(SystemExit) as excinfo:
        parse("start", "--output", "invalid")
    assert excinfo.value.code == 2


def test_status_without_daemon_prints_inactive(isolated_env, capsys):
    assert main.main(["status"]) == 0
    assert capsys.readouterr().out == "Inactive\n"


def test_stop_without_daemon_fails(isolated_env, capsys):
    assert main.main(["stop"]) == 1

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Connection Error" in captured.err
    assert "Is the daemon running?" in captured.err


@pytest.mark.asyncio
async def test_status_prints_state(tmp_path, capsys):
    daemon = MockDaemon()
    await daemon.start_server(tmp_path / "d.sock")
    try:
        assert await dispatch(parse("status"), Config(), daemon.socket_path) == 0
    finally:
        await daemon.stop_server()

    assert capsys.readouterr().out == "idle\n"


@pytest.mark.asyncio
async def test_status_prints_last_error(tmp_path, capsys):
    daemon = MockDaemon()
    await daemon.start_server(tmp_path / "d.sock")
    await daemon.set_state("error", last_error="Model failed")
    try:
        assert await dispatch(parse("status"), Config(), daemon.socket_path) == 0
    finally:
        await daemon.stop_server()

    assert capsys.readouterr().out == "error\nModel failed\n"


@pytest.mark.asyncio
async def test_start_and_stop(tmp_path, capsys):
    daemon = MockDaemon()
    await daemon.start_server(tmp_path / "d.sock")
    try:
        assert await dispatch(parse("start", "--output", "clipboard"), Config(), daemon.socket_path) == 0
        assert daemon.status.state == "listening"
        assert daemon.output_mode == OutputMode.CLIPBOARD

        assert await dispatch(parse("stop"), Config(), daemon.socket_path) == 0
        assert daemon.status.state == "idle"
    finally:
        await daemon.stop_server()

    assert capsys.readouterr().out == "OK\nOK\n"
    assert daemon.received == [StartCommand(output_mode=OutputMode.CLIPBOARD), StopCommand()]


@pytest.mark.asyncio
async def test_shutdown_stops_mock_daemon(tmp_path, capsys):
    daemon = MockDaemon()
    await daemon.start_server(tmp_path / "d.sock")

    assert await dispatch(parse("shutdown"), Config(), daemon.socket_path) == 0
    await asyncio.wait_for(daemon.shutdown_task, timeout=2)

    assert capsys.readouterr().out == "OK\n"
    assert not daemon.socket_path.exists()


@pytest.mark.asyncio
async def test_daemon_error_fails_command(tmp_path):
    socket_path = tmp_path / "d.sock"

    async def handler(reader, writer):
        await reader.readline()
        writer.write(b'{"response_type":"error","message":"Already running"}\n')
        await writer.drain()
        writer.close()

    server = await asyncio.start_unix_server(handler, path=str(socket_path))
    try:
        with pytest.raises(CommandFailed, match="Daemon Error: Already running"):
            await dispatch(parse("start"), Config(), socket_path)
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_watch_prints_state_changes_until_daemon_exits(tmp_path, capsys):
    daemon = MockDaemon()
    await daemon.start_server(tmp_path / "d.sock")
    watch = asyncio.create_task(dispatch(parse("watch"), Config(), daemon.socket_path))

    try:
        while not daemon.subscribers:
            await asyncio.sleep(0.01)

        async with await connect_to_daemon(daemon.socket_path) as connection:
            assert await connection.send_command(ToggleCommand()) == AckResponse()
        await daemon.set_state("error", last_error="Microphone unplugged")
    finally:
        await daemon.stop_server()

    assert await asyncio.wait_for(watch, timeout=2) == 0
    assert capsys.readouterr().out.splitlines() == [
        "State changed: listening",
        "State changed: error",
        "Error: Microphone unplugged",
    ]


@pytest.fixture
def root_logger():
    """Restore the root logger after setup_logging replaced its handlers"""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_setup_logging_writes_to_log_file(tmp_path, root_logger):
    log_file = tmp_path / "ctl.log"

    setup_logging(False, LoggingConfig(level="info", file=str(log_file)))
    logging.getLogger("handsfreectl").info("hello from the client")
    for handler in root_logger.handlers:
        handler.flush()

    assert root_logger.level == logging.INFO
    assert "hello from the client" in log_file.read_text()


def test_setup_logging_survives_unwritable_log_file(tmp_path, root_logger, capsys):
    log_file = tmp_path / "missing" / "ctl.log"

    setup_logging(True, LoggingConfig(file=str(log_file)))

    assert root_logger.level == logging.DEBUG
    assert not any(isinstance(handler, logging.FileHandler) for handler in root_logger.handlers)
    assert f"Could not open log file {log_file}" in capsys.readouterr().err
