#!/usr/bin/env python3
"""
Mock handsfree daemon without any transcription engine, to test the IPC protocol.
"""

import asyncio
import logging
import sys
from pathlib import Path

from handsfreectl.protocol import (
    AckResponse,
    DaemonStatus,
    ErrorResponse,
    MalformedCommandError,
    ShutdownCommand,
    StartCommand,
    StateChangeResponse,
    StatusCommand,
    StatusResponse,
    StopCommand,
    SubscribeCommand,
    ToggleCommand,
    decode_command,
    encode_response,
)
from handsfreectl.socket_path import get_socket_path

logger = logging.getLogger(__name__)

IDLE = "idle"
LISTENING = "listening"


class MockDaemon:
    def __init__(self):
        self.status = DaemonStatus(state=IDLE)
        self.output_mode = None
        self.subscribers = set()
        self.received = []
        self.server = None
        self.socket_path = None
        self.shutdown_task = None

    async def start_server(self, socket_path):
        """Start listening on the Unix domain socket"""
        self.socket_path = Path(socket_path)
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        # Remove stale socket file
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.server = await asyncio.start_unix_server(
            self.handle_client,
            path=str(self.socket_path)
        )
        logger.info(f"Mock daemon listening on {self.socket_path}")
        return self.server

    async def serve_forever(self, socket_path):
        await self.start_server(socket_path)
        try:
            async with self.server:
                await self.server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Server stopped")
        finally:
            self.remove_socket()

    async def stop_server(self):
        if self.server is None:
            return

        self.server.close()
        for writer in list(self.subscribers):
            writer.close()
        self.subscribers.clear()
        await self.server.wait_closed()
        self.remove_socket()

    def remove_socket(self):
        if self.socket_path and self.socket_path.exists():
            self.socket_path.unlink()

    async def handle_client(self, reader, writer):
        """Handle one client connection"""
        logger.info("Client connected")

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                if not line.strip():
                    continue

                try:
                    command = decode_command(line)
                except MalformedCommandError as e:
                    logger.warning(str(e))
                    await self.send_message(writer, ErrorResponse(message=str(e)))
                    continue

                logger.info(f"Received command: {command}")
                self.received.append(command)
                await self.handle_command(command, writer)

        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Connection lost: {e}")
        finally:
            self.subscribers.discard(writer)
            writer.close()
            logger.info("Client disconnected")

    async def handle_command(self, command, writer):
        if isinstance(command, StartCommand):
            self.output_mode = command.output_mode
            await self.set_state(LISTENING)
            await self.send_message(writer, AckResponse())
        elif isinstance(command, StopCommand):
            await self.set_state(IDLE)
            await self.send_message(writer, AckResponse())
        elif isinstance(command, ToggleCommand):
            if self.status.state == LISTENING:
                await self.set_state(IDLE)
            else:
                if command.output_mode is not None:
                    self.output_mode = command.output_mode
                await self.set_state(LISTENING)
            await self.send_message(writer, AckResponse())
        elif isinstance(command, StatusCommand):
            await self.send_message(writer, StatusResponse(status=self.status))
        elif isinstance(command, SubscribeCommand):
            self.subscribers.add(writer)
        elif isinstance(command, ShutdownCommand):
            logger.info("Shutdown requested")
            await self.send_message(writer, AckResponse())
            self.shutdown_task = asyncio.get_running_loop().create_task(self.stop_server())

    async def set_state(self, state, last_error=None):
        """Change state and notify subscribers"""
        self.status = DaemonStatus(state=state, last_error=last_error)
        for subscriber in list(self.subscribers):
            await self.send_message(subscriber, StateChangeResponse(status=self.status))

    async def send_message(self, writer, response):
        """Send one response frame to a client"""
        try:
            writer.write(encode_response(response))
            await writer.drain()
            logger.debug(f"Sent: {response}")
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Connection lost: {e}")
            self.subscribers.discard(writer)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    socket_path = sys.argv[1] if len(sys.argv) > 1 else get_socket_path()

    try:
        asyncio.run(MockDaemon().serve_forever(socket_path))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
