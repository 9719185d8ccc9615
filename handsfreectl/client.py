"""
Connection to the handsfree daemon: one request/response exchange or one
long-lived subscription per connection.
"""

import asyncio
import logging

from handsfreectl.errors import (
    ConnectionClosedError,
    MalformedResponseError,
    ResponseTimeoutError,
    SendError,
)
from handsfreectl.protocol import SubscribeCommand, decode_response, encode_command

logger = logging.getLogger(__name__)

RESPONSE_TIMEOUT_SECONDS = 5.0

# Longest frame accepted before the line is reported as malformed
FRAME_LIMIT_BYTES = 16 * 1024 * 1024


def is_daemon_unreachable(error) -> bool:
    """True when a connect failure just means no daemon is listening"""
    return isinstance(error, (FileNotFoundError, ConnectionRefusedError))


async def read_frame(reader, limit=FRAME_LIMIT_BYTES):
    """Read the next non-blank line, or b'' once the peer has closed.

    A line longer than the reader's limit is dropped and reported as a
    MalformedResponseError; the reader stays usable for the following lines.
    """
    while True:
        try:
            line = await reader.readline()
        except ValueError as e:
            raise MalformedResponseError("", f"frame longer than {limit} bytes: {e}") from e
        if not line:
            return b""
        if line.strip():
            return line
        logger.debug("Skipping blank line")


class ResponseStream:
    """Responses pushed by the daemon after a subscribe command.

    Iterates until the daemon closes the connection. Each item is either a
    decoded response or a MalformedResponseError for a frame that could not
    be decoded; a bad frame does not end the stream.
    """

    def __init__(self, connection):
        self.connection = connection

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            line = await read_frame(self.connection.reader, self.connection.frame_limit)
        except MalformedResponseError as e:
            logger.debug(f"Dropped oversized frame in subscription: {e}")
            return e

        if not line:
            logger.debug("Daemon closed the subscription")
            raise StopAsyncIteration

        try:
            return decode_response(line)
        except MalformedResponseError as e:
            logger.debug(f"Bad frame in subscription: {e}")
            return e

    async def aclose(self):
        """Stop listening and close the underlying connection"""
        await self.connection.close()


class DaemonConnection:
    def __init__(self, reader, writer, response_timeout=RESPONSE_TIMEOUT_SECONDS, frame_limit=FRAME_LIMIT_BYTES):
        self.reader = reader
        self.writer = writer
        self.response_timeout = response_timeout
        self.frame_limit = frame_limit

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def send_command_only(self, command):
        """Write one command frame without waiting for a reply"""
        frame = encode_command(command)
        logger.debug(f"Sending: {frame.decode().strip()}")

        try:
            self.writer.write(frame)
            await self.writer.drain()
        except OSError as e:
            raise SendError(f"Failed to write command to socket: {e}") from e

    async def send_command(self, command):
        """Send a command and wait for exactly one response"""
        await self.send_command_only(command)

        try:
            line = await asyncio.wait_for(read_frame(self.reader, self.frame_limit), timeout=self.response_timeout)
        except asyncio.TimeoutError:
            raise ResponseTimeoutError(self.response_timeout) from None

        if not line:
            raise ConnectionClosedError(self.response_timeout)

        response = decode_response(line)
        logger.debug(f"Received: {response}")
        return response

    async def subscribe(self):
        """Switch the connection to receive-only and return the event stream"""
        await self.send_command_only(SubscribeCommand())
        return ResponseStream(self)

    async def close(self):
        if self.writer.is_closing():
            return

        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Expected error during connection close: {e}")


async def connect_to_daemon(socket_path, response_timeout=RESPONSE_TIMEOUT_SECONDS, frame_limit=FRAME_LIMIT_BYTES):
    """Open a connection to the daemon socket.

    Makes a single attempt. Failures raise the OSError from the socket layer
    unchanged; see is_daemon_unreachable().
    """
    reader, writer = await asyncio.open_unix_connection(str(socket_path), limit=frame_limit)
    logger.debug(f"Connected to daemon at {socket_path}")
    return DaemonConnection(reader, writer, response_timeout=response_timeout, frame_limit=frame_limit)
