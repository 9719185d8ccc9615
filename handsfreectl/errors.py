"""
Exception types raised while talking to the handsfree daemon.

Connection failures are not wrapped: the OSError from the socket layer
reaches the caller as-is so it can tell "daemon not running" apart from
other problems.
"""


class HandsfreeError(Exception):
    """Base class for errors raised by the control client"""


class CommunicationError(HandsfreeError):
    """Failure while exchanging frames with a connected daemon"""


class SendError(CommunicationError):
    """Writing or flushing a command frame failed"""


class NoResponseError(CommunicationError):
    """The daemon did not send a response frame"""

    def __init__(self, timeout, detail):
        self.timeout = timeout
        super().__init__(f"No response from daemon within {timeout:g}s ({detail})")


class ResponseTimeoutError(NoResponseError):
    def __init__(self, timeout):
        super().__init__(timeout, "timed out waiting for a reply")


class ConnectionClosedError(NoResponseError):
    def __init__(self, timeout):
        super().__init__(timeout, "daemon closed the connection")


class MalformedResponseError(CommunicationError):
    """A response frame could not be decoded.

    Keeps the offending line so the message always shows what was received.
    """

    def __init__(self, raw_line, reason):
        self.raw_line = raw_line
        self.reason = reason
        super().__init__(f"Malformed response from daemon ({reason}): {raw_line}")
