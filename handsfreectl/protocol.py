"""
Wire protocol shared with the handsfree daemon.

Every frame is one compact JSON object followed by a newline. Commands carry
their variant in a "command" key, responses in a "response_type" key:

    {"command":"start","output_mode":"clipboard"}
    {"response_type":"status","status":{"state":"idle","last_error":null}}
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from handsfreectl.errors import MalformedResponseError


COMMAND_KEY = "command"
RESPONSE_KEY = "response_type"


class OutputMode(str, Enum):
    KEYBOARD = "keyboard"
    CLIPBOARD = "clipboard"


# Commands (client -> daemon)

@dataclass(frozen=True)
class StartCommand:
    output_mode: OutputMode = OutputMode.KEYBOARD
    name: ClassVar[str] = "start"

    def to_dict(self):
        return {COMMAND_KEY: self.name, "output_mode": self.output_mode.value}


@dataclass(frozen=True)
class StopCommand:
    name: ClassVar[str] = "stop"

    def to_dict(self):
        return {COMMAND_KEY: self.name}


@dataclass(frozen=True)
class StatusCommand:
    name: ClassVar[str] = "status"

    def to_dict(self):
        return {COMMAND_KEY: self.name}


@dataclass(frozen=True)
class ShutdownCommand:
    name: ClassVar[str] = "shutdown"

    def to_dict(self):
        return {COMMAND_KEY: self.name}


@dataclass(frozen=True)
class ToggleCommand:
    output_mode: Optional[OutputMode] = None
    name: ClassVar[str] = "toggle"

    def to_dict(self):
        data = {COMMAND_KEY: self.name}
        if self.output_mode is not None:
            data["output_mode"] = self.output_mode.value
        return data


@dataclass(frozen=True)
class SubscribeCommand:
    name: ClassVar[str] = "subscribe"

    def to_dict(self):
        return {COMMAND_KEY: self.name}


Command = Union[StartCommand, StopCommand, StatusCommand, ShutdownCommand, ToggleCommand, SubscribeCommand]


# Responses (daemon -> client)

@dataclass(frozen=True)
class DaemonStatus:
    state: str
    last_error: Optional[str] = None

    def to_dict(self):
        return {"state": self.state, "last_error": self.last_error}


@dataclass(frozen=True)
class AckResponse:
    name: ClassVar[str] = "ack"

    def to_dict(self):
        return {RESPONSE_KEY: self.name}


@dataclass(frozen=True)
class StatusResponse:
    status: DaemonStatus
    name: ClassVar[str] = "status"

    def to_dict(self):
        return {RESPONSE_KEY: self.name, "status": self.status.to_dict()}


@dataclass(frozen=True)
class StateChangeResponse:
    """Pushed by the daemon to subscribers whenever its state changes"""
    status: DaemonStatus
    name: ClassVar[str] = "state_change"

    def to_dict(self):
        return {RESPONSE_KEY: self.name, "status": self.status.to_dict()}


@dataclass(frozen=True)
class ErrorResponse:
    message: str
    name: ClassVar[str] = "error"

    def to_dict(self):
        return {RESPONSE_KEY: self.name, "message": self.message}


Response = Union[AckResponse, StatusResponse, StateChangeResponse, ErrorResponse]


def _dumps(data) -> bytes:
    return (json.dumps(data, separators=(",", ":")) + "\n").encode("utf-8")


def _load_object(line, error_cls):
    text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
    text = text.rstrip("\r\n")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise error_cls(text, str(e)) from e
    if not isinstance(data, dict):
        raise error_cls(text, f"expected a JSON object, got {type(data).__name__}")
    return text, data


def _field(data, key, kind, text, error_cls, optional=False):
    if key not in data:
        if optional:
            return None
        raise error_cls(text, f"missing field '{key}'")
    value = data[key]
    if value is None and optional:
        return None
    if not isinstance(value, kind):
        raise error_cls(text, f"field '{key}' must be {kind.__name__}")
    return value


def _parse_status(data, text, error_cls):
    status = _field(data, "status", dict, text, error_cls)
    return DaemonStatus(
        state=_field(status, "state", str, text, error_cls),
        last_error=_field(status, "last_error", str, text, error_cls, optional=True),
    )


def encode_command(command) -> bytes:
    """Serialize a command into a single newline-terminated frame"""
    return _dumps(command.to_dict())


def decode_response(line) -> Response:
    """Deserialize one response frame.

    Raises MalformedResponseError, carrying the raw line, for anything that
    is not a well-formed response.
    """
    text, data = _load_object(line, MalformedResponseError)
    kind = data.get(RESPONSE_KEY)

    if kind == AckResponse.name:
        return AckResponse()
    if kind == StatusResponse.name:
        return StatusResponse(status=_parse_status(data, text, MalformedResponseError))
    if kind == StateChangeResponse.name:
        return StateChangeResponse(status=_parse_status(data, text, MalformedResponseError))
    if kind == ErrorResponse.name:
        return ErrorResponse(message=_field(data, "message", str, text, MalformedResponseError))

    raise MalformedResponseError(text, f"unknown {RESPONSE_KEY} {kind!r}")


# Daemon side of the protocol, used by the mock daemon

class MalformedCommandError(ValueError):
    def __init__(self, raw_line, reason):
        self.raw_line = raw_line
        self.reason = reason
        super().__init__(f"Malformed command: {reason}: {raw_line!r}")


def _output_mode(data, text, optional):
    value = _field(data, "output_mode", str, text, MalformedCommandError, optional=optional)
    if value is None:
        return None
    try:
        return OutputMode(value)
    except ValueError:
        raise MalformedCommandError(text, f"unknown output_mode {value!r}") from None


def decode_command(line) -> Command:
    """Deserialize one command frame as the daemon sees it"""
    text, data = _load_object(line, MalformedCommandError)
    kind = data.get(COMMAND_KEY)

    if kind == StartCommand.name:
        return StartCommand(output_mode=_output_mode(data, text, optional=False))
    if kind == ToggleCommand.name:
        return ToggleCommand(output_mode=_output_mode(data, text, optional=True))
    for cls in (StopCommand, StatusCommand, ShutdownCommand, SubscribeCommand):
        if kind == cls.name:
            return cls()

    raise MalformedCommandError(text, f"unknown {COMMAND_KEY} {kind!r}")


def encode_response(response) -> bytes:
    """Serialize a response into a single newline-terminated frame"""
    return _dumps(response.to_dict())
