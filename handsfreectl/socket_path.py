"""
Location of the daemon's Unix domain socket.
"""

import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

RUNTIME_DIR_ENV = "XDG_RUNTIME_DIR"
SOCKET_DIR_NAME = "handsfree"
SOCKET_FILE_NAME = "daemon.sock"


def fallback_socket_path() -> Path:
    """Per-user socket path in /tmp"""
    return Path(f"/tmp/handsfree-{os.geteuid()}.sock")


def get_socket_path() -> Path:
    """Resolve the daemon socket path, matching the daemon's own defaults.

    Never fails: a missing runtime directory or a directory that cannot be
    created degrades to the /tmp fallback.
    """
    runtime_dir = os.environ.get(RUNTIME_DIR_ENV)

    if runtime_dir:
        socket_dir = Path(runtime_dir) / SOCKET_DIR_NAME
        try:
            socket_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Could not create {socket_dir} in {RUNTIME_DIR_ENV}: {e}. Falling back to /tmp.")
        else:
            socket_path = socket_dir / SOCKET_FILE_NAME
            logger.debug(f"Using socket path: {socket_path}")
            return socket_path
    else:
        logger.warning(f"{RUNTIME_DIR_ENV} not set. Falling back to /tmp.")

    socket_path = fallback_socket_path()
    logger.debug(f"Using fallback socket path: {socket_path}")
    return socket_path
