"""Unix-domain socket transport for control messages."""

from __future__ import annotations

import logging
import os
import socket
from pathlib import Path

from horust.messages import HorustMsgMessage

log = logging.getLogger(__name__)

_CHUNK = 65536


def get_path(socket_folder_path: str | os.PathLike[str], horust_pid: int) -> Path:
    """Path of the control socket of the supervisor running with ``horust_pid``."""
    return Path(socket_folder_path) / f"horust-{horust_pid}.sock"


class UdsConnectionHandler:
    """Sends and receives whole messages over a connected stream socket.

    A message is delimited by the end of the stream: the receiver reads
    until the peer shuts down its writing side.
    """

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock

    def send_message(self, message: HorustMsgMessage) -> None:
        """Write the encoded message to the socket."""
        log.debug("Sending message: %r", message)
        self.sock.sendall(message.encode())

    def receive_message(self) -> HorustMsgMessage:
        """Read until end of stream and decode the bytes as one message."""
        buf = bytearray()
        while chunk := self.sock.recv(_CHUNK):
            buf += chunk
        received = HorustMsgMessage.decode(buf)
        log.debug("Received message: %r", received)
        return received

    def close(self) -> None:
        """Close the underlying socket."""
        self.sock.close()