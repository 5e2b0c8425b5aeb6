"""Client side of the control socket."""

from __future__ import annotations

import logging
import os
import socket

from horust.connection import UdsConnectionHandler
from horust.messages import (
    HorustChangeServiceStatus,
    HorustMsgError,
    HorustMsgMessage,
    HorustMsgRequest,
    HorustMsgResponse,
    HorustMsgServiceChangeRequest,
    HorustMsgServiceChangeResponse,
    HorustMsgServiceInfoRequest,
    HorustMsgServiceInfoResponse,
    HorustMsgServiceStatus,
    HorustMsgServiceStatusRequest,
    HorustMsgServiceStatusResponse,
)

log = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """Raised when the server answers with an error or with an unexpected reply."""


def _unwrap_response(message: HorustMsgMessage):
    match message.message_type:
        case HorustMsgResponse(response=HorustMsgError(error_string=text)):
            raise CommandError(f"Error: {text}")
        case HorustMsgResponse(response=response) if response is not None:
            return response
    raise CommandError(f"No response received: {message!r}")


class ClientHandler:
    """A connection to a running supervisor, good for a single request.

    The request is terminated by shutting down the writing side of the
    socket; the server answers and closes the stream.
    """

    def __init__(self, socket_path: str | os.PathLike[str]) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(os.fspath(socket_path))
        except OSError:
            sock.close()
            raise
        self._connection = UdsConnectionHandler(sock)

    def _exchange(self, request):
        try:
            self._connection.send_message(HorustMsgMessage(HorustMsgRequest(request)))
            # The server reads until end of stream.
            self._connection.sock.shutdown(socket.SHUT_WR)
            received = self._connection.receive_message()
        finally:
            self._connection.close()
        log.debug("Client: received: %r", received)
        return _unwrap_response(received)

    def send_status_request(self, service_name: str) -> tuple[str, HorustMsgServiceStatus]:
        """Ask for the status of a service; returns its name and status."""
        response = self._exchange(HorustMsgServiceStatusRequest(service_name))
        if not isinstance(response, HorustMsgServiceStatusResponse):
            raise CommandError(f"Invalid response received: {response!r}")
        return response.service_name, response.service_status

    def send_info_request(self, service_name: str) -> tuple[str, str]:
        """Ask for runtime information about a service; returns its name and the info."""
        response = self._exchange(HorustMsgServiceInfoRequest(service_name))
        if not isinstance(response, HorustMsgServiceInfoResponse):
            raise CommandError(f"Invalid response received: {response!r}")
        return response.service_name, response.info

    def send_change_request(
        self, service_name: str, service_status: str
    ) -> tuple[str, HorustMsgServiceStatus]:
        """Ask to START or STOP a service; returns its name and resulting status."""
        change = HorustChangeServiceStatus.from_str_name(service_status)
        if change is None:
            self._connection.close()
            raise ValueError(f"Unknown service status change: {service_status!r}")
        response = self._exchange(HorustMsgServiceChangeRequest(service_name, change))
        if not isinstance(response, HorustMsgServiceChangeResponse):
            raise CommandError(f"Invalid response received: {response!r}")
        return response.service_name, response.service_status

    def client(self, service_name: str) -> tuple[str, HorustMsgServiceStatus]:
        """Request the status of a service and log it."""
        received = self.send_status_request(service_name)
        log.info("Client: received: %r", received)
        return received