"""Server side of the control socket."""

from __future__ import annotations

import logging
import socket
from abc import ABC, abstractmethod

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


class CommandsHandler(ABC):
    """Accepts client connections and answers their requests.

    Subclasses supply the answers by implementing the three service hooks;
    an exception raised by a hook is sent back as an error response.
    """

    def __init__(self, unix_listener: socket.socket) -> None:
        self.unix_listener = unix_listener

    def start(self) -> None:
        """Serve connections forever."""
        while True:
            self.accept()

    def accept(self) -> None:
        """Accept and serve one pending connection, if any."""
        try:
            conn, _addr = self.unix_listener.accept()
        except BlockingIOError:
            return
        except OSError as err:
            log.error("Error accepting connection: %s - you might need to restart Horust.", err)
            return
        conn.setblocking(True)
        connection = UdsConnectionHandler(conn)
        try:
            self.handle_connection(connection)
        except Exception as err:  # noqa: BLE001 - a bad client must not stop the server
            log.error("Error handling connection: %s", err)
        finally:
            connection.close()

    def handle_connection(self, connection: UdsConnectionHandler) -> None:
        """Read one request from the connection and write the response."""
        received = connection.receive_message().message_type
        if received is None:
            raise ValueError("No request found in message sent from client.")
        if not isinstance(received, HorustMsgRequest) or received.request is None:
            return
        connection.send_message(self._respond(received.request))

    def _respond(self, request) -> HorustMsgMessage:
        match request:
            case HorustMsgServiceStatusRequest(service_name=name):
                log.info("Requested status for %s", name)
                try:
                    return new_status_response(name, self.get_service_status(name))
                except Exception as err:  # noqa: BLE001
                    return new_error_response(f"Error from status handler: {err}")
            case HorustMsgServiceInfoRequest(service_name=name):
                log.info("Requested info for %s", name)
                try:
                    return new_info_response(name, self.get_service_info(name))
                except Exception as err:  # noqa: BLE001
                    return new_error_response(f"Error from status handler: {err}")
            case HorustMsgServiceChangeRequest(service_name=name, service_status=status):
                log.info("Requested service update for %s to %s", name, int(status))
                try:
                    return new_change_response(name, self.update_service_status(name, status))
                except Exception as err:  # noqa: BLE001
                    return new_error_response(f"Error from change handler: {err}")
        raise TypeError(f"unexpected request: {request!r}")

    @abstractmethod
    def get_service_status(self, service_name: str) -> HorustMsgServiceStatus:
        """Current status of the named service."""

    @abstractmethod
    def get_service_info(self, service_name: str) -> str:
        """Human-readable runtime information about the named service."""

    @abstractmethod
    def update_service_status(
        self, service_name: str, new_status: HorustChangeServiceStatus
    ) -> HorustMsgServiceStatus:
        """Apply a status change and return the service's status afterwards."""


def new_error_response(error: str) -> HorustMsgMessage:
    return HorustMsgMessage(HorustMsgResponse(HorustMsgError(error)))


def new_status_response(service_name: str, status: HorustMsgServiceStatus) -> HorustMsgMessage:
    return HorustMsgMessage(
        HorustMsgResponse(HorustMsgServiceStatusResponse(service_name, status))
    )


def new_change_response(service_name: str, status: HorustMsgServiceStatus) -> HorustMsgMessage:
    return HorustMsgMessage(
        HorustMsgResponse(HorustMsgServiceChangeResponse(service_name, status))
    )


def new_info_response(service_name: str, info: str) -> HorustMsgMessage:
    return HorustMsgMessage(HorustMsgResponse(HorustMsgServiceInfoResponse(service_name, info)))