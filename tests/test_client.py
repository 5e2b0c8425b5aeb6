import socket
import tempfile
import threading
from pathlib import Path

import pytest

from horust.client import ClientHandler, CommandError
from horust.messages import HorustChangeServiceStatus, HorustMsgServiceStatus
from horust.server import CommandsHandler


class MockCommandsHandler(CommandsHandler):
    def __init__(self, unix_listener):
        super().__init__(unix_listener)
        self.changes = []

    def get_service_status(self, service_name):
        return {
            "Running": HorustMsgServiceStatus.RUNNING,
            "Started": HorustMsgServiceStatus.STARTED,
        }[service_name]

    def get_service_info(self, service_name):
        return {"Running": "ok", "Started": "ok"}[service_name]

    def update_service_status(self, service_name, new_status):
        self.changes.append((service_name, new_status))
        return {
            "Running": HorustMsgServiceStatus.RUNNING,
            "Started": HorustMsgServiceStatus.FAILED,
        }[service_name]


@pytest.fixture
def socket_path():
    with tempfile.TemporaryDirectory(prefix="hc") as folder:
        yield Path(folder) / "simple.sock"


def serve(path, count):
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(str(path))
    listener.listen()
    handler = MockCommandsHandler(listener)

    def loop():
        try:
            for _ in range(count):
                handler.accept()
        finally:
            listener.close()

    thread = threading.Thread(target=loop, daemon=True)
    thread.start()
    return thread, handler


def test_simple(socket_path):
    thread, _ = serve(socket_path, 2)
    assert ClientHandler(socket_path).client("Running") == (
        "Running",
        HorustMsgServiceStatus.RUNNING,
    )
    assert ClientHandler(socket_path).client("Started") == (
        "Started",
        HorustMsgServiceStatus.STARTED,
    )
    thread.join(3)
    assert not thread.is_alive()


def test_info_request(socket_path):
    thread, _ = serve(socket_path, 1)
    assert ClientHandler(socket_path).send_info_request("Running") == ("Running", "ok")
    thread.join(3)
    assert not thread.is_alive()


def test_change_request(socket_path):
    thread, handler = serve(socket_path, 2)
    assert ClientHandler(socket_path).send_change_request("Started", "STOP") == (
        "Started",
        HorustMsgServiceStatus.FAILED,
    )
    assert ClientHandler(socket_path).send_change_request("Running", "START") == (
        "Running",
        HorustMsgServiceStatus.RUNNING,
    )
    thread.join(3)
    assert handler.changes == [
        ("Started", HorustChangeServiceStatus.STOP),
        ("Running", HorustChangeServiceStatus.START),
    ]


def test_error_response_raises(socket_path):
    thread, _ = serve(socket_path, 2)
    with pytest.raises(CommandError, match="Error from status handler"):
        ClientHandler(socket_path).send_status_request("Missing")
    with pytest.raises(CommandError, match="Error from change handler"):
        ClientHandler(socket_path).send_change_request("Missing", "STOP")
    thread.join(3)
    assert not thread.is_alive()


def test_invalid_change_status(socket_path):
    thread, handler = serve(socket_path, 1)
    with pytest.raises(ValueError):
        ClientHandler(socket_path).send_change_request("Running", "RESTART")
    thread.join(3)
    assert not thread.is_alive()
    assert handler.changes == []


def test_client_serves_one_request(socket_path):
    thread, _ = serve(socket_path, 1)
    client = ClientHandler(socket_path)
    assert client.send_status_request("Running")[1] == HorustMsgServiceStatus.RUNNING
    with pytest.raises(OSError):
        client.send_status_request("Running")
    thread.join(3)
    assert not thread.is_alive()


def test_connect_without_server(socket_path):
    with pytest.raises(OSError):
        ClientHandler(socket_path)