import socket
from pathlib import Path

import pytest

from horust.connection import UdsConnectionHandler, get_path
from horust.messages import (
    DecodeError,
    HorustMsgError,
    HorustMsgMessage,
    HorustMsgRequest,
    HorustMsgResponse,
    HorustMsgServiceStatusRequest,
)


def test_get_path():
    assert get_path(Path("/run/horust"), 42) == Path("/run/horust/horust-42.sock")


def test_get_path_accepts_str():
    assert get_path("/tmp", 7).name == "horust-7.sock"
    assert get_path("/tmp", 7).parent == Path("/tmp")


def test_send_and_receive_round_trip():
    left, right = socket.socketpair()
    sender = UdsConnectionHandler(left)
    receiver = UdsConnectionHandler(right)
    message = HorustMsgMessage(HorustMsgRequest(HorustMsgServiceStatusRequest("web")))
    try:
        sender.send_message(message)
        left.shutdown(socket.SHUT_WR)
        assert receiver.receive_message() == message
    finally:
        sender.close()
        receiver.close()


def test_large_message_round_trip():
    left, right = socket.socketpair()
    sender = UdsConnectionHandler(left)
    receiver = UdsConnectionHandler(right)
    message = HorustMsgMessage(HorustMsgResponse(HorustMsgError("x" * 50_000)))
    try:
        sender.send_message(message)
        left.shutdown(socket.SHUT_WR)
        assert receiver.receive_message() == message
    finally:
        sender.close()
        receiver.close()


def test_empty_stream_is_empty_message():
    left, right = socket.socketpair()
    receiver = UdsConnectionHandler(right)
    try:
        left.shutdown(socket.SHUT_WR)
        assert receiver.receive_message() == HorustMsgMessage()
    finally:
        left.close()
        receiver.close()


def test_garbage_raises_decode_error():
    left, right = socket.socketpair()
    receiver = UdsConnectionHandler(right)
    try:
        left.sendall(b"\x0a\x09")
        left.shutdown(socket.SHUT_WR)
        with pytest.raises(DecodeError):
            receiver.receive_message()
    finally:
        left.close()
        receiver.close()


def test_close_closes_socket():
    left, right = socket.socketpair()
    handler = UdsConnectionHandler(left)
    handler.close()
    assert left.fileno() == -1
    right.close()