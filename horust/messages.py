"""Control-socket message types and their protobuf wire encoding."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Iterator

_VARINT = 0
_I64 = 1
_LEN = 2
_I32 = 5


class DecodeError(ValueError):
    """Raised when bytes do not hold a valid message."""


class HorustMsgServiceStatus(IntEnum):
    """Status of a service as reported over the control socket."""

    STARTING = 0
    STARTED = 1
    RUNNING = 2
    INKILLING = 3
    SUCCESS = 4
    FINISHED = 5
    FINISHEDFAILED = 6
    FAILED = 7
    INITIAL = 8

    def as_str_name(self) -> str:
        """Name of the value as used in the protocol definition."""
        return self.name

    @classmethod
    def from_str_name(cls, value: str) -> HorustMsgServiceStatus | None:
        """Value for a protocol name, or None if the name is unknown."""
        return cls.__members__.get(value)


class HorustChangeServiceStatus(IntEnum):
    """Requested change of a service's status."""

    START = 0
    STOP = 1

    def as_str_name(self) -> str:
        """Name of the value as used in the protocol definition."""
        return self.name

    @classmethod
    def from_str_name(cls, value: str) -> HorustChangeServiceStatus | None:
        """Value for a protocol name, or None if the name is unknown."""
        return cls.__members__.get(value)


def _encode_varint(value: int) -> bytes:
    if value < 0:
        value += 1 << 64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _key(tag: int, wire_type: int) -> bytes:
    return _encode_varint((tag << 3) | wire_type)


def _length_delimited(tag: int, payload: bytes) -> bytes:
    return _key(tag, _LEN) + _encode_varint(len(payload)) + payload


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise DecodeError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if result >= 1 << 64:
                raise DecodeError("varint overflows 64 bits")
            return result, pos
    raise DecodeError("varint is too long")


def _take(data: bytes, pos: int, size: int) -> tuple[bytes, int]:
    end = pos + size
    if end > len(data):
        raise DecodeError("buffer underflow")
    return data[pos:end], end


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    pos = 0
    while pos < len(data):
        key, pos = _read_varint(data, pos)
        field, wire_type = key >> 3, key & 7
        if field == 0:
            raise DecodeError("invalid field number 0")
        value: int | bytes
        if wire_type == _VARINT:
            value, pos = _read_varint(data, pos)
        elif wire_type == _I64:
            value, pos = _take(data, pos, 8)
        elif wire_type == _LEN:
            length, pos = _read_varint(data, pos)
            value, pos = _take(data, pos, length)
        elif wire_type == _I32:
            value, pos = _take(data, pos, 4)
        else:
            raise DecodeError(f"invalid wire type {wire_type}")
        yield field, wire_type, value


def _as_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value >= 1 << 31 else value


class _Fields:
    """Messages made of plain string and enum fields."""

    _SCHEMA: ClassVar[tuple[tuple[int, str, type], ...]] = ()

    def _serialize(self) -> bytes:
        out = bytearray()
        for tag, attr, kind in self._SCHEMA:
            value = getattr(self, attr)
            if kind is str:
                if value:
                    out += _length_delimited(tag, value.encode("utf-8"))
            elif int(value):
                out += _key(tag, _VARINT) + _encode_varint(int(value))
        return bytes(out)

    @classmethod
    def _parse(cls, data: bytes):
        schema = {tag: (attr, kind) for tag, attr, kind in cls._SCHEMA}
        values: dict[str, object] = {}
        for field, wire_type, value in _iter_fields(data):
            entry = schema.get(field)
            if entry is None:
                continue
            attr, kind = entry
            if kind is str:
                if wire_type != _LEN:
                    raise DecodeError(f"{cls.__name__}.{attr}: invalid wire type {wire_type}")
                try:
                    values[attr] = value.decode("utf-8")
                except UnicodeDecodeError as err:
                    raise DecodeError(f"{cls.__name__}.{attr}: invalid UTF-8") from err
            else:
                if wire_type != _VARINT:
                    raise DecodeError(f"{cls.__name__}.{attr}: invalid wire type {wire_type}")
                number = _as_int32(value)
                try:
                    values[attr] = kind(number)
                except ValueError as err:
                    raise DecodeError(f"{cls.__name__}.{attr}: unknown value {number}") from err
        return cls(**values)


class _OneOf:
    """Messages holding exactly one of several sub-messages, or none."""

    _ATTR: ClassVar[str] = ""
    _VARIANTS: ClassVar[dict[int, type]] = {}

    def _serialize(self) -> bytes:
        value = getattr(self, self._ATTR)
        if value is None:
            return b""
        for tag, kind in self._VARIANTS.items():
            if type(value) is kind:
                return _length_delimited(tag, value._serialize())
        raise TypeError(f"unexpected {self._ATTR} value: {value!r}")

    @classmethod
    def _parse(cls, data: bytes):
        chosen: int | None = None
        payload = b""
        for field, wire_type, value in _iter_fields(data):
            if field not in cls._VARIANTS:
                continue
            if wire_type != _LEN:
                raise DecodeError(f"{cls.__name__}.{cls._ATTR}: invalid wire type {wire_type}")
            # A repeated occurrence of the same variant merges into it.
            if field == chosen:
                payload += value
            else:
                chosen, payload = field, value
        if chosen is None:
            return cls()
        return cls(cls._VARIANTS[chosen]._parse(payload))


@dataclass(frozen=True)
class HorustMsgError(_Fields):
    error_string: str = ""

    _SCHEMA: ClassVar[tuple] = ((1, "error_string", str),)


@dataclass(frozen=True)
class HorustMsgServiceStatusRequest(_Fields):
    service_name: str = ""

    _SCHEMA: ClassVar[tuple] = ((1, "service_name", str),)


@dataclass(frozen=True)
class HorustMsgServiceStatusResponse(_Fields):
    service_name: str = ""
    service_status: HorustMsgServiceStatus = HorustMsgServiceStatus.STARTING

    _SCHEMA: ClassVar[tuple] = (
        (1, "service_name", str),
        (2, "service_status", HorustMsgServiceStatus),
    )


@dataclass(frozen=True)
class HorustMsgServiceChangeRequest(_Fields):
    service_name: str = ""
    service_status: HorustChangeServiceStatus = HorustChangeServiceStatus.START

    _SCHEMA: ClassVar[tuple] = (
        (1, "service_name", str),
        (2, "service_status", HorustChangeServiceStatus),
    )


@dataclass(frozen=True)
class HorustMsgServiceInfoRequest(_Fields):
    service_name: str = ""

    _SCHEMA: ClassVar[tuple] = ((1, "service_name", str),)


@dataclass(frozen=True)
class HorustMsgServiceInfoResponse(_Fields):
    service_name: str = ""
    info: str = ""

    _SCHEMA: ClassVar[tuple] = ((1, "service_name", str), (2, "info", str))


@dataclass(frozen=True)
class HorustMsgServiceChangeResponse(_Fields):
    """Status of the service after a change request."""

    service_name: str = ""
    service_status: HorustMsgServiceStatus = HorustMsgServiceStatus.STARTING

    _SCHEMA: ClassVar[tuple] = (
        (1, "service_name", str),
        (2, "service_status", HorustMsgServiceStatus),
    )


@dataclass(frozen=True)
class HorustMsgRequest(_OneOf):
    request: (
        HorustMsgServiceStatusRequest
        | HorustMsgServiceChangeRequest
        | HorustMsgServiceInfoRequest
        | None
    ) = None

    _ATTR: ClassVar[str] = "request"
    _VARIANTS: ClassVar[dict[int, type]] = {
        1: HorustMsgServiceStatusRequest,
        2: HorustMsgServiceChangeRequest,
        3: HorustMsgServiceInfoRequest,
    }


@dataclass(frozen=True)
class HorustMsgResponse(_OneOf):
    response: (
        HorustMsgError
        | HorustMsgServiceStatusResponse
        | HorustMsgServiceInfoResponse
        | HorustMsgServiceChangeResponse
        | None
    ) = None

    _ATTR: ClassVar[str] = "response"
    _VARIANTS: ClassVar[dict[int, type]] = {
        1: HorustMsgError,
        2: HorustMsgServiceStatusResponse,
        3: HorustMsgServiceInfoResponse,
        4: HorustMsgServiceChangeResponse,
    }


@dataclass(frozen=True)
class HorustMsgMessage(_OneOf):
    """Top-level message exchanged over the control socket."""

    message_type: HorustMsgRequest | HorustMsgResponse | None = None

    _ATTR: ClassVar[str] = "message_type"
    _VARIANTS: ClassVar[dict[int, type]] = {1: HorustMsgRequest, 2: HorustMsgResponse}

    def encode(self) -> bytes:
        """Serialize the message to protobuf wire bytes."""
        return self._serialize()

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> HorustMsgMessage:
        """Parse a message from protobuf wire bytes."""
        return cls._parse(bytes(data))