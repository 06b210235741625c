"""
Typed SFTP packets and their encoding.

Each packet type is a dataclass that knows how to write its payload into a
PacketWriter and read it back from a PacketReader. `encode_packet` and
`decode_packet` add and check the frame length; the dispatcher uses
`decode_body` on frames it has already unframed from the stream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from .constants import AttrFlag, OpenFlag, PacketType, StatusCode
from .errors import BadMessageError
from .wire import PacketReader, PacketWriter, unframe


def _pair_present(first: str, first_value, second: str, second_value) -> bool:
    if (first_value is None) != (second_value is None):
        missing = second if first_value is not None else first
        present = first if first_value is not None else second
        raise ValueError(f"{present} given without {missing}")
    return first_value is not None


@dataclass
class Attributes:
    """
    File attributes. Any field left as None is unknown and not sent.

    uid/gid and atime/mtime travel together on the wire: set both of a pair
    or neither. Encoding half a pair raises ValueError.
    """

    size: int | None = None
    uid: int | None = None
    gid: int | None = None
    permissions: int | None = None
    atime: int | None = None
    mtime: int | None = None
    extended: list[tuple[str, bytes]] = field(default_factory=list)

    @property
    def flags(self) -> AttrFlag:
        flags = AttrFlag(0)
        if self.size is not None:
            flags |= AttrFlag.SIZE
        if _pair_present("uid", self.uid, "gid", self.gid):
            flags |= AttrFlag.UIDGID
        if self.permissions is not None:
            flags |= AttrFlag.PERMISSIONS
        if _pair_present("atime", self.atime, "mtime", self.mtime):
            flags |= AttrFlag.ACMODTIME
        if self.extended:
            flags |= AttrFlag.EXTENDED
        return flags

    def encode(self, writer: PacketWriter) -> None:
        flags = self.flags
        writer.uint32(flags)
        if flags & AttrFlag.SIZE:
            writer.uint64(self.size)
        if flags & AttrFlag.UIDGID:
            writer.uint32(self.uid)
            writer.uint32(self.gid)
        if flags & AttrFlag.PERMISSIONS:
            writer.uint32(self.permissions)
        if flags & AttrFlag.ACMODTIME:
            writer.uint32(self.atime)
            writer.uint32(self.mtime)
        if flags & AttrFlag.EXTENDED:
            writer.uint32(len(self.extended))
            for ext_type, ext_data in self.extended:
                writer.string(ext_type)
                writer.string(ext_data)

    @classmethod
    def decode(cls, reader: PacketReader) -> Attributes:
        attrs = cls()
        flags = reader.uint32()
        if flags & AttrFlag.SIZE:
            attrs.size = reader.uint64()
        if flags & AttrFlag.UIDGID:
            attrs.uid = reader.uint32()
            attrs.gid = reader.uint32()
        if flags & AttrFlag.PERMISSIONS:
            attrs.permissions = reader.uint32()
        if flags & AttrFlag.ACMODTIME:
            attrs.atime = reader.uint32()
            attrs.mtime = reader.uint32()
        if flags & AttrFlag.EXTENDED:
            count = reader.uint32()
            for _ in range(count):
                attrs.extended.append((reader.name(), reader.string()))
        return attrs


@dataclass
class NameEntry:
    filename: str
    longname: str = ""
    attrs: Attributes = field(default_factory=Attributes)


_PACKET_TYPES: dict[int, type[Packet]] = {}


def _register(cls):
    _PACKET_TYPES[cls.TYPE] = cls
    return cls


class Packet:
    """Base for all packets. Subclasses are dataclasses with request_id first."""

    TYPE: ClassVar[PacketType]

    def encode_payload(self, writer: PacketWriter) -> None:
        raise NotImplementedError

    @classmethod
    def decode_payload(cls, reader: PacketReader) -> Packet:
        raise NotImplementedError


class _Request(Packet):
    """Packet carrying a request id right after the type tag."""

    request_id: int

    def encode_payload(self, writer: PacketWriter) -> None:
        writer.uint32(self.request_id)
        self.encode_fields(writer)

    @classmethod
    def decode_payload(cls, reader: PacketReader) -> Packet:
        request_id = reader.uint32()
        return cls.decode_fields(reader, request_id)

    def encode_fields(self, writer: PacketWriter) -> None:
        pass

    @classmethod
    def decode_fields(cls, reader: PacketReader, request_id: int) -> Packet:
        return cls(request_id)


# Handshake


def _encode_extensions(writer: PacketWriter, extensions: dict[str, bytes]) -> None:
    for name, data in extensions.items():
        writer.string(name)
        writer.string(data)


def _decode_extensions(reader: PacketReader) -> dict[str, bytes]:
    extensions = {}
    while reader.remaining:
        name = reader.name()
        extensions[name] = reader.string()
    return extensions


@_register
@dataclass
class Init(Packet):
    TYPE: ClassVar[PacketType] = PacketType.INIT

    version: int
    extensions: dict[str, bytes] = field(default_factory=dict)

    def encode_payload(self, writer):
        writer.uint32(self.version)
        _encode_extensions(writer, self.extensions)

    @classmethod
    def decode_payload(cls, reader):
        version = reader.uint32()
        return cls(version, _decode_extensions(reader))


@_register
@dataclass
class Version(Packet):
    TYPE: ClassVar[PacketType] = PacketType.VERSION

    version: int
    extensions: dict[str, bytes] = field(default_factory=dict)

    def encode_payload(self, writer):
        writer.uint32(self.version)
        _encode_extensions(writer, self.extensions)

    @classmethod
    def decode_payload(cls, reader):
        version = reader.uint32()
        return cls(version, _decode_extensions(reader))


# Requests


class _PathRequest(_Request):
    path: str

    def encode_fields(self, writer):
        writer.string(self.path)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name())


class _HandleRequest(_Request):
    handle: bytes

    def encode_fields(self, writer):
        writer.string(self.handle)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.string())


@_register
@dataclass
class Open(_Request):
    TYPE: ClassVar[PacketType] = PacketType.OPEN

    request_id: int
    path: str
    pflags: OpenFlag = OpenFlag.READ
    attrs: Attributes = field(default_factory=Attributes)

    def encode_fields(self, writer):
        writer.string(self.path)
        writer.uint32(self.pflags)
        self.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        path = reader.name()
        pflags = OpenFlag(reader.uint32())
        return cls(request_id, path, pflags, Attributes.decode(reader))


@_register
@dataclass
class Close(_HandleRequest):
    TYPE: ClassVar[PacketType] = PacketType.CLOSE

    request_id: int
    handle: bytes


@_register
@dataclass
class Read(_Request):
    TYPE: ClassVar[PacketType] = PacketType.READ

    request_id: int
    handle: bytes
    offset: int
    length: int

    def encode_fields(self, writer):
        writer.string(self.handle)
        writer.uint64(self.offset)
        writer.uint32(self.length)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.string(), reader.uint64(), reader.uint32())


@_register
@dataclass
class Write(_Request):
    TYPE: ClassVar[PacketType] = PacketType.WRITE

    request_id: int
    handle: bytes
    offset: int
    data: bytes

    def encode_fields(self, writer):
        writer.string(self.handle)
        writer.uint64(self.offset)
        writer.string(self.data)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.string(), reader.uint64(), reader.string())


@_register
@dataclass
class Lstat(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.LSTAT

    request_id: int
    path: str


@_register
@dataclass
class Fstat(_HandleRequest):
    TYPE: ClassVar[PacketType] = PacketType.FSTAT

    request_id: int
    handle: bytes


@_register
@dataclass
class Setstat(_Request):
    TYPE: ClassVar[PacketType] = PacketType.SETSTAT

    request_id: int
    path: str
    attrs: Attributes = field(default_factory=Attributes)

    def encode_fields(self, writer):
        writer.string(self.path)
        self.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name(), Attributes.decode(reader))


@_register
@dataclass
class Fsetstat(_Request):
    TYPE: ClassVar[PacketType] = PacketType.FSETSTAT

    request_id: int
    handle: bytes
    attrs: Attributes = field(default_factory=Attributes)

    def encode_fields(self, writer):
        writer.string(self.handle)
        self.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.string(), Attributes.decode(reader))


@_register
@dataclass
class Opendir(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.OPENDIR

    request_id: int
    path: str


@_register
@dataclass
class Readdir(_HandleRequest):
    TYPE: ClassVar[PacketType] = PacketType.READDIR

    request_id: int
    handle: bytes


@_register
@dataclass
class Remove(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.REMOVE

    request_id: int
    path: str


@_register
@dataclass
class Mkdir(_Request):
    TYPE: ClassVar[PacketType] = PacketType.MKDIR

    request_id: int
    path: str
    attrs: Attributes = field(default_factory=Attributes)

    def encode_fields(self, writer):
        writer.string(self.path)
        self.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name(), Attributes.decode(reader))


@_register
@dataclass
class Rmdir(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.RMDIR

    request_id: int
    path: str


@_register
@dataclass
class Realpath(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.REALPATH

    request_id: int
    path: str


@_register
@dataclass
class Stat(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.STAT

    request_id: int
    path: str


@_register
@dataclass
class Rename(_Request):
    TYPE: ClassVar[PacketType] = PacketType.RENAME

    request_id: int
    old_path: str
    new_path: str

    def encode_fields(self, writer):
        writer.string(self.old_path)
        writer.string(self.new_path)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name(), reader.name())


@_register
@dataclass
class Readlink(_PathRequest):
    TYPE: ClassVar[PacketType] = PacketType.READLINK

    request_id: int
    path: str


@_register
@dataclass
class Symlink(_Request):
    """
    SYMLINK request.

    OpenSSH's sftp-server reads the target first and the link path second,
    the reverse of the draft. Every deployed server follows OpenSSH, so the
    fields are encoded in that order.
    """

    TYPE: ClassVar[PacketType] = PacketType.SYMLINK

    request_id: int
    target_path: str
    link_path: str

    def encode_fields(self, writer):
        writer.string(self.target_path)
        writer.string(self.link_path)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name(), reader.name())


@_register
@dataclass
class Extended(_Request):
    TYPE: ClassVar[PacketType] = PacketType.EXTENDED

    request_id: int
    request: str
    data: bytes = b""

    def encode_fields(self, writer):
        writer.string(self.request)
        writer.raw(self.data)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.name(), reader.rest())


# Responses


@_register
@dataclass
class Status(_Request):
    TYPE: ClassVar[PacketType] = PacketType.STATUS

    request_id: int
    code: int
    message: str = ""
    lang: str = ""

    def encode_fields(self, writer):
        writer.uint32(self.code)
        writer.string(self.message)
        writer.string(self.lang)

    @classmethod
    def decode_fields(cls, reader, request_id):
        code = reader.uint32()
        try:
            code = StatusCode(code)
        except ValueError:
            pass
        # Pre-draft-03 servers send only the code.
        message = reader.name() if reader.remaining else ""
        lang = reader.name() if reader.remaining else ""
        return cls(request_id, code, message, lang)


@_register
@dataclass
class Handle(_HandleRequest):
    TYPE: ClassVar[PacketType] = PacketType.HANDLE

    request_id: int
    handle: bytes


@_register
@dataclass
class Data(_Request):
    TYPE: ClassVar[PacketType] = PacketType.DATA

    request_id: int
    data: bytes

    def encode_fields(self, writer):
        writer.string(self.data)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.string())


@_register
@dataclass
class Name(_Request):
    TYPE: ClassVar[PacketType] = PacketType.NAME

    request_id: int
    entries: list[NameEntry] = field(default_factory=list)

    def encode_fields(self, writer):
        writer.uint32(len(self.entries))
        for entry in self.entries:
            writer.string(entry.filename)
            writer.string(entry.longname)
            entry.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        count = reader.uint32()
        entries = []
        for _ in range(count):
            filename = reader.name()
            longname = reader.name()
            entries.append(NameEntry(filename, longname, Attributes.decode(reader)))
        return cls(request_id, entries)


@_register
@dataclass
class Attrs(_Request):
    TYPE: ClassVar[PacketType] = PacketType.ATTRS

    request_id: int
    attrs: Attributes = field(default_factory=Attributes)

    def encode_fields(self, writer):
        self.attrs.encode(writer)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, Attributes.decode(reader))


@_register
@dataclass
class ExtendedReply(_Request):
    TYPE: ClassVar[PacketType] = PacketType.EXTENDED_REPLY

    request_id: int
    data: bytes = b""

    def encode_fields(self, writer):
        writer.raw(self.data)

    @classmethod
    def decode_fields(cls, reader, request_id):
        return cls(request_id, reader.rest())


def encode_packet(packet: Packet) -> bytes:
    """Encode a packet into a complete frame, length prefix included."""
    writer = PacketWriter()
    writer.uint8(packet.TYPE)
    packet.encode_payload(writer)
    return writer.frame()


def decode_body(body: bytes) -> Packet:
    """
    Decode a frame body (type tag onwards) into its packet.

    Raises:
        BadMessageError: Unknown type tag or truncated fields.
    """
    reader = PacketReader(body)
    type_tag = reader.uint8()
    cls = _PACKET_TYPES.get(type_tag)
    if cls is None:
        raise BadMessageError(f"unknown packet type {type_tag}")
    return cls.decode_payload(reader)


def decode_packet(frame: bytes) -> Packet:
    """Decode a complete frame, validating its length prefix first."""
    return decode_body(unframe(frame))
