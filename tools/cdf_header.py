#!/usr/bin/env python3
"""
cdf_header.py - NetCDF Classic Header Decoder (CDF-1, CDF-2, CDF-5)

Decodes the header of a NetCDF classic container into immutable values:
dimensions, global attributes and variables (with their own attributes,
element type and absolute data offset).

Format Generations
------------------
The three generations share one grammar and differ only in field widths:

    CDF-1 ("classic"):       counts 4 bytes, begin offsets 4 bytes
    CDF-2 ("64-bit offset"): counts 4 bytes, begin offsets 8 bytes
    CDF-5 ("64-bit data"):   counts 8 bytes, begin offsets 8 bytes

So the decoder is parameterized by a WidthPolicy derived once from the
version byte and passed through every call.

Binary Format (all integers big-endian):
    header   = magic numrecs dim_list gatt_list var_list
    magic    = 'C' 'D' 'F' VERSION          (VERSION = 0x01 | 0x02 | 0x05)
    numrecs  = COUNT | STREAMING            (STREAMING = all 0xFF)
    dim_list = ABSENT | 0x0000000A COUNT dim*
    att_list = ABSENT | 0x0000000C COUNT attr*
    var_list = ABSENT | 0x0000000B COUNT var*
    ABSENT   = 0x00000000 followed by a zero COUNT

    name     = COUNT bytes[COUNT] padding
    dim      = name COUNT
    attr     = name nc_type COUNT bytes[COUNT * size(nc_type)] padding
    var      = name COUNT dimid[COUNT] att_list nc_type COUNT(vsize) OFFSET

Padding brings the cursor to the next 4-byte boundary measured from the
start of the file, not from the start of the field.

Every decoder takes (buf, pos, ...) and returns (value, new_pos). All reads
are bounds checked: the counts on the wire are untrusted, so a count that
would run past the end of the buffer raises Truncated instead of slicing
short.

Usage:
    from cdf_header import decode_header, decode_file

    header = decode_header(Path('air.nc').read_bytes())
    for var in header.variable_list or ():
        print(var.name, var.nc_type.name, var.begin)
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple, Union

Buffer = Union[bytes, bytearray, memoryview]


MAGIC = b'CDF'

# List tags
NC_DIMENSION = 0x0A
NC_VARIABLE = 0x0B
NC_ATTRIBUTE = 0x0C

TAG_SIZE = 4
ALIGNMENT = 4


# =============================================================================
# Errors
# =============================================================================

class CDFError(ValueError):
    """Base class for NetCDF classic errors."""
    pass


class CDFDecodeError(CDFError):
    """Header could not be decoded. `offset` is where decoding stopped."""

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset


class BadMagic(CDFDecodeError):
    """Buffer does not start with 'CDF'."""
    pass


class UnknownVersion(CDFDecodeError):
    """Version byte is not 1, 2 or 5."""
    pass


class UnknownType(CDFDecodeError):
    """nc_type tag is not one of the eleven known types."""
    pass


class Truncated(CDFDecodeError):
    """A fixed or declared length runs past the end of the buffer."""
    pass


class InvalidUtf8(CDFDecodeError):
    """Name bytes are not valid UTF-8."""
    pass


class MalformedListMarker(CDFDecodeError):
    """Neither ABSENT nor the expected list tag at a list boundary."""
    pass


# =============================================================================
# Version / Width Policy
# =============================================================================

class Version(IntEnum):
    """Format generation, valued by its magic version byte."""
    CDF1 = 0x01
    CDF2 = 0x02
    CDF5 = 0x05


@dataclass(frozen=True)
class WidthPolicy:
    """Field widths for one format generation."""
    count_size: int
    offset_size: int

    @property
    def streaming_marker(self) -> bytes:
        return b'\xff' * self.count_size

    @property
    def absent_marker(self) -> bytes:
        return bytes(TAG_SIZE + self.count_size)


WIDTH_POLICIES = {
    Version.CDF1: WidthPolicy(count_size=4, offset_size=4),
    Version.CDF2: WidthPolicy(count_size=4, offset_size=8),
    Version.CDF5: WidthPolicy(count_size=8, offset_size=8),
}


def width_policy(version: Version) -> WidthPolicy:
    """Return the WidthPolicy for a format version."""
    return WIDTH_POLICIES[Version(version)]


# =============================================================================
# Type Table
# =============================================================================

class NcType(IntEnum):
    """Element types, valued by their on-wire nc_type tag."""
    CHAR = 1
    I8 = 2
    I16 = 3
    I32 = 4
    F32 = 5
    F64 = 6
    U8 = 7
    U16 = 8
    U32 = 9
    I64 = 10
    U64 = 11

    @property
    def byte_size(self) -> int:
        return TYPE_SIZES[self]


TYPE_SIZES = {
    NcType.CHAR: 1,
    NcType.I8: 1,
    NcType.U8: 1,
    NcType.I16: 2,
    NcType.U16: 2,
    NcType.I32: 4,
    NcType.U32: 4,
    NcType.F32: 4,
    NcType.I64: 8,
    NcType.U64: 8,
    NcType.F64: 8,
}


# =============================================================================
# Data Model
# =============================================================================

@dataclass(frozen=True)
class Dimension:
    """Named dimension. Length 0 marks the record (unlimited) dimension."""
    name: str
    length: int

    @property
    def is_record(self) -> bool:
        return self.length == 0

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'length': self.length}


@dataclass(frozen=True)
class Attribute:
    """Attribute with opaque value bytes (len == count * byte_size)."""
    name: str
    nc_type: NcType
    data: bytes

    @property
    def count(self) -> int:
        return len(self.data) // self.nc_type.byte_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.nc_type.name,
            'count': self.count,
            'data': self.data.hex(),
        }


@dataclass(frozen=True)
class Variable:
    """Variable entry: dimension ids are not checked against dim_list."""
    name: str
    dimension_ids: Tuple[int, ...]
    attributes: Optional[Tuple[Attribute, ...]]
    nc_type: NcType
    vsize: int
    begin: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'type': self.nc_type.name,
            'dimension_ids': list(self.dimension_ids),
            'attributes': _list_to_dicts(self.attributes),
            'vsize': self.vsize,
            'begin': self.begin,
        }


@dataclass(frozen=True)
class FileHeader:
    """Decoded header. record_count None means streaming (unknown)."""
    version: Version
    record_count: Optional[int]
    dimension_list: Optional[Tuple[Dimension, ...]]
    global_attributes: Optional[Tuple[Attribute, ...]]
    variable_list: Optional[Tuple[Variable, ...]]

    @property
    def is_streaming(self) -> bool:
        return self.record_count is None

    def get_variable(self, name: str) -> Optional[Variable]:
        for var in self.variable_list or ():
            if var.name == name:
                return var
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'version': self.version.name,
            'record_count': self.record_count,
            'dimensions': _list_to_dicts(self.dimension_list),
            'global_attributes': _list_to_dicts(self.global_attributes),
            'variables': _list_to_dicts(self.variable_list),
        }


@dataclass(frozen=True)
class CDFFile:
    """Header plus the raw bytes following it (the data section)."""
    header: FileHeader
    data: bytes
    data_offset: int


def _list_to_dicts(items) -> Optional[list]:
    if items is None:
        return None
    return [item.to_dict() for item in items]


# =============================================================================
# Cursor primitives
# =============================================================================

def _take(buf: Buffer, pos: int, size: int, what: str) -> Tuple[Buffer, int]:
    """Consume `size` bytes at `pos`."""
    remaining = len(buf) - pos
    if size > remaining:
        raise Truncated(
            f"Truncated {what}: need {size} bytes at pos {pos}, "
            f"{max(remaining, 0)} remain", pos)
    return buf[pos:pos + size], pos + size


def _read_uint(buf: Buffer, pos: int, size: int, what: str) -> Tuple[int, int]:
    data, pos = _take(buf, pos, size, what)
    return int.from_bytes(data, 'big'), pos


def read_count(buf: Buffer, pos: int, policy: WidthPolicy,
               what: str = 'count') -> Tuple[int, int]:
    """Read one count/size field (NON_NEG) of the policy's width."""
    return _read_uint(buf, pos, policy.count_size, what)


def read_offset(buf: Buffer, pos: int, policy: WidthPolicy) -> Tuple[int, int]:
    """Read a variable's begin offset; CDF-1 widens 32 bits to 64."""
    return _read_uint(buf, pos, policy.offset_size, 'begin offset')


def padding_length(pos: int) -> int:
    """Filler bytes needed to reach the next 4-byte boundary from `pos`."""
    return (ALIGNMENT - pos % ALIGNMENT) % ALIGNMENT


def skip_padding(buf: Buffer, pos: int) -> int:
    """Skip padding after a name or attribute value.

    `pos` is absolute within the whole buffer. Padding content is not
    checked for zeros.
    """
    _, pos = _take(buf, pos, padding_length(pos), 'padding')
    return pos


# =============================================================================
# Field decoders
# =============================================================================

def decode_magic(buf: Buffer, pos: int = 0) -> Tuple[Version, int]:
    """Decode 'CDF' + version byte."""
    if bytes(buf[pos:pos + len(MAGIC)]) != MAGIC:
        raise BadMagic("Not a NetCDF classic file: missing 'CDF' magic", pos)
    raw, pos = _take(buf, pos + len(MAGIC), 1, 'version byte')
    try:
        version = Version(raw[0])
    except ValueError:
        raise UnknownVersion(
            f"Unknown CDF version byte 0x{raw[0]:02X}", pos - 1) from None
    return version, pos


def decode_record_count(buf: Buffer, pos: int,
                        policy: WidthPolicy) -> Tuple[Optional[int], int]:
    """Decode numrecs. Returns None for the streaming sentinel."""
    raw, new_pos = _take(buf, pos, policy.count_size, 'record count')
    if bytes(raw) == policy.streaming_marker:
        return None, new_pos
    return int.from_bytes(raw, 'big'), new_pos


def decode_type(buf: Buffer, pos: int) -> Tuple[NcType, int]:
    """Decode a 4-byte nc_type tag."""
    tag, new_pos = _read_uint(buf, pos, TAG_SIZE, 'nc_type')
    try:
        return NcType(tag), new_pos
    except ValueError:
        raise UnknownType(f"Unknown nc_type tag {tag}", pos) from None


def decode_name(buf: Buffer, pos: int, policy: WidthPolicy) -> Tuple[str, int]:
    """Decode a length-prefixed UTF-8 name plus trailing padding."""
    length, pos = read_count(buf, pos, policy, 'name length')
    raw, body_end = _take(buf, pos, length, 'name')
    try:
        name = bytes(raw).decode('utf-8')
    except UnicodeDecodeError as e:
        raise InvalidUtf8(f"Name at pos {pos} is not valid UTF-8: {e}", pos) from e
    return name, skip_padding(buf, body_end)


# =============================================================================
# List decoders
# =============================================================================

def _decode_list_marker(buf: Buffer, pos: int, policy: WidthPolicy,
                        expected_tag: int, what: str) -> Tuple[Optional[int], int]:
    """Decode ABSENT or `tag COUNT`.

    Returns (None, pos) for ABSENT, otherwise (entry_count, pos).
    """
    tag, after_tag = _read_uint(buf, pos, TAG_SIZE, f'{what} tag')
    if tag not in (0, expected_tag):
        raise MalformedListMarker(
            f"Expected {what} tag 0x{expected_tag:08X}, got 0x{tag:08X}", pos)

    count, after_count = read_count(buf, after_tag, policy, f'{what} count')
    if tag == 0:
        if count != 0:
            raise MalformedListMarker(
                f"Expected ABSENT for {what}, got zero tag with count {count}",
                pos)
        return None, after_count
    return count, after_count


def decode_dimension(buf: Buffer, pos: int,
                     policy: WidthPolicy) -> Tuple[Dimension, int]:
    name, pos = decode_name(buf, pos, policy)
    length, pos = read_count(buf, pos, policy, 'dimension length')
    return Dimension(name=name, length=length), pos


def decode_dim_list(buf: Buffer, pos: int, policy: WidthPolicy
                    ) -> Tuple[Optional[Tuple[Dimension, ...]], int]:
    """Decode dim_list: None when ABSENT."""
    count, pos = _decode_list_marker(buf, pos, policy, NC_DIMENSION, 'dim_list')
    if count is None:
        return None, pos

    dims = []
    for _ in range(count):
        dim, pos = decode_dimension(buf, pos, policy)
        dims.append(dim)
    return tuple(dims), pos


def decode_attribute(buf: Buffer, pos: int,
                     policy: WidthPolicy) -> Tuple[Attribute, int]:
    """Decode one attribute; value bytes are kept opaque."""
    name, pos = decode_name(buf, pos, policy)
    nc_type, pos = decode_type(buf, pos)
    nelems, pos = read_count(buf, pos, policy, 'attribute element count')
    values, pos = _take(buf, pos, nelems * nc_type.byte_size,
                        f"values of attribute '{name}'")
    pos = skip_padding(buf, pos)
    return Attribute(name=name, nc_type=nc_type, data=bytes(values)), pos


def decode_att_list(buf: Buffer, pos: int, policy: WidthPolicy
                    ) -> Tuple[Optional[Tuple[Attribute, ...]], int]:
    """Decode att_list (global or per-variable): None when ABSENT."""
    count, pos = _decode_list_marker(buf, pos, policy, NC_ATTRIBUTE, 'att_list')
    if count is None:
        return None, pos

    attrs = []
    for _ in range(count):
        attr, pos = decode_attribute(buf, pos, policy)
        attrs.append(attr)
    return tuple(attrs), pos


def decode_variable(buf: Buffer, pos: int,
                    policy: WidthPolicy) -> Tuple[Variable, int]:
    name, pos = decode_name(buf, pos, policy)
    ndims, pos = read_count(buf, pos, policy, 'dimension id count')

    dimids = []
    for _ in range(ndims):
        dimid, pos = read_count(buf, pos, policy, 'dimension id')
        dimids.append(dimid)

    attributes, pos = decode_att_list(buf, pos, policy)
    nc_type, pos = decode_type(buf, pos)
    vsize, pos = read_count(buf, pos, policy, 'vsize')
    begin, pos = read_offset(buf, pos, policy)

    return Variable(
        name=name,
        dimension_ids=tuple(dimids),
        attributes=attributes,
        nc_type=nc_type,
        vsize=vsize,
        begin=begin,
    ), pos


def decode_var_list(buf: Buffer, pos: int, policy: WidthPolicy
                    ) -> Tuple[Optional[Tuple[Variable, ...]], int]:
    """Decode var_list: None when ABSENT."""
    count, pos = _decode_list_marker(buf, pos, policy, NC_VARIABLE, 'var_list')
    if count is None:
        return None, pos

    variables = []
    for _ in range(count):
        var, pos = decode_variable(buf, pos, policy)
        variables.append(var)
    return tuple(variables), pos


# =============================================================================
# Header Assembler
# =============================================================================

def _byte_view(buffer: Buffer) -> memoryview:
    view = memoryview(buffer)
    return view if view.format == 'B' else view.cast('B')


def read_header(buffer: Buffer) -> Tuple[FileHeader, int]:
    """Decode the header. Returns (header, offset of the data section)."""
    buf = _byte_view(buffer)

    version, pos = decode_magic(buf, 0)
    policy = width_policy(version)
    record_count, pos = decode_record_count(buf, pos, policy)
    dimension_list, pos = decode_dim_list(buf, pos, policy)
    global_attributes, pos = decode_att_list(buf, pos, policy)
    variable_list, pos = decode_var_list(buf, pos, policy)

    header = FileHeader(
        version=version,
        record_count=record_count,
        dimension_list=dimension_list,
        global_attributes=global_attributes,
        variable_list=variable_list,
    )
    return header, pos


def decode_header(buffer: Buffer) -> FileHeader:
    """Decode the header of a whole NetCDF classic file held in memory.

    Raises:
        CDFDecodeError: (one of its subclasses) if the header is malformed
    """
    header, _ = read_header(buffer)
    return header


def decode_file(buffer: Buffer) -> CDFFile:
    """Decode the header and keep the remaining bytes as the data section."""
    buf = _byte_view(buffer)
    header, pos = read_header(buf)
    return CDFFile(header=header, data=bytes(buf[pos:]), data_offset=pos)
