#!/usr/bin/env python3
"""
cdf_data.py - Variable data access for decoded NetCDF classic files

Locates a variable's bytes in the data section using the decoded header and
reinterprets them as big-endian numbers.

Layout:
    Non-record variables hold one contiguous block of
    element_count * byte_size bytes at `begin`.

    Record variables (first dimension is the record dimension) are
    interleaved: record i of a variable starts at begin + i * recsize, where
    recsize is the sum of vsize over all record variables. A file with a
    single record variable stores its records unpadded.

The header decoder does not check dimension ids; they are resolved (and
checked) here, when a consumer actually needs them.

Usage:
    from cdf_header import decode_header
    from cdf_data import read_variable

    buf = Path('air.nc').read_bytes()
    header = decode_header(buf)
    values = read_variable(buf, header, header.get_variable('air'))
"""

import struct
from typing import Optional, Tuple, Union

from cdf_header import (
    CDFError, Dimension, FileHeader, NcType, Truncated, Variable,
)


# struct codes for big-endian unpacking (CHAR stays bytes)
STRUCT_CODES = {
    NcType.I8: 'b',
    NcType.U8: 'B',
    NcType.I16: 'h',
    NcType.U16: 'H',
    NcType.I32: 'i',
    NcType.U32: 'I',
    NcType.F32: 'f',
    NcType.F64: 'd',
    NcType.I64: 'q',
    NcType.U64: 'Q',
}


class RecordCountUnknown(CDFError):
    """Record variable read from a streaming file without a record count."""
    pass


class DimensionIdError(CDFError):
    """Variable references a dimension id that is not in dim_list."""
    pass


def resolve_dimensions(header: FileHeader,
                       variable: Variable) -> Tuple[Dimension, ...]:
    """Map a variable's dimension ids to Dimension entries."""
    dims = header.dimension_list or ()
    resolved = []
    for dimid in variable.dimension_ids:
        if dimid >= len(dims):
            raise DimensionIdError(
                f"Variable '{variable.name}' references dimension {dimid}, "
                f"file has {len(dims)}")
        resolved.append(dims[dimid])
    return tuple(resolved)


def is_record_variable(header: FileHeader, variable: Variable) -> bool:
    """True when the first dimension is the record dimension.

    Only the first dimension id is looked at; an id outside dim_list is
    simply not a record dimension.
    """
    dims = header.dimension_list or ()
    if not variable.dimension_ids:
        return False
    first = variable.dimension_ids[0]
    return first < len(dims) and dims[first].is_record


def element_count(header: FileHeader, variable: Variable) -> int:
    """Elements per record (record variables) or in total (others)."""
    dims = resolve_dimensions(header, variable)
    if dims and dims[0].is_record:
        dims = dims[1:]
    count = 1
    for dim in dims:
        count *= dim.length
    return count


def record_variables(header: FileHeader) -> Tuple[Variable, ...]:
    return tuple(v for v in header.variable_list or ()
                 if is_record_variable(header, v))


def record_size(header: FileHeader) -> int:
    """Bytes per record across all record variables."""
    rec_vars = record_variables(header)
    if len(rec_vars) == 1:
        var = rec_vars[0]
        return element_count(header, var) * var.nc_type.byte_size
    return sum(v.vsize for v in rec_vars)


def _slice(buffer: Union[bytes, memoryview], start: int, size: int,
           what: str) -> bytes:
    if start + size > len(buffer):
        raise Truncated(
            f"Truncated {what}: need {size} bytes at pos {start}, "
            f"buffer is {len(buffer)} bytes", start)
    return bytes(buffer[start:start + size])


def variable_bytes(buffer: Union[bytes, memoryview], header: FileHeader,
                   variable: Variable, numrecs: Optional[int] = None) -> bytes:
    """Return the raw (big-endian) bytes of a variable.

    Args:
        buffer: The whole file, as passed to decode_header
        header: Decoded header
        variable: One of header.variable_list
        numrecs: Record count override, required for record variables of
            a streaming file

    Raises:
        RecordCountUnknown: record variable, streaming file, no numrecs
        DimensionIdError: variable references an unknown dimension
        Truncated: data runs past the end of the buffer
        CDFError: negative numrecs
    """
    if numrecs is not None and numrecs < 0:
        raise CDFError(f"numrecs must be non-negative, got {numrecs}")

    slab = element_count(header, variable) * variable.nc_type.byte_size

    if not is_record_variable(header, variable):
        return _slice(buffer, variable.begin, slab, f"data of '{variable.name}'")

    if numrecs is None:
        numrecs = header.record_count
    if numrecs is None:
        raise RecordCountUnknown(
            f"Record count of streaming file is unknown; "
            f"pass numrecs to read '{variable.name}'")

    if slab == 0:
        return b''
    recsize = record_size(header)
    return b''.join(
        _slice(buffer, variable.begin + i * recsize, slab,
               f"record {i} of '{variable.name}'")
        for i in range(numrecs))


def read_variable(buffer: Union[bytes, memoryview], header: FileHeader,
                  variable: Variable,
                  numrecs: Optional[int] = None) -> Union[bytes, Tuple]:
    """Read a variable's values. CHAR variables come back as bytes."""
    raw = variable_bytes(buffer, header, variable, numrecs)
    if variable.nc_type == NcType.CHAR:
        return raw
    count = len(raw) // variable.nc_type.byte_size
    return struct.unpack(f'>{count}{STRUCT_CODES[variable.nc_type]}', raw)
