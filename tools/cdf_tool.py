#!/usr/bin/env python3
"""
cdf_tool.py - Inspect NetCDF classic (CDF-1, CDF-2, CDF-5) files

Usage:
  # Print the header
  python tools/cdf_tool.py header air.nc

  # Header as YAML or JSON
  python tools/cdf_tool.py header air.nc --format yaml
  python tools/cdf_tool.py header air.nc --format json

  # Print the values of one variable
  python tools/cdf_tool.py values air.nc air
  python tools/cdf_tool.py values stream.nc time --numrecs 12
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

sys.path.insert(0, str(Path(__file__).parent))
from cdf_header import (
    CDFDecodeError, CDFError, CDFFile, FileHeader, Truncated, decode_file,
)
from cdf_data import element_count, is_record_variable, read_variable

logger = logging.getLogger(__name__)

PARSE_FAILED = "Could not parse file, is this a valid CDF-1, 2, or 5 file?"


def non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {value}")
    return value


def format_header(header: FileHeader) -> str:
    """Render a header the way ncdump-style listings read."""
    lines = [f"Version = {header.version.name}"]

    if header.is_streaming:
        lines.append("Number of records: 0 (streaming)")
    else:
        lines.append(f"Number of records: {header.record_count}")

    lines.append("Dimension list:")
    for dimid, dim in enumerate(header.dimension_list or ()):
        unlimited = " UNLIMITED" if dim.is_record else ""
        lines.append(f"\t{dim.name}: len({dim.length}) id: {dimid}{unlimited}")

    lines.append("Attribute list:")
    for att in header.global_attributes or ():
        lines.append(f"\t{att.name} typ: {att.nc_type.name} count: {att.count}")

    lines.append("Variable list:")
    for var in header.variable_list or ():
        dimids = ', '.join(str(d) for d in var.dimension_ids)
        lines.append(f"\t{var.name} typ({var.nc_type.name}) dimids([{dimids}]) "
                     f"vsize: {var.vsize} begin: {var.begin}")
        for att in var.attributes or ():
            lines.append(f"\t\t{att.name} typ: {att.nc_type.name} count: {att.count}")

    return '\n'.join(lines)


def load(path: Path) -> Tuple[bytes, CDFFile]:
    """Read a file into memory and decode it."""
    buffer = path.read_bytes()
    logger.debug(f"Read {len(buffer)} bytes from {path}")
    cdf = decode_file(buffer)
    logger.debug(f"Header is {cdf.data_offset} bytes, "
                 f"data section {len(cdf.data)} bytes")
    return buffer, cdf


def cmd_header(args) -> int:
    _, cdf = load(args.input)
    header = cdf.header

    if args.format == 'yaml':
        print(yaml.safe_dump(header.to_dict(), default_flow_style=False,
                             sort_keys=False), end='')
    elif args.format == 'json':
        print(json.dumps(header.to_dict(), indent=2))
    else:
        print(format_header(header))
    return 0


def cmd_values(args) -> int:
    buffer, cdf = load(args.input)
    header = cdf.header

    variable = header.get_variable(args.variable)
    if variable is None:
        names = [v.name for v in header.variable_list or ()]
        logger.error(f"No variable '{args.variable}' in {args.input}")
        logger.error(f"Variables: {', '.join(names) or '(none)'}")
        return 1

    logger.debug(f"{variable.name}: {element_count(header, variable)} elements"
                 f"{' per record' if is_record_variable(header, variable) else ''}")
    try:
        values = read_variable(buffer, header, variable, numrecs=args.numrecs)
    except Truncated as e:
        logger.error(f"Data of '{variable.name}' runs past the end of the file")
        logger.error(f"  {e}")
        return 1

    if isinstance(values, bytes):
        values = values.decode('utf-8', errors='replace')
        if args.format == 'json':
            print(json.dumps(values))
        else:
            print(values)
        return 0

    if args.format == 'json':
        print(json.dumps(list(values)))
    else:
        for value in values:
            print(value)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='cdf_tool',
        description='Parse CDF-1, 2 and 5 (NetCDF classic) files',
    )
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show debug output')
    subparsers = parser.add_subparsers(dest='command', required=True)

    hdr = subparsers.add_parser('header', help='Print the decoded header')
    hdr.add_argument('input', type=Path, help='Input NetCDF file')
    hdr.add_argument('--format', choices=['text', 'yaml', 'json'],
                     default='text', help='Output format (default: text)')

    val = subparsers.add_parser('values', help="Print a variable's values")
    val.add_argument('input', type=Path, help='Input NetCDF file')
    val.add_argument('variable', help='Variable name')
    val.add_argument('--numrecs', type=non_negative_int,
                     help='Record count to use for streaming files')
    val.add_argument('--format', choices=['text', 'json'], default='text',
                     help='Output format (default: text)')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    try:
        if args.command == 'header':
            return cmd_header(args)
        return cmd_values(args)
    except OSError as e:
        logger.error(f"Cannot read {args.input}: {e}")
        return 1
    except CDFDecodeError as e:
        logger.error(PARSE_FAILED)
        logger.error(f"  {type(e).__name__}: {e}")
        return 1
    except CDFError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
