"""
pytest configuration and fixtures for the NetCDF classic header tests.

Provides reusable fixtures for:
- Header byte builders (HeaderBuilder per format version)
- Sample files written to tmp_path
- Hypothesis property-based testing configuration
"""

import os
import struct
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))
sys.path.insert(0, str(Path(__file__).parent))

from cdf_header import NcType, Version
from header_factory import HeaderBuilder

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture
def header_factory():
    """
    Provide a HeaderBuilder factory.

    Usage:
        def test_minimal(header_factory):
            data = header_factory(Version.CDF5).header(numrecs=3)
    """
    def make(version: Version = Version.CDF1, pad_byte: int = 0) -> HeaderBuilder:
        return HeaderBuilder(version, pad_byte=pad_byte)
    return make


@pytest.fixture
def sample_cdf1() -> bytes:
    """
    A small CDF-1 file with header and data.

    dims: time (record), x (3)
    gatts: title = "demo"
    vars: x(x) I32 = 1, 2, 3
          temp(time, x) F32, 2 records
    """
    b = HeaderBuilder(Version.CDF1)
    b.magic().numrecs(2)
    b.dim_list([('time', 0), ('x', 3)])
    b.att_list([('title', NcType.CHAR, b'demo')])
    # begin offsets are patched once the header length is known
    b.tag(0x0B).count(2)
    b.variable('x', dimids=[1], nc_type=NcType.I32, vsize=12, begin=0)
    x_begin_at = len(b) - 4
    b.variable('temp', dimids=[0, 1],
               attrs=[('units', NcType.CHAR, b'K')],
               nc_type=NcType.F32, vsize=12, begin=0)
    temp_begin_at = len(b) - 4

    data = bytearray(b.to_bytes())
    x_begin = len(data)
    temp_begin = x_begin + 12
    data[x_begin_at:x_begin_at + 4] = x_begin.to_bytes(4, 'big')
    data[temp_begin_at:temp_begin_at + 4] = temp_begin.to_bytes(4, 'big')

    data += struct.pack('>3i', 1, 2, 3)
    data += struct.pack('>3f', 280.0, 281.5, 283.0)
    data += struct.pack('>3f', 279.0, 280.5, 282.0)
    return bytes(data)


@pytest.fixture
def sample_file(tmp_path, sample_cdf1) -> Path:
    """sample_cdf1 written to disk."""
    path = tmp_path / "sample.nc"
    path.write_bytes(sample_cdf1)
    return path


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
