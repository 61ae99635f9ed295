#!/usr/bin/env python3
"""
fuzz_cdf.py - Fuzz test the NetCDF classic header decoder

Verifies the decoder never fails with anything but a CDFDecodeError on
malformed input (no IndexError, struct.error, MemoryError, hangs ...).

Usage:
    python tools/fuzz_cdf.py                          # built-in seeds, 10 s
    python tools/fuzz_cdf.py air.nc --duration 60     # seed from a file
    python tools/fuzz_cdf.py --corpus seeds.yaml      # seeds from YAML
    python tools/fuzz_cdf.py --seed 12345             # reproducible

Corpus YAML:
    seeds:
      - name: minimal_cdf1
        hex: "43444601 00000000 00000000 00000000 ..."
"""

import argparse
import logging
import random
import sys
import time
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

sys.path.insert(0, str(Path(__file__).parent))
from cdf_header import CDFDecodeError, decode_file

logger = logging.getLogger(__name__)

# Minimal headers: magic, numrecs, three ABSENT lists
BUILTIN_SEEDS = {
    'minimal_cdf1': b'CDF\x01' + bytes(4) + bytes(8) * 3,
    'minimal_cdf2': b'CDF\x02' + b'\xff' * 4 + bytes(8) * 3,
    'minimal_cdf5': b'CDF\x05' + bytes(8) + bytes(12) * 3,
    # one dimension "x" (len 3), one global attribute, one F64 variable
    'small_cdf1': bytes.fromhex(
        '43444601' '00000000'
        '0000000a' '00000001' '00000001' '78000000' '00000003'
        '0000000c' '00000001' '00000001' '61000000' '00000002'
        '00000002' '68690000'
        '0000000b' '00000001' '00000001' '76000000' '00000001' '00000000'
        '00000000' '00000000' '00000006' '00000018' '00000064'
    ),
}


@dataclass
class FuzzStats:
    """Statistics from a fuzz run."""
    total_inputs: int = 0
    decode_success: int = 0
    decode_error: int = 0
    crashes: int = 0
    duration_sec: float = 0.0
    seed: int = 0
    crash_inputs: List[bytes] = field(default_factory=list)

    @property
    def inputs_per_sec(self) -> float:
        if self.duration_sec > 0:
            return self.total_inputs / self.duration_sec
        return 0.0


def load_corpus(path: Path) -> List[bytes]:
    """Load seed inputs from a YAML corpus file."""
    corpus = yaml.safe_load(path.read_text()) or {}
    seeds = []
    for entry in corpus.get('seeds', []):
        if not isinstance(entry, dict):
            entry = {'hex': entry}
        clean = str(entry.get('hex', '')).replace(' ', '').replace('\n', '')
        try:
            seeds.append(bytes.fromhex(clean))
        except ValueError:
            logger.warning(f"Skipping seed {entry.get('name', '?')}: bad hex")
    return seeds


class HeaderFuzzer:
    """Fuzz tester for the header decoder."""

    def __init__(self, seeds: Optional[List[bytes]] = None,
                 seed: Optional[int] = None):
        self.seeds = list(seeds) if seeds else list(BUILTIN_SEEDS.values())
        self.seed = seed if seed is not None else random.randint(0, 2**32)
        self.rng = random.Random(self.seed)
        self.stats = FuzzStats(seed=self.seed)

    def generate_random_bytes(self, min_len: int = 0, max_len: int = 255) -> bytes:
        length = self.rng.randint(min_len, max_len)
        return bytes(self.rng.randint(0, 255) for _ in range(length))

    def generate_truncated(self, valid: bytes) -> bytes:
        if len(valid) == 0:
            return b''
        return valid[:self.rng.randint(0, len(valid) - 1)]

    def generate_extended(self, valid: bytes) -> bytes:
        return valid + self.generate_random_bytes(1, 50)

    def generate_bitflip(self, valid: bytes) -> bytes:
        if len(valid) == 0:
            return b''
        data = bytearray(valid)
        num_flips = self.rng.randint(1, max(1, len(data) // 8))
        for _ in range(num_flips):
            pos = self.rng.randint(0, len(data) - 1)
            data[pos] ^= (1 << self.rng.randint(0, 7))
        return bytes(data)

    def generate_magic_prefixed(self) -> bytes:
        """Valid magic + version, random body."""
        version = self.rng.choice([1, 2, 5])
        return b'CDF' + bytes([version]) + self.generate_random_bytes(0, 128)

    def generate_huge_count(self, valid: bytes) -> bytes:
        """Overwrite a 4-byte aligned word with a large count."""
        if len(valid) < 8:
            return valid
        data = bytearray(valid)
        word = self.rng.randrange(1, len(data) // 4)
        data[word * 4:word * 4 + 4] = self.rng.choice(
            [b'\x7f\xff\xff\xff', b'\xff\xff\xff\xfe', b'\x00\x01\x00\x00'])
        return bytes(data)

    def fuzz_one(self, data: bytes) -> bool:
        """Decode one input. Returns False if the decoder crashed."""
        self.stats.total_inputs += 1
        try:
            decode_file(data)
            self.stats.decode_success += 1
            return True
        except CDFDecodeError:
            self.stats.decode_error += 1
            return True
        except Exception as e:
            logger.debug(f"Crash {type(e).__name__}: {e} on {data.hex()}")
            self.stats.crashes += 1
            self.stats.crash_inputs.append(data)
            return False

    def run(self, duration_sec: float = 10.0,
            max_inputs: Optional[int] = None) -> FuzzStats:
        """Run fuzzing for a duration (or until max_inputs)."""
        start_time = time.time()
        end_time = start_time + duration_sec

        generators = [
            lambda: self.generate_random_bytes(0, 255),
            lambda: self.generate_random_bytes(0, 10),
            self.generate_magic_prefixed,
            lambda: self.generate_truncated(self.rng.choice(self.seeds)),
            lambda: self.generate_extended(self.rng.choice(self.seeds)),
            lambda: self.generate_bitflip(self.rng.choice(self.seeds)),
            lambda: self.generate_huge_count(self.rng.choice(self.seeds)),
            lambda: bytes(self.rng.randint(1, 50)),
            lambda: b'\xff' * self.rng.randint(1, 50),
            lambda: b'',
        ]

        while time.time() < end_time:
            if max_inputs is not None and self.stats.total_inputs >= max_inputs:
                break
            self.fuzz_one(self.rng.choice(generators)())

        self.stats.duration_sec = time.time() - start_time
        return self.stats


def print_stats(stats: FuzzStats, name: str):
    """Print fuzzing statistics."""
    print(f"\n{name} Fuzzing Results")
    print("=" * 50)
    print(f"Seed: {stats.seed}")
    print(f"Duration: {stats.duration_sec:.1f}s")
    print(f"Total inputs: {stats.total_inputs}")
    print(f"Rate: {stats.inputs_per_sec:.0f} inputs/sec")
    print(f"Decode success: {stats.decode_success}")
    print(f"Decode errors: {stats.decode_error} (expected)")
    print(f"Crashes: {stats.crashes}")

    if stats.crashes > 0:
        print("\nCRASH INPUTS (reproducible with --seed):")
        for i, data in enumerate(stats.crash_inputs[:5]):
            print(f"  {i+1}: {data.hex()}")
        print("\nFAILED: Decoder crashed on malformed input!")
    else:
        print("\nPASSED: No crashes detected")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Fuzz test the NetCDF classic header decoder'
    )
    parser.add_argument('files', nargs='*', type=Path,
                        help='Sample NetCDF files used as seeds')
    parser.add_argument('--corpus', type=Path,
                        help='YAML corpus of hex-encoded seeds')
    parser.add_argument('-d', '--duration', type=float, default=10.0,
                        help='Fuzz duration in seconds (default: 10)')
    parser.add_argument('-n', '--max-inputs', type=int,
                        help='Stop after this many inputs')
    parser.add_argument('-s', '--seed', type=int,
                        help='Random seed for reproducibility')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log every crash input')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    seeds = [path.read_bytes() for path in args.files]
    if args.corpus:
        seeds.extend(load_corpus(args.corpus))
    logger.info(f"Fuzzing header decoder with {len(seeds) or len(BUILTIN_SEEDS)} seeds")

    fuzzer = HeaderFuzzer(seeds, seed=args.seed)
    stats = fuzzer.run(args.duration, max_inputs=args.max_inputs)
    print_stats(stats, "Header Decoder")

    return 1 if stats.crashes > 0 else 0


if __name__ == '__main__':
    sys.exit(main())
