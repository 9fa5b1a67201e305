#!/usr/bin/env python
###############################################################################
# scripts/generate_csv.py
# -----------------------------------------------------------------------------
# CSV fixture generator for manual round-trip checks against /upload.
#
# Produces a CSV of (at least) the requested size filled with Faker rows, and
# can optionally plant one binary byte at a chosen offset so both sides of the
# prefix-only check can be exercised:
#
#   * offset < VALIDATION_BYTES  → the service answers 400;
#   * offset ≥ VALIDATION_BYTES  → the service still relays the file (200).
#
# Rows are written as they are generated; memory use does not grow with
# --size.
#
# Example
# -------
#     python scripts/generate_csv.py --size 86M --out big.csv
#     python scripts/generate_csv.py --size 10K --inject-byte 0 --at 5 --out bad.csv
###############################################################################

from __future__ import annotations

# stdlib
import argparse
import csv
import io
import random
import sys
from pathlib import Path
from typing import List, Optional

# third-party
from faker import Faker  # type: ignore

__all__: List[str] = []  # script – no public API

faker: Faker = Faker()

_HEADER: List[str] = ["id", "name", "email", "company", "city", "amount", "date"]
_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}


def _parse_size(raw: str) -> int:
    """Parse ``4300K`` / ``86M`` style sizes into bytes."""

    raw = raw.strip().upper()
    unit = raw[-1] if raw and raw[-1] in _UNITS else ""
    number = raw[:-1] if unit else raw
    try:
        value = float(number)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid size: {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError("size must be positive")
    return int(value * _UNITS[unit])


def _parse_args() -> argparse.Namespace:  # noqa: D401
    parser = argparse.ArgumentParser(
        description="Generate a Faker-filled CSV of a target size",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--size", type=_parse_size, default=_parse_size("25"))
    parser.add_argument("--out", type=Path, required=True)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--inject-byte",
        dest="inject_byte",
        type=int,
        default=None,
        help="Byte value (0-255) to overwrite at --at.",
    )
    parser.add_argument("--at", type=int, default=0, help="Offset for --inject-byte.")
    return parser.parse_args()


def _row(index: int) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(
        [
            index,
            faker.name(),
            faker.email(),
            faker.company(),
            faker.city(),
            f"{faker.pydecimal(left_digits=4, right_digits=2, positive=True)}",
            faker.date(),
        ]
    )
    return buffer.getvalue()


def _write_csv(path: Path, target_size: int) -> int:
    """Write rows until *target_size* bytes are reached; return the final size."""

    written = 0
    with path.open("w", encoding="ascii", errors="replace", newline="") as handle:
        header = ",".join(_HEADER) + "\n"
        handle.write(header)
        written += len(header)
        index = 1
        while written < target_size:
            line = _row(index)
            handle.write(line)
            written += len(line.encode("ascii", errors="replace"))
            index += 1
    return written


def _inject(path: Path, value: int, offset: int, size: int) -> None:
    if not 0 <= value <= 255:
        print("--inject-byte must be within 0-255", file=sys.stderr)
        sys.exit(1)
    if not 0 <= offset < size:
        print(f"--at must be within 0-{size - 1}", file=sys.stderr)
        sys.exit(1)
    with path.open("r+b") as handle:
        handle.seek(offset)
        handle.write(bytes([value]))


def main() -> None:  # noqa: D401
    args = _parse_args()

    if args.seed is not None:
        random.seed(args.seed)
        Faker.seed(args.seed)

    args.out.parent.mkdir(parents=True, exist_ok=True)
    size = _write_csv(args.out, args.size)

    injected: Optional[str] = None
    if args.inject_byte is not None:
        _inject(args.out, args.inject_byte, args.at, size)
        injected = f"0x{args.inject_byte:02x} at offset {args.at}"

    print(f"Wrote {size} bytes to {args.out}")
    if injected:
        print(f"Injected {injected}")


if __name__ == "__main__":  # pragma: no cover – CLI only
    main()
