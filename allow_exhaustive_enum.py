#!/usr/bin/env python3
"""
Insert an ``allow_exhaustive_enum`` cfg gate above every ``__Nonexhaustive``
variant or match arm in the given Rust sources:

    #[cfg(not(feature = "allow_exhaustive_enum"))]
    __Nonexhaustive,

Files are rewritten in place through a sibling temporary file.
"""
from __future__ import annotations

import argparse
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

MARKER = '#[cfg(not(feature = "allow_exhaustive_enum"))]'
PATTERN = re.compile(r"^([ \t]*)[a-zA-Z0-9]*(::)?__Nonexhaustive", re.MULTILINE)

ENCODING = "utf-8"
ERRORS = "surrogateescape"

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class PatchSummary:
    """Files processed and markers inserted by one run."""

    scanned: int = 0
    inserted: int = 0


def _insert_marker(m: re.Match) -> str:
    return m.group(1) + MARKER + "\n" + m.group(0)


def patch_with_count(text: str) -> Tuple[str, int]:
    return PATTERN.subn(_insert_marker, text)


def patch(text: str) -> str:
    """Return ``text`` with the marker line inserted above every matching line.

    Not idempotent: running it over its own output inserts another marker,
    since the original line still matches.
    """
    return patch_with_count(text)[0]


def write_atomic(path: PathLike, text: str) -> None:
    target = Path(path)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding=ENCODING, errors=ERRORS, newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if target.exists():
            shutil.copymode(target, tmp_name)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def process(path: PathLike) -> int:
    """Patch one file in place and return the number of inserted markers."""
    file_path = Path(path)
    with open(file_path, "r", encoding=ENCODING, errors=ERRORS, newline="") as f:
        content = f.read()

    patched, count = patch_with_count(content)
    write_atomic(file_path, patched)
    return count


def run(paths: Iterable[PathLike]) -> PatchSummary:
    """Patch ``paths`` in order. The first OSError aborts the batch."""
    summary = PatchSummary()
    for path in paths:
        count = process(path)
        summary.scanned += 1
        summary.inserted += count
        logger.debug("Patched %s: %d marker(s)", path, count)
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        prog="allow-exhaustive-enum",
        description="Gate __Nonexhaustive enum variants behind the allow_exhaustive_enum feature.",
    )
    ap.add_argument("paths", nargs="*", help="Rust source files to patch in place")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    try:
        summary = run(args.paths)
    except OSError as e:
        logger.error("Failed to patch %s: %s", e.filename or "<unknown>", e.strerror or e)
        return 1

    logger.info("Scanned %d files. Inserted %d markers.", summary.scanned, summary.inserted)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
