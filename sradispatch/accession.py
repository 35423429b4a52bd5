"""
SRA accession classification and run-list expansion.
"""
from __future__ import annotations

import enum
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TextIO

import pandas as pd

from .exceptions import ContainerAccessionError

logger = logging.getLogger(__name__)

SRA_LOOKUP_URL = "https://www.ncbi.nlm.nih.gov/sra/?term="

MIN_DIGITS = 6
MAX_DIGITS = 9


class AccessionType(enum.Enum):
    RUN = "R"
    PROJECT = "P"
    SAMPLE = "S"
    EXPERIMENT = "X"
    UNRECOGNIZED = None

    @property
    def is_container(self) -> bool:
        return self in (AccessionType.PROJECT, AccessionType.SAMPLE, AccessionType.EXPERIMENT)


class _ScanState(enum.IntEnum):
    ARCHIVE = 0   # D (DDBJ), E (ENA) or S (SRA)
    READ = 1      # literal R
    TYPE = 2      # A, P, R, S or X
    DIGITS = 3


_ARCHIVES = frozenset("DES")
_TYPE_CODES = frozenset("APRSX")


def classify_accession(query: str) -> AccessionType:
    """
    Classify ``query`` by the shape of an SRA accession.

    Accepts ``[DES]R[APRSX]`` followed by 6 to 9 digits, optionally ended by
    ``.`` and anything after it (a version or file suffix). Submitter
    accessions (``?RA``) and anything that does not match are UNRECOGNIZED.
    """
    state = _ScanState.ARCHIVE
    type_code = None
    digits = 0

    for ch in query:
        if state is _ScanState.ARCHIVE:
            if ch not in _ARCHIVES:
                return AccessionType.UNRECOGNIZED
            state = _ScanState.READ
        elif state is _ScanState.READ:
            if ch != "R":
                return AccessionType.UNRECOGNIZED
            state = _ScanState.TYPE
        elif state is _ScanState.TYPE:
            if ch not in _TYPE_CODES:
                return AccessionType.UNRECOGNIZED
            type_code = ch
            state = _ScanState.DIGITS
        else:
            if ch == ".":
                break
            if not ("0" <= ch <= "9"):
                return AccessionType.UNRECOGNIZED
            digits += 1

    if not (MIN_DIGITS <= digits <= MAX_DIGITS):
        return AccessionType.UNRECOGNIZED
    try:
        return AccessionType(type_code)
    except ValueError:
        # 'A' (submitter) has no category of its own
        return AccessionType.UNRECOGNIZED


def _is_readable(path: str) -> bool:
    return os.access(path, os.R_OK)


def expand_accessions(
    accessions: Iterable[str],
    is_readable: Callable[[str], bool] = _is_readable,
    stream: Optional[TextIO] = None,
) -> List[str]:
    """
    Turn user-supplied accessions into the ordered list of runs to dispatch.

    Duplicates are dropped (first occurrence wins). Readable local paths are
    passed through untouched, as are runs and unrecognized names, which are
    left for the resolver to judge. Container accessions are reported one by
    one; once the whole list has been scanned a ContainerAccessionError is
    raised if any were seen.
    """
    stream = stream or sys.stderr
    runs: List[str] = []
    seen = set()
    containers: List[str] = []

    for acc in accessions:
        if acc in seen:
            logger.debug(f"skipping duplicate accession {acc}")
            continue
        seen.add(acc)

        if not is_readable(acc):
            kind = classify_accession(acc)
            if kind.is_container:
                print(f"{acc} is a container accession. For more information, see "
                      f"{SRA_LOOKUP_URL}{acc}", file=stream)
                containers.append(acc)
                continue
            if kind is AccessionType.UNRECOGNIZED:
                logger.debug(f"{acc} is not a recognized accession; deferring to the resolver")
        runs.append(acc)

    if containers:
        raise ContainerAccessionError(containers)
    return runs


def read_accession_list(path: str | Path) -> List[str]:
    """
    Read accessions from an accession list or an SRA run table.

    A run table is any CSV/TSV whose header has a ``Run`` column (the
    SraRunTable download); everything else is read as one accession per line,
    skipping blanks and ``#`` comments.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Accession list not found: {path}")

    with open(path, "r") as f:
        header = f.readline()

    columns = [c.strip().strip('"') for c in header.replace("\t", ",").split(",")]
    if "Run" in columns:
        sep = "\t" if "\t" in header else ","
        table = pd.read_csv(path, sep=sep, dtype=str)
        accessions = [a.strip() for a in table["Run"].dropna().tolist() if a.strip()]
        logger.info(f"read {len(accessions)} runs from run table {path}")
        return accessions

    accessions = []
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                accessions.append(line)
    logger.info(f"read {len(accessions)} accessions from {path}")
    return accessions
