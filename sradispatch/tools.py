"""
The tools sradispatch can stand in for, and where their real binaries live.
"""
from __future__ import annotations

import enum
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from ._settings import DispatchConfig, DispatchContext
from .exceptions import ToolNotFoundError
from .params import ParameterSet

logger = logging.getLogger(__name__)


class ToolID(enum.IntEnum):
    SELF = 0
    SRAPATH = 1
    PREFETCH = 2
    FASTQ_DUMP = 3
    FASTERQ_DUMP = 4
    SRA_PILEUP = 5
    SAM_DUMP = 6


@dataclass(frozen=True)
class ToolInfo:
    runas: str
    # Options that take a value, by canonical (long) name.
    value_options: FrozenSet[str] = frozenset()
    # Short spellings mapped to their canonical name.
    aliases: Dict[str, str] = field(default_factory=dict)
    # Tools that talk to the locator themselves get all runs in one invocation.
    resolves_itself: bool = False

    def canonical(self, name: str) -> str:
        return self.aliases.get(name, name)


_COMMON = frozenset({"--ngc", "--perm", "--cart", "--log-level"})

TOOLS: Dict[ToolID, ToolInfo] = {
    ToolID.SRAPATH: ToolInfo(
        "srapath",
        _COMMON | {"--function", "--protocol", "--vers", "--url", "--param", "--project", "--timeout"},
        {"-f": "--function", "-a": "--protocol", "-e": "--vers", "-u": "--url",
         "-p": "--param", "-d": "--project", "-t": "--timeout"},
        resolves_itself=True,
    ),
    ToolID.PREFETCH: ToolInfo(
        "prefetch",
        _COMMON | {"--type", "--transport", "--min-size", "--max-size", "--force",
                   "--resume", "--verify", "--heartbeat", "--output-file", "--output-directory"},
        {"-T": "--type", "-t": "--transport", "-N": "--min-size", "-X": "--max-size",
         "-f": "--force", "-r": "--resume", "-C": "--verify", "-H": "--heartbeat",
         "-o": "--output-file", "-O": "--output-directory"},
        resolves_itself=True,
    ),
    ToolID.FASTQ_DUMP: ToolInfo(
        "fastq-dump",
        _COMMON | {"--outdir", "--minSpotId", "--maxSpotId", "--minReadLen", "--table",
                   "--defline-seq", "--defline-qual", "--read-filter", "--spot-groups",
                   "--aligned-region", "--matepair-distance"},
        {"-O": "--outdir", "-N": "--minSpotId", "-X": "--maxSpotId", "-M": "--minReadLen",
         "-T": "--group-in-dirs", "-K": "--keep-empty-files", "-Z": "--stdout"},
    ),
    ToolID.FASTERQ_DUMP: ToolInfo(
        "fasterq-dump",
        _COMMON | {"--outfile", "--outdir", "--bufsize", "--curcache", "--mem", "--temp",
                   "--threads", "--min-read-len", "--table", "--seq-defline", "--qual-defline",
                   "--disk-limit", "--disk-limit-tmp", "--size-check"},
        {"-o": "--outfile", "-O": "--outdir", "-b": "--bufsize", "-c": "--curcache",
         "-m": "--mem", "-t": "--temp", "-e": "--threads", "-M": "--min-read-len",
         "-p": "--progress", "-S": "--split-spot", "-3": "--split-3", "-Z": "--stdout",
         "-f": "--force", "-x": "--details", "-s": "--split-files"},
    ),
    ToolID.SRA_PILEUP: ToolInfo(
        "sra-pileup",
        _COMMON | {"--outfile", "--aligned-region", "--minmapq", "--duplicates",
                   "--table", "--function", "--merge-dist"},
        {"-o": "--outfile", "-r": "--aligned-region", "-q": "--minmapq",
         "-d": "--duplicates", "-n": "--noqual"},
    ),
    ToolID.SAM_DUMP: ToolInfo(
        "sam-dump",
        _COMMON | {"--output-file", "--output-buffer-size", "--aligned-region",
                   "--matepair-distance", "--prefix", "--cigar-test", "--min-mapq"},
        {"-r": "--header", "-n": "--no-header", "-u": "--unaligned", "-1": "--primary",
         "-p": "--prefix", "-=": "--hide-identical", "-c": "--cigar-long"},
    ),
    ToolID.SELF: ToolInfo("sratools"),
}

_BY_NAME = {info.runas: tool for tool, info in TOOLS.items()}


def lookup_tool(basename: str) -> ToolID:
    """Map an invocation basename (``fasterq-dump``) to a ToolID; unknown names are SELF."""
    return _BY_NAME.get(basename, ToolID.SELF)


def output_policy(tool: ToolID, parameters: ParameterSet) -> Tuple[Optional[str], Optional[str]]:
    """
    Return ``(unsafe_output_param, extension)`` for a tool.

    The unsafe parameter names the single-file output option that cannot hold
    more than one run; None means the tool fans out to many files safely.
    """
    if tool is ToolID.FASTERQ_DUMP:
        return "--outfile", ".fastq"
    if tool is ToolID.SRA_PILEUP:
        return "--outfile", ".pileup"
    if tool is ToolID.FASTQ_DUMP:
        return None, ".fastq"
    if tool is ToolID.SAM_DUMP:
        for name in parameters.names():
            if name == "--fasta":
                return None, ".fasta"
            if name == "--fastq":
                return None, ".fastq"
        return "--output-file", ".sam"
    return None, None


def candidate_names(runas: str, version: str) -> List[str]:
    names = []
    if version:
        names.append(f"{runas}-orig.{version}")
    names.append(f"{runas}-orig")
    return names


def tool_path(tool: ToolID, context: DispatchContext, config: Optional[DispatchConfig] = None) -> str:
    """
    Locate the real binary behind ``tool``.

    Looks for ``<name>-orig[.<version>]`` in the configured tool directory,
    then next to the dispatcher, then on PATH.
    """
    runas = TOOLS[tool].runas
    dirs = []
    if config is not None and config.tool_dir is not None:
        dirs.append(Path(config.tool_dir))
    dirs.append(Path(context.selfpath))

    names = candidate_names(runas, context.version)
    for d in dirs:
        for name in names:
            candidate = d / name
            if candidate.exists() and os.access(candidate, os.X_OK):
                return str(candidate)
    for name in names:
        p = shutil.which(name)
        if p:
            return p

    raise ToolNotFoundError(
        f"'{names[-1]}' not found in {', '.join(str(d) for d in dirs)} or PATH. "
        f"Try: `conda install -c bioconda sra-tools`"
    )
