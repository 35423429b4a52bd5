"""
Fatal conditions raised while dispatching accessions.

Every exception carries the exit code the process terminates with; only the
command-line entry point turns them into an actual exit.
"""
from __future__ import annotations

import os
from typing import List, Optional, Sequence

# sysexits.h values; os only exposes them on Unix.
EX_UNAVAILABLE = getattr(os, "EX_UNAVAILABLE", 69)
EX_TEMPFAIL = getattr(os, "EX_TEMPFAIL", 75)


class DispatchError(Exception):
    """Base class for conditions that end the whole dispatch."""

    exit_code: Optional[int] = 1

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ContainerAccessionError(DispatchError):
    """One or more container accessions (project/sample/experiment) were given."""

    exit_code = EX_UNAVAILABLE

    def __init__(self, accessions: Sequence[str]):
        self.accessions: List[str] = list(accessions)
        super().__init__(
            "Automatic expansion of container accessions is not currently available. "
            "See the above link(s) for information about the constituent run data accessions. "
            "For example, you can download the accession list and then re-run with "
            "--option-file=SraAccList.txt"
        )


class SourcesExhaustedError(DispatchError):
    """Every data source for a run reported a temporary failure, or there was none."""

    exit_code = EX_TEMPFAIL

    def __init__(self, run: str, services: Sequence[str]):
        self.run = run
        self.services: List[str] = list(services)
        if self.services:
            lines = [f"Could not get any data for {run}, tried to get data from:"]
            lines += [f"\t{service}" for service in self.services]
        else:
            lines = [f"Could not get any data for {run}, there is no accessible source."]
        lines.append("This may be temporary, you should retry later.")
        super().__init__("\n".join(lines))


class ToolFailedError(DispatchError):
    """The underlying tool quit with a non-zero, non-transient exit code."""

    def __init__(self, toolname: str, pid: int, code: int):
        self.toolname = toolname
        self.pid = pid
        super().__init__(f"{toolname} (PID {pid}) quit with error code {code}", exit_code=code)


class ToolKilledError(DispatchError):
    """The underlying tool was terminated by a signal."""

    exit_code = None

    def __init__(self, toolname: str, pid: int, signum: int):
        self.toolname = toolname
        self.pid = pid
        self.signum = signum
        super().__init__(f"{toolname} (PID {pid}) was killed (signal {signum})")


class ToolNotFoundError(DispatchError):
    """The real binary behind an impersonated tool could not be located."""

    exit_code = EX_UNAVAILABLE


class ToolExecError(DispatchError):
    """The real binary exists but could not be started."""

    exit_code = EX_UNAVAILABLE

    def __init__(self, toolpath: str, reason: OSError):
        self.toolpath = toolpath
        super().__init__(f"failed to exec {toolpath}: {reason.strerror or reason}")
