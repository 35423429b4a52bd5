"""
Run the underlying tool as a child process and classify how it ended.
"""
from __future__ import annotations

import enum
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from .exceptions import EX_TEMPFAIL, ToolExecError, ToolFailedError, ToolKilledError
from .params import ParameterSet

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient"
    TOOL_FAILURE = "tool-failure"
    KILLED = "killed"


@dataclass(frozen=True)
class ExecutionOutcome:
    kind: Outcome
    pid: int
    exit_code: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, returncode: int, pid: int) -> "ExecutionOutcome":
        """Classify a ``Popen.returncode`` (negative means killed by that signal)."""
        if returncode < 0:
            return cls(Outcome.KILLED, pid, signal=-returncode)
        if returncode == 0:
            return cls(Outcome.SUCCESS, pid, exit_code=0)
        if returncode == EX_TEMPFAIL:
            return cls(Outcome.TRANSIENT_FAILURE, pid, exit_code=returncode)
        return cls(Outcome.TOOL_FAILURE, pid, exit_code=returncode)

    def escalate(self, toolname: str) -> None:
        """Raise for outcomes that end the whole dispatch."""
        if self.kind is Outcome.TOOL_FAILURE:
            raise ToolFailedError(toolname, self.pid, self.exit_code)
        if self.kind is Outcome.KILLED:
            raise ToolKilledError(toolname, self.pid, self.signal)


def build_argv(argv0: str, parameters: ParameterSet, runs: Sequence[str] = ()) -> List[str]:
    """``argv0``, the forwarded parameters in order, then the runs as positionals."""
    return [argv0, *parameters.argv(), *runs]


class ChildProcessSupervisor:
    """Spawns exactly one child per call and waits for it."""

    def __init__(self, toolname: str, toolpath: str, argv0: str):
        self.toolname = toolname
        self.toolpath = toolpath
        self.argv0 = argv0

    def spawn(self, argv: Sequence[str], env: Optional[Mapping[str, str]] = None) -> ExecutionOutcome:
        logger.debug(f">> {self.toolpath} {' '.join(argv[1:])}")
        try:
            proc = subprocess.Popen(list(argv), executable=self.toolpath,
                                    env=dict(env) if env is not None else None)
        except OSError as e:
            raise ToolExecError(self.toolpath, e) from e
        returncode = proc.wait()
        return ExecutionOutcome.from_returncode(returncode, proc.pid)

    def run(self, parameters: ParameterSet, run: str,
            env: Optional[Mapping[str, str]] = None) -> ExecutionOutcome:
        """Run the tool on one run and classify the result."""
        outcome = self.spawn(build_argv(self.argv0, parameters, [run]), env)
        if outcome.kind is Outcome.SUCCESS:
            logger.info(f"Successfully processed {run}")
        return outcome
