# dispatcher.py
"""
Dispatch runs to the underlying tool.

``RunDispatcher`` walks the sources of one run until one of them succeeds.
``AccessionDispatcher`` expands the user's accessions and feeds every run to
the ``RunDispatcher`` in order. Conditions that end the whole dispatch are
raised as ``DispatchError`` subclasses; nothing here calls ``sys.exit``
except the dry-run branch.
"""
from __future__ import annotations

import enum
import logging
import os
import sys
from typing import Mapping, MutableMapping, Optional, Sequence, TextIO

from ._settings import DRY_RUN_ENV, ENV_VAR_NAMES, DispatchContext
from .accession import expand_accessions
from .exceptions import SourcesExhaustedError
from .params import ParameterSet, output_filename
from .sources import DataSource, SourceList, SourceResolver
from .supervisor import ChildProcessSupervisor, Outcome, build_argv

logger = logging.getLogger(__name__)


def dry_run_requested(environ: Mapping[str, str]) -> bool:
    value = environ.get(DRY_RUN_ENV, "")
    return bool(value) and value != "0"


def describe_and_exit(toolpath: str, argv: Sequence[str], environ: Mapping[str, str],
                      stream: Optional[TextIO] = None) -> None:
    """Print what would be executed, with the relevant environment, then exit 0."""
    stream = stream or sys.stderr
    print(f"would exec '{toolpath}' as:", file=stream)
    print(" ".join(argv), file=stream)
    print("with environment:", file=stream)
    for name in ENV_VAR_NAMES:
        value = environ.get(name)
        if value is not None:
            print(f" {name}='{value}'", file=stream)
    print(file=stream)
    raise SystemExit(0)


class RunState(enum.Enum):
    FETCHING = "fetching"
    TRYING_SOURCE = "trying"
    NEXT_SOURCE = "next"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class RunDispatcher:
    """
    Per-run state machine::

        FETCHING -> TRYING_SOURCE(i) -> SUCCESS
                                     -> NEXT_SOURCE -> TRYING_SOURCE(i+1)
                                     -> EXHAUSTED

    Transient failures move on to the next source. Tool failures and signals
    are raised at once and are never retried. Running out of sources, or
    having none to begin with, raises SourcesExhaustedError, which stops the
    remaining runs too.
    """

    def __init__(self, toolname: str, supervisor: ChildProcessSupervisor, resolver: SourceResolver,
                 parameters: ParameterSet, extension: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None, stderr: Optional[TextIO] = None):
        self.toolname = toolname
        self.supervisor = supervisor
        self.resolver = resolver
        self.parameters = parameters
        self.extension = extension or ""
        self.environ = os.environ if environ is None else environ
        self.stderr = stderr or sys.stderr

    def _prepare_environment(self, run_env: Mapping[str, str], source) -> MutableMapping[str, str]:
        env = dict(run_env)
        source.apply_to_environment(env)
        return env

    def dispatch(self, run: str) -> DataSource:
        """Run the tool on ``run`` and return the source that delivered it."""
        state = RunState.FETCHING
        sources = SourceList()
        run_env: Mapping[str, str] = {}
        index = 0

        while True:
            if state is RunState.FETCHING:
                sources = self.resolver.sources_for(run)
                if not sources:
                    state = RunState.EXHAUSTED
                    continue
                run_env = dict(self.environ)
                sources.set_ce_token_env_var(run_env)
                state = RunState.TRYING_SOURCE

            elif state is RunState.TRYING_SOURCE:
                if index >= len(sources):
                    state = RunState.EXHAUSTED
                    continue
                source = sources[index]
                self.parameters.rewrite_output(run, self.extension)
                env = self._prepare_environment(run_env, source)
                if dry_run_requested(env):
                    describe_and_exit(self.supervisor.toolpath,
                                      build_argv(self.supervisor.argv0, self.parameters, [run]),
                                      env, self.stderr)
                outcome = self.supervisor.run(self.parameters, run, env)
                outcome.escalate(self.toolname)
                state = RunState.SUCCESS if outcome.kind is Outcome.SUCCESS else RunState.NEXT_SOURCE

            elif state is RunState.NEXT_SOURCE:
                logger.info(f"failed to get data for {run} from {sources[index].service}")
                index += 1
                state = RunState.TRYING_SOURCE

            elif state is RunState.SUCCESS:
                return sources[index]

            else:
                raise SourcesExhaustedError(run, sources.services)


class AccessionDispatcher:
    """Top-level dispatch across all runs of one invocation."""

    def __init__(self, context: DispatchContext, toolname: str, supervisor: ChildProcessSupervisor,
                 resolver: Optional[SourceResolver] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self.context = context
        self.toolname = toolname
        self.supervisor = supervisor
        self.resolver = resolver
        self.environ = os.environ if environ is None else environ
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr

    # ---------- pass-through invocations ----------
    def _passthrough(self, argv: Sequence[str]) -> int:
        outcome = self.supervisor.spawn(argv, self.environ)
        if outcome.kind is Outcome.KILLED:
            outcome.escalate(self.toolname)
        return outcome.exit_code

    def empty_invocation(self) -> int:
        """Run the tool with no arguments so it prints its own usage."""
        return self._passthrough([self.context.argv0])

    def tool_help(self) -> int:
        return self._passthrough([self.context.argv0, "--help"])

    def process_no_sdl(self, parameters: ParameterSet, accessions: Sequence[str]) -> int:
        """For tools that resolve accessions themselves: one invocation with every run."""
        runs = expand_accessions(accessions, stream=self.stderr)
        return self._passthrough(build_argv(self.context.argv0, parameters, runs))

    # ---------- the main path ----------
    def print_unsafe_output_file_message(self, runs: Sequence[str], extension: str) -> None:
        out = self.stdout
        print(f"You are trying to process {len(runs)} runs to a single output file, but {self.toolname}", file=out)
        print("is not capable of producing valid output from more than one run into a single", file=out)
        print("file. The following output files will be created instead:", file=out)
        for run in runs:
            print(f"\t{output_filename(run, extension)}", file=out)

    def process(self, parameters: ParameterSet, accessions: Sequence[str],
                unsafe_output_param: Optional[str] = None, extension: Optional[str] = None) -> int:
        """
        Dispatch every run of ``accessions`` and return the exit status.

        Returns 0 once every run succeeded. With no accessions the tool is run
        bare and its status is returned instead.
        """
        if not accessions:
            return self.empty_invocation()
        if self.resolver is None:
            raise ValueError("a source resolver is required to dispatch runs")

        runs = expand_accessions(accessions, stream=self.stderr)
        extension = extension or ""

        if len(runs) > 1 and unsafe_output_param and parameters.designate_output(unsafe_output_param):
            self.print_unsafe_output_file_message(runs, extension)

        run_dispatcher = RunDispatcher(self.toolname, self.supervisor, self.resolver, parameters,
                                       extension, self.environ, self.stderr)
        for run in runs:
            logger.debug(f"Processing {run} ...")
            source = run_dispatcher.dispatch(run)
            logger.debug(f"{run} was served by {source}")

        logger.info("All runs were processed successfully")
        if "--stdout" not in parameters:
            print("All runs were processed successfully", file=self.stdout)
        return 0
