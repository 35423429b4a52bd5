#!/usr/bin/env python3
"""
Command-line entry point.

The program is installed (or symlinked) under the name of the tool it stands
in for, e.g. ``fasterq-dump``; ``$SRATOOLS_IMPERSONATE`` overrides that name.
The real binary is expected as ``fasterq-dump-orig`` next to it.

Usage:
    fasterq-dump [options] SRR000001 [SRR000002 ...]
    SRATOOLS_DRY_RUN=1 fasterq-dump --outfile out.fastq SRR000001 SRR000002
"""
from __future__ import annotations

import logging
import os
import sys
from typing import List, Mapping, Optional, Sequence, Tuple

from ._settings import (
    CONFIG_ENV,
    IMPERSONATE_ENV,
    DispatchConfig,
    DispatchContext,
    load_config,
    setup_logging,
    verbosity_level,
)
from .accession import read_accession_list
from .dispatcher import AccessionDispatcher
from .exceptions import DispatchError, ToolKilledError
from .params import ParameterSet
from .sources import MirrorSourceResolver
from .supervisor import ChildProcessSupervisor
from .tools import TOOLS, ToolID, ToolInfo, lookup_tool, output_policy, tool_path

logger = logging.getLogger(__name__)

EX_USAGE = getattr(os, "EX_USAGE", 64)
EX_NOINPUT = getattr(os, "EX_NOINPUT", 66)
EX_CONFIG = getattr(os, "EX_CONFIG", 78)


def _option_value(name: str, args: Sequence[str], i: int) -> Tuple[Optional[str], int]:
    """
    Match ``name value`` or ``name=value`` at ``args[i]``.

    Returns the value (None if no match) and the index just past the match.
    """
    arg = args[i]
    if arg == name:
        if i + 1 >= len(args):
            raise ValueError(f"{name} requires a value")
        return args[i + 1], i + 2
    if arg.startswith(name + "="):
        return arg[len(name) + 1:], i + 1
    return None, i


def extract_location(args: Sequence[str]) -> Tuple[List[str], Optional[str]]:
    """Remove every ``--location`` from ``args``; the last one given wins."""
    rest: List[str] = []
    location = None
    i = 0
    while i < len(args):
        value, nxt = _option_value("--location", args, i)
        if value is not None:
            location = value
            i = nxt
            continue
        rest.append(args[i])
        i += 1
    return rest, location


def expand_option_files(args: Sequence[str]) -> List[str]:
    """Splice the contents of every ``--option-file`` into the argument list."""
    out: List[str] = []
    i = 0
    while i < len(args):
        value, nxt = _option_value("--option-file", args, i)
        if value is not None:
            out.extend(read_accession_list(value))
            i = nxt
            continue
        out.append(args[i])
        i += 1
    return out


def parse_tool_args(info: ToolInfo, args: Sequence[str]) -> Optional[Tuple[ParameterSet, List[str]]]:
    """
    Split arguments into forwarded parameters and accessions.

    Returns None when the tool should just print its help: no arguments at
    all, or ``-h``/``--help`` among them.
    """
    if not args or "-h" in args or "--help" in args:
        return None

    args = expand_option_files(args)
    params = ParameterSet()
    accessions: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if arg == "--":
            accessions.extend(args[i:])
            break
        if not arg.startswith("-") or arg == "-":
            accessions.append(arg)
            continue

        name, eq, value = arg.partition("=")
        name = info.canonical(name)
        if not eq:
            value = None
            if name in info.value_options:
                if i >= len(args):
                    raise ValueError(f"{name} requires a value")
                value = args[i]
                i += 1
        if name in params:
            if value is None and params.get(name) is None:
                continue
            raise ValueError(f"{name} given more than once")
        params.add(name, value)

    return params, accessions


def runas(tool: ToolID, args: Sequence[str], context: DispatchContext,
          config: DispatchConfig, environ: Mapping[str, str] = os.environ) -> int:
    """Behave as ``tool`` would for ``args``; returns the exit status."""
    if tool is ToolID.SELF:
        return 0

    info = TOOLS[tool]
    supervisor = ChildProcessSupervisor(info.runas, tool_path(tool, context, config), context.argv0)
    dispatcher = AccessionDispatcher(
        context, info.runas, supervisor,
        resolver=MirrorSourceResolver(config, context, environ),
        environ=environ,
    )

    parsed = parse_tool_args(info, args)
    if parsed is None:
        return dispatcher.tool_help()
    params, accessions = parsed

    if info.resolves_itself:
        return dispatcher.process_no_sdl(params, accessions)

    unsafe_output_param, extension = output_policy(tool, params)
    return dispatcher.process(params, accessions, unsafe_output_param, extension)


def main(argv: Optional[Sequence[str]] = None) -> None:
    argv = list(sys.argv if argv is None else argv)
    environ = os.environ

    argv0 = environ.get(IMPERSONATE_ENV) or argv[0]
    try:
        args, location = extract_location(argv[1:])
    except ValueError as e:
        print(e, file=sys.stderr)
        sys.exit(EX_USAGE)
    context = DispatchContext.from_argv0(argv0, location)

    try:
        config = load_config(environ=environ)
    except (ValueError, OSError) as e:
        print(f"{context.basename}: bad configuration (${CONFIG_ENV}): {e}", file=sys.stderr)
        sys.exit(EX_CONFIG)
    setup_logging(verbosity_level(config, environ))
    logger.debug(f"running as {context.basename} {context.version}".rstrip())

    try:
        code = runas(lookup_tool(context.basename), args, context, config, environ)
    except ToolKilledError as e:
        print(e, file=sys.stderr)
        os.abort()
    except DispatchError as e:
        print(e, file=sys.stderr)
        sys.exit(e.exit_code)
    except ValueError as e:
        print(f"{context.basename}: {e}", file=sys.stderr)
        sys.exit(EX_USAGE)
    except OSError as e:
        print(f"{context.basename}: {e}", file=sys.stderr)
        sys.exit(EX_NOINPUT)
    sys.exit(code)


if __name__ == "__main__":
    main()
