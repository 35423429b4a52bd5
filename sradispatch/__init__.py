"""
sradispatch: a front end for the SRA toolkit binaries.

It stands in for fasterq-dump, fastq-dump, sam-dump, sra-pileup, prefetch and
srapath. The accessions it is given are expanded into runs, and the real tool
is run once per run against each candidate data source until one of them
delivers the data.
"""

import logging

from ._settings import DispatchConfig, DispatchContext, load_config
from .accession import AccessionType, classify_accession, expand_accessions, read_accession_list
from .dispatcher import AccessionDispatcher, RunDispatcher
from .exceptions import (
    ContainerAccessionError,
    DispatchError,
    SourcesExhaustedError,
    ToolExecError,
    ToolFailedError,
    ToolKilledError,
    ToolNotFoundError,
)
from .params import ParameterSet
from .sources import DataSource, MirrorSourceResolver, SourceList
from .supervisor import ChildProcessSupervisor, ExecutionOutcome, Outcome
from .tools import ToolID, lookup_tool

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Public exports
__all__ = [
    # Accessions
    'AccessionType',
    'classify_accession',
    'expand_accessions',
    'read_accession_list',

    # Dispatch
    'ParameterSet',
    'DataSource',
    'SourceList',
    'MirrorSourceResolver',
    'ChildProcessSupervisor',
    'ExecutionOutcome',
    'Outcome',
    'RunDispatcher',
    'AccessionDispatcher',

    # Identity and configuration
    'DispatchConfig',
    'DispatchContext',
    'load_config',
    'ToolID',
    'lookup_tool',

    # Errors
    'DispatchError',
    'ContainerAccessionError',
    'SourcesExhaustedError',
    'ToolExecError',
    'ToolFailedError',
    'ToolKilledError',
    'ToolNotFoundError',
]
