"""
Shared pytest configuration and fixtures for the sradispatch test suite.

This file contains common fixtures and configuration that are shared across
all test modules: fake tools written to a temporary directory, and in-memory
stand-ins for the source resolver and the child-process supervisor.
"""

import io
import json
import logging
import stat
import sys

import pytest

from sradispatch.sources import DataSource, SourceList
from sradispatch.supervisor import ExecutionOutcome, build_argv


TOOL_SCRIPT = """#!{python}
import json, os, sys
log = os.environ.get("TOOL_LOG")
if log:
    with open(log, "a") as f:
        f.write(json.dumps({{"argv": sys.argv[1:], "source": os.environ.get("SOURCE")}}) + "\\n")
if not sys.argv[1:]:
    sys.exit(int(os.environ.get("TOOL_EMPTY_EXIT", "0")))
sys.exit(int(os.environ.get("TOOL_EXIT", "0")))
"""


@pytest.fixture
def make_tool(tmp_path):
    """
    Factory writing an executable fake tool into ``tmp_path``.

    The tool appends its arguments (and ``$SOURCE``) as one JSON line to
    ``$TOOL_LOG`` and exits with ``$TOOL_EXIT`` (``$TOOL_EMPTY_EXIT`` when
    run without arguments).
    """
    def _make(name):
        path = tmp_path / name
        path.write_text(TOOL_SCRIPT.format(python=sys.executable))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path
    return _make


@pytest.fixture
def tool_log(tmp_path, monkeypatch):
    """Point ``$TOOL_LOG`` at a fresh file and return a reader for its entries."""
    log = tmp_path / "tool.log"
    monkeypatch.setenv("TOOL_LOG", str(log))

    def _read():
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text().splitlines()]
    return _read


class FakeResolver:
    """Resolver returning canned sources; each source sets ``SOURCE=<label>``."""

    def __init__(self, sources_by_run=None, default=("A",), ce_token=None):
        self.sources_by_run = sources_by_run or {}
        self.default = default
        self.ce_token = ce_token
        self.calls = []

    def sources_for(self, run):
        self.calls.append(run)
        labels = self.sources_by_run.get(run, self.default)
        return SourceList([DataSource(label, {"SOURCE": label}) for label in labels],
                          ce_token=self.ce_token)


class FakeSupervisor:
    """
    Supervisor that never spawns; the outcome is looked up by source label.

    ``results`` maps a source label to an exit status (negative for a signal);
    unknown labels succeed.
    """

    def __init__(self, results=None, toolpath="/opt/sra/fasterq-dump-orig",
                 argv0="fasterq-dump", stdout=None):
        self.results = results or {}
        self.toolpath = toolpath
        self.argv0 = argv0
        self.stdout = stdout
        self.calls = []
        self.spawned = []

    def run(self, parameters, run, env=None):
        env = dict(env or {})
        self.calls.append({
            "run": run,
            "source": env.get("SOURCE"),
            "argv": build_argv(self.argv0, parameters, [run]),
            "env": env,
            "stdout_seen": self.stdout.getvalue() if self.stdout is not None else None,
        })
        return ExecutionOutcome.from_returncode(self.results.get(env.get("SOURCE"), 0), 4242)

    def spawn(self, argv, env=None):
        self.spawned.append(list(argv))
        return ExecutionOutcome.from_returncode(self.results.get("spawn", 0), 4243)


@pytest.fixture
def fake_resolver():
    return FakeResolver


@pytest.fixture
def fake_supervisor():
    return FakeSupervisor


@pytest.fixture
def streams():
    """A pair of in-memory (stdout, stderr) streams."""
    return io.StringIO(), io.StringIO()


@pytest.fixture(autouse=True)
def clean_sratools_env(monkeypatch):
    """Keep the caller's SRA toolkit settings out of every test."""
    for name in ("SRATOOLS_DRY_RUN", "SRATOOLS_IMPERSONATE", "SRATOOLS_VERBOSE",
                 "SRATOOLS_CONFIG", "VDB_CE_TOKEN", "TOOL_EXIT", "TOOL_EMPTY_EXIT", "SOURCE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by ``main()`` so they never outlive a captured stream."""
    pkg_logger = logging.getLogger("sradispatch")
    handlers, level = list(pkg_logger.handlers), pkg_logger.level
    yield
    pkg_logger.handlers[:] = handlers
    pkg_logger.setLevel(level)


def pytest_configure(config):
    """
    Register custom pytest markers for better test organization.
    """
    config.addinivalue_line(
        "markers", "subprocess: marks tests that spawn real child processes"
    )
