"""
Process-wide settings for sradispatch.

``DispatchContext`` holds the identity values established once at start-up
(how the program was invoked, its version suffix, the requested location).
``DispatchConfig`` holds the user-tunable configuration and can be loaded
from a JSON or YAML file.
"""
from __future__ import annotations

import json
import logging
import os
import re
import shutil
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

DRY_RUN_ENV = "SRATOOLS_DRY_RUN"
IMPERSONATE_ENV = "SRATOOLS_IMPERSONATE"
VERBOSE_ENV = "SRATOOLS_VERBOSE"
CONFIG_ENV = "SRATOOLS_CONFIG"
CE_TOKEN_ENV = "VDB_CE_TOKEN"

# Environment variables the dispatcher sets or honours; printed by the dry-run dump.
ENV_VAR_NAMES = (
    "VDB_REMOTE_URL",
    "VDB_REMOTE_VDBCACHE",
    "VDB_REMOTE_NEED_CE",
    "VDB_REMOTE_NEED_PMT",
    "VDB_LOCAL_URL",
    "VDB_LOCAL_VDBCACHE",
    "VDB_CACHE_URL",
    "VDB_CACHE_VDBCACHE",
    "VDB_SIZE_URL",
    CE_TOKEN_ENV,
    "SRATOOLS_LOCATION",
    IMPERSONATE_ENV,
    VERBOSE_ENV,
    CONFIG_ENV,
    DRY_RUN_ENV,
)

DISCARD_PATH = "/dev/null"

_VERSION_SUFFIX = re.compile(r"^(?P<name>.+?)\.(?P<version>\d[\w.]*)$")


def split_version(basename: str) -> tuple[str, str]:
    """Split ``fastq-dump.3.0.7`` into ``("fastq-dump", "3.0.7")``."""
    m = _VERSION_SUFFIX.match(basename)
    if not m:
        return basename, ""
    return m.group("name"), m.group("version")


@dataclass(frozen=True)
class DispatchContext:
    """Immutable identity of the running dispatcher."""

    argv0: str
    selfpath: Path
    basename: str
    version: str = ""
    location: Optional[str] = None

    @classmethod
    def from_argv0(cls, argv0: str, location: Optional[str] = None) -> "DispatchContext":
        path = Path(argv0)
        selfpath = path.parent
        # A bare name means we were found on PATH.
        if str(selfpath) == "." and os.sep not in argv0:
            found = shutil.which(argv0)
            if found:
                selfpath = Path(found).parent
        basename, version = split_version(path.name)
        return cls(argv0=argv0, selfpath=selfpath, basename=basename,
                   version=version, location=location)


@dataclass
class DispatchConfig:
    """Dispatcher configuration."""

    # Candidate data sources, tried in ascending priority.
    mirrors: List[Dict[str, Any]] = field(default_factory=list)

    # Mirror health probing.
    check_health: bool = False
    health_timeout: int = 10

    # Credential token exported to every source attempt of a run.
    ce_token: Optional[str] = None

    # Where the real binaries (``<tool>-orig``) live; None means next to the dispatcher.
    tool_dir: Optional[Path] = None

    log_level: str = "WARNING"

    @classmethod
    def from_dict(cls, config_data: Any) -> "DispatchConfig":
        """Build a configuration from parsed file contents, rejecting unknown keys."""
        if not isinstance(config_data, dict):
            raise ValueError(f"configuration must be a mapping, not {type(config_data).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(config_data) - known)
        if unknown:
            raise ValueError(f"unknown configuration keys: {', '.join(map(str, unknown))}")

        config_data = dict(config_data)
        if config_data.get("tool_dir") is not None:
            config_data["tool_dir"] = Path(config_data["tool_dir"])

        return cls(**config_data)

    @classmethod
    def from_file(cls, config_file: str | Path) -> "DispatchConfig":
        """Load configuration from a JSON or YAML file."""
        config_file = Path(config_file)

        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")

        if config_file.suffix.lower() == '.json':
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        elif config_file.suffix.lower() in ['.yml', '.yaml']:
            try:
                with open(config_file, 'r') as f:
                    config_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"malformed YAML in {config_file}: {e}") from e
            if config_data is None:
                config_data = {}
        else:
            raise ValueError(f"Unsupported config file format: {config_file.suffix}")

        return cls.from_dict(config_data)

    def validate(self) -> List[str]:
        """Validate configuration values and return a list of errors."""
        errors = []

        if not isinstance(self.mirrors, list):
            errors.append("mirrors must be a list")
            mirrors = []
        else:
            mirrors = self.mirrors

        names = set()
        for i, mirror in enumerate(mirrors):
            if not isinstance(mirror, dict):
                errors.append(f"mirrors[{i}] must be a mapping")
                continue
            name = mirror.get("name")
            if not name:
                errors.append(f"mirrors[{i}] has no name")
            elif name in names:
                errors.append(f"duplicate mirror name: {name}")
            names.add(name)
            if not isinstance(mirror.get("env", {}), dict):
                errors.append(f"mirrors[{i}].env must be a mapping")

        if not isinstance(self.health_timeout, int) or self.health_timeout < 1:
            errors.append("health_timeout must be >= 1")

        if not isinstance(self.log_level, str) or not isinstance(logging.getLevelName(self.log_level.upper()), int):
            errors.append(f"unknown log_level: {self.log_level}")

        return errors


def load_config(config_source: str | Path | Dict[str, Any] | None = None,
                environ: Mapping[str, str] = os.environ) -> DispatchConfig:
    """
    Load configuration from a file, a dictionary, or ``$SRATOOLS_CONFIG``.

    With no source and no environment override, defaults are returned.
    """
    if config_source is None:
        config_source = environ.get(CONFIG_ENV) or None
    if config_source is None:
        config = DispatchConfig()
    elif isinstance(config_source, dict):
        config = DispatchConfig.from_dict(config_source)
    elif isinstance(config_source, (str, Path)):
        config = DispatchConfig.from_file(config_source)
    else:
        raise ValueError(f"Unsupported config source type: {type(config_source)}")

    errors = config.validate()
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
    return config


def verbosity_level(config: DispatchConfig, environ: Mapping[str, str] = os.environ) -> int:
    """Map ``$SRATOOLS_VERBOSE`` (0, 1, 2+) or the configured level to a logging level."""
    raw = environ.get(VERBOSE_ENV, "")
    if raw.strip():
        try:
            verbose = int(raw)
        except ValueError:
            logger.warning(f"ignoring non-numeric {VERBOSE_ENV}={raw!r}")
        else:
            if verbose <= 0:
                return logging.WARNING
            return logging.INFO if verbose == 1 else logging.DEBUG
    level = logging.getLevelName(config.log_level.upper())
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(level: int = logging.WARNING) -> logging.Logger:
    pkg_logger = logging.getLogger("sradispatch")
    if not any(isinstance(h, logging.StreamHandler) for h in pkg_logger.handlers):
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(logging.Formatter("[%(asctime)s] [sradispatch] %(levelname)s: %(message)s"))
        pkg_logger.addHandler(sh)
    pkg_logger.setLevel(level)
    return pkg_logger
