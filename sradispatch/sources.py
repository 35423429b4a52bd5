"""
Candidate data sources for a run.

The resolver hands back an ordered ``SourceList``; each ``DataSource`` knows
how to configure the environment of the child process that will read from it.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Protocol, Sequence

import requests

from ._settings import CE_TOKEN_ENV, DispatchConfig, DispatchContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSource:
    """One place a run's data can be read from."""

    service: str
    env: Mapping[str, str] = field(default_factory=dict)

    def apply_to_environment(self, environ: MutableMapping[str, str]) -> None:
        environ.update(self.env)

    def __str__(self) -> str:
        return self.service


class SourceList(Sequence[DataSource]):
    """Ordered sources for one run, plus the credential token shared by all of them."""

    def __init__(self, sources: Sequence[DataSource] = (), ce_token: Optional[str] = None):
        self._sources = list(sources)
        self.ce_token = ce_token

    def __getitem__(self, index):
        return self._sources[index]

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[DataSource]:
        return iter(self._sources)

    def __repr__(self) -> str:
        return f"SourceList({[s.service for s in self._sources]!r})"

    @property
    def services(self) -> List[str]:
        return [s.service for s in self._sources]

    def set_ce_token_env_var(self, environ: MutableMapping[str, str]) -> None:
        if self.ce_token:
            environ[CE_TOKEN_ENV] = self.ce_token


class SourceResolver(Protocol):
    def sources_for(self, run: str) -> SourceList:
        ...


def select_mirrors(mirrors: Sequence[Dict[str, Any]], location: Optional[str] = None) -> List[Dict[str, Any]]:
    """Order mirrors by priority (lowest first), keeping only ``location`` when given."""
    if location:
        mirrors = [m for m in mirrors if m.get('location') in (None, location)]
    return sorted(mirrors, key=lambda x: x.get('priority', 999))


def check_mirror_health(mirror: Dict[str, Any], timeout: int = 10) -> bool:
    """Probe ``health_url`` of a mirror; mirrors without one are assumed healthy."""
    url = mirror.get('health_url')
    if not url:
        return True
    try:
        response = requests.get(url, timeout=timeout)
        return response.status_code == 200
    except requests.RequestException as e:
        logger.debug(f"Mirror health check failed for {mirror.get('name', 'unknown')}: {e}")
        return False


class MirrorSourceResolver:
    """
    Resolve runs against the mirrors listed in the configuration.

    Readable local files resolve to a single ``local`` source. With no mirror
    configured a single ``default`` source is returned that leaves the
    environment alone, letting the tool find the data on its own.
    """

    def __init__(self, config: DispatchConfig, context: DispatchContext,
                 environ: Mapping[str, str] = os.environ):
        self.config = config
        self.context = context
        self.ce_token = config.ce_token or environ.get(CE_TOKEN_ENV) or None

    def sources_for(self, run: str) -> SourceList:
        if os.access(run, os.R_OK):
            return SourceList([DataSource("local", {"VDB_LOCAL_URL": os.path.abspath(run)})],
                              ce_token=self.ce_token)

        if not self.config.mirrors:
            return SourceList([DataSource("default")], ce_token=self.ce_token)

        sources = []
        for mirror in select_mirrors(self.config.mirrors, self.context.location):
            if self.config.check_health and not check_mirror_health(mirror, self.config.health_timeout):
                logger.info(f"skipping unhealthy mirror {mirror['name']}")
                continue
            env = {k: str(v).replace("{run}", run) for k, v in mirror.get('env', {}).items()}
            sources.append(DataSource(mirror['name'], env))
        logger.debug(f"sources for {run}: {[s.service for s in sources]}")
        return SourceList(sources, ce_token=self.ce_token)
