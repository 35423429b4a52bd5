"""
Ordered parameter list forwarded to the underlying tool.
"""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ._settings import DISCARD_PATH

ParameterEntry = Tuple[str, Optional[str]]


class ParameterSet:
    """
    Name-unique, insertion-ordered ``name -> value`` pairs.

    A value of ``None`` is a boolean flag. At most one entry can be designated
    the output file; it is the only entry that may change once dispatch starts.
    """

    def __init__(self, entries: Iterable[ParameterEntry] = ()):
        self._entries: Dict[str, Optional[str]] = {}
        self._output_name: Optional[str] = None
        for name, value in entries:
            self.add(name, value)

    def add(self, name: str, value: Optional[str] = None) -> None:
        if name in self._entries:
            raise ValueError(f"duplicate parameter: {name}")
        self._entries[name] = value

    def __iter__(self) -> Iterator[ParameterEntry]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __repr__(self) -> str:
        return f"ParameterSet({list(self)!r})"

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._entries.get(name, default)

    def names(self) -> List[str]:
        return list(self._entries)

    def argv(self) -> List[str]:
        """Flatten to an argument vector: each name, then its value if it has one."""
        out: List[str] = []
        for name, value in self._entries.items():
            out.append(name)
            if value is not None:
                out.append(value)
        return out

    # ---------- output-file entry ----------
    @property
    def output_name(self) -> Optional[str]:
        return self._output_name

    def find_output(self, name: Optional[str]) -> Optional[str]:
        """
        Return ``name`` if that parameter is present with a real path.

        Missing parameters, bare flags and the discard path do not count.
        """
        if not name or name not in self._entries:
            return None
        value = self._entries[name]
        if value is None or value == DISCARD_PATH:
            return None
        return name

    def designate_output(self, name: Optional[str]) -> bool:
        """Mark ``name`` as the entry rewritten per run; False if it does not qualify."""
        found = self.find_output(name)
        if found is None:
            return False
        self._output_name = found
        return True

    def rewrite_output(self, run: str, extension: str) -> Optional[str]:
        """Point the designated output entry at ``<run><extension>``; no-op without one."""
        if self._output_name is None:
            return None
        filename = output_filename(run, extension)
        self._entries[self._output_name] = filename
        return filename


def output_filename(run: str, extension: str) -> str:
    return run + extension
