"""
ConfigDocument — in-memory form of a sectioned key/value config file.

Section order and key order are preserved; they are what the rendered
file will show. Values are always strings by the time they land here.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any


class ConfigDocument:
    """Ordered sections, each an ordered mapping of option → value."""

    def __init__(self, sections: Mapping[str, Mapping[str, str]] | None = None):
        self._sections: dict[str, dict[str, str]] = {}
        for section, options in (sections or {}).items():
            self._sections[section] = dict(options)

    def add_section(self, section: str) -> None:
        self._sections.setdefault(section, {})

    def set(self, section: str, key: str, value: str) -> None:
        self._sections.setdefault(section, {})[key] = value

    def get(self, section: str, key: str, default: str | None = None) -> str | None:
        return self._sections.get(section, {}).get(key, default)

    def section(self, name: str) -> dict[str, str]:
        return dict(self._sections.get(name, {}))

    @property
    def sections(self) -> list[str]:
        return list(self._sections.keys())

    def triples(self) -> list[tuple[str, str, str]]:
        """Flatten to ordered ``(section, key, value)`` rows."""
        return [
            (section, key, value)
            for section, options in self._sections.items()
            for key, value in options.items()
        ]

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {section: dict(options) for section, options in self._sections.items()}

    def __iter__(self) -> Iterator[str]:
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def __contains__(self, section: object) -> bool:
        return section in self._sections

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, ConfigDocument):
            return self.to_dict() == other.to_dict()
        if isinstance(other, Mapping):
            return self.to_dict() == {k: dict(v) for k, v in other.items()}
        return NotImplemented

    def __repr__(self) -> str:
        return f"<ConfigDocument sections={self.sections!r}>"
