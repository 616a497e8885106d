"""
Config renderer — layered defaults + overrides → flat sectioned file.

The target format is the INI-like ``[section]`` / ``key = value`` text
that the orchestration platform reads at process startup. There is no
escaping in that format, so a control character anywhere is fatal.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Union

from pydantic import SecretStr

from provisioner.core.errors import RenderError
from provisioner.core.models.config_document import ConfigDocument

logger = logging.getLogger(__name__)

DocumentLike = Union[ConfigDocument, Mapping[str, Mapping[str, Any]]]

# Tab is tolerated inside values; everything else below 0x20 and DEL is not.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def _as_mapping(doc: DocumentLike | None) -> dict[str, Mapping[str, Any]]:
    if doc is None:
        return {}
    if isinstance(doc, ConfigDocument):
        return doc.to_dict()
    return dict(doc)


def _options(doc: dict[str, Mapping[str, Any]], section: str) -> Mapping[str, Any]:
    options = doc.get(section)
    if options is None:
        return {}
    if not isinstance(options, Mapping):
        raise RenderError(f"[{section}]: expected a mapping of options, got {type(options).__name__}")
    return options


def _to_text(value: Any) -> str:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def _check_section(section: str) -> None:
    if not section or _CONTROL_CHARS.search(section) or "[" in section or "]" in section:
        raise RenderError(f"Section name cannot be serialized: {section!r}")


def _check_row(section: str, key: str, value: str) -> None:
    if not key or _CONTROL_CHARS.search(key) or "=" in key or "\t" in key:
        raise RenderError(f"[{section}] option name cannot be serialized: {key!r}")
    if key != key.strip():
        raise RenderError(f"[{section}] option name has surrounding whitespace: {key!r}")
    if _CONTROL_CHARS.search(value):
        raise RenderError(
            f"[{section}] {key}: value contains a control character and cannot be serialized"
        )


def render(defaults: DocumentLike | None, overrides: DocumentLike | None = None) -> ConfigDocument:
    """Merge ``overrides`` onto ``defaults``.

    Sections of ``defaults`` come first in their order, then sections
    only present in ``overrides``. Within a section, override values win
    and override-only keys are appended. ``None`` values produce no row.

    Raises:
        RenderError: If any section, key or value cannot be serialized.
    """
    base = _as_mapping(defaults)
    layer = _as_mapping(overrides)

    document = ConfigDocument()
    section_order = list(base) + [s for s in layer if s not in base]

    for section in section_order:
        _check_section(section)
        merged: dict[str, Any] = dict(_options(base, section))
        for key, value in _options(layer, section).items():
            merged[key] = value

        # An empty section still gets its header.
        document.add_section(section)
        for key, value in merged.items():
            if value is None:
                continue
            text = _to_text(value)
            _check_row(section, key, text)
            document.set(section, key, text)

    logger.debug(
        "Rendered config: %d sections, %d options",
        len(document),
        len(document.triples()),
    )
    return document


def serialize(document: ConfigDocument) -> str:
    """Emit the document as ``[section]`` blocks of ``key = value`` rows."""
    blocks: list[str] = []
    for section in document.sections:
        lines = [f"[{section}]"]
        for key, value in document.section(section).items():
            lines.append(f"{key} = {value}" if value != "" else f"{key} =")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n" if blocks else ""


def render_text(defaults: DocumentLike | None, overrides: DocumentLike | None = None) -> str:
    """``render`` then ``serialize``."""
    return serialize(render(defaults, overrides))
