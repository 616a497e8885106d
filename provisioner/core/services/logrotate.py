"""
Log rotation descriptor — render a logrotate rule file.
"""

from __future__ import annotations

from provisioner.core.models.plan import LogRotateRule

_PERIODS = {"daily", "weekly", "monthly", "yearly"}


def render_logrotate(rule: LogRotateRule) -> str:
    """Render ``rule`` as a logrotate(8) stanza.

    Raises:
        ValueError: On an unknown period or a negative retention count.
    """
    if rule.period not in _PERIODS:
        raise ValueError(f"Unknown rotation period '{rule.period}'. Valid: {', '.join(sorted(_PERIODS))}")
    if rule.rotate < 0:
        raise ValueError(f"Retention count must be >= 0, got {rule.rotate}")

    directives = [rule.period]
    if rule.missingok:
        directives.append("missingok")
    directives.append(f"rotate {rule.rotate}")
    if rule.compress:
        directives.append("compress")
    if rule.notifempty:
        directives.append("notifempty")
    if rule.sharedscripts:
        directives.append("sharedscripts")

    body = "\n".join(f"    {d}" for d in directives)
    return f"{rule.path_glob} {{\n{body}\n}}\n"
