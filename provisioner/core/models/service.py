"""
Service unit models — declared long-running background processes.

A ServiceUnitSpec is what the Service Unit Manager turns into a unit
file. Restart behavior is declared here and enforced by the host's
service manager, never by the provisioner.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class RestartPolicy(str, Enum):
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    NEVER = "no"


class UnitStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FAILED = "failed"
    UNKNOWN = "unknown"


class ServiceUnitSpec(BaseModel):
    """Declaration of one long-running daemon."""

    name: str
    description: str = ""
    executable: str
    args: list[str] = Field(default_factory=list)
    user: str | None = None
    group: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    working_directory: str | None = None

    service_type: str = "simple"
    restart: RestartPolicy = RestartPolicy.ALWAYS
    restart_delay: int = 10  # seconds

    after: list[str] = Field(default_factory=lambda: ["network.target"])
    wanted_by: str = "multi-user.target"

    @property
    def unit_name(self) -> str:
        """File name of the unit, e.g. ``airflow-webserver.service``."""
        if self.name.endswith(".service"):
            return self.name
        return f"{self.name}.service"

    @property
    def command_line(self) -> str:
        return " ".join([self.executable, *self.args])
