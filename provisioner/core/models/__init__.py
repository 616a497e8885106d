"""
Domain models — types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import Step, Receipt, ServiceUnitSpec, ProvisioningPlan
"""

from provisioner.core.models.action import Receipt, Step, StepStatus
from provisioner.core.models.config_document import ConfigDocument
from provisioner.core.models.plan import (
    ConfigTarget,
    LogRotateRule,
    PlanState,
    ProvisioningPlan,
)
from provisioner.core.models.service import RestartPolicy, ServiceUnitSpec, UnitStatus
from provisioner.core.models.state import HostState, RunRecord, StepState, UnitState

__all__ = [
    # config_document.py
    "ConfigDocument",
    # plan.py
    "ConfigTarget",
    # state.py
    "HostState",
    "LogRotateRule",
    "PlanState",
    "ProvisioningPlan",
    # action.py
    "Receipt",
    # service.py
    "RestartPolicy",
    "RunRecord",
    "ServiceUnitSpec",
    "Step",
    "StepState",
    "StepStatus",
    "UnitState",
    "UnitStatus",
]
