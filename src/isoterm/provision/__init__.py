"""
isoterm Provisioning

Core Components:
- context: Environment layout, per-run context and outcomes
- symlinks: Relative symlink creation
- strategies: Per-variant install and post-link steps
- provisioner: The per-tool acquisition state machine
- orchestrator: Concurrent provisioning with all-or-nothing rollback
"""

from .context import (
    EnvironmentLayout,
    OutcomeStatus,
    ProvisionContext,
    ProvisionOutcome,
)
from .orchestrator import create_skeleton, provision_all, setup_environment
from .provisioner import provision_tool
from .symlinks import create_symlink

__all__ = [
    "EnvironmentLayout",
    "OutcomeStatus",
    "ProvisionContext",
    "ProvisionOutcome",
    "create_skeleton",
    "create_symlink",
    "provision_all",
    "provision_tool",
    "setup_environment",
]
