"""Data model shared by the deployment pipeline."""

from dockship.schemas.deployment import (
    AppIdentity,
    ComponentStatus,
    DeploymentDescriptor,
    DeploymentTarget,
    Policy,
    ProxySite,
    RemoteEnvironmentState,
    RunConfig,
    SourceSpec,
    StageReport,
    StepResult,
    derive_app_name,
    detect_descriptor,
)

__all__ = [
    "AppIdentity",
    "ComponentStatus",
    "DeploymentDescriptor",
    "DeploymentTarget",
    "Policy",
    "ProxySite",
    "RemoteEnvironmentState",
    "RunConfig",
    "SourceSpec",
    "StageReport",
    "StepResult",
    "derive_app_name",
    "detect_descriptor",
]
