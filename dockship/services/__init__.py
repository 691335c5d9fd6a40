"""Pipeline stages and the remote execution layer they share."""

from dockship.services.cleanup import CleanupOperator
from dockship.services.containers import ContainerDeployer, ContainerState
from dockship.services.provision import HostProvisioner
from dockship.services.proxy import ProxyConfigurer, render_site
from dockship.services.reconcile import Reconciler
from dockship.services.remote import RemoteExecutor, RemoteScript
from dockship.services.source import SourceFetcher
from dockship.services.sync import ArtifactSynchronizer
from dockship.services.validation import DeploymentValidator

__all__ = [
    "ArtifactSynchronizer",
    "CleanupOperator",
    "ContainerDeployer",
    "ContainerState",
    "DeploymentValidator",
    "HostProvisioner",
    "ProxyConfigurer",
    "Reconciler",
    "RemoteExecutor",
    "RemoteScript",
    "SourceFetcher",
    "render_site",
]
