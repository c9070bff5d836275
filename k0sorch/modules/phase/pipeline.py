"""Pipeline assembly.

Pipelines are tables of phase factories; each factory receives the run
options and the lock token shared by Lock and Unlock.
"""
from typing import Callable, List, Optional, Tuple

from ..cluster.models import ClusterSpec, RunOptions
from .base import Phase
from .binaries import DownloadBinaries, DownloadK0s, InstallBinaries, UploadBinaries, UploadFiles
from .configure import ConfigureK0s
from .connect import Connect, DetectOS, Disconnect
from .facts import GatherFacts, GatherK0sFacts, ValidateFacts, ValidateHosts
from .hooks import RunHooks
from .install import InitializeK0s, InstallControllers, InstallWorkers
from .kubeconfig import GetKubeconfig
from .lock import Lock, LockToken, Unlock
from .prepare import PrepareArm, PrepareHosts
from .reset import ResetControllers, ResetWorkers
from .restore import Restore
from .upgrade import UpgradeControllers, UpgradeWorkers

PhaseFactory = Callable[[RunOptions, LockToken], Phase]

APPLY_PIPELINE: Tuple[PhaseFactory, ...] = (
    lambda o, t: Connect(),
    lambda o, t: DetectOS(),
    lambda o, t: Lock(t),
    lambda o, t: PrepareHosts(),
    lambda o, t: GatherFacts(),
    lambda o, t: DownloadBinaries(),
    lambda o, t: UploadFiles(),
    lambda o, t: ValidateHosts(),
    lambda o, t: GatherK0sFacts(),
    lambda o, t: ValidateFacts(skip_downgrade_check=o.skip_downgrade_check),
    lambda o, t: UploadBinaries(),
    lambda o, t: DownloadK0s(),
    lambda o, t: InstallBinaries(),
    lambda o, t: RunHooks(stage='before', action='apply'),
    lambda o, t: PrepareArm(),
    lambda o, t: ConfigureK0s(),
    lambda o, t: Restore(restore_from=o.restore_from),
    lambda o, t: InitializeK0s(no_wait=o.no_wait),
    lambda o, t: InstallControllers(no_wait=o.no_wait),
    lambda o, t: InstallWorkers(no_wait=o.no_wait),
    lambda o, t: UpgradeControllers(no_wait=o.no_wait),
    lambda o, t: UpgradeWorkers(no_drain=o.no_drain, no_wait=o.no_wait),
    lambda o, t: ResetWorkers(no_drain=o.no_drain),
    lambda o, t: ResetControllers(no_drain=o.no_drain),
    lambda o, t: RunHooks(stage='after', action='apply'),
    lambda o, t: GetKubeconfig(api_address=o.kubeconfig_api_address),
    lambda o, t: Unlock(t),
    lambda o, t: Disconnect(),
)

RESET_PIPELINE: Tuple[PhaseFactory, ...] = (
    lambda o, t: Connect(),
    lambda o, t: DetectOS(),
    lambda o, t: Lock(t),
    lambda o, t: GatherFacts(),
    lambda o, t: GatherK0sFacts(),
    lambda o, t: RunHooks(stage='before', action='reset'),
    lambda o, t: ResetWorkers(no_drain=True, all_hosts=True),
    lambda o, t: ResetControllers(no_drain=True, all_hosts=True),
    lambda o, t: RunHooks(stage='after', action='reset'),
    lambda o, t: Unlock(t),
    lambda o, t: Disconnect(),
)


def build(table, options: Optional[RunOptions] = None, token: Optional[LockToken] = None) -> List[Phase]:
    options = options or RunOptions()
    token = token or LockToken()
    return [factory(options, token) for factory in table]


def build_apply_pipeline(cluster: ClusterSpec, options: Optional[RunOptions] = None,
                         token: Optional[LockToken] = None) -> List[Phase]:
    """Phases that converge ``cluster`` to its declared state."""
    return build(APPLY_PIPELINE, options, token)


def build_reset_pipeline(cluster: ClusterSpec, options: Optional[RunOptions] = None,
                         token: Optional[LockToken] = None) -> List[Phase]:
    """Phases that uninstall k0s from every host of ``cluster``."""
    return build(RESET_PIPELINE, options, token)
