"""Phase engine.

- base: the Phase contract and the per-host fan-out helper
- manager: sequential execution with first-failure stop
- pool: bounded worker pools
- lock: cross-run mutual exclusion
- pipeline: canonical apply and reset pipelines
"""

from .base import HostPhase, Phase
from .binaries import DownloadBinaries, DownloadK0s, InstallBinaries, UploadBinaries, UploadFiles
from .configure import ConfigureK0s
from .connect import Connect, DetectOS, Disconnect
from .context import RunContext
from .facts import GatherFacts, GatherK0sFacts, ValidateFacts, ValidateHosts
from .hooks import RunHooks
from .install import InitializeK0s, InstallControllers, InstallWorkers
from .kubeconfig import GetKubeconfig
from .lock import Lock, LockToken, Unlock
from .manager import Manager
from .pipeline import build_apply_pipeline, build_reset_pipeline
from .pool import WorkerPool
from .prepare import PrepareArm, PrepareHosts
from .reset import ResetControllers, ResetWorkers
from .restore import Restore
from .upgrade import UpgradeControllers, UpgradeWorkers

__all__ = [
    'Phase',
    'HostPhase',
    'RunContext',
    'Manager',
    'WorkerPool',
    'LockToken',
    'build_apply_pipeline',
    'build_reset_pipeline',
    'Connect',
    'DetectOS',
    'Lock',
    'PrepareHosts',
    'GatherFacts',
    'DownloadBinaries',
    'UploadFiles',
    'ValidateHosts',
    'GatherK0sFacts',
    'ValidateFacts',
    'UploadBinaries',
    'DownloadK0s',
    'InstallBinaries',
    'RunHooks',
    'PrepareArm',
    'ConfigureK0s',
    'Restore',
    'InitializeK0s',
    'InstallControllers',
    'InstallWorkers',
    'UpgradeControllers',
    'UpgradeWorkers',
    'ResetWorkers',
    'ResetControllers',
    'GetKubeconfig',
    'Unlock',
    'Disconnect',
]
