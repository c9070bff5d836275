"""Phases that stage the k0s binary and user files on the hosts."""
import os
import shlex
from pathlib import Path
from typing import Dict, List

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...config import Config
from ...exceptions import ExecutionError, PhaseError, PreconditionError
from .. import k0s
from ..cluster.models import ClusterSpec, Host
from .base import HostPhase, Phase
from .context import RunContext


def needs_binary(cluster: ClusterSpec, host: Host) -> bool:
    """True when the installed binary is not the target version."""
    return not host.uninstall and host.binary_version != cluster.version


def staged_path(cluster: ClusterSpec) -> str:
    return f"{Config.K0S_BINARY_PATH}.{cluster.version}.tmp".replace('+', '-')


@retry(
    stop=stop_after_attempt(Config.MAX_RETRIES),
    wait=wait_exponential(multiplier=Config.RETRY_DELAY),
    retry=retry_if_exception_type(requests.RequestException),
    reraise=True,
)
def download_file(url: str, destination: Path) -> None:
    """Stream ``url`` into ``destination`` atomically."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + '.part')
    with requests.get(url, stream=True, timeout=Config.API_TIMEOUT) as response:
        response.raise_for_status()
        with open(partial, 'wb') as f:
            for chunk in response.iter_content(chunk_size=1 << 20):
                f.write(chunk)
    os.chmod(partial, 0o755)
    partial.replace(destination)


class DownloadBinaries(Phase):
    """Download k0s locally once per architecture for hosts that get it uploaded."""
    title = "Download k0s binaries to local storage"

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        by_arch: Dict[str, List[Host]] = {}
        for host in cluster.hosts:
            if host.upload_binary and needs_binary(cluster, host):
                by_arch.setdefault(host.facts['arch'], []).append(host)

        for arch, hosts in sorted(by_arch.items()):
            ctx.check_cancelled()
            destination = Config.BINARY_CACHE_DIR / f"k0s-{cluster.version}-{arch}"
            if destination.exists():
                ctx.sink.debug("using cached binary", path=str(destination))
            else:
                url = cluster.binary_url(arch)
                ctx.sink.info(f"downloading k0s {cluster.version} for {arch}", url=url)
                try:
                    download_file(url, destination)
                except requests.RequestException as e:
                    raise PhaseError(self.title, {
                        h.identity: ExecutionError(f"failed to download {url}: {e}") for h in hosts
                    }) from e
            for host in hosts:
                host.facts['k0s_binary_local'] = str(destination)


class UploadBinaries(HostPhase):
    """Upload the locally downloaded k0s binary.

    Runs after the k0s facts are known, so hosts that already carry the
    target binary are skipped even though a local copy was fetched.
    """
    title = "Upload k0s binaries to hosts"
    uploads = True

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.facts.get('k0s_binary_local') and needs_binary(cluster, h)]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        target = staged_path(cluster)
        host.connection.upload(host.facts['k0s_binary_local'], target, perm='0755')
        host.facts['k0s_binary_tempfile'] = target
        ctx.sink.info("uploaded k0s binary", host=host.identity, path=target)


class DownloadK0s(HostPhase):
    """Download k0s directly on hosts that fetch it themselves."""
    title = "Download k0s on hosts"

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if not h.upload_binary and needs_binary(cluster, h)]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        target = staged_path(cluster)
        url = cluster.binary_url(host.facts['arch'])
        host.connection.exec(
            f"curl -sSLf -o {shlex.quote(target)} {shlex.quote(url)} && chmod 0755 {shlex.quote(target)}",
            sudo=True,
        )
        host.facts['k0s_binary_tempfile'] = target
        ctx.sink.info(f"downloaded k0s {cluster.version}", host=host.identity)


class InstallBinaries(HostPhase):
    """Move staged binaries into place on hosts where k0s is not running.

    Running hosts keep the staged file for the upgrade phases.
    """
    title = "Install k0s binaries on hosts"

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.facts.get('k0s_binary_tempfile') and not h.is_running]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        k0s.replace_binary(host, host.facts.pop('k0s_binary_tempfile'))
        host.facts['k0s_binary_version'] = str(cluster.version)


class UploadFiles(HostPhase):
    """Upload the files declared per host."""
    title = "Upload files to hosts"
    uploads = True

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.files and not h.uninstall]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        for upload in host.files:
            ctx.check_cancelled()
            if not os.path.isfile(upload.src):
                raise PreconditionError(f"file to upload not found: {upload.src}")
            host.connection.upload(upload.src, upload.destination, perm=upload.perm)
            ctx.sink.debug("uploaded file", host=host.identity, destination=upload.destination)
