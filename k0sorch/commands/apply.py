import logging
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Optional

import typer
from pydantic import ValidationError

from ..config import Config
from ..exceptions import OrchestrationError, RunCancelled
from ..modules.cluster import ClusterSpec, RunOptions, load_cluster_spec
from ..modules.phase import LockToken, Manager, build_apply_pipeline
from ..registry import record_run

logger = logging.getLogger(__name__)

app = typer.Typer()

DRIFT_WARNING = (
    "⚠️  There were hosts that got uninstalled during the run: {hosts}. "
    "Remove them from the cluster definition."
)


@contextmanager
def interrupt_cancels(cancel: threading.Event):
    """Turn Ctrl-C into the run's cancellation signal while the block runs."""
    def _handler(signum, frame):
        logger.warning("Interrupt received, stopping after in-flight tasks...")
        cancel.set()

    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def warn_drift(cluster: ClusterSpec) -> None:
    reset_hosts = [h.identity for h in cluster.hosts if h.reset]
    if reset_hosts:
        logger.warning(DRIFT_WARNING.format(hosts=", ".join(reset_hosts)))


def execute(cluster: ClusterSpec, options: RunOptions, builder: Callable = build_apply_pipeline,
            cancel: Optional[threading.Event] = None, sink=None) -> Optional[OrchestrationError]:
    """Run a pipeline and persist the resulting state, whatever the outcome.

    Returns:
        The error that stopped the run, or None on success
    """
    token = LockToken()
    manager = Manager(
        cluster,
        concurrency=options.concurrency,
        concurrent_uploads=options.concurrent_uploads,
        phases=builder(cluster, options, token),
        sink=sink,
        cancel=cancel,
    )
    error = None
    try:
        manager.run()
    except OrchestrationError as e:
        error = e
    finally:
        # the lock file is left in place after a failure and expires once the keepalive stops
        token.cancel()

    record_run(cluster, "failed" if error else "ok", str(error) if error else None)
    warn_drift(cluster)
    return error


def load_or_exit(config: Path) -> ClusterSpec:
    try:
        return load_cluster_spec(config)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)


def report(error: Optional[OrchestrationError], action: str) -> None:
    if error is None:
        return
    if isinstance(error, RunCancelled):
        typer.echo(f"🛑 {action} cancelled: {error}", err=True)
        raise typer.Exit(code=130)
    typer.echo(f"❌ {action} failed: {error}", err=True)
    raise typer.Exit(code=1)


@app.command("cluster")
def apply_cluster_cmd(
    config: Path = typer.Option(..., "--config", "-c", help="Cluster definition YAML"),
    concurrency: int = typer.Option(Config.DEFAULT_CONCURRENCY, help="Maximum hosts processed in parallel"),
    concurrent_uploads: int = typer.Option(Config.DEFAULT_CONCURRENT_UPLOADS, help="Maximum parallel file uploads"),
    disable_downgrade_check: bool = typer.Option(False, "--disable-downgrade-check", help="Allow downgrading k0s"),
    no_drain: bool = typer.Option(False, "--no-drain", help="Do not drain workers before upgrade or reset"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Do not wait for hosts to become ready"),
    restore_from: Optional[str] = typer.Option(None, "--restore-from", help="k0s backup archive to restore"),
    kubeconfig_api_address: Optional[str] = typer.Option(None, "--kubeconfig-api-address",
                                                         help="API address written into the kubeconfig"),
    kubeconfig_out: Optional[Path] = typer.Option(None, "--kubeconfig-out", help="Write the admin kubeconfig here"),
):
    """
    Install, upgrade or shrink a k0s cluster to match its definition.
    """
    cluster = load_or_exit(config)
    try:
        options = RunOptions(
            skip_downgrade_check=disable_downgrade_check,
            no_drain=no_drain,
            no_wait=no_wait,
            restore_from=restore_from,
            kubeconfig_api_address=kubeconfig_api_address,
            concurrency=concurrency,
            concurrent_uploads=concurrent_uploads,
        )
    except ValidationError as e:
        typer.echo(f"❌ Invalid options: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"🚀 Applying cluster {cluster.name} ({cluster.version}) on {len(cluster.hosts)} host(s)")
    cancel = threading.Event()
    with interrupt_cancels(cancel):
        error = execute(cluster, options, cancel=cancel)
    report(error, "Apply")

    if kubeconfig_out:
        kubeconfig_out.parent.mkdir(parents=True, exist_ok=True)
        kubeconfig_out.write_text(cluster.metadata.kubeconfig)
        kubeconfig_out.chmod(0o600)
        typer.echo(f"🔑 Kubeconfig written to {kubeconfig_out}")
    typer.echo(f"✅ Cluster {cluster.name} is at {cluster.version}")
