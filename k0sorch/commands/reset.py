import logging
import threading
from pathlib import Path

import typer

from ..config import Config
from ..modules.cluster import RunOptions
from ..modules.phase import build_reset_pipeline
from .apply import execute, interrupt_cancels, load_or_exit, report

logger = logging.getLogger(__name__)

app = typer.Typer()


@app.command("cluster")
def reset_cluster_cmd(
    config: Path = typer.Option(..., "--config", "-c", help="Cluster definition YAML"),
    concurrency: int = typer.Option(Config.DEFAULT_CONCURRENCY, help="Maximum hosts processed in parallel"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
):
    """
    Reset a k0s cluster by uninstalling k0s from all hosts.
    """
    cluster = load_or_exit(config)
    if not force:
        typer.confirm(
            f"⚠️  This will uninstall k0s from all {len(cluster.hosts)} host(s) of cluster {cluster.name}. Continue?",
            abort=True
        )

    if concurrency < 1:
        typer.echo("❌ --concurrency must be at least 1", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"🔁 Resetting cluster: {cluster.name}")
    cancel = threading.Event()
    with interrupt_cancels(cancel):
        error = execute(cluster, RunOptions(concurrency=concurrency), builder=build_reset_pipeline, cancel=cancel)
    report(error, "Reset")
    typer.echo(f"✅ k0s removed from {sum(1 for h in cluster.hosts if h.reset)} host(s)")
