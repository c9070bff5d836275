from pathlib import Path
from typing import Optional

import typer

from ..registry import load_registry

app = typer.Typer()


@app.command("show")
def show_kubeconfig(
    name: str = typer.Option(..., "--name", "-n", help="Cluster name"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout"),
):
    """Print the admin kubeconfig saved by the last successful apply."""
    entry = load_registry().get(name)
    if not entry or not entry.get("kubeconfig"):
        typer.echo(f"❌ No kubeconfig recorded for cluster '{name}'", err=True)
        raise typer.Exit(code=1)

    if output:
        output.write_text(entry["kubeconfig"])
        output.chmod(0o600)
        typer.echo(f"🔑 Kubeconfig written to {output}")
    else:
        typer.echo(entry["kubeconfig"], nl=False)
