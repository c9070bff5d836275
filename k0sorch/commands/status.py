import typer

from ..registry import load_registry

app = typer.Typer()


@app.command("cluster")
def status_cluster(name: str = typer.Option(..., "--name", "-n", help="Cluster name")):
    """Show the state recorded by the last run against a cluster."""
    entry = load_registry().get(name)
    if not entry:
        typer.echo(f"❌ Cluster '{name}' has no recorded runs", err=True)
        raise typer.Exit(code=1)

    icon = "✅" if entry["status"] == "ok" else "❌"
    typer.echo(f"📡 Status for cluster: {name}")
    typer.echo(f"{icon} last run: {entry['status']} at {entry['updated']} (k0s {entry['version']})")
    if entry.get("error"):
        typer.echo(f"   error: {entry['error']}")
    typer.echo(f"   leader: {entry.get('leader') or '-'}")
    for host in entry["hosts"]:
        facts = host["facts"]
        running = facts.get("k0s_running_version") or "not running"
        marker = " (reset)" if host["reset"] else ""
        typer.echo(f"   - {host['address']}:{host['port']} {host['role']} {running}{marker}")
