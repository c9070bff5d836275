import logging
import sys

import typer

from k0sorch.commands import apply, kubeconfig, reset, status
from k0sorch.config import Config

app = typer.Typer()

debug_mode = False


def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('paramiko').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)


app.add_typer(apply.app, name="apply")
app.add_typer(reset.app, name="reset")
app.add_typer(status.app, name="status")
app.add_typer(kubeconfig.app, name="kubeconfig")


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """k0sorch - k0s cluster lifecycle orchestration."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")
    try:
        Config.validate()
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=2)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
