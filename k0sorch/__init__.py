"""k0sorch: drive a fleet of hosts to a declared k0s cluster state."""

__version__ = "0.1.0"
