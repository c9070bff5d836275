"""
Cluster orchestration modules.
"""
from .ssh import SSHConnection

__all__ = [
    'SSHConnection',
]
