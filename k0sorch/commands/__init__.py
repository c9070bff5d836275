from . import apply, kubeconfig, reset, status

__all__ = ['apply', 'kubeconfig', 'reset', 'status']
