import pytest
import yaml

from k0sorch.exceptions import ExecutionError
from k0sorch.modules.phase.kubeconfig import rewrite_server, server_url


@pytest.mark.parametrize("address, expected", [
    ("10.0.0.1", "https://10.0.0.1:6443"),
    ("api.example.com", "https://api.example.com:6443"),
    ("fd00::1", "https://[fd00::1]:6443"),
    ("https://lb.example.com:443", "https://lb.example.com:443"),
])
def test_server_url(address, expected):
    assert server_url(address) == expected


def test_rewrite_keeps_port():
    source = yaml.safe_dump({"clusters": [{"name": "a", "cluster": {"server": "https://localhost:7443"}}]})
    rewritten = yaml.safe_load(rewrite_server(source, "10.0.0.1"))
    assert rewritten["clusters"][0]["cluster"]["server"] == "https://10.0.0.1:7443"


def test_rewrite_rejects_garbage():
    with pytest.raises(ExecutionError):
        rewrite_server("", "10.0.0.1")
    with pytest.raises(ExecutionError):
        rewrite_server("clusters: [", "10.0.0.1")
