"""Pytest configuration and shared fixtures."""

import os
import subprocess
from pathlib import Path
from typing import Any

import pytest

from rancher_smoke.core.config import SmokeConfig


def completed(
    returncode: int = 0, stdout: str = "", stderr: str = "", args: Any = None
) -> subprocess.CompletedProcess:
    """Build a CompletedProcess the way subprocess.run returns it."""
    return subprocess.CompletedProcess(
        args=args or ["cmd"], returncode=returncode, stdout=stdout, stderr=stderr
    )


@pytest.fixture
def make_completed():
    """Factory for fake subprocess results."""
    return completed


@pytest.fixture
def base_environ() -> dict[str, str]:
    """Environment with every required setting present."""
    return {
        "RANCHER_VERSION": "v2.9.2",
        "K3S_VERSION": "v1.30.4+k3s1",
        "RANCHER_URL": "rancher.example.com",
        "RANCHER_TOKEN": "token-abc:secret",
        "DO_TOKEN": "dop_v1_test",
    }


@pytest.fixture
def sample_config() -> SmokeConfig:
    """Provide a loaded configuration."""
    return SmokeConfig(
        rancher_version="v2.9.2",
        k3s_version="v1.30.4+k3s1",
        rancher_url="rancher.example.com",
        rancher_token="token-abc:secret",
    )


@pytest.fixture
def sample_kubeconfig() -> str:
    """Kubeconfig as Rancher's generateKubeconfig action returns it."""
    return """apiVersion: v1
kind: Config
clusters:
- name: "rancher-test"
  cluster:
    server: "https://rancher.example.com/k8s/clusters/c-abc123"
users:
- name: "rancher-test"
  user:
    token: "kubeconfig-user-xyz:supersecret"
contexts:
- name: "rancher-test"
  context:
    user: "rancher-test"
    cluster: "rancher-test"
current-context: "rancher-test"
"""


@pytest.fixture
def nginx_logs() -> str:
    """Ten lines of nginx container output."""
    lines = [f"2026/10/18 10:00:0{i} [notice] 1#1: start worker process {i}" for i in range(10)]
    return "\n".join(lines) + "\n"


@pytest.fixture
def fake_terraform(tmp_path: Path, monkeypatch):
    """Install a shell script as the first ``terraform`` on PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ['PATH']}")

    def _install(body: str) -> None:
        script = bin_dir / "terraform"
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(0o755)

    return _install


# ==============================================================================
# Pytest Markers
# ==============================================================================


def pytest_configure(config: Any) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
