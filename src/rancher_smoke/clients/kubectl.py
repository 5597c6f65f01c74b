"""kubectl wrapper for exercising a downstream cluster."""

import os
import subprocess
import tempfile
from pathlib import Path

from rancher_smoke.core.exceptions import (
    KubeconfigFileError,
    KubectlApplyError,
    KubectlError,
    ManifestNotFoundError,
    PodExecError,
    PodLogsError,
    PodReadyTimeoutError,
)
from rancher_smoke.utils.logging import get_logger

logger = get_logger(__name__)

POD_PREFIX = "pod/"

# Extra seconds granted to `kubectl wait` beyond its own --timeout
WAIT_GRACE_SECONDS = 30


class KubectlRunner:
    """Runs kubectl against one cluster using a private kubeconfig file."""

    def __init__(self, kubeconfig_content: str):
        """Persist the kubeconfig to a new temporary file.

        Args:
            kubeconfig_content: Kubeconfig YAML text

        Raises:
            KubeconfigFileError: If the file cannot be created or written
        """
        self.kubeconfig_path: str | None = None

        try:
            fd, path = tempfile.mkstemp(prefix="kubeconfig-", suffix=".yaml")
        except OSError as e:
            logger.error("kubeconfig_tempfile_create_failed", error=str(e))
            raise KubeconfigFileError(f"create temp file: {e}") from e

        self.kubeconfig_path = path
        try:
            with os.fdopen(fd, "w") as f:
                f.write(kubeconfig_content)
        except OSError as e:
            logger.error("kubeconfig_write_failed", path=path, error=str(e))
            self.cleanup()
            raise KubeconfigFileError(f"write kubeconfig: {e}") from e

        logger.info("kubeconfig_saved", path=path)

    def __enter__(self) -> "KubectlRunner":
        return self

    def __exit__(self, *exc: object) -> None:
        self.cleanup()

    def _run(
        self,
        args: list[str],
        pod_command: list[str] | None = None,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess:
        """Run kubectl with the private kubeconfig.

        Non-zero exits are returned, not raised; callers map them to errors.

        Args:
            args: kubectl subcommand and flags
            pod_command: Command passed after ``--`` (exec only)
            timeout: Seconds before the local process is abandoned

        Raises:
            KubectlError: If kubectl is not installed or the file was cleaned up
        """
        if self.kubeconfig_path is None:
            raise KubectlError("kubeconfig has been cleaned up")

        cmd = ["kubectl"] + args + ["--kubeconfig", self.kubeconfig_path]
        if pod_command:
            cmd += ["--"] + pod_command
        logger.debug("running_kubectl_command", command=" ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            logger.error("kubectl_not_found")
            raise KubectlError("kubectl command not found. Please install kubectl.") from e

        if result.returncode != 0:
            logger.error(
                "kubectl_command_failed",
                command=" ".join(cmd),
                returncode=result.returncode,
                stderr=result.stderr,
            )
        else:
            logger.debug("kubectl_command_completed", command=args[0])
        return result

    def apply(self, manifest_path: str | Path) -> str:
        """Apply a manifest file.

        Returns:
            kubectl's stdout

        Raises:
            ManifestNotFoundError: If the manifest does not exist
            KubectlApplyError: If kubectl apply fails
        """
        path = Path(manifest_path)
        if not path.exists():
            raise ManifestNotFoundError(f"manifest file not found: {manifest_path}")

        result = self._run(["apply", "-f", str(path)])
        if result.returncode != 0:
            message = f"kubectl apply failed: {result.stderr}\n{result.stdout}".strip()
            raise KubectlApplyError(message)

        logger.info("manifest_applied", manifest=path.name)
        return result.stdout

    def list_pods(self, namespace: str, label_selector: str) -> list[str]:
        """List pod names matching a label selector.

        Returns:
            Pod names without the ``pod/`` prefix; empty if nothing matches

        Raises:
            KubectlError: If the listing fails
        """
        result = self._run(["get", "pods", "-n", namespace, "-l", label_selector, "-o", "name"])
        if result.returncode != 0:
            raise KubectlError(f"get pods failed: {result.stderr}")

        pods = []
        for line in result.stdout.splitlines():
            name = line.strip().removeprefix(POD_PREFIX)
            if name:
                pods.append(name)

        logger.info("pods_listed", namespace=namespace, selector=label_selector, count=len(pods))
        return pods

    def wait_for_ready(self, namespace: str, pod_name: str, timeout_seconds: int) -> None:
        """Block until the pod reports Ready.

        Raises:
            ValueError: If timeout_seconds is negative
            PodReadyTimeoutError: If the pod is not ready in time
        """
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must not be negative")

        args = [
            "wait",
            "--for=condition=ready",
            f"{POD_PREFIX}{pod_name}",
            "-n",
            namespace,
            f"--timeout={timeout_seconds}s",
        ]
        try:
            result = self._run(args, timeout=timeout_seconds + WAIT_GRACE_SECONDS)
        except subprocess.TimeoutExpired as e:
            logger.error("pod_wait_hung", pod=pod_name, timeout_seconds=timeout_seconds)
            raise PodReadyTimeoutError(
                f"wait failed: kubectl did not return within {timeout_seconds}s"
            ) from e

        if result.returncode != 0:
            raise PodReadyTimeoutError(f"wait failed: {result.stderr}")

        logger.info("pod_ready", namespace=namespace, pod=pod_name)

    def logs(self, namespace: str, pod_name: str, tail_lines: int) -> str:
        """Return the last ``tail_lines`` lines of pod output.

        Raises:
            PodLogsError: If kubectl logs fails
        """
        result = self._run(["logs", pod_name, "-n", namespace, f"--tail={tail_lines}"])
        if result.returncode != 0:
            raise PodLogsError(f"get logs failed: {result.stderr}")
        return result.stdout

    def exec(self, namespace: str, pod_name: str, command: list[str]) -> str:
        """Run a command inside the pod.

        Returns:
            Combined stdout and stderr (``nginx -v`` prints to stderr)

        Raises:
            PodExecError: If the command exits non-zero
        """
        if not command:
            raise ValueError("command must not be empty")

        result = self._run(["exec", pod_name, "-n", namespace], pod_command=list(command))
        if result.returncode != 0:
            raise PodExecError(f"exec failed: {result.stderr}")

        return result.stdout + result.stderr

    def cleanup(self) -> None:
        """Delete the kubeconfig file. Safe to call more than once."""
        path, self.kubeconfig_path = self.kubeconfig_path, None
        if path is None:
            return
        try:
            Path(path).unlink(missing_ok=True)
            logger.debug("kubeconfig_removed", path=path)
        except OSError as e:
            logger.warning("kubeconfig_remove_failed", path=path, error=str(e))
