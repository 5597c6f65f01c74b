"""Smoke-test pipeline: provision a cluster and prove a workload runs on it."""

from __future__ import annotations

import shlex
import signal
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, Field
from rich.console import Console
from rich.markup import escape

from rancher_smoke.clients.kubectl import KubectlRunner
from rancher_smoke.clients.rancher import RancherClient
from rancher_smoke.clients.terraform import TerraformRunner
from rancher_smoke.core.config import SmokeConfig
from rancher_smoke.core.exceptions import PodNotFoundError, SmokeError
from rancher_smoke.core.models import PipelineResult, PipelineState, TerraformOutputs
from rancher_smoke.providers import resolve_provider_vars
from rancher_smoke.utils.kubeconfig import summarize_kubeconfig
from rancher_smoke.utils.logging import get_logger, log_error

if TYPE_CHECKING:
    from types import FrameType

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CLUSTER_NAME = "rancher-test"


class PipelineOptions(BaseModel):
    """Knobs for one smoke-test run."""

    cluster_name: str = DEFAULT_CLUSTER_NAME
    manifest_path: Path = Path("manifests/nginx.yaml")
    terraform_dir: Path = Path("terraform")
    namespace: str = "test-app"
    label_selector: str = "app=nginx"
    ready_timeout_seconds: int = Field(default=120, ge=0)
    tail_lines: int = Field(default=10, ge=1)
    exec_command: list[str] = Field(default_factory=lambda: ["nginx", "-v"])
    destroy_after: bool = False
    show_kubeconfig: bool = False


class ProvisioningHandoff:
    """Set-once cell telling the interrupt handler that remote resources may exist.

    The main flow records the terraform runner right before apply; the signal
    handler only reads it.
    """

    def __init__(self) -> None:
        self._created = threading.Event()
        self._runner: TerraformRunner | None = None

    def mark_created(self, runner: TerraformRunner) -> None:
        if self._created.is_set():
            return
        self._runner = runner
        self._created.set()

    def created_runner(self) -> TerraformRunner | None:
        """Return the runner if provisioning has started, else None."""
        if not self._created.is_set():
            return None
        return self._runner


class _StepFailed(Exception):
    def __init__(self, step: PipelineState, error: SmokeError):
        super().__init__(str(error))
        self.step = step
        self.error = error


class SmokeTestPipeline:
    """Runs the smoke test as an ordered sequence of states.

    Every step moves the pipeline one state forward. The first failing step
    leaves it in ``FAILED``; nothing is retried or rolled back.
    """

    def __init__(
        self,
        options: PipelineOptions | None = None,
        config_loader: Callable[[], SmokeConfig] = SmokeConfig.load,
        rancher_factory: Callable[..., RancherClient] = RancherClient,
        terraform_factory: Callable[..., TerraformRunner] = TerraformRunner,
        kubectl_factory: Callable[[str], KubectlRunner] = KubectlRunner,
        environ: Mapping[str, str] | None = None,
        console: Console | None = None,
    ):
        """Initialize the pipeline.

        Args:
            options: Run options (defaults match the shipped nginx workload)
            config_loader: Returns the loaded configuration
            rancher_factory: Builds the Rancher client from (url, token, insecure=...)
            terraform_factory: Builds the terraform runner from (base_dir, provider)
            kubectl_factory: Builds the kubectl runner from kubeconfig text
            environ: Environment used for provider variables
            console: Console for progress output
        """
        self.options = options or PipelineOptions()
        self._config_loader = config_loader
        self._rancher_factory = rancher_factory
        self._terraform_factory = terraform_factory
        self._kubectl_factory = kubectl_factory
        self._environ = environ
        self.console = console or Console()
        self.handoff = ProvisioningHandoff()
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self._step_number = 0

    def _transition(self, state: PipelineState) -> None:
        logger.info("pipeline_transition", from_state=self.state.value, to_state=state.value)
        self.state = state
        self.history.append(state)

    def _step(self, target: PipelineState, title: str, action: Callable[[], T]) -> T:
        """Run one step and advance to ``target`` when it succeeds."""
        self._step_number += 1
        self.console.print(f"\n[bold]=== Step {self._step_number}: {title} ===[/bold]")

        try:
            result = action()
        except SmokeError as e:
            raise _StepFailed(target, e) from e

        self._transition(target)
        return result

    def run(self) -> PipelineResult:
        """Execute the pipeline.

        Returns:
            PipelineResult; ``exit_code`` is 0 only when the run reached ``DONE``
        """
        opts = self.options
        rancher: RancherClient | None = None
        kubectl: KubectlRunner | None = None
        outputs: TerraformOutputs | None = None
        pod_name: str | None = None
        logs: str | None = None
        exec_output: str | None = None

        logger.info("pipeline_started", cluster_name=opts.cluster_name)

        try:
            cfg = self._step(
                PipelineState.CONFIG_LOADED, "Reading configuration", self._config_loader
            )

            def _connect() -> RancherClient:
                client = self._rancher_factory(
                    cfg.rancher_url, cfg.rancher_token, insecure=cfg.rancher_insecure
                )
                try:
                    client.verify_login()
                except SmokeError:
                    client.close()
                    raise
                return client

            rancher = self._step(PipelineState.CONNECTED, "Connecting to Rancher", _connect)
            self.console.print(f"Connected to Rancher successfully: {escape(rancher.url)}")

            provider_vars = self._step(
                PipelineState.PROVIDER_VARS_RESOLVED,
                "Checking cloud provider credentials",
                lambda: resolve_provider_vars(cfg.provider, self._environ),
            )
            self.console.print(f"{escape(cfg.provider)} credentials configured")

            terraform = self._terraform_factory(opts.terraform_dir, cfg.provider)
            self._step(
                PipelineState.PROVISION_INITIALIZED, "Initializing Terraform", terraform.init
            )

            self._step(
                PipelineState.VARIABLES_WRITTEN,
                "Preparing cluster configuration",
                lambda: terraform.write_variables(
                    cfg.rancher_url,
                    cfg.rancher_token,
                    cfg.k3s_version,
                    opts.cluster_name,
                    provider_vars,
                ),
            )

            def _apply() -> None:
                self.console.print("Running terraform apply (this may take 10-15 minutes)...")
                terraform.apply()

            self.handoff.mark_created(terraform)
            self._step(PipelineState.PROVISIONED, "Creating downstream cluster", _apply)

            outputs = self._step(
                PipelineState.OUTPUTS_READ, "Checking cluster details", terraform.get_outputs
            )
            self.console.print(f"Cluster ID: {escape(outputs.cluster_id)}")

            def _obtain_credential() -> KubectlRunner:
                kubeconfig = rancher.get_kubeconfig(outputs.cluster_id)
                self._report_kubeconfig(kubeconfig)
                return self._kubectl_factory(kubeconfig)

            kubectl = self._step(
                PipelineState.CREDENTIAL_OBTAINED, "Getting the kubeconfig", _obtain_credential
            )

            self._step(
                PipelineState.MANIFEST_APPLIED,
                "Deploying test application",
                lambda: kubectl.apply(opts.manifest_path),
            )
            self.console.print("Application deployed")

            def _find_pod() -> str:
                pods = kubectl.list_pods(opts.namespace, opts.label_selector)
                if not pods:
                    raise PodNotFoundError(
                        f"no pods found in {opts.namespace} matching {opts.label_selector}"
                    )
                return pods[0]

            pod_name = self._step(PipelineState.POD_FOUND, "Finding test pod", _find_pod)
            self.console.print(f"Found pod: {escape(pod_name)}")

            self._step(
                PipelineState.POD_READY,
                "Waiting for pod to be ready",
                lambda: kubectl.wait_for_ready(
                    opts.namespace, pod_name, opts.ready_timeout_seconds
                ),
            )
            self.console.print(f"Pod {escape(pod_name)} is ready")

            logs = self._step(
                PipelineState.LOGS_FETCHED,
                "Testing pod logs",
                lambda: kubectl.logs(opts.namespace, pod_name, opts.tail_lines),
            )
            self.console.print(f"Logs retrieved ({len(logs)} bytes)")
            self.console.print("First few lines:")
            self.console.print(logs, markup=False, highlight=False)

            exec_output = self._step(
                PipelineState.EXEC_DONE,
                "Testing pod exec",
                lambda: kubectl.exec(opts.namespace, pod_name, opts.exec_command),
            )
            self.console.print(f"Exec successful: {exec_output.strip()}", markup=False)

            if opts.destroy_after:
                self._step(
                    PipelineState.DESTROYED, "Destroying downstream cluster", terraform.destroy
                )

        except _StepFailed as failure:
            return self._fail(failure, outputs)
        finally:
            if kubectl is not None:
                kubectl.cleanup()
            if rancher is not None:
                rancher.close()

        self._transition(PipelineState.DONE)
        self._print_summary(outputs)
        logger.info("pipeline_completed", cluster_id=outputs.cluster_id)

        return PipelineResult(
            state=self.state,
            history=list(self.history),
            outputs=outputs,
            pod_name=pod_name,
            logs=logs,
            exec_output=exec_output,
        )

    def _fail(self, failure: _StepFailed, outputs: TerraformOutputs | None) -> PipelineResult:
        log_error(logger, failure.error, step=failure.step.value)
        self.console.print(f"Error: {failure.error}", style="red", markup=False, highlight=False)

        if failure.step == PipelineState.CREDENTIAL_OBTAINED:
            self.console.print("[yellow]Cluster created but couldn't get kubeconfig[/yellow]")

        runner = self.handoff.created_runner()
        if runner is not None:
            self.console.print(
                f"[yellow]Cluster resources may exist. To clean up run:[/yellow]\n"
                f"  {escape(runner.destroy_command())}",
                highlight=False,
            )

        self._transition(PipelineState.FAILED)
        return PipelineResult(
            state=self.state,
            failed_step=failure.step,
            error=failure.error,
            history=list(self.history),
            outputs=outputs,
        )

    def _report_kubeconfig(self, kubeconfig: str) -> None:
        summary = summarize_kubeconfig(kubeconfig)
        self.console.print(
            f"kubeconfig obtained ({summary['bytes']} bytes, "
            f"context: {escape(summary.get('current_context') or 'n/a')})",
            highlight=False,
        )
        for server in summary.get("servers", []):
            self.console.print(f"  server: {escape(server)}", highlight=False)
        if self.options.show_kubeconfig:
            self.console.print(kubeconfig, markup=False, highlight=False)

    def _print_summary(self, outputs: TerraformOutputs) -> None:
        rule = "=" * 50
        self.console.print(f"\n{rule}\n[bold green]ALL TESTS PASSED![/bold green]\n{rule}")
        self.console.print(f"\nCluster: {escape(self.options.cluster_name)}")
        self.console.print(f"Cluster ID: {escape(outputs.cluster_id)}")
        self.console.print(f"Provider: {escape(outputs.provider)}")
        self.console.print("\nTests completed:")
        for name in (
            "Cluster provisioning",
            "Kubeconfig access",
            "Application deployment",
            "Pod logs",
            "Pod exec",
        ):
            self.console.print(f"  [green]✓[/green] {name}")
        if not self.options.destroy_after:
            self.console.print("\nTo destroy:")
            terraform_dir = shlex.quote(str(self.options.terraform_dir))
            provider = shlex.quote(outputs.provider or "digitalocean")
            self.console.print(
                f"  rancher-smoke destroy --terraform-dir {terraform_dir} --provider {provider}",
                markup=False,
                highlight=False,
            )

    def handle_interrupt(self, signum: int, frame: FrameType | None) -> Any:
        """Signal handler: warn about remote resources and stop the run.

        Never tears anything down itself.
        """
        logger.warning("interrupt_received", signum=signum, state=self.state.value)
        self.console.print("\n\n[bold yellow]Interrupt received[/bold yellow]")
        self.console.print("Terraform may still be running...")

        runner = self.handoff.created_runner()
        if runner is not None:
            self.console.print("\n[bold red]WARNING: Cluster resources were created[/bold red]")
            self.console.print("To clean up run:")
            self.console.print(f"  {escape(runner.destroy_command())}", highlight=False)

        self.console.print("\nExiting...")
        self._transition(PipelineState.INTERRUPTED)
        raise SystemExit(1)

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to :meth:`handle_interrupt`."""
        signal.signal(signal.SIGINT, self.handle_interrupt)
        signal.signal(signal.SIGTERM, self.handle_interrupt)
