"""Main CLI entry point for rancher-smoke."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console

from rancher_smoke import __version__
from rancher_smoke.pipeline import DEFAULT_CLUSTER_NAME

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    envvar="LOG_LEVEL",
    default="WARNING",
    show_default=True,
    help="Structured log level (logs go to stderr)",
)
@click.option(
    "--log-format",
    envvar="LOG_FORMAT",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Structured log format",
)
def cli(log_level: str, log_format: str) -> None:
    """Rancher smoke tests - provision a downstream cluster and exercise a workload on it."""
    from rancher_smoke.utils.logging import setup_logging

    setup_logging(level=log_level, format=log_format, output="stderr")


@cli.command()
@click.option(
    "--cluster-name", default=None, help=f"Cluster name (default: {DEFAULT_CLUSTER_NAME})"
)
@click.option(
    "--manifest",
    type=click.Path(path_type=Path),
    default=Path("manifests/nginx.yaml"),
    show_default=True,
    help="Path to test manifest",
)
@click.option(
    "--terraform-dir",
    type=click.Path(path_type=Path),
    default=Path("terraform"),
    show_default=True,
    help="Directory holding one terraform module per provider",
)
@click.option(
    "--env-file",
    type=click.Path(path_type=Path),
    default=Path(".env"),
    show_default=True,
    help="Dotenv file read before the environment is checked",
)
@click.option("--namespace", default="test-app", show_default=True, help="Test workload namespace")
@click.option("--selector", default="app=nginx", show_default=True, help="Test pod label selector")
@click.option(
    "--ready-timeout",
    type=click.IntRange(min=0),
    default=120,
    show_default=True,
    help="Seconds to wait for the pod to become ready",
)
@click.option(
    "--tail", type=click.IntRange(min=1), default=10, show_default=True, help="Log lines to fetch"
)
@click.option("--destroy", is_flag=True, help="Destroy the cluster after all tests pass")
@click.option(
    "--show-kubeconfig", is_flag=True, help="Print the full kubeconfig (contains secrets)"
)
@click.pass_context
def run(
    ctx: click.Context,
    cluster_name: str | None,
    manifest: Path,
    terraform_dir: Path,
    env_file: Path,
    namespace: str,
    selector: str,
    ready_timeout: int,
    tail: int,
    destroy: bool,
    show_kubeconfig: bool,
) -> None:
    """Provision a cluster and run the smoke tests against it."""
    from rancher_smoke.core.config import SmokeConfig
    from rancher_smoke.pipeline import PipelineOptions, SmokeTestPipeline

    if not cluster_name:
        cluster_name = DEFAULT_CLUSTER_NAME
        console.print(f"  Using default cluster name: {DEFAULT_CLUSTER_NAME}")
        console.print("   Use --cluster-name flag to specify a different name")
        console.print("   Example: rancher-smoke run --cluster-name my-test")

    options = PipelineOptions(
        cluster_name=cluster_name,
        manifest_path=manifest,
        terraform_dir=terraform_dir,
        namespace=namespace,
        label_selector=selector,
        ready_timeout_seconds=ready_timeout,
        tail_lines=tail,
        destroy_after=destroy,
        show_kubeconfig=show_kubeconfig,
    )

    pipeline = SmokeTestPipeline(
        options=options,
        config_loader=lambda: SmokeConfig.load(env_file=env_file),
        console=console,
    )
    pipeline.install_signal_handlers()

    result = pipeline.run()
    ctx.exit(result.exit_code)


@cli.command()
@click.option(
    "--terraform-dir",
    type=click.Path(path_type=Path),
    default=Path("terraform"),
    show_default=True,
    help="Directory holding one terraform module per provider",
)
@click.option(
    "--provider",
    envvar="CLOUD_PROVIDER",
    default="digitalocean",
    show_default=True,
    help="Provider whose module is destroyed",
)
@click.confirmation_option(prompt="Destroy the downstream cluster and all its resources?")
@click.pass_context
def destroy(ctx: click.Context, terraform_dir: Path, provider: str) -> None:
    """Tear down a cluster created by `run`."""
    from rancher_smoke.clients.terraform import TerraformRunner
    from rancher_smoke.core.exceptions import ProvisionError
    from rancher_smoke.utils.logging import get_logger, log_error

    logger = get_logger(__name__)
    runner = TerraformRunner(terraform_dir, provider)

    console.print(f"Destroying cluster in {runner.work_dir}...", markup=False)
    try:
        runner.destroy()
    except ProvisionError as e:
        log_error(logger, e, step="destroy")
        console.print(f"Error: {e}", style="red", markup=False, highlight=False)
        ctx.exit(1)

    console.print("[green]Cluster destroyed[/green]")


if __name__ == "__main__":
    cli()
