"""Terraform wrapper for provisioning downstream clusters."""

import json
import os
import re
import shlex
import subprocess
import tempfile
from collections.abc import Mapping
from pathlib import Path

from rancher_smoke.core.exceptions import OutputParseError, ProvisionError
from rancher_smoke.core.models import TerraformOutputs
from rancher_smoke.utils.logging import get_logger

logger = get_logger(__name__)

TFVARS_FILENAME = "terraform.tfvars"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def hcl_string(value: str) -> str:
    """Render a value as a quoted HCL string literal.

    Backslashes, quotes and control characters are escaped, and template
    openers are doubled so Terraform never interpolates them.
    """
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("${", "$${")
        .replace("%{", "%%{")
    )
    return f'"{escaped}"'


def render_tfvars(variables: Mapping[str, str]) -> str:
    """Serialize variables as ``key = "value"`` lines, preserving order.

    Raises:
        ProvisionError: If a key is not a valid Terraform identifier
    """
    lines = []
    for key, value in variables.items():
        if not _IDENTIFIER.match(key):
            raise ProvisionError(f"invalid terraform variable name: {key!r}")
        lines.append(f"{key} = {hcl_string(str(value))}")
    return "\n".join(lines) + "\n"


class TerraformRunner:
    """Runs terraform in a provider-specific working directory."""

    def __init__(self, base_dir: str | Path, provider: str):
        """Initialize terraform runner.

        Args:
            base_dir: Directory holding one terraform module per provider
            provider: Provider name, also the module directory name
        """
        self._work_dir = Path(base_dir) / provider
        self._provider = provider

        logger.debug("terraform_runner_initialized", work_dir=str(self._work_dir))

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def tfvars_path(self) -> Path:
        return self._work_dir / TFVARS_FILENAME

    def destroy_command(self) -> str:
        """Shell command that tears the cluster down by hand."""
        return f"cd {shlex.quote(str(self._work_dir))} && terraform destroy -auto-approve"

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        """Run a terraform subcommand in the working directory.

        Args:
            args: Subcommand and flags

        Returns:
            CompletedProcess instance

        Raises:
            ProvisionError: If the command fails or terraform is missing
        """
        cmd = ["terraform"] + args
        logger.debug("running_terraform_command", command=" ".join(cmd), cwd=str(self._work_dir))

        try:
            result = subprocess.run(
                cmd,
                cwd=self._work_dir,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.error(
                "terraform_command_failed",
                command=" ".join(cmd),
                returncode=e.returncode,
                stderr=e.stderr,
            )
            raise ProvisionError(f"terraform {args[0]} failed: {e.stderr or e.stdout or ''}") from e
        except FileNotFoundError as e:
            logger.error("terraform_not_found", cwd=str(self._work_dir))
            raise ProvisionError(
                f"terraform command not found or working directory missing: {self._work_dir}"
            ) from e

        logger.debug("terraform_command_completed", command=" ".join(cmd))
        return result

    def _run_detached(self, args: list[str]) -> None:
        """Run a state-changing terraform subcommand that outlives the driver.

        Terraform runs in its own session and is never killed when the wait is
        interrupted. Stdout streams to the terminal; stderr is spooled to a temp
        file that stays writable after the driver exits.

        Raises:
            ProvisionError: If the command fails or terraform is missing
        """
        cmd = ["terraform"] + args
        logger.debug("running_terraform_command", command=" ".join(cmd), cwd=str(self._work_dir))

        with tempfile.TemporaryFile(mode="w+") as stderr:
            try:
                process = subprocess.Popen(
                    cmd,
                    cwd=self._work_dir,
                    stderr=stderr,
                    text=True,
                    start_new_session=True,
                )
            except FileNotFoundError as e:
                logger.error("terraform_not_found", cwd=str(self._work_dir))
                raise ProvisionError(
                    f"terraform command not found or working directory missing: {self._work_dir}"
                ) from e

            returncode = process.wait()
            stderr.seek(0)
            error_output = stderr.read()

        if returncode != 0:
            logger.error(
                "terraform_command_failed",
                command=" ".join(cmd),
                returncode=returncode,
                stderr=error_output,
            )
            raise ProvisionError(f"terraform {args[0]} failed: {error_output}")

        logger.debug("terraform_command_completed", command=" ".join(cmd))

    def init(self) -> None:
        """Initialize the working directory.

        Raises:
            ProvisionError: If terraform init fails
        """
        self._run(["init", "-input=false"])
        logger.info("terraform_init_completed", work_dir=str(self._work_dir))

    def write_variables(
        self,
        rancher_url: str,
        rancher_token: str,
        k3s_version: str,
        cluster_name: str,
        extra_vars: Mapping[str, str] | None = None,
    ) -> Path:
        """Write ``terraform.tfvars``, replacing any previous file.

        Fixed variables come first, provider variables follow sorted by name.

        Returns:
            Path of the written file

        Raises:
            ProvisionError: If a name is invalid or the file cannot be written
        """
        variables = {
            "rancher_url": rancher_url,
            "rancher_token": rancher_token,
            "k3s_version": k3s_version,
            "cluster_name": cluster_name,
        }
        for key in sorted(extra_vars or {}):
            variables[key] = extra_vars[key]

        content = render_tfvars(variables)
        path = self.tfvars_path

        try:
            # The file carries credentials
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(path, 0o600)
        except OSError as e:
            logger.error("tfvars_write_failed", path=str(path), error=str(e))
            raise ProvisionError(f"failed to write tfvars: {e}") from e

        logger.info("tfvars_written", path=str(path), variables=sorted(variables))
        return path

    def apply(self) -> None:
        """Create or update the cluster. Blocks until terraform finishes.

        Terraform's progress is streamed to the terminal.

        Raises:
            ProvisionError: If terraform apply fails
        """
        logger.info("terraform_apply_started", work_dir=str(self._work_dir))
        self._run_detached(["apply", "-input=false", "-auto-approve"])
        logger.info("terraform_apply_completed", work_dir=str(self._work_dir))

    def get_outputs(self) -> TerraformOutputs:
        """Read cluster outputs.

        Returns:
            TerraformOutputs with cluster id, name and provider

        Raises:
            ProvisionError: If terraform output fails
            OutputParseError: If the output is not a JSON object
        """
        result = self._run(["output", "-json"])

        try:
            raw = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error("terraform_output_parse_failed", error=str(e))
            raise OutputParseError(f"parse terraform output: {e}") from e

        if not isinstance(raw, dict):
            raise OutputParseError(
                f"parse terraform output: expected an object, got {type(raw).__name__}"
            )

        def _value(name: str) -> str:
            entry = raw.get(name)
            if isinstance(entry, dict):
                entry = entry.get("value")
            return "" if entry is None else str(entry)

        outputs = TerraformOutputs(
            cluster_id=_value("cluster_id"),
            cluster_name=_value("cluster_name"),
            provider=_value("provider"),
        )
        logger.info("terraform_outputs_read", cluster_id=outputs.cluster_id)
        return outputs

    def destroy(self) -> None:
        """Tear the cluster down.

        Raises:
            ProvisionError: If terraform destroy fails
        """
        logger.info("terraform_destroy_started", work_dir=str(self._work_dir))
        self._run_detached(["destroy", "-input=false", "-auto-approve"])
        logger.info("terraform_destroy_completed", work_dir=str(self._work_dir))
