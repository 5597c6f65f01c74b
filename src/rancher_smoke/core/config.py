"""Configuration management for rancher-smoke."""

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from rancher_smoke.core.exceptions import MissingConfigError

DEFAULT_PROVIDER = "digitalocean"

# Checked and reported in this order
REQUIRED_ENV_VARS: dict[str, str] = {
    "RANCHER_VERSION": "rancher_version",
    "K3S_VERSION": "k3s_version",
    "RANCHER_URL": "rancher_url",
    "RANCHER_TOKEN": "rancher_token",
}

_FALSY = {"0", "false", "no", "off"}


class SmokeConfig(BaseModel):
    """Settings for one smoke-test run."""

    model_config = ConfigDict(frozen=True)

    rancher_version: str = Field(..., min_length=1, description="Rancher server version under test")
    k3s_version: str = Field(
        ..., min_length=1, description="K3s version for the downstream cluster"
    )
    rancher_url: str = Field(..., min_length=1, description="Rancher server URL")
    rancher_token: str = Field(..., min_length=1, repr=False, description="Rancher API token")
    provider: str = Field(default=DEFAULT_PROVIDER, description="Cloud provider for the cluster")
    rancher_insecure: bool = Field(default=True, description="Skip TLS verification for Rancher")

    @classmethod
    def load(
        cls,
        env_file: str | Path | None = ".env",
        environ: Mapping[str, str] | None = None,
    ) -> "SmokeConfig":
        """Load configuration from the environment.

        Args:
            env_file: Optional dotenv file. Values already present in the
                environment win over the file. A missing file is ignored.
            environ: Mapping to read instead of ``os.environ``

        Returns:
            SmokeConfig instance

        Raises:
            MissingConfigError: Listing every required variable that is unset
        """
        if environ is None:
            if env_file is not None and Path(env_file).expanduser().is_file():
                load_dotenv(Path(env_file).expanduser(), override=False)
            environ = os.environ

        missing = [name for name in REQUIRED_ENV_VARS if not environ.get(name, "").strip()]
        if missing:
            raise MissingConfigError(missing)

        values = {field: environ[name].strip() for name, field in REQUIRED_ENV_VARS.items()}

        return cls(
            **values,
            provider=environ.get("CLOUD_PROVIDER", "").strip() or DEFAULT_PROVIDER,
            rancher_insecure=environ.get("RANCHER_INSECURE", "true").strip().lower() not in _FALSY,
        )
