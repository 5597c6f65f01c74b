"""Cloud provider variables for the terraform modules."""

import os
from collections.abc import Mapping

from rancher_smoke.core.exceptions import (
    MissingConfigError,
    ProviderNotImplementedError,
    UnsupportedProviderError,
)

# Optional environment overrides per provider: env var -> terraform variable
DIGITALOCEAN_OPTIONAL_VARS = {
    "DO_REGION": "do_region",
    "DO_SIZE": "do_size",
}

PLANNED_PROVIDERS = {"aws": "AWS", "azure": "Azure"}


def _digitalocean_vars(environ: Mapping[str, str]) -> dict[str, str]:
    token = environ.get("DO_TOKEN", "").strip()
    if not token:
        raise MissingConfigError(["DO_TOKEN"])

    variables = {"do_token": token}
    for env_name, var_name in DIGITALOCEAN_OPTIONAL_VARS.items():
        value = environ.get(env_name, "").strip()
        if value:
            variables[var_name] = value
    return variables


def resolve_provider_vars(
    provider: str, environ: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Build the provider-specific terraform variables.

    Args:
        provider: Cloud provider name
        environ: Mapping to read instead of ``os.environ``

    Returns:
        Terraform variable names mapped to values

    Raises:
        MissingConfigError: If a required credential is unset
        ProviderNotImplementedError: For providers that are planned but not wired up
        UnsupportedProviderError: For unknown providers
    """
    if environ is None:
        environ = os.environ

    if provider == "digitalocean":
        return _digitalocean_vars(environ)
    if provider in PLANNED_PROVIDERS:
        raise ProviderNotImplementedError(
            f"{PLANNED_PROVIDERS[provider]} provider not implemented yet"
        )
    raise UnsupportedProviderError(f"unsupported provider: {provider}")
