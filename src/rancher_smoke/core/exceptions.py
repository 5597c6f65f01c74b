"""Custom exceptions for rancher-smoke."""


class SmokeError(Exception):
    """Base exception for all rancher-smoke errors."""


class ConfigurationError(SmokeError):
    """Configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """One or more required settings are not set."""

    def __init__(self, names: list[str]):
        self.names = list(names)
        super().__init__(f"missing required env variables: {', '.join(self.names)}")


class UnsupportedProviderError(ConfigurationError):
    """Cloud provider name is not recognised."""


class ProviderNotImplementedError(ConfigurationError):
    """Cloud provider is recognised but not wired up yet."""


class RancherError(SmokeError):
    """Rancher API operation failed."""


class ConnectError(RancherError):
    """Could not build a Rancher API client."""


class AuthError(RancherError):
    """Rancher rejected the token or could not be reached."""


class ClusterNotFoundError(RancherError):
    """Cluster id does not exist in Rancher."""


class CredentialActionError(RancherError):
    """Rancher failed to generate a kubeconfig."""


class ProvisionError(SmokeError):
    """Terraform operation failed."""


class OutputParseError(ProvisionError):
    """Terraform outputs could not be parsed."""


class KubectlError(SmokeError):
    """kubectl operation failed."""


class KubeconfigFileError(KubectlError):
    """Temporary kubeconfig file could not be written."""


class ManifestNotFoundError(KubectlError):
    """Manifest path does not exist."""


class KubectlApplyError(KubectlError):
    """kubectl apply failed."""


class PodNotFoundError(KubectlError):
    """No pod matched the label selector."""


class PodReadyTimeoutError(KubectlError):
    """Pod did not become ready in time."""


class PodLogsError(KubectlError):
    """Fetching pod logs failed."""


class PodExecError(KubectlError):
    """Command execution inside a pod failed."""
