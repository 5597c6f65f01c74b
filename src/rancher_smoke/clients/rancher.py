"""Rancher v3 management API client."""

from typing import Any

import httpx

from rancher_smoke.core.exceptions import (
    AuthError,
    ClusterNotFoundError,
    ConnectError,
    CredentialActionError,
)
from rancher_smoke.utils.logging import get_logger

logger = get_logger(__name__)

API_SUFFIX = "/v3"


def normalize_url(url: str) -> str:
    """Return the v3 API base URL for a Rancher server address.

    Adds ``https://`` when no scheme is given and appends ``/v3``.
    """
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    url = url.rstrip("/")
    if not url.endswith(API_SUFFIX):
        url = f"{url}{API_SUFFIX}"
    return url


class RancherClient:
    """Thin wrapper over the Rancher management API."""

    def __init__(
        self,
        url: str,
        token: str,
        insecure: bool = True,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Rancher client.

        Args:
            url: Rancher server URL, with or without scheme and ``/v3``
            token: API bearer token
            insecure: Skip TLS certificate verification
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)

        Raises:
            ConnectError: If the client cannot be created
        """
        if not url or not url.strip():
            raise ConnectError("failed to create rancher client: empty URL")
        if not token:
            raise ConnectError("failed to create rancher client: empty token")

        self.url = normalize_url(url)

        try:
            self._http = httpx.Client(
                base_url=self.url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                verify=not insecure,
                timeout=timeout,
                transport=transport,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error("rancher_client_init_failed", url=self.url, error=str(e))
            raise ConnectError(f"failed to create rancher client: {e}") from e

        logger.debug("rancher_client_initialized", url=self.url, insecure=insecure)

    def __enter__(self) -> "RancherClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def verify_login(self) -> None:
        """Confirm the token works by listing one cluster.

        Raises:
            AuthError: On any transport or authorization failure
        """
        try:
            response = self._http.get("/clusters", params={"limit": 1})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("rancher_login_rejected", status_code=e.response.status_code)
            raise AuthError(
                f"verify login failed: HTTP {e.response.status_code} {_error_message(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("rancher_login_failed", url=self.url, error=str(e))
            raise AuthError(f"verify login failed: {e}") from e

        logger.info("rancher_login_verified", url=self.url)

    def get_cluster(self, cluster_id: str) -> dict[str, Any]:
        """Fetch a cluster resource.

        Raises:
            ClusterNotFoundError: If the id does not resolve
            CredentialActionError: On other API failures
        """
        try:
            response = self._http.get(f"/clusters/{cluster_id}")
        except httpx.HTTPError as e:
            logger.error("get_cluster_failed", cluster_id=cluster_id, error=str(e))
            raise CredentialActionError(f"get cluster {cluster_id}: {e}") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            raise ClusterNotFoundError(f"cluster not found: {cluster_id}")
        if response.is_error:
            raise CredentialActionError(
                f"get cluster {cluster_id}: HTTP {response.status_code} {_error_message(response)}"
            )
        return response.json()

    def get_kubeconfig(self, cluster_id: str) -> str:
        """Generate a kubeconfig for a cluster.

        Args:
            cluster_id: Rancher cluster id (``c-xxxxx``)

        Returns:
            Kubeconfig YAML text

        Raises:
            ClusterNotFoundError: If the id does not resolve
            CredentialActionError: If kubeconfig generation fails
        """
        if not cluster_id:
            raise ClusterNotFoundError("cluster not found: empty cluster id")

        cluster = self.get_cluster(cluster_id)
        logger.debug("cluster_resolved", cluster_id=cluster_id, state=cluster.get("state"))

        try:
            response = self._http.post(
                f"/clusters/{cluster_id}", params={"action": "generateKubeconfig"}
            )
            response.raise_for_status()
            body = response.json()
            config = body.get("config") if isinstance(body, dict) else None
        except httpx.HTTPStatusError as e:
            logger.error(
                "generate_kubeconfig_failed",
                cluster_id=cluster_id,
                status_code=e.response.status_code,
            )
            raise CredentialActionError(
                f"generate kubeconfig for {cluster_id}: HTTP {e.response.status_code} "
                f"{_error_message(e.response)}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("generate_kubeconfig_failed", cluster_id=cluster_id, error=str(e))
            raise CredentialActionError(f"generate kubeconfig for {cluster_id}: {e}") from e

        if not config:
            raise CredentialActionError(
                f"generate kubeconfig for {cluster_id}: response has no config"
            )

        logger.info("kubeconfig_generated", cluster_id=cluster_id)
        return config


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("code") or body)
    return str(body)
