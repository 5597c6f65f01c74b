"""Unit tests for the Rancher API client."""

import httpx
import pytest

from rancher_smoke.clients.rancher import RancherClient, normalize_url
from rancher_smoke.core.exceptions import (
    AuthError,
    ClusterNotFoundError,
    ConnectError,
    CredentialActionError,
)


def make_client(handler, url: str = "rancher.example.com") -> RancherClient:
    """Client whose requests are answered by ``handler``."""
    return RancherClient(url, "token-abc:secret", transport=httpx.MockTransport(handler))


class TestNormalizeUrl:
    """Tests for URL normalisation."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("rancher.example.com", "https://rancher.example.com/v3"),
            ("https://rancher.example.com", "https://rancher.example.com/v3"),
            ("https://rancher.example.com/", "https://rancher.example.com/v3"),
            ("https://rancher.example.com/v3", "https://rancher.example.com/v3"),
            ("http://localhost:8080", "http://localhost:8080/v3"),
            ("  rancher.local/v3/ ", "https://rancher.local/v3"),
        ],
    )
    def test_normalize_url(self, raw: str, expected: str) -> None:
        """Test scheme and API suffix are added exactly once."""
        assert normalize_url(raw) == expected


class TestConnect:
    """Tests for client construction."""

    def test_client_url_normalized(self) -> None:
        """Test the client exposes the normalised URL."""
        client = make_client(lambda request: httpx.Response(200))

        assert client.url == "https://rancher.example.com/v3"

    def test_empty_url_rejected(self) -> None:
        """Test an empty URL raises ConnectError."""
        with pytest.raises(ConnectError, match="empty URL"):
            RancherClient("", "token")

    def test_empty_token_rejected(self) -> None:
        """Test an empty token raises ConnectError."""
        with pytest.raises(ConnectError, match="empty token"):
            RancherClient("rancher.example.com", "")


class TestVerifyLogin:
    """Tests for verify_login."""

    def test_verify_login_success(self) -> None:
        """Test a 200 from the cluster list passes and sends the bearer token."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": []})

        make_client(handler).verify_login()

        assert seen[0].method == "GET"
        assert seen[0].url.path == "/v3/clusters"
        assert seen[0].url.params["limit"] == "1"
        assert seen[0].headers["Authorization"] == "Bearer token-abc:secret"

    def test_verify_login_unauthorized(self) -> None:
        """Test a 401 raises AuthError with Rancher's message."""
        client = make_client(
            lambda request: httpx.Response(
                401, json={"code": "Unauthorized", "message": "must authenticate"}
            )
        )

        with pytest.raises(AuthError, match="HTTP 401 must authenticate"):
            client.verify_login()

    def test_verify_login_transport_error(self) -> None:
        """Test connection failures raise AuthError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AuthError, match="connection refused"):
            make_client(handler).verify_login()


class TestGetKubeconfig:
    """Tests for get_kubeconfig."""

    def test_get_kubeconfig_success(self, sample_kubeconfig: str) -> None:
        """Test the cluster is resolved and the action is invoked."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"id": "c-abc123", "state": "active"})
            return httpx.Response(
                200, json={"type": "generateKubeConfigOutput", "config": sample_kubeconfig}
            )

        config = make_client(handler).get_kubeconfig("c-abc123")

        assert config == sample_kubeconfig
        assert [r.method for r in seen] == ["GET", "POST"]
        assert seen[0].url.path == "/v3/clusters/c-abc123"
        assert seen[1].url.path == "/v3/clusters/c-abc123"
        assert seen[1].url.params["action"] == "generateKubeconfig"

    def test_get_kubeconfig_cluster_not_found(self) -> None:
        """Test an unknown cluster id raises ClusterNotFoundError without calling the action."""
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(404, json={"code": "NotFound"})

        with pytest.raises(ClusterNotFoundError, match="c-missing"):
            make_client(handler).get_kubeconfig("c-missing")

        assert methods == ["GET"]

    def test_get_kubeconfig_empty_id(self) -> None:
        """Test an empty cluster id never reaches the API."""
        client = make_client(lambda request: pytest.fail("unexpected request"))

        with pytest.raises(ClusterNotFoundError):
            client.get_kubeconfig("")

    def test_get_kubeconfig_action_failure(self) -> None:
        """Test a failing action raises CredentialActionError."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"id": "c-abc123"})
            return httpx.Response(500, json={"message": "cluster not ready"})

        with pytest.raises(CredentialActionError, match="cluster not ready"):
            make_client(handler).get_kubeconfig("c-abc123")

    def test_get_kubeconfig_missing_config_field(self) -> None:
        """Test a response without config raises CredentialActionError."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"id": "c-abc123"})
            return httpx.Response(200, json={"type": "generateKubeConfigOutput"})

        with pytest.raises(CredentialActionError, match="no config"):
            make_client(handler).get_kubeconfig("c-abc123")

    def test_get_kubeconfig_lookup_server_error(self) -> None:
        """Test a 5xx on cluster lookup raises CredentialActionError."""
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(CredentialActionError, match="HTTP 503"):
            client.get_kubeconfig("c-abc123")


def test_client_context_manager_closes() -> None:
    """Test the client closes its HTTP session on exit."""
    with make_client(lambda request: httpx.Response(200)) as client:
        pass

    assert client._http.is_closed
