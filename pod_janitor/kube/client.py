"""
Kubernetes REST API client for listing and deleting pods.

Talks to the API server directly over httpx with a service account bearer
token. Only the two calls the janitor needs are implemented: a paginated,
field-selected pod list and a single pod delete.

Usage:
    settings = load_incluster_config()
    async with KubeClient(settings) as client:
        page = await client.list_pods("jobs", "status.phase=Succeeded", limit=10)
        await client.delete_pod("jobs", page.items[0].name)
"""

import os
import ssl
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, Field

# ── Response Models ─────────────────────────────────────────────────────────


class PodCondition(BaseModel):
    """One entry of ``status.conditions``."""

    type: str = ""
    status: str = "Unknown"
    last_transition_time: datetime | None = Field(default=None, alias="lastTransitionTime")
    reason: str = ""

    model_config = {"populate_by_name": True}


class Pod(BaseModel):
    """Flattened view of a pod: identity, phase and condition history."""

    name: str
    namespace: str = ""
    phase: str = ""
    conditions: list[PodCondition] = Field(default_factory=list)

    @classmethod
    def from_api(cls, obj: dict[str, Any]) -> "Pod":
        """Build from a raw ``v1.Pod`` JSON object."""
        metadata = obj.get("metadata") or {}
        status = obj.get("status") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            phase=status.get("phase", ""),
            conditions=status.get("conditions") or [],
        )


class PodList(BaseModel):
    """One page of a pod list call."""

    items: list[Pod] = Field(default_factory=list)
    continue_token: str = ""

    @classmethod
    def from_api(cls, obj: dict[str, Any]) -> "PodList":
        metadata = obj.get("metadata") or {}
        return cls(
            items=[Pod.from_api(item) for item in obj.get("items") or []],
            continue_token=metadata.get("continue") or "",
        )


# ── Store Protocol ──────────────────────────────────────────────────────────


class PodStore(Protocol):
    """The remote calls the janitor consumes."""

    async def list_pods(
        self,
        namespace: str,
        field_selector: str,
        limit: int,
        continue_token: str = "",
    ) -> PodList: ...

    async def delete_pod(self, namespace: str, name: str) -> None: ...


# ── Connection Settings ─────────────────────────────────────────────────────

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


@dataclass
class KubeSettings:
    """Resolved API server endpoint and credentials."""

    api_url: str
    token: str = ""
    ca_file: str | None = None
    verify_ssl: bool = True


def load_incluster_config(
    api_url: str | None = None,
    token_file: str | Path | None = None,
    ca_file: str | Path | None = None,
    verify_ssl: bool = True,
) -> KubeSettings:
    """Discover API server settings from the pod's service account.

    Explicit arguments win over in-cluster discovery, which lets the
    janitor run against a cluster from outside (e.g. through kubectl proxy).

    Raises:
        KubeConfigError: If the API server address or token cannot be found.
    """
    if api_url is None:
        host = os.getenv("KUBERNETES_SERVICE_HOST", "")
        port = os.getenv("KUBERNETES_SERVICE_PORT", "")
        if not host or not port:
            raise KubeConfigError(
                "Unable to load in-cluster configuration, "
                "KUBERNETES_SERVICE_HOST and KUBERNETES_SERVICE_PORT must be defined"
            )
        if ":" in host:
            host = f"[{host}]"  # IPv6
        api_url = f"https://{host}:{port}"

    token_path = Path(token_file) if token_file else SERVICE_ACCOUNT_DIR / "token"
    token = ""
    if token_file or token_path.exists():
        try:
            token = token_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise KubeConfigError(f"Cannot read service account token {token_path}: {e}") from e
        if not token:
            raise KubeConfigError(f"Service account token {token_path} is empty")
    elif not api_url.startswith("http://"):
        raise KubeConfigError(f"Service account token not found at {token_path}")

    if ca_file is None and (SERVICE_ACCOUNT_DIR / "ca.crt").exists():
        ca_file = SERVICE_ACCOUNT_DIR / "ca.crt"

    return KubeSettings(
        api_url=api_url.rstrip("/"),
        token=token,
        ca_file=str(ca_file) if ca_file else None,
        verify_ssl=verify_ssl,
    )


# ── Kubernetes Client ───────────────────────────────────────────────────────


class KubeClient:
    """Async pod list/delete client for the Kubernetes core/v1 API.

    No retries: a failed call is reported to the caller once, and the next
    janitor sweep re-evaluates the same pods.

    Usage:
        async with KubeClient(settings) as client:
            page = await client.list_pods("default", "status.phase=Failed", 10)
    """

    def __init__(
        self,
        settings: KubeSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ── Context Manager ─────────────────────────────────────────────────

    async def __aenter__(self) -> "KubeClient":
        verify: bool | ssl.SSLContext = self._settings.verify_ssl
        if verify and self._settings.ca_file:
            verify = ssl.create_default_context(cafile=self._settings.ca_file)
        self._http = httpx.AsyncClient(
            base_url=self._settings.api_url,
            headers=self._build_headers(),
            verify=verify,
            transport=self._transport,
            timeout=None,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    # ── Pods ────────────────────────────────────────────────────────────

    async def list_pods(
        self,
        namespace: str,
        field_selector: str,
        limit: int,
        continue_token: str = "",
    ) -> PodList:
        """List one page of pods matching ``field_selector``."""
        params: dict[str, Any] = {"fieldSelector": field_selector, "limit": limit}
        if continue_token:
            params["continue"] = continue_token

        response = await self._raw_request(
            "GET", f"/api/v1/namespaces/{namespace}/pods", params=params
        )
        page = PodList.from_api(response.json())
        logger.debug(
            "Kube: listed {} pods in {} ({}), more={}",
            len(page.items),
            namespace,
            field_selector,
            bool(page.continue_token),
        )
        return page

    async def delete_pod(self, namespace: str, name: str) -> None:
        """Delete a single pod. Raises KubeNotFoundError if it is already gone."""
        await self._raw_request("DELETE", f"/api/v1/namespaces/{namespace}/pods/{name}")

    # ── HTTP Internals ──────────────────────────────────────────────────

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.token:
            headers["Authorization"] = f"Bearer {self._settings.token}"
        return headers

    async def _raw_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if not self._http:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        try:
            response = await self._http.request(method, path, params=params)
        except httpx.HTTPError as e:
            raise KubeApiError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise KubeNotFoundError(f"{method} {path}: not found", status_code=404)

        if response.status_code in (401, 403):
            raise KubeAuthError(
                f"{method} {path}: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            raise KubeApiError(
                f"API error {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        return response


# ── Exceptions ──────────────────────────────────────────────────────────────


class KubeError(Exception):
    """Base exception for Kubernetes client errors."""


class KubeConfigError(KubeError):
    """In-cluster configuration could not be loaded."""


class KubeApiError(KubeError):
    """API server returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class KubeNotFoundError(KubeApiError):
    """Object does not exist (HTTP 404)."""


class KubeAuthError(KubeApiError):
    """Token rejected or missing RBAC permission (HTTP 401/403)."""
