"""HTTP client for Helm repositories and OCI registries."""

import base64
import re
from datetime import datetime
from typing import Any

import httpx
import yaml

from helm_updater import __version__
from helm_updater.core.config import RegistryCredential, UpdaterConfig
from helm_updater.core.models import ChartVersionInfo, HelmIndex
from helm_updater.interfaces.exceptions import MalformedRegistryResponseError, RegistryClientError
from helm_updater.interfaces.registry_client import RegistryClient
from helm_updater.utils.logging import get_logger
from helm_updater.utils.retry import retry_on_exception

logger = get_logger(__name__)

USER_AGENT = f"argocd-helm-updater/{__version__}"
MAX_REDIRECTS = 5

_CHALLENGE_RE = re.compile(r'(\w+)="([^"]*)"')


def helm_index_url(repo_url: str) -> str:
    """Build the index.yaml URL for a Helm repository.

    Args:
        repo_url: Repository URL, optionally already pointing at index.yaml

    Returns:
        Index URL
    """
    url = repo_url.strip()
    if url.endswith("index.yaml"):
        return url
    return f"{url.rstrip('/')}/index.yaml"


def oci_tags_url(repo_url: str, chart_name: str) -> str:
    """Build the OCI Distribution v2 tag listing URL for a chart.

    Args:
        repo_url: Registry URL such as ``oci://ghcr.io/org/charts``
        chart_name: Chart repository name, may contain ``/``

    Returns:
        ``https://<host>/v2/<path>/<chart>/tags/list``
    """
    location = re.sub(r"^(oci|https?)://", "", repo_url.strip()).strip("/")
    repository = "/".join(part for part in (location, chart_name.strip("/")) if part)
    host, _, path = repository.partition("/")
    return f"https://{host}/v2/{path}/tags/list"


class HttpRegistryClient(RegistryClient):
    """Registry client backed by httpx."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        credentials: list[RegistryCredential] | None = None,
        client: httpx.AsyncClient | None = None,
        retry_min_wait: float = 1,
        retry_max_wait: float = 10,
    ):
        """Initialize registry client.

        Args:
            timeout: Request timeout in seconds
            max_retries: Attempts per request on transport failures
            credentials: Credentials applied to matching URLs
            client: Pre-built httpx client (tests inject one with a mock transport)
            retry_min_wait: Minimum backoff between attempts (seconds)
            retry_max_wait: Maximum backoff between attempts (seconds)
        """
        self.credentials = credentials or []
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers={"User-Agent": USER_AGENT},
        )
        self._send_with_retry = retry_on_exception(
            exceptions=(httpx.TransportError,),
            max_attempts=max_retries,
            min_wait=retry_min_wait,
            max_wait=retry_max_wait,
        )(self._send)

        logger.debug("registry_client_initialized", timeout=timeout, max_retries=max_retries)

    @classmethod
    def from_config(cls, config: UpdaterConfig) -> "HttpRegistryClient":
        """Create a client from updater configuration."""
        return cls(
            timeout=config.http.timeout_seconds,
            max_retries=config.http.max_retries,
            credentials=config.registry_credentials,
        )

    async def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _auth_headers(self, url: str) -> dict[str, str]:
        credential = next((c for c in self.credentials if c.matches(url)), None)
        if credential is None:
            return {}
        if credential.auth_type == "bearer":
            return {"Authorization": f"Bearer {credential.password}"}
        token = base64.b64encode(f"{credential.username}:{credential.password}".encode()).decode()
        return {"Authorization": f"Basic {token}"}

    async def _send(
        self, url: str, headers: dict[str, str], params: dict[str, str] | None = None
    ) -> httpx.Response:
        return await self._client.get(url, headers=headers, params=params)

    async def _anonymous_token(self, challenge: str) -> str | None:
        """Exchange a ``WWW-Authenticate: Bearer`` challenge for a pull token."""
        params = dict(_CHALLENGE_RE.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            return None

        response = await self._send_with_retry(realm, {}, params)
        if response.status_code != 200:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("token") or body.get("access_token")

    async def _get(self, url: str) -> httpx.Response:
        """GET a URL with credentials, retries and the OCI token dance.

        Raises:
            RegistryClientError: On transport failures or non-2xx responses
        """
        headers = self._auth_headers(url)
        try:
            response = await self._send_with_retry(url, headers)

            challenge = response.headers.get("www-authenticate", "")
            if response.status_code == 401 and challenge.lower().startswith("bearer") and not headers:
                token = await self._anonymous_token(challenge)
                if token:
                    logger.debug("registry_token_acquired", url=url)
                    response = await self._send_with_retry(url, {"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise RegistryClientError(f"Request to {url} failed: {e}", url=url) from e

        if response.status_code >= 400:
            raise RegistryClientError(
                f"Registry returned HTTP {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        return response

    async def fetch_helm_index(self, repo_url: str) -> HelmIndex:
        """Fetch and parse a Helm repository index.

        Args:
            repo_url: Helm repository URL

        Returns:
            Parsed index; entries without a version are dropped

        Raises:
            RegistryClientError: If the request fails
            MalformedRegistryResponseError: If the payload is not a Helm index
        """
        url = helm_index_url(repo_url)
        logger.debug("fetching_helm_index", url=url)

        response = await self._get(url)
        try:
            data = yaml.safe_load(response.text)
        except yaml.YAMLError as e:
            raise MalformedRegistryResponseError(f"Invalid index YAML at {url}: {e}", url=url) from e

        if not isinstance(data, dict) or not isinstance(data.get("entries") or {}, dict):
            raise MalformedRegistryResponseError(f"Unexpected index structure at {url}", url=url)

        entries: dict[str, list[ChartVersionInfo]] = {}
        for chart_name, versions in (data.get("entries") or {}).items():
            if not isinstance(versions, list):
                continue
            entries[str(chart_name)] = [
                _chart_version(entry) for entry in versions if isinstance(entry, dict) and entry.get("version") is not None
            ]

        logger.info("helm_index_fetched", url=url, charts=len(entries))
        return HelmIndex(api_version=str(data.get("apiVersion", "")), entries=entries)

    async def fetch_oci_tags(self, repo_url: str, chart_name: str) -> list[str]:
        """List the tags of an OCI chart.

        Args:
            repo_url: Registry URL
            chart_name: Chart repository name

        Returns:
            Tag names, empty when the registry reports none

        Raises:
            RegistryClientError: If the request fails
            MalformedRegistryResponseError: If the payload is not a tag list
        """
        url = oci_tags_url(repo_url, chart_name)
        logger.debug("fetching_oci_tags", url=url)

        response = await self._get(url)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedRegistryResponseError(f"Invalid tag list JSON at {url}: {e}", url=url) from e

        if not isinstance(data, dict):
            raise MalformedRegistryResponseError(f"Unexpected tag list structure at {url}", url=url)

        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise MalformedRegistryResponseError(f"Unexpected tags value at {url}", url=url)

        logger.info("oci_tags_fetched", url=url, count=len(tags))
        return [str(tag) for tag in tags]


def _chart_version(entry: dict[str, Any]) -> ChartVersionInfo:
    created = entry.get("created")
    return ChartVersionInfo(
        version=str(entry["version"]),
        app_version=str(entry["appVersion"]) if entry.get("appVersion") is not None else None,
        created=created if isinstance(created, datetime) else None,
        digest=str(entry["digest"]) if entry.get("digest") is not None else None,
    )
