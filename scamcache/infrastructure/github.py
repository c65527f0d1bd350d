"""
Minimal async GitHub client for the upstream listing repository.

Covers what the service needs: downloading the raw data file, reading and
updating it through the contents API on a new branch, and opening a pull
request. Transient transport errors are retried with tenacity; any other
unexpected response raises `UpstreamError`.
"""
from __future__ import annotations

import base64
from typing import Any, Dict, Optional, Tuple

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from scamcache.config import Settings
from scamcache.utils.logging import get_logger

log = get_logger(__name__)


class UpstreamError(RuntimeError):
    """GitHub answered with an unexpected status or payload."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """
    Thin wrapper over `httpx.AsyncClient` bound to one owner/repo.

    Pass `client` to reuse an existing `httpx.AsyncClient` (tests inject one
    with a `MockTransport`); otherwise the client is created and owned here.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        raw_url: str = "https://raw.githubusercontent.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.raw_url = raw_url.rstrip("/")
        headers = {"Accept": "application/vnd.github+json", "User-Agent": "scamcache"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "GitHubClient":
        return cls(
            owner=settings.github_owner,
            repo=settings.github_repo,
            token=settings.github_token,
            api_url=settings.github_api_url,
            raw_url=settings.github_raw_url,
            client=client,
        )

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def _repo_url(self, suffix: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/{suffix}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, url, headers=self._headers, **kwargs)
        if response.status_code >= 400:
            raise UpstreamError(
                f"{method} {url} failed with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def _json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._request(method, url, **kwargs)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"{method} {url} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"{method} {url} returned {type(payload).__name__}, expected object")
        return payload

    async def download_raw(self, path: str, branch: str = "master") -> str:
        url = f"{self.raw_url}/{self.owner}/{self.repo}/{branch}/{path.lstrip('/')}"
        response = await self._request("GET", url)
        log.info("Downloaded upstream file", extra={"path": path, "bytes": len(response.content)})
        return response.text

    async def get_branch_sha(self, branch: str) -> str:
        payload = await self._json("GET", self._repo_url(f"git/ref/heads/{branch}"))
        try:
            return str(payload["object"]["sha"])
        except (KeyError, TypeError) as exc:
            raise UpstreamError(f"ref heads/{branch} has no object sha") from exc

    async def create_branch(self, name: str, sha: str) -> None:
        await self._json(
            "POST", self._repo_url("git/refs"), json={"ref": f"refs/heads/{name}", "sha": sha}
        )
        log.info("Created branch", extra={"branch": name, "sha": sha})

    async def get_file(self, path: str, ref: str) -> Tuple[str, str]:
        """Return `(decoded content, blob sha)` of a file at `ref`."""
        payload = await self._json(
            "GET", self._repo_url(f"contents/{path.lstrip('/')}"), params={"ref": ref}
        )
        try:
            content = base64.b64decode(payload["content"]).decode("utf-8")
            return content, str(payload["sha"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(f"contents of {path} could not be decoded") from exc

    async def put_file(
        self, path: str, content: str, message: str, branch: str, sha: Optional[str] = None
    ) -> None:
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        await self._json("PUT", self._repo_url(f"contents/{path.lstrip('/')}"), json=body)

    async def open_pull_request(self, title: str, head: str, base: str, body: str = "") -> str:
        payload = await self._json(
            "POST",
            self._repo_url("pulls"),
            json={"title": title, "head": head, "base": base, "body": body},
        )
        url = payload.get("html_url")
        if not url:
            raise UpstreamError("pull request response has no html_url")
        log.info("Opened pull request", extra={"url": url, "head": head, "base": base})
        return str(url)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["GitHubClient", "UpstreamError"]
