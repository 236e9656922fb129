"""GitHub API client for reading a repository without cloning it.

Usage:
    client  = GitHubClient(owner="Azure", name="Azure-Sentinel", branch="master")
    sha     = client.get_latest_commit_sha()
    tree    = client.get_tree()
    content = client.get_file_content("Solutions/Foo/Data Connectors/foo.json")

Directory listings and file contents are cached on the client instance, so a
fresh client gives a fresh cache. There is no eviction: one client serves one
short-lived analysis run.
"""

import logging
import re
import threading
import warnings
from typing import Any
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
GITHUB_WEB_BASE = "https://github.com"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class GitHubClientError(Exception):
    """Base exception for all client errors."""


class AccessDeniedError(GitHubClientError):
    """Raised on HTTP 401/403, e.g. a private repository or an exhausted quota."""


class NotFoundError(GitHubClientError):
    """Raised on HTTP 404 — repository, branch or file not found."""


class NetworkError(GitHubClientError):
    """Raised on connection timeout, unreachable server or a broken transfer."""


class DecodeError(GitHubClientError):
    """Raised when a response body is not valid JSON or UTF-8 text."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GitHubClient:
    """Thin wrapper around the GitHub REST API and raw content host."""

    def __init__(self, owner: str, name: str, branch: str = "master", timeout: int = 30) -> None:
        self.owner = owner
        self.name = name
        self.branch = branch
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers["Accept"] = "application/vnd.github+json"
        self._cache: dict[str, Any] = {}
        self._cache_lock = threading.Lock()

    @property
    def repo_api_url(self) -> str:
        return f"{GITHUB_API_BASE}/repos/{self.owner}/{self.name}"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_latest_commit_sha(self) -> str:
        """Return the SHA of the latest commit on the configured branch."""
        url = f"{self.repo_api_url}/commits/{quote(self.branch)}"
        data = _json(self._request(url), url)
        if not isinstance(data, dict) or not isinstance(data.get("sha"), str):
            raise GitHubClientError(f"No commit SHA in the response from {url}")
        return data["sha"]

    def get_tree(self) -> dict:
        """Return the full recursive tree of the configured branch.

        GitHub truncates very large trees; a warning is emitted when that
        happens because some files will then be missing from the listing.
        """
        url = f"{self.repo_api_url}/git/trees/{quote(self.branch)}"
        tree = _json(self._request(url, {"recursive": "1"}), url)
        if not isinstance(tree, dict):
            raise GitHubClientError(f"Unexpected tree listing from {url}")
        if tree.get("truncated"):
            warnings.warn(
                f"The tree of {self.owner}/{self.name}@{self.branch} was truncated by GitHub — "
                "some files are missing from the listing.",
                UserWarning,
                stacklevel=2,
            )
        return tree

    def list_directory(self, path: str) -> list[dict]:
        """List the entries of a directory (one level, cached)."""
        cache_key = f"dir:{path}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        url = f"{self.repo_api_url}/contents/{quote(path)}"
        items = _json(self._request(url, {"ref": self.branch}), url)
        if not isinstance(items, list):
            raise GitHubClientError(f"'{path}' is not a directory")
        self._cache_set(cache_key, items)
        return items

    def get_file_content(self, path: str) -> str:
        """Return the text content of a file on the configured branch (cached)."""
        cache_key = f"file:{path}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        response = self._request(self.raw_url(path))
        try:
            content = response.content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"'{path}' is not valid UTF-8 (byte {exc.start})") from exc
        self._cache_set(cache_key, content)
        return content

    @staticmethod
    def filter_tree(tree: dict, pattern: str | re.Pattern) -> list[dict]:
        """Return the blob entries of *tree* whose path matches *pattern*."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        return [
            item for item in tree.get("tree", [])
            if item.get("type") == "blob" and regex.search(item.get("path", ""))
        ]

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    def raw_url(self, path: str) -> str:
        return f"{GITHUB_RAW_BASE}/{self.owner}/{self.name}/{quote(self.branch)}/{quote(path)}"

    def github_url(self, path: str) -> str:
        """Browsable URL of a directory."""
        return f"{GITHUB_WEB_BASE}/{self.owner}/{self.name}/tree/{quote(self.branch)}/{quote(path)}"

    def blob_url(self, path: str) -> str:
        """Browsable URL of a file."""
        return f"{GITHUB_WEB_BASE}/{self.owner}/{self.name}/blob/{quote(self.branch)}/{quote(path)}"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _cache_get(self, key: str) -> Any:
        with self._cache_lock:
            value = self._cache.get(key)
        if value is not None:
            logger.debug("Cache hit: %s", key)
        return value

    def _cache_set(self, key: str, value: Any) -> None:
        with self._cache_lock:
            self._cache[key] = value

    def _request(self, url: str, params: dict[str, Any] | None = None) -> requests.Response:
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(f"Unable to reach '{url}'") from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"Request to '{url}' failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AccessDeniedError(
                f"Access denied ({response.status_code}) for {url}"
            )
        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {url}")
        if not response.ok:
            raise GitHubClientError(
                f"Unexpected response {response.status_code} from {url}: {response.text[:200]}"
            )

        return response


def _json(response: requests.Response, url: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise DecodeError(f"Invalid JSON in the response from {url}") from exc
