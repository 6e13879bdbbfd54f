"""
Repository metadata lookups for portfolio cards.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from shared.errors import ProxyError
from shared.logging import get_logger
from shared.retry import RetryCancelledError, RetryError
from .github_client import FallbackResult, GitHubClient


REPO_URL_PATTERN = re.compile(r"^https?://github\.com/[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+/?$")
REPO_PATH_PATTERN = re.compile(r"github\.com/([^/]+)/([^/]+)")


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def api_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"


@dataclass
class RepoSummary:
    """Flattened repository facts shown on a portfolio card."""

    id: str
    name: str
    full_name: str
    description: Optional[str] = None
    last_commit_date: Optional[str] = None
    latest_tag: Optional[str] = None
    stars: int = 0
    language: Optional[str] = None
    is_private: bool = False
    archived: bool = False
    updated_at: Optional[str] = None
    url: Optional[str] = None
    recent_views: int = 0
    recent_clones: int = 0
    unique_views: int = 0
    unique_clones: int = 0
    is_fallback: bool = False

    @classmethod
    def fallback(cls, repo_url: str) -> "RepoSummary":
        ref = parse_repo_ref(repo_url)
        full_name = f"{ref.owner}/{ref.repo}" if ref else ""
        return cls(
            id=full_name.replace("/", "-"),
            name=ref.repo if ref else "",
            full_name=full_name,
            url=repo_url or None,
            is_fallback=True,
        )


def validate_repo_url(url: Any) -> bool:
    """Whether ``url`` is a plain https://github.com/<owner>/<repo> URL."""
    return isinstance(url, str) and bool(REPO_URL_PATTERN.match(url))


def parse_repo_ref(url: Optional[str]) -> Optional[RepoRef]:
    """Owner and repository from any URL containing github.com/<owner>/<repo>."""
    if not url:
        return None
    match = REPO_PATH_PATTERN.search(url)
    if not match:
        return None
    owner, repo = match.groups()
    if repo.endswith(".git"):
        repo = repo[:-len(".git")]
    return RepoRef(owner=owner, repo=repo)


def extract_repo_info(url: Any) -> Optional[RepoRef]:
    """Strict variant of ``parse_repo_ref`` that first validates the URL."""
    if not validate_repo_url(url):
        return None
    return parse_repo_ref(url)


class RepoService:
    """Repository reads through the resilient client."""

    def __init__(self, client: GitHubClient):
        self.client = client
        self.logger = get_logger("client.repos")

    async def fetch_repo_data(self, repo_url: str) -> Dict[str, Any]:
        ref = parse_repo_ref(repo_url)
        if ref is None:
            raise ValueError(f"Invalid GitHub repository URL: {repo_url}")
        return await self.client.request_or_raise(ref.api_path)

    async def fetch_last_commit(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self.client.request_or_raise(f"/repos/{owner}/{repo}/commits", {"per_page": 1})

    async def fetch_latest_tag(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        return await self.client.request_or_raise(f"/repos/{owner}/{repo}/tags", {"per_page": 1})

    async def fetch_traffic_views(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self.client.request_or_raise(f"/repos/{owner}/{repo}/traffic/views", {"per": "day"})

    async def fetch_traffic_clones(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self.client.request_or_raise(f"/repos/{owner}/{repo}/traffic/clones", {"per": "day"})

    async def fetch_public_repos_for_user(self, username: str) -> List[Dict[str, Any]]:
        result = await self.client.request_with_retry(
            f"/users/{username}/repos",
            {"per_page": 100, "sort": "updated", "direction": "desc"},
        )
        if isinstance(result, FallbackResult) or not isinstance(result, list):
            self.logger.warning("Public repositories unavailable", username=username)
            return []
        return result

    async def get_rate_limit_status(self) -> Optional[Dict[str, Any]]:
        result = await self.client.request_with_retry("/rate_limit")
        if isinstance(result, FallbackResult):
            return None
        return result

    async def get_comprehensive_repo_data(self, repo_url: str) -> RepoSummary:
        """Repository summary plus commit, tag and traffic figures.

        Secondary lookups run concurrently and degrade to empty values; a
        failure of the primary lookup yields ``RepoSummary.fallback``.
        """
        try:
            repo = await self.fetch_repo_data(repo_url)
        except (ValueError, ProxyError, RetryError, RetryCancelledError) as exc:
            self.logger.warning("Using fallback repository data", repo_url=repo_url, error=str(exc))
            return RepoSummary.fallback(repo_url)

        if not isinstance(repo, dict):
            self.logger.warning("Using fallback repository data", repo_url=repo_url, error="unexpected body")
            return RepoSummary.fallback(repo_url)

        owner_info = repo.get("owner")
        owner = str(owner_info.get("login") or "") if isinstance(owner_info, dict) else ""
        name = str(repo.get("name") or "")
        commits, tags, views, clones = await asyncio.gather(
            self.fetch_last_commit(owner, name),
            self.fetch_latest_tag(owner, name),
            self.fetch_traffic_views(owner, name),
            self.fetch_traffic_clones(owner, name),
            return_exceptions=True,
        )

        def first(value: Any) -> Optional[Dict[str, Any]]:
            if isinstance(value, list) and value and isinstance(value[0], dict):
                return value[0]
            return None

        def traffic(value: Any, field_name: str) -> int:
            return int(value.get(field_name) or 0) if isinstance(value, dict) else 0

        last_commit = first(commits)
        latest_tag = first(tags)
        full_name = str(repo.get("full_name") or f"{owner}/{name}")

        return RepoSummary(
            id=full_name.replace("/", "-"),
            name=name,
            full_name=full_name,
            description=repo.get("description"),
            last_commit_date=(((last_commit or {}).get("commit") or {}).get("author") or {}).get("date"),
            latest_tag=(latest_tag or {}).get("name"),
            stars=int(repo.get("stargazers_count") or 0),
            language=repo.get("language"),
            is_private=bool(repo.get("private")),
            archived=bool(repo.get("archived")),
            updated_at=repo.get("updated_at"),
            url=repo.get("html_url"),
            recent_views=traffic(views, "count"),
            recent_clones=traffic(clones, "count"),
            unique_views=traffic(views, "uniques"),
            unique_clones=traffic(clones, "uniques"),
        )
