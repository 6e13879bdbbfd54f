"""
Per-app todo lists stored as JSON files in a manager repository.

Each app's list lives at ``data/tasks/<app_id>/tasks.json`` and is read and
written through the contents API via the proxy. Saves merge the caller's
list with the current remote file before writing.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from shared.errors import NotFoundError, ProxyError
from shared.logging import get_logger
from shared.retry import RetryCancelledError, RetryError
from .github_client import GitHubClient
from .merge import merge_collections


@dataclass
class SaveResult:
    ok: bool
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None


def encode_tasks(tasks: List[Dict[str, Any]]) -> str:
    """Pretty JSON with a trailing newline, base64 encoded for the contents API."""
    text = json.dumps(tasks, indent=2, ensure_ascii=False) + "\n"
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_tasks(content: str) -> List[Dict[str, Any]]:
    """Inverse of ``encode_tasks``; anything but a JSON list decodes to []."""
    text = base64.b64decode(content).decode("utf-8")
    parsed = json.loads(text)
    return parsed if isinstance(parsed, list) else []


class RepoTaskStore:
    """Loads and saves todo lists in the manager repository."""

    def __init__(self, client: GitHubClient, manager_repo: Optional[str], branch: str = "main"):
        self.client = client
        self.manager_repo = manager_repo
        self.branch = branch
        # app_id -> (superseded sha, written sha, written tasks)
        self._last_writes: Dict[str, Tuple[str, str, List[Dict[str, Any]]]] = {}
        self.logger = get_logger("client.tasks")

    def _contents_endpoint(self, app_id: str) -> str:
        return f"/repos/{self.manager_repo}/contents/data/tasks/{app_id}/tasks.json"

    async def _fetch_remote(self, app_id: str) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        data = await self.client.request_or_raise(self._contents_endpoint(app_id), {"ref": self.branch})
        if not isinstance(data, dict):
            raise ValueError("Contents response was not an object")
        tasks = decode_tasks(data.get("content") or "")
        sha = data.get("sha")

        # Reads may be served from the proxy cache for a while after our own
        # write; a response carrying the sha we replaced is that stale copy
        last_write = self._last_writes.get(app_id)
        if last_write is not None and sha == last_write[0]:
            return list(last_write[2]), last_write[1]
        return tasks, sha

    async def load_tasks(self, app_id: str) -> Optional[List[Dict[str, Any]]]:
        """The stored list, or None when it cannot be read."""
        if not self.manager_repo or not app_id:
            return None

        try:
            tasks, _ = await self._fetch_remote(app_id)
        except NotFoundError:
            return None
        except (RetryError, RetryCancelledError, ValueError) as exc:
            self.logger.warning("Could not load tasks", app_id=app_id, error=str(exc))
            return None
        return tasks

    async def save_tasks(self, app_id: str, tasks: Optional[List[Dict[str, Any]]]) -> SaveResult:
        """Merge ``tasks`` with the remote list and write the result back."""
        local = list(tasks or [])
        if not self.manager_repo:
            self.logger.warning("Manager repository not configured", app_id=app_id)
            return SaveResult(ok=False, tasks=local, error="Manager repository not configured")

        try:
            remote, sha = await self._fetch_remote(app_id)
        except NotFoundError:
            remote, sha = [], None
        except (RetryError, RetryCancelledError, ValueError) as exc:
            # Writing without seeing the remote list could drop other sessions' items
            self.logger.warning("Remote tasks unavailable; save skipped", app_id=app_id, error=str(exc))
            return SaveResult(ok=False, tasks=local, error=str(exc))

        merged = merge_collections(local, remote)
        body: Dict[str, Any] = {
            "message": f"Save tasks for {app_id}",
            "content": encode_tasks(merged),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        try:
            response = await self.client.send("PUT", self._contents_endpoint(app_id), json=body)
        except ProxyError as exc:
            self.logger.warning("Saving tasks failed", app_id=app_id, error=exc.message)
            return SaveResult(ok=False, tasks=merged, error=exc.message)

        new_sha = ((response or {}).get("content") or {}).get("sha") if isinstance(response, dict) else None
        if sha and new_sha:
            self._last_writes[app_id] = (sha, new_sha, merged)

        self.logger.info("Saved tasks", app_id=app_id, count=len(merged))
        return SaveResult(ok=True, tasks=merged)
