"""GitHub REST client authenticated as a GitHub App installation."""

import logging
import time
from typing import Any, Optional

import httpx
from jose import jwt

from cla_api.github.client import GitHubClient, GitHubError
from cla_api.github.types import (
    MEMBERSHIP_ACTIVE,
    MEMBERSHIP_NOT_MEMBER,
    PERMISSION_LEVELS,
    CheckRun,
    CheckRunOutput,
    GitHubUser,
    IssueComment,
    PullRequestRef,
)
from cla_api.utils.metrics import github_api_errors

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
PER_PAGE = 100


def build_app_jwt(app_id: str, private_key: str, now: Optional[int] = None) -> str:
    """Short-lived RS256 JWT identifying the GitHub App itself."""
    issued_at = int(now if now is not None else time.time())
    claims = {
        "iat": issued_at - 60,  # clock drift allowance
        "exp": issued_at + 9 * 60,
        "iss": str(app_id),
    }
    return jwt.encode(claims, private_key.replace("\\n", "\n"), algorithm="RS256")


class HttpxGitHubClient(GitHubClient):
    """GitHub gateway over ``httpx``, scoped to one installation."""

    def __init__(
        self,
        installation_id: int,
        app_id: str,
        private_key: str,
        api_url: str = "https://api.github.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize client and exchange the App JWT for an installation token."""
        self.installation_id = installation_id
        self._http = httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "cla-bot",
            },
        )
        try:
            app_token = build_app_jwt(app_id, private_key)
            response = self._request(
                "POST",
                f"/app/installations/{installation_id}/access_tokens",
                operation="create_installation_token",
                headers={"Authorization": f"Bearer {app_token}"},
            )
            self._http.headers["Authorization"] = f"token {response.json()['token']}"
        except Exception:
            self._http.close()
            raise

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._http.close()

    # --- Transport ---

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        allow_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            github_api_errors.labels(operation=operation).inc()
            logger.warning(f"GitHub request failed: {method} {path}: {e}", extra={"operation": operation})
            raise GitHubError(502, str(e), operation) from e

        if response.status_code in allow_statuses or response.is_success:
            return response

        github_api_errors.labels(operation=operation).inc()
        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        logger.warning(
            f"GitHub API {response.status_code} on {method} {path}: {message}",
            extra={"operation": operation, "status_code": response.status_code},
        )
        raise GitHubError(response.status_code, message, operation)

    def _paginate(self, path: str, operation: str, key: Optional[str] = None, **params: Any) -> list[dict]:
        items: list[dict] = []
        url: Optional[str] = path
        query: Optional[dict] = {"per_page": PER_PAGE, **params}
        while url:
            response = self._request("GET", url, operation=operation, params=query)
            data = response.json()
            items.extend(data[key] if key else data)
            url = response.links.get("next", {}).get("url")
            query = None  # the next link carries its own query string
        return items

    # --- Mapping ---

    @staticmethod
    def _map_user(data: Optional[dict]) -> GitHubUser:
        data = data or {}
        return GitHubUser(
            login=data.get("login") or "unknown",
            id=data.get("id") or 0,
            avatar_url=data.get("avatar_url") or "",
            html_url=data.get("html_url") or "",
            type=data.get("type") or "User",
        )

    @staticmethod
    def _map_check_run(data: dict) -> CheckRun:
        output = data.get("output") or {}
        return CheckRun(
            id=data["id"],
            head_sha=data["head_sha"],
            name=data["name"],
            status=data["status"],
            conclusion=data.get("conclusion"),
            output=CheckRunOutput(title=output.get("title") or "", summary=output.get("summary") or ""),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            html_url=data.get("html_url") or "",
        )

    def _map_comment(self, data: dict) -> IssueComment:
        return IssueComment(
            id=data["id"],
            body=data.get("body") or "",
            user=self._map_user(data.get("user")),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
            html_url=data.get("html_url") or "",
        )

    def _map_pull_request(self, owner: str, repo: str, data: dict) -> PullRequestRef:
        user = data.get("user") or {}
        return PullRequestRef(
            owner=owner,
            repo=repo,
            number=data["number"],
            head_sha=data["head"]["sha"],
            author_login=user.get("login") or "",
            author_id=user.get("id"),
            state=data.get("state") or "open",
        )

    # --- Users ---

    def get_user(self, username: str) -> Optional[GitHubUser]:
        response = self._request("GET", f"/users/{username}", operation="get_user", allow_statuses=(404,))
        if response.status_code == 404:
            return None
        return self._map_user(response.json())

    # --- Membership and permissions ---

    def check_org_membership(self, org: str, username: str) -> str:
        response = self._request(
            "GET",
            f"/orgs/{org}/members/{username}",
            operation="check_org_membership",
            allow_statuses=(302, 404),
            follow_redirects=False,
        )
        if response.status_code == 204:
            return MEMBERSHIP_ACTIVE
        return MEMBERSHIP_NOT_MEMBER

    def get_repository_permission_level(self, owner: str, repo: str, username: str) -> str:
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/collaborators/{username}/permission",
            operation="get_repository_permission_level",
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            return "none"
        permission = response.json().get("permission")
        return permission if permission in PERMISSION_LEVELS else "none"

    # --- Check runs ---

    def create_check_run(
        self,
        owner: str,
        repo: str,
        name: str,
        head_sha: str,
        status: str = "completed",
        conclusion: Optional[str] = None,
        title: str = "",
        summary: str = "",
    ) -> CheckRun:
        body: dict[str, Any] = {
            "name": name,
            "head_sha": head_sha,
            "status": status,
            "output": {"title": title, "summary": summary},
        }
        if conclusion is not None:
            body["conclusion"] = conclusion
        response = self._request("POST", f"/repos/{owner}/{repo}/check-runs", operation="create_check_run", json=body)
        return self._map_check_run(response.json())

    def update_check_run(
        self,
        owner: str,
        repo: str,
        check_run_id: int,
        status: Optional[str] = None,
        conclusion: Optional[str] = None,
        title: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> CheckRun:
        body: dict[str, Any] = {}
        if status is not None:
            body["status"] = status
        if conclusion is not None:
            body["conclusion"] = conclusion
        if title is not None or summary is not None:
            body["output"] = {"title": title or "", "summary": summary or ""}
        response = self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/check-runs/{check_run_id}",
            operation="update_check_run",
            json=body,
        )
        return self._map_check_run(response.json())

    def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        runs = self._paginate(
            f"/repos/{owner}/{repo}/commits/{ref}/check-runs",
            operation="list_check_runs_for_ref",
            key="check_runs",
        )
        return [self._map_check_run(run) for run in runs]

    # --- Comments ---

    def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> IssueComment:
        response = self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            operation="create_comment",
            json={"body": body},
        )
        return self._map_comment(response.json())

    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        response = self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/issues/comments/{comment_id}",
            operation="update_comment",
            json={"body": body},
        )
        return self._map_comment(response.json())

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        self._request("DELETE", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", operation="delete_comment")

    def list_comments(self, owner: str, repo: str, issue_number: int) -> list[IssueComment]:
        comments = self._paginate(
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            operation="list_comments",
        )
        return [self._map_comment(comment) for comment in comments]

    # --- Pull requests ---

    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequestRef]:
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/pulls/{number}",
            operation="get_pull_request",
            allow_statuses=(404,),
        )
        if response.status_code == 404:
            return None
        return self._map_pull_request(owner, repo, response.json())

    def list_open_pull_requests_for_organization(self, owner: str) -> list[PullRequestRef]:
        repositories = self._paginate(
            "/installation/repositories",
            operation="list_installation_repositories",
            key="repositories",
        )
        pull_requests: list[PullRequestRef] = []
        for repository in repositories:
            repo_owner = (repository.get("owner") or {}).get("login") or ""
            if repo_owner.lower() != owner.lower() or repository.get("archived"):
                continue
            pulls = self._paginate(
                f"/repos/{repo_owner}/{repository['name']}/pulls",
                operation="list_open_pull_requests",
                state="open",
            )
            pull_requests.extend(self._map_pull_request(repo_owner, repository["name"], pr) for pr in pulls)
        return pull_requests
