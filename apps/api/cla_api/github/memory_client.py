"""In-memory GitHub client for development and tests.

Each instance owns its own state, so tests can build isolated clients side by
side. ``fail_on`` makes any named operation raise ``GitHubError``.
"""

import logging
from datetime import datetime
from typing import Optional

from cla_api.github.client import GitHubClient, GitHubError
from cla_api.github.types import (
    MEMBERSHIP_ACTIVE,
    MEMBERSHIP_NOT_MEMBER,
    CheckRun,
    CheckRunOutput,
    GitHubUser,
    IssueComment,
    PullRequestRef,
)

logger = logging.getLogger(__name__)

BOT_USER = GitHubUser(
    login="cla-bot[bot]",
    id=9000,
    avatar_url="https://avatars.githubusercontent.com/in/1",
    html_url="https://github.com/apps/cla-bot",
    type="Bot",
)


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class InMemoryGitHubClient(GitHubClient):
    """GitHub double holding users, memberships, pull requests, check runs and comments."""

    def __init__(self, users: Optional[list[GitHubUser]] = None):
        """Initialize in-memory client."""
        self.users: dict[str, GitHubUser] = {}
        self.memberships: set[tuple[str, str]] = set()
        self.permissions: dict[tuple[str, str, str], str] = {}
        self.pull_requests: dict[tuple[str, str, int], PullRequestRef] = {}
        self.check_runs: list[CheckRun] = []
        self.comments: dict[tuple[str, str, int], list[IssueComment]] = {}
        self.fail_on: dict[str, int] = {}
        self._next_id = 1
        for user in users or []:
            self.add_user(user.login, user.id)

    # --- Seeding helpers ---

    def add_user(self, login: str, user_id: int, type: str = "User") -> GitHubUser:
        user = GitHubUser(
            login=login,
            id=user_id,
            avatar_url=f"https://avatars.githubusercontent.com/u/{user_id}",
            html_url=f"https://github.com/{login}",
            type=type,
        )
        self.users[login.lower()] = user
        return user

    def add_member(self, org: str, login: str) -> None:
        self.memberships.add((org.lower(), login.lower()))

    def set_permission(self, owner: str, repo: str, login: str, permission: str) -> None:
        self.permissions[(owner.lower(), repo.lower(), login.lower())] = permission

    def open_pull_request(
        self,
        owner: str,
        repo: str,
        number: int,
        author_login: str,
        head_sha: str,
        author_id: Optional[int] = None,
    ) -> PullRequestRef:
        if author_id is None and author_login.lower() in self.users:
            author_id = self.users[author_login.lower()].id
        pull_request = PullRequestRef(
            owner=owner,
            repo=repo,
            number=number,
            head_sha=head_sha,
            author_login=author_login,
            author_id=author_id,
        )
        self.pull_requests[(owner.lower(), repo.lower(), number)] = pull_request
        return pull_request

    def close_pull_request(self, owner: str, repo: str, number: int) -> None:
        self.pull_requests[(owner.lower(), repo.lower(), number)].state = "closed"

    def add_comment(self, owner: str, repo: str, issue_number: int, body: str, user: GitHubUser) -> IssueComment:
        """Post a comment as someone other than the bot."""
        comment = IssueComment(id=self._allocate_id(), body=body, user=user, created_at=_now(), updated_at=_now())
        self.comments.setdefault((owner.lower(), repo.lower(), issue_number), []).append(comment)
        return comment

    def check_runs_for(self, owner: str, repo: str, head_sha: str) -> list[CheckRun]:
        return [run for run in self.check_runs if run.head_sha == head_sha]

    def _allocate_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise GitHubError(self.fail_on[operation], f"Simulated failure in {operation}", operation)

    # --- GitHubClient ---

    def get_user(self, username: str) -> Optional[GitHubUser]:
        self._maybe_fail("get_user")
        return self.users.get(username.lower())

    def check_org_membership(self, org: str, username: str) -> str:
        self._maybe_fail("check_org_membership")
        if (org.lower(), username.lower()) in self.memberships:
            return MEMBERSHIP_ACTIVE
        return MEMBERSHIP_NOT_MEMBER

    def get_repository_permission_level(self, owner: str, repo: str, username: str) -> str:
        self._maybe_fail("get_repository_permission_level")
        return self.permissions.get((owner.lower(), repo.lower(), username.lower()), "none")

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
        self._maybe_fail("create_check_run")
        started = _now()
        run_id = self._allocate_id()
        check_run = CheckRun(
            id=run_id,
            head_sha=head_sha,
            name=name,
            status=status,
            conclusion=conclusion,
            output=CheckRunOutput(title=title, summary=summary),
            started_at=started,
            completed_at=started if status == "completed" else None,
            html_url=f"https://github.com/{owner}/{repo}/runs/{run_id}",
        )
        self.check_runs.append(check_run)
        return check_run

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
        self._maybe_fail("update_check_run")
        for check_run in self.check_runs:
            if check_run.id == check_run_id:
                if status is not None:
                    check_run.status = status
                    if status == "completed":
                        check_run.completed_at = _now()
                if conclusion is not None:
                    check_run.conclusion = conclusion
                if title is not None:
                    check_run.output.title = title
                if summary is not None:
                    check_run.output.summary = summary
                return check_run
        raise GitHubError(404, f"Check run {check_run_id} not found", "update_check_run")

    def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        self._maybe_fail("list_check_runs_for_ref")
        return self.check_runs_for(owner, repo, ref)

    def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> IssueComment:
        self._maybe_fail("create_comment")
        comment = IssueComment(
            id=self._allocate_id(),
            body=body,
            user=BOT_USER,
            created_at=_now(),
            updated_at=_now(),
        )
        self.comments.setdefault((owner.lower(), repo.lower(), issue_number), []).append(comment)
        return comment

    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        self._maybe_fail("update_comment")
        for thread in self.comments.values():
            for comment in thread:
                if comment.id == comment_id:
                    comment.body = body
                    comment.updated_at = _now()
                    return comment
        raise GitHubError(404, f"Comment {comment_id} not found", "update_comment")

    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        self._maybe_fail("delete_comment")
        for thread in self.comments.values():
            for index, comment in enumerate(thread):
                if comment.id == comment_id:
                    del thread[index]
                    return
        raise GitHubError(404, f"Comment {comment_id} not found", "delete_comment")

    def list_comments(self, owner: str, repo: str, issue_number: int) -> list[IssueComment]:
        self._maybe_fail("list_comments")
        return list(self.comments.get((owner.lower(), repo.lower(), issue_number), []))

    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequestRef]:
        self._maybe_fail("get_pull_request")
        return self.pull_requests.get((owner.lower(), repo.lower(), number))

    def get_pull_request_head_sha(self, owner: str, repo: str, number: int) -> str:
        self._maybe_fail("get_pull_request_head_sha")
        return super().get_pull_request_head_sha(owner, repo, number)

    def list_open_pull_requests_for_organization(self, owner: str) -> list[PullRequestRef]:
        self._maybe_fail("list_open_pull_requests_for_organization")
        return [
            pull_request
            for (pr_owner, _, _), pull_request in self.pull_requests.items()
            if pr_owner == owner.lower() and pull_request.state == "open"
        ]

    def observe_pull_request(self, pull_request: PullRequestRef) -> None:
        """Mirror a PR from a webhook so later rechecks can list it."""
        key = (pull_request.owner.lower(), pull_request.repo.lower(), pull_request.number)
        self.pull_requests[key] = pull_request
