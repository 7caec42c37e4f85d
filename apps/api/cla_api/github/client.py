"""GitHub gateway interface shared by the HTTP client and the in-memory double."""

from abc import ABC, abstractmethod
from typing import Optional

from cla_api.github.comment_ownership import find_latest_managed_comment
from cla_api.github.types import CheckRun, GitHubUser, IssueComment, PullRequestRef


class GitHubError(Exception):
    """A GitHub API call failed."""

    def __init__(self, status_code: int, message: str, operation: Optional[str] = None):
        super().__init__(f"GitHub API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.operation = operation


class GitHubClient(ABC):
    """Operations the CLA bot performs against GitHub.

    Callers only depend on this interface, never on the transport.
    """

    # --- Users ---

    @abstractmethod
    def get_user(self, username: str) -> Optional[GitHubUser]:
        """Get a user by login. Returns None if not found."""
        pass

    # --- Membership and permissions ---

    @abstractmethod
    def check_org_membership(self, org: str, username: str) -> str:
        """Return ``active`` or ``not_member``."""
        pass

    @abstractmethod
    def get_repository_permission_level(self, owner: str, repo: str, username: str) -> str:
        """Collaborator permission: admin, maintain, write, triage, read or none."""
        pass

    # --- Check runs ---

    @abstractmethod
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
        """Create a check run on a commit."""
        pass

    @abstractmethod
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
        """Update an existing check run."""
        pass

    @abstractmethod
    def list_check_runs_for_ref(self, owner: str, repo: str, ref: str) -> list[CheckRun]:
        """List check runs on a commit."""
        pass

    # --- Comments ---

    @abstractmethod
    def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> IssueComment:
        """Create a comment on a PR/issue."""
        pass

    @abstractmethod
    def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> IssueComment:
        """Replace the body of an existing comment."""
        pass

    @abstractmethod
    def delete_comment(self, owner: str, repo: str, comment_id: int) -> None:
        """Delete a comment."""
        pass

    @abstractmethod
    def list_comments(self, owner: str, repo: str, issue_number: int) -> list[IssueComment]:
        """List all comments on a PR/issue, oldest first."""
        pass

    def find_bot_comment(self, owner: str, repo: str, issue_number: int) -> Optional[IssueComment]:
        """Latest comment carrying the bot's ownership marker."""
        return find_latest_managed_comment(self.list_comments(owner, repo, issue_number))

    # --- Pull requests ---

    @abstractmethod
    def get_pull_request(self, owner: str, repo: str, number: int) -> Optional[PullRequestRef]:
        """Get pull request metadata. Returns None if not found."""
        pass

    def get_pull_request_head_sha(self, owner: str, repo: str, number: int) -> str:
        """Current head SHA of a pull request."""
        pull_request = self.get_pull_request(owner, repo, number)
        if pull_request is None:
            raise GitHubError(404, f"Pull request {owner}/{repo}#{number} not found", "get_pull_request_head_sha")
        return pull_request.head_sha

    @abstractmethod
    def list_open_pull_requests_for_organization(self, owner: str) -> list[PullRequestRef]:
        """Open pull requests across every repository the installation can see."""
        pass

    def observe_pull_request(self, pull_request: PullRequestRef) -> None:
        """Hook for clients that mirror PRs seen in webhooks. No-op against GitHub."""
        return None

    # --- Lifecycle ---

    def close(self) -> None:
        """Release transport resources. No-op for clients without any."""
        return None

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
