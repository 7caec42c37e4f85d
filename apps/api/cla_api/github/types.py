"""Subset of GitHub API shapes the bot consumes."""

from dataclasses import dataclass, field
from typing import Optional

# Org membership
MEMBERSHIP_ACTIVE = "active"
MEMBERSHIP_PENDING = "pending"
MEMBERSHIP_NOT_MEMBER = "not_member"

# Collaborator permission levels, strongest first
PERMISSION_LEVELS = ("admin", "maintain", "write", "triage", "read", "none")
RECHECK_PERMISSIONS = frozenset({"admin", "maintain", "write"})


@dataclass
class GitHubUser:
    login: str
    id: int
    avatar_url: str = ""
    html_url: str = ""
    type: str = "User"  # User, Organization, Bot


@dataclass
class CheckRunOutput:
    title: str
    summary: str


@dataclass
class CheckRun:
    id: int
    head_sha: str
    name: str
    status: str  # queued, in_progress, completed
    conclusion: Optional[str] = None  # success, failure, neutral, ...
    output: CheckRunOutput = field(default_factory=lambda: CheckRunOutput("", ""))
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    html_url: str = ""


@dataclass
class IssueComment:
    id: int
    body: str
    user: GitHubUser
    created_at: str = ""
    updated_at: str = ""
    html_url: str = ""


@dataclass
class PullRequestRef:
    """An open (or fetched) pull request, enough to re-run compliance on it."""

    owner: str
    repo: str
    number: int
    head_sha: str
    author_login: str
    author_id: Optional[int] = None
    state: str = "open"
