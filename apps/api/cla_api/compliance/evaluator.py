"""CLA compliance decisions.

``evaluate`` is pure: every fact it needs is fetched beforehand, so the same
inputs always produce the same Decision. Evaluation order, first match wins:

1. organization inactive            -> inactive        (success)
2. author on the bypass list        -> bypass          (success)
3. personal account, author is owner -> account_owner  (success)
4. organization, author is a member -> org_member      (success)
5. no CLA published                 -> cla_unconfigured (failure)
6. signed current / older / never   -> signed (success) / needs_resign / unsigned (failure)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

CHECK_RUN_NAME = "CLA Bot / Contributor License Agreement"
VERSION_LABEL_LENGTH = 7


class DecisionKind(str, Enum):
    INACTIVE = "inactive"
    BYPASS = "bypass"
    ACCOUNT_OWNER = "account_owner"
    ORG_MEMBER = "org_member"
    CLA_UNCONFIGURED = "cla_unconfigured"
    SIGNED = "signed"
    NEEDS_RESIGN = "needs_resign"
    UNSIGNED = "unsigned"


PASSING_KINDS = frozenset(
    {
        DecisionKind.INACTIVE,
        DecisionKind.BYPASS,
        DecisionKind.ACCOUNT_OWNER,
        DecisionKind.ORG_MEMBER,
        DecisionKind.SIGNED,
    }
)


@dataclass(frozen=True)
class OrgFacts:
    """The slice of an organization the evaluator reads."""

    slug: str
    name: str
    is_active: bool
    account_type: str  # organization, user
    account_id: Optional[str]
    cla_text_sha256: Optional[str]
    has_cla_text: bool

    @classmethod
    def from_model(cls, org) -> "OrgFacts":
        return cls(
            slug=org.github_org_slug,
            name=org.name or org.github_org_slug,
            is_active=bool(org.is_active),
            account_type=org.github_account_type,
            account_id=org.github_account_id,
            cla_text_sha256=org.cla_text_sha256,
            has_cla_text=bool((org.cla_text or "").strip()),
        )

    @property
    def cla_configured(self) -> bool:
        return bool(self.cla_text_sha256) and self.has_cla_text


@dataclass(frozen=True)
class SignatureStatus:
    signed_current: bool = False
    signed_previous: bool = False

    @classmethod
    def from_hashes(cls, signed_hashes: set, current_sha256: Optional[str]) -> "SignatureStatus":
        signed_current = current_sha256 is not None and current_sha256 in signed_hashes
        signed_previous = any(digest != current_sha256 for digest in signed_hashes)
        return cls(signed_current=signed_current, signed_previous=signed_previous)


@dataclass(frozen=True)
class ComplianceFacts:
    """Pre-fetched facts about one PR author."""

    author_login: str
    author_id: Optional[str] = None
    bypass_match: bool = False
    account_owner_match: bool = False
    membership_status: Optional[str] = None  # active, not_member, or None when not looked up
    signature_status: SignatureStatus = SignatureStatus()


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    conclusion: str  # success, failure
    title: str
    summary: str
    version_label: Optional[str] = None

    @property
    def passing(self) -> bool:
        return self.conclusion == "success"

    @property
    def needs_prompt(self) -> bool:
        return not self.passing


def version_label(sha256: Optional[str]) -> Optional[str]:
    """Short CLA version shown to contributors."""
    if not sha256:
        return None
    return sha256[:VERSION_LABEL_LENGTH]


def is_account_owner(org: OrgFacts, author_login: str, author_id: Optional[str]) -> bool:
    """Personal-account owner: account id match, else login equals the slug."""
    if org.account_type != "user":
        return False
    if org.account_id and author_id:
        return str(org.account_id) == str(author_id)
    return author_login.lower() == org.slug.lower()


def evaluate(org: OrgFacts, facts: ComplianceFacts) -> Decision:
    """Decide the CLA outcome for one PR author."""
    author = facts.author_login

    if not org.is_active:
        return Decision(
            kind=DecisionKind.INACTIVE,
            conclusion="success",
            title="CLA: Bot deactivated",
            summary=f"The CLA bot is deactivated for **{org.name}**. This check passes automatically.",
        )

    if facts.bypass_match:
        return Decision(
            kind=DecisionKind.BYPASS,
            conclusion="success",
            title="CLA: Bypassed",
            summary=f"@{author} is on the CLA bypass list for **{org.name}**.",
        )

    if org.account_type == "user" and facts.account_owner_match:
        return Decision(
            kind=DecisionKind.ACCOUNT_OWNER,
            conclusion="success",
            title="CLA: Repository owner",
            summary=f"@{author} owns this account. No CLA signature is required.",
        )

    if org.account_type == "organization" and facts.membership_status == "active":
        return Decision(
            kind=DecisionKind.ORG_MEMBER,
            conclusion="success",
            title="CLA: Org member",
            summary=f"@{author} is a member of **{org.name}**. No CLA signature is required.",
        )

    if not org.cla_configured:
        return Decision(
            kind=DecisionKind.CLA_UNCONFIGURED,
            conclusion="failure",
            title="CLA: Configuration required",
            summary=(
                f"**{org.name}** has not published a Contributor License Agreement yet. "
                "A maintainer must publish one before contributions can be validated."
            ),
        )

    label = version_label(org.cla_text_sha256)
    status = facts.signature_status

    if status.signed_current:
        return Decision(
            kind=DecisionKind.SIGNED,
            conclusion="success",
            title="CLA: Signed",
            summary=f"@{author} has signed the current CLA (version `{label}`).",
            version_label=label,
        )

    if status.signed_previous:
        return Decision(
            kind=DecisionKind.NEEDS_RESIGN,
            conclusion="failure",
            title="CLA: Re-signing required",
            summary=(
                f"The CLA for **{org.name}** was updated (version `{label}`) since @{author} last signed. "
                "Re-signing is required."
            ),
            version_label=label,
        )

    return Decision(
        kind=DecisionKind.UNSIGNED,
        conclusion="failure",
        title="CLA: Signature required",
        summary=f"@{author} must sign the Contributor License Agreement (version `{label}`) for **{org.name}**.",
        version_label=label,
    )
