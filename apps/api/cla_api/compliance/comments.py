"""Markdown bodies for the comments the bot posts on pull requests."""

from typing import Optional
from urllib.parse import quote, urlencode

from cla_api.compliance.evaluator import Decision, DecisionKind, OrgFacts
from cla_api.github.comment_ownership import (
    KIND_RESIGN,
    KIND_UNCONFIGURED,
    KIND_UNSIGNED,
    marker,
)

UTM_PARAMS = {"utm_source": "github", "utm_medium": "pr_comment", "utm_campaign": "cla_bot"}


def _footer(app_base_url: str) -> str:
    return (
        "<sub>Built with love by [fiveonefour.com](https://fiveonefour.com?utm_source=github&utm_medium=pr_comment"
        f"&utm_campaign=cla_bot_branding) | [CLA Bot]({app_base_url}?utm_source=github&utm_medium=pr_comment"
        "&utm_campaign=cla_bot_branding) automates Contributor License Agreements for GitHub</sub>"
    )


def sign_url(app_base_url: str, org_slug: str, repo: Optional[str] = None, pr_number: Optional[int] = None) -> str:
    params = {}
    if repo and pr_number is not None:
        params["repo"] = repo
        params["pr"] = str(pr_number)
    params.update(UTM_PARAMS)
    return f"{app_base_url}/sign/{quote(org_slug)}?{urlencode(params)}"


def admin_url(app_base_url: str, org_slug: str) -> str:
    return f"{app_base_url}/admin/{quote(org_slug)}"


def unsigned_comment(
    pr_author: str,
    org: OrgFacts,
    version_label: str,
    app_base_url: str,
    is_resign: bool,
    repo: Optional[str] = None,
    pr_number: Optional[int] = None,
) -> str:
    """Prompt asking the author to sign, or re-sign, the CLA."""
    url = sign_url(app_base_url, org.slug, repo, pr_number)
    if is_resign:
        header = "### CLA Re-signing Required"
        greeting = (
            f"Hey @{pr_author}, thanks for continuing to contribute to **{org.name}**! "
            f"The Contributor License Agreement has been updated (version `{version_label}`) since you last signed. "
            "Before we can accept this contribution, we need you to review and re-sign the updated agreement."
        )
    else:
        header = "### Contributor License Agreement Required"
        greeting = (
            f"Hey @{pr_author}, thank you for your contribution to **{org.name}**! "
            "Before we can accept your changes, we need you to sign our Contributor License Agreement (CLA) "
            f"(version `{version_label}`). This is a one-time process that helps protect both you and the project."
        )

    return f"""{marker(KIND_RESIGN if is_resign else KIND_UNSIGNED)}
{header}

{greeting}

> **Why is this required?**
> The CLA ensures that contributions are properly licensed and that both contributors and maintainers are legally protected. It only takes a minute.

**[Sign the CLA]({url})**

Once you've signed, the status check on this PR will update automatically.

---

{_footer(app_base_url)}
"""


def unconfigured_comment(pr_author: str, org: OrgFacts, app_base_url: str) -> str:
    """Admin-facing notice that no CLA has been published."""
    return f"""{marker(KIND_UNCONFIGURED)}
### CLA setup in progress

Hey @{pr_author}, thanks for contributing to **{org.name}**.

This repository has not published a Contributor License Agreement yet, so we cannot validate signatures for external contributors at this time.

A maintainer must publish the CLA first: {admin_url(app_base_url, org.slug)}

<sub>Once the CLA is configured, this check will enforce contributor signing automatically.</sub>
"""


def render_prompt(
    decision: Decision,
    pr_author: str,
    org: OrgFacts,
    app_base_url: str,
    repo: Optional[str] = None,
    pr_number: Optional[int] = None,
) -> str:
    """Comment body for a failing decision."""
    if decision.kind == DecisionKind.CLA_UNCONFIGURED:
        return unconfigured_comment(pr_author, org, app_base_url)
    if decision.kind in (DecisionKind.UNSIGNED, DecisionKind.NEEDS_RESIGN):
        return unsigned_comment(
            pr_author,
            org,
            decision.version_label or "",
            app_base_url,
            is_resign=decision.kind == DecisionKind.NEEDS_RESIGN,
            repo=repo,
            pr_number=pr_number,
        )
    raise ValueError(f"No prompt comment for passing decision {decision.kind.value}")
