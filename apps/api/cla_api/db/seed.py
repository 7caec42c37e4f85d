"""Seed data for development and testing."""

import logging

from sqlalchemy.orm import Session

from cla_api.ledger.service import SignatureLedger

logger = logging.getLogger(__name__)

DEFAULT_CLA_MARKDOWN = """# Contributor License Agreement

Thank you for contributing. Before we can accept your contribution we need a
signed Contributor License Agreement ("CLA") on file for every contributor.

## Terms

1. **Definitions.** "You" means the copyright owner, or the legal entity
   authorized by the copyright owner, submitting a Contribution. A
   "Contribution" is any original work of authorship You intentionally submit
   for inclusion in the project.

2. **Copyright license.** You grant a perpetual, worldwide, non-exclusive,
   no-charge, royalty-free, irrevocable license to reproduce, prepare
   derivative works of, publicly display, sublicense and distribute Your
   Contributions.

3. **Patent license.** You grant a perpetual, worldwide, non-exclusive,
   no-charge, royalty-free, irrevocable patent license to make, use, sell and
   otherwise transfer Your Contributions.

4. **Authority.** You are legally entitled to grant the licenses above. If
   Your employer has rights to intellectual property You create, You have
   permission to contribute on its behalf.

5. **Originality.** Each Contribution is Your original creation.

By signing, You accept these terms for all present and future Contributions.
"""

DEMO_ADMIN = {
    "github_id": "1001",
    "github_username": "orgadmin",
    "name": "Org Admin",
    "email": "orgadmin@example.com",
    "role": "admin",
}
DEMO_ORG_SLUG = "demo-org"


def seed_demo_organization(db: Session):
    """Seed the demo admin user and an organization with the default CLA."""
    ledger = SignatureLedger(db)
    admin = ledger.upsert_user(**DEMO_ADMIN)

    org = ledger.get_organization_by_slug(DEMO_ORG_SLUG)
    if org is None:
        org = ledger.create_organization(
            DEMO_ORG_SLUG,
            name="Demo Org",
            admin_user_id=admin.id,
            cla_text=DEFAULT_CLA_MARKDOWN,
        )
        logger.info(f"Created demo organization {org.github_org_slug}")
    else:
        logger.info(f"Demo organization already exists: {org.github_org_slug}")

    db.commit()
    return org


def seed_all(db: Session):
    """Seed all initial data."""
    return seed_demo_organization(db)
