"""CLI commands for the CLA bot."""

import json

import click

from cla_api.compliance.recheck import TRIGGER_MANUAL, BulkRecheckOrchestrator, RecheckTrigger
from cla_api.compliance.scheduler import CeleryTaskScheduler
from cla_api.db.seed import seed_all
from cla_api.db.session import SessionLocal
from cla_api.errors import ClaBotError
from cla_api.github.factory import GitHubClientFactory
from cla_api.services.admin import Actor, OrganizationAdminService
from cla_api.settings import get_settings


@click.group()
def cli():
    """CLA bot CLI."""
    pass


@cli.command()
def seed():
    """Seed a demo organization with the default CLA."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        org = seed_all(db)
        click.echo(f"✓ Seeded {org.github_org_slug} (CLA {org.cla_text_sha256[:7]}).")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.argument("slug")
def recheck(slug):
    """Recheck every open PR of an organization now, without the worker."""
    settings = get_settings()
    db = SessionLocal()
    try:
        orchestrator = BulkRecheckOrchestrator(
            db,
            GitHubClientFactory(settings),
            settings.app_base_url,
            error_detail_limit=settings.recheck_error_detail_limit,
        )
        summary = orchestrator.run(RecheckTrigger(kind=TRIGGER_MANUAL, org_slug=slug))
    finally:
        db.close()

    click.echo(json.dumps(summary.to_dict(), indent=2))
    if summary.error:
        raise SystemExit(1)


@cli.command("publish-cla")
@click.argument("slug")
@click.argument("cla_file", type=click.File("r"))
def publish_cla(slug, cla_file):
    """Publish CLA text from a file and schedule a recheck of open PRs."""
    settings = get_settings()
    db = SessionLocal()
    try:
        service = OrganizationAdminService(db, GitHubClientFactory(settings), CeleryTaskScheduler(), settings)
        org, schedule = service.publish_cla(slug, cla_file.read(), Actor(github_username="cli"))
    except ClaBotError as e:
        click.echo(f"✗ {e.message}", err=True)
        raise SystemExit(1)
    finally:
        db.close()

    click.echo(f"✓ Published CLA for {slug}: {org.cla_text_sha256}")
    if schedule is None:
        click.echo("  CLA text unchanged, no recheck scheduled.")
    elif not schedule.scheduled:
        click.echo(f"  {schedule.error}", err=True)


if __name__ == "__main__":
    cli()
