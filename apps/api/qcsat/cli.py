"""CLI tools for CSAT integration operations."""

import asyncio
import json
import uuid

import click

from qcsat.core.redis_client import close_async_redis_client
from qcsat.db.models import Organization, Project
from qcsat.db.session import SessionLocal


def _run_with_queue(fn):
    """Run an async operation against the Redis job queue and close the client."""
    from qcsat.worker import build_job_queue

    async def runner():
        try:
            return await fn(build_job_queue(register_handlers=False))
        finally:
            await close_async_redis_client()

    return asyncio.run(runner())


@click.group()
def cli():
    """Q CSAT CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--slug", required=True, help="URL-friendly slug (lowercase, no spaces)")
@click.option("--project", "project_name", default=None, help="Optional first project name")
def create_org(name: str, slug: str, project_name: str | None):
    """
    Create an organization and, optionally, its first project.

    Example:
        python -m qcsat.cli create-org --name "Acme Corp" --slug "acme" --project "Checkout"
    """
    slug = slug.lower().strip()
    if not slug.replace("-", "").replace("_", "").isalnum():
        click.echo("❌ Slug must be alphanumeric (with optional hyphens/underscores)")
        return

    with SessionLocal() as db:
        if db.query(Organization).filter(Organization.slug == slug).first():
            click.echo(f"❌ Organization with slug '{slug}' already exists")
            return

        org = Organization(name=name, slug=slug)
        db.add(org)
        db.flush()
        project = None
        if project_name:
            project = Project(organization_id=org.id, name=project_name)
            db.add(project)
        db.commit()

        click.echo(f"✅ Created organization: {org.name} ({org.id})")
        if project:
            click.echo(f"✅ Created project: {project.name} ({project.id})")


@cli.command("import-ga4")
@click.option("--integration-id", required=True, help="GA4 integration UUID")
@click.option("--project-id", required=True, help="Project UUID")
@click.option("--file", "file_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="BigQuery export as a JSON array or newline-delimited JSON")
@click.option("--default-mapping/--no-default-mapping", default=True,
              help="Extract scores from satisfaction_rating events (default: on)")
def import_ga4(integration_id: str, project_id: str, file_path: str, default_mapping: bool):
    """Import a GA4 BigQuery export file."""
    from qcsat.schemas.events import GA4ImportRequest
    from qcsat.services import ga4_import_service

    with open(file_path, encoding="utf-8") as fh:
        content = fh.read().strip()
    if content.startswith("["):
        rows = json.loads(content)
    else:
        rows = [json.loads(line) for line in content.splitlines() if line.strip()]

    request = GA4ImportRequest(
        integration_id=uuid.UUID(integration_id),
        project_id=uuid.UUID(project_id),
        events=ga4_import_service.parse_bigquery_export(rows),
        mapping_config=ga4_import_service.default_mapping_config() if default_mapping else None,
    )
    with SessionLocal() as db:
        result = ga4_import_service.import_ga4_events(db, request)

    click.echo(
        f"Processed {result.processed}, skipped {result.skipped}, "
        f"created {result.csat_responses_created} CSAT responses"
    )
    for error in result.errors:
        click.echo(f"  ⚠️  row {error.index}: {error.error}")


@cli.command("queue-stats")
def queue_stats():
    """Show pending and dead-letter job counts."""
    async def op(queue):
        return await queue.get_queue_stats()

    stats = _run_with_queue(op)
    click.echo(f"pending={stats.pending} dead_letter={stats.dead_letter}")


@cli.command("retry-dead-letter")
@click.argument("job_id")
def retry_dead_letter(job_id: str):
    """Move a dead-lettered job back to the pending queue."""
    async def op(queue):
        return await queue.retry_dead_letter_job(job_id)

    if _run_with_queue(op):
        click.echo(f"✅ Re-queued {job_id}")
    else:
        click.echo(f"❌ Job {job_id} not found in dead-letter queue")


@cli.command("clear-dead-letter")
@click.confirmation_option(prompt="Delete every dead-letter job?")
def clear_dead_letter():
    """Delete all dead-letter jobs."""
    async def op(queue):
        return await queue.clear_dead_letter_queue()

    click.echo(f"✅ Cleared {_run_with_queue(op)} dead-letter jobs")


@cli.command("rotate-credentials")
def rotate_credentials():
    """
    Re-encrypt stored integration credentials with the current key.

    Run after moving the old key to CREDENTIALS_ENCRYPTION_KEY_PREVIOUS.
    """
    from qcsat.services import integration_service

    with SessionLocal() as db:
        rotated = integration_service.rotate_connection_credentials(db)
    click.echo(f"✅ Rotated {rotated} credentials")


@cli.command("set-webhook-secret")
@click.option("--integration-id", required=True, help="Integration UUID")
@click.option("--secret", default=None, help="Shared secret or public key (generated when omitted)")
def set_webhook_secret(integration_id: str, secret: str | None):
    """Store an integration's webhook secret (encrypted)."""
    from qcsat.core.security import generate_token
    from qcsat.services import integration_service

    generated = secret is None
    secret = secret or generate_token()
    with SessionLocal() as db:
        integration = integration_service.get_integration(db, uuid.UUID(integration_id))
        integration_service.set_webhook_secret(db, integration, secret)
        click.echo(f"✅ Webhook secret set for {integration.display_name}")

    if generated:
        click.echo(f"   Secret (shown once): {secret}")


if __name__ == "__main__":
    cli()
