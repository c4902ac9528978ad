from academy.app import create_app, db

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from academy.constants import CredentialType
from academy.models import Certificate
from academy.services.completion import (
    complete_webinar_for_enrolled_users,
    process_ended_webinars,
)
from academy.shared.certificates import (
    CertificateIssuanceError,
    CertificateNotFoundError,
    issue_for,
    reprocess_pending,
)
from academy.shared.storage import get_artifact_store


migrate = Migrate()


def create_academy_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_academy_app)

_TYPE_CHOICES = click.Choice([t.value for t in CredentialType], case_sensitive=False)


@cli.command("issue_cert")
@click.option("--user", "user_id", required=True, type=int)
@click.option("--type", "credential_type", required=True, type=_TYPE_CHOICES)
@click.option("--ref", "reference_id", required=True, type=int)
@click.option("--name", "recipient_name", default=None, help="Override recipient name")
def issue_cert(user_id: int, credential_type: str, reference_id: int, recipient_name):
    """Issue (or return the existing) certificate for a user."""
    try:
        cert = issue_for(
            user_id, credential_type, reference_id, recipient_name=recipient_name
        )
    except CertificateNotFoundError as exc:
        click.echo(str(exc), err=True)
        return
    except CertificateIssuanceError as exc:
        click.echo(f"Issuance failed: {exc}", err=True)
        return
    click.echo(f"{cert.certificate_no} {cert.certificate_url}")


@cli.command("process_webinars")
@click.option("--webinar", "webinar_id", type=int, default=None)
def process_webinars(webinar_id):
    """Complete ended webinars and issue their certificates."""
    if webinar_id is not None:
        try:
            processed = complete_webinar_for_enrolled_users(webinar_id)
        except LookupError as exc:
            click.echo(str(exc), err=True)
            return
    else:
        processed = process_ended_webinars()
    click.echo(f"new_completions={processed}")


@cli.command("reprocess_completions")
@click.option("--type", "credential_type", default="COURSE", type=_TYPE_CHOICES)
def reprocess_completions(credential_type: str):
    """Issue certificates for completions whose issuance previously failed."""
    issued = reprocess_pending(credential_type)
    click.echo(f"issued={issued}")


@cli.command("purge_orphan_certs")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned certificate PDFs without deleting"
)
def purge_orphan_certs(dry_run: bool):
    store = get_artifact_store()
    known = {
        key for (key,) in db.session.query(Certificate.certificate_url).all() if key
    }

    total = deleted = kept = errors = 0
    samples: list[str] = []
    for key in store.iter_keys("certificates/"):
        if not key.lower().endswith(".pdf"):
            continue
        total += 1
        if key in known:
            kept += 1
            continue
        if len(samples) < 5:
            samples.append(key)
        if dry_run:
            continue
        if store.delete(key):
            deleted += 1
        else:
            errors += 1
    summary = f"scanned={total} deleted={deleted} kept={kept} errors={errors}"
    for key in samples:
        click.echo(key)
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()
