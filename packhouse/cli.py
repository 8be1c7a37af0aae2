# packhouse/cli.py

import click
from flask import current_app
from flask.cli import with_appcontext

from packhouse.provisioning_ext import get_provisioning


@click.command("reconcile-pending")
@click.option("--limit", default=50, show_default=True, help="Max queue entries to read.")
@with_appcontext
def reconcile_pending_command(limit):
    """Retry failed lot provisioning steps and linkbacks from the queue."""
    prov = get_provisioning()
    if prov is None:
        raise click.ClickException("database unavailable")

    summary = prov.reconciler.reconcile_pending(limit=limit)
    done = sum(1 for s in summary if s.get("complete"))
    for s in summary:
        if s.get("complete"):
            state = "ok"
        elif s.get("inFlight"):
            state = "running"
        else:
            state = "partial"
        click.echo(f"{s.get('orderNumber') or s['orderId']}: {state}")
    click.echo(f"{done}/{len(summary)} orders fully linked")
    current_app.logger.info("reconcile-pending: %d/%d orders fully linked", done, len(summary))


def register_cli(app):
    app.cli.add_command(reconcile_pending_command)
