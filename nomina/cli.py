"""Maintenance commands (``flask edit-sessions ...``)."""

from __future__ import annotations

import click
from flask.cli import AppGroup, with_appcontext

from nomina.extensions import db
from nomina.period_editing import expire_abandoned_sessions

edit_sessions_cli = AppGroup("edit-sessions", help="Period edit session maintenance.")


@edit_sessions_cli.command("expire")
@click.option("--ttl-minutes", type=int, default=None, help="Idle minutes before a session expires.")
@with_appcontext
def expire_command(ttl_minutes: int | None) -> None:
    """Expire abandoned period edit sessions."""
    expired = expire_abandoned_sessions(ttl_minutes)
    db.session.commit()
    click.echo(f"Expired {expired} edit session(s).")
