"""Flask CLI commands: ``flask create-admin``, ``flask sync-db``, ``flask sweep-uploads``."""
import asyncio
from datetime import datetime, timedelta

import click
from flask import current_app
from sqlalchemy import Boolean, DateTime, Float, Integer, inspect, text
from werkzeug.security import generate_password_hash

from .extensions import db
from .models import AppSetting, Contribution, User
from .storage import find_orphans

MODELS = [User, Contribution, AppSetting]


def _sql_type(column) -> str:
    if isinstance(column.type, Integer):
        return "INTEGER"
    if isinstance(column.type, Boolean):
        return "BOOLEAN"
    if isinstance(column.type, DateTime):
        return "DATETIME"
    if isinstance(column.type, Float):
        return "FLOAT"
    return "TEXT"


def sync_db() -> list:
    """Ensure all tables exist and add missing nullable columns.

    Returns the ``table.column`` names that were added.
    """
    insp = inspect(db.engine)
    existing_tables = insp.get_table_names()
    added = []

    missing = [m for m in MODELS if m.__tablename__ not in existing_tables]
    if missing:
        current_app.logger.info("Creating tables: %s", ", ".join(m.__tablename__ for m in missing))
        db.create_all()

    for model in MODELS:
        table_name = model.__tablename__
        if table_name not in existing_tables:
            continue
        existing_cols = {col["name"] for col in insp.get_columns(table_name)}
        for column in model.__table__.columns:
            if column.name in existing_cols:
                continue
            if not column.nullable:
                current_app.logger.warning(
                    "Cannot add NOT NULL column %s.%s automatically; use a migration", table_name, column.name
                )
                continue
            sql_type = _sql_type(column)
            current_app.logger.info("Adding missing column: %s.%s (%s)", table_name, column.name, sql_type)
            with db.engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column.name} {sql_type}"))
            added.append(f"{table_name}.{column.name}")
    return added


def sweep_uploads(storage, store, grace_hours: int, dry_run: bool = False) -> list:
    """Delete uploads no contribution references, older than the grace period."""
    urls = asyncio.run(store.referenced_urls())
    referenced = {name for name in (storage.name_for(url) for url in urls) if name}
    cutoff = datetime.now() - timedelta(hours=grace_hours)
    orphans = find_orphans(storage.list_objects(), referenced, cutoff)
    for name in orphans:
        if dry_run:
            current_app.logger.info("Would delete orphaned upload %s", name)
            continue
        try:
            storage.delete(name)
        except OSError:
            current_app.logger.exception("Error deleting orphaned upload %s", name)
            continue
        current_app.logger.info("Deleted orphaned upload %s", name)
    return orphans


def register_commands(app):
    @app.cli.command("create-admin")
    @click.option("--username", prompt=True)
    @click.option("--email", prompt=True)
    @click.password_option()
    def create_admin(username, email, password):
        """Create a reviewer account."""
        email = email.strip().lower()
        if User.query.filter((User.email == email) | (User.username == username)).first():
            raise click.ClickException("Username or email already exists.")
        db.session.add(User(
            username=username.strip(),
            email=email,
            password=generate_password_hash(password),
            role="admin",
        ))
        db.session.commit()
        click.echo(f"Admin '{username}' created.")

    @app.cli.command("sync-db")
    def sync_db_command():
        """Create missing tables and columns."""
        added = sync_db()
        click.echo(f"Database schema is now synchronized ({len(added)} column(s) added).")

    @app.cli.command("sweep-uploads")
    @click.option("--grace-hours", type=int, default=None, help="Keep files younger than this")
    @click.option("--dry-run", is_flag=True, help="List orphans without deleting")
    def sweep_uploads_command(grace_hours, dry_run):
        """Delete uploaded photos that no contribution references."""
        svc = current_app.extensions["plastic_watch"]
        if grace_hours is None:
            grace_hours = current_app.config["ORPHAN_GRACE_HOURS"]
        orphans = sweep_uploads(svc.storage, svc.store, grace_hours, dry_run=dry_run)
        verb = "Found" if dry_run else "Deleted"
        click.echo(f"{verb} {len(orphans)} orphaned upload(s).")
