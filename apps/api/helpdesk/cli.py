"""CLI tools for helpdesk administration."""

import click

from helpdesk.core.errors import ValidationError
from helpdesk.core.security import create_session_token
from helpdesk.db.base import Base
from helpdesk.db.enums import Role
from helpdesk.db.session import SessionLocal, engine
from helpdesk.services import user_service


@click.group()
def cli():
    """Helpdesk CLI tools."""
    pass


@cli.command("init-db")
def init_db():
    """
    Create every table for local development.

    Production databases are managed with `alembic upgrade head`.
    """
    import helpdesk.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    click.echo("✓ Tables created")


@cli.command("create-user")
@click.option("--name", required=True, help="Display name")
@click.option("--email", required=True, help="Email address (unique)")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.USER.value,
    show_default=True,
)
def create_user(name: str, email: str, role: str):
    """
    Create a user.

    Example:
        python -m helpdesk.cli create-user --name "Ana" --email ana@example.com --role analyst
    """
    db = SessionLocal()
    try:
        user = user_service.create_user(db, name=name, email=email, role=role)
        click.echo(f"✓ Created {user.role} {user.email}")
        click.echo(f"  ID: {user.id}")
    except ValidationError as e:
        db.rollback()
        raise click.ClickException(e.message)
    finally:
        db.close()


@cli.command("issue-token")
@click.option("--email", required=True, help="Email of an existing user")
def issue_token(email: str):
    """Print a session JWT for local API and WebSocket testing."""
    db = SessionLocal()
    try:
        user = user_service.get_user_by_email(db, email)
        if not user:
            raise click.ClickException(f"No user with email {email}")
        if not user.is_active:
            raise click.ClickException(f"User {email} is disabled")
        click.echo(create_session_token(user.id, user.role, user.token_version))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
