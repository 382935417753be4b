"""
Flask CLI commands for RBAC maintenance.

    flask rbac seed                 create indexes/tables and the default catalogue
    flask rbac sweep-expired        deactivate expired role assignments
    flask rbac check-default-role   exit non-zero when the default role is missing
"""

import json

import click
from flask import Flask, current_app
from flask.cli import AppGroup

from qa_rbac.database.adapters import DatabaseAdapter
from qa_rbac.services.role_service import RoleService
from qa_rbac.services.seed import RbacSeeder
from qa_rbac.services.user_role_service import UserRoleService
from qa_rbac.utils.error_handling import NotFoundError


rbac_cli = AppGroup('rbac', help="RBAC maintenance commands.")


@rbac_cli.command('seed')
def seed_command():
    """Create storage indexes and seed default permissions and roles."""
    current_app.injector.get(DatabaseAdapter).initialize()
    summary = current_app.injector.get(RbacSeeder).seed()
    click.echo(f"Seeded RBAC catalogue: {json.dumps(summary, sort_keys=True)}")


@rbac_cli.command('sweep-expired')
def sweep_expired_command():
    """Deactivate every role assignment whose expiry has passed."""
    count = current_app.injector.get(UserRoleService).deactivate_expired_roles()
    click.echo(f"Deactivated {count} expired role assignment(s)")


@rbac_cli.command('check-default-role')
def check_default_role_command():
    """Verify that the default role exists."""
    try:
        role = current_app.injector.get(RoleService).get_default_role()
    except NotFoundError as e:
        click.echo(e.message, err=True)
        raise SystemExit(1)
    click.echo(f"Default role '{role.name}' present ({role.id})")


def register_cli_commands(app: Flask) -> None:
    app.cli.add_command(rbac_cli)


__all__ = ['rbac_cli', 'register_cli_commands']
