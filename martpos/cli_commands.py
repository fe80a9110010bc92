"""
Flask CLI commands for account bootstrap.

Commands:
- flask create-super-admin: Create the platform super admin
- flask init-accounts: Create the configured super admin, default tenant and shop admin
"""

import re

import click
from flask import current_app

from martpos.exceptions import MartPosError
from martpos.services import get_services
from martpos.services.authorization import Principal

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def _principal_for(user):
    return Principal(
        user_id=user.user_id,
        tenant_id=user.tenant_id,
        email=user.email,
        role=user.role,
        status=user.status,
        name=user.full_name,
    )


def ensure_default_accounts(config):
    """
    Create the configured bootstrap accounts that do not exist yet.

    Returns:
        dict: what was created ({'superAdmin': bool, 'tenant': tenant_id or None})
    """
    services = get_services()
    created = {'superAdmin': False, 'tenant': None}

    if not services.credentials.super_admin_exists():
        services.auth.create_super_admin(
            config['SUPER_ADMIN_EMAIL'],
            config['SUPER_ADMIN_PASSWORD'],
            first_name=config.get('SUPER_ADMIN_FIRST_NAME'),
            last_name=config.get('SUPER_ADMIN_LAST_NAME'),
        )
        created['superAdmin'] = True

    tenant_name = config.get('DEFAULT_TENANT_NAME')
    if tenant_name and services.tenants.find_by_name(tenant_name) is None:
        admin = _principal_for(services.credentials.get_super_admin())
        result = services.auth.create_tenant_and_shop_admin(
            admin,
            tenant_name=tenant_name,
            shop_admin_email=config['DEFAULT_SHOP_ADMIN_EMAIL'],
            shop_admin_password=config['DEFAULT_SHOP_ADMIN_PASSWORD'],
            shop_admin_name=config.get('DEFAULT_SHOP_ADMIN_NAME'),
            plan=config.get('DEFAULT_TENANT_PLAN'),
        )
        created['tenant'] = result['tenant']['tenantId']

    return created


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('create-super-admin')
    @click.option('--email', prompt=True, help='Super admin email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Super admin password')
    @click.option('--first-name', default='Super', help='First name')
    @click.option('--last-name', default='Admin', help='Last name')
    def create_super_admin(email, password, first_name, last_name):
        """Create the platform super admin (once)."""
        if not re.match(EMAIL_PATTERN, email):
            click.echo(click.style('Invalid email. Use the format user@example.com', fg='red'))
            raise SystemExit(1)

        if len(password) < 8:
            click.echo(click.style('Password must be at least 8 characters.', fg='red'))
            raise SystemExit(1)

        try:
            result = get_services().auth.create_super_admin(email, password, first_name, last_name)
        except MartPosError as e:
            click.echo(click.style(f'{e.code}: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('\nSuper admin created.', fg='green', bold=True))
        click.echo(f'   Email: {result["email"]}')
        click.echo(f'   ID: {result["userId"]}')

    @app.cli.command('init-accounts')
    def init_accounts():
        """Create the deployment's default accounts if missing."""
        if not current_app.config.get('ADMIN_AUTO_CREATE', True):
            click.echo('ADMIN_AUTO_CREATE is false, skipping.')
            return

        try:
            created = ensure_default_accounts(current_app.config)
        except MartPosError as e:
            click.echo(click.style(f'{e.code}: {e.message}', fg='red'))
            raise SystemExit(1)

        if created['superAdmin']:
            click.echo(click.style(f'Super admin created: {current_app.config["SUPER_ADMIN_EMAIL"]}', fg='green'))
        else:
            click.echo('Super admin already exists.')
        if created['tenant']:
            click.echo(click.style(f'Default tenant created: {created["tenant"]}', fg='green'))
        else:
            click.echo('Default tenant already exists.')
