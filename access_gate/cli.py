from datetime import timedelta

import click
from flask import current_app

from .services import links, prep
from .services.tokens import issue_session


def register_cli(app):
    @app.cli.command('create-link')
    @click.option('--target', 'target_id', required=True, help='content id the link unlocks')
    @click.option('--mode', type=click.Choice(['free', 'paid']), default='free')
    @click.option('--hours', type=float, default=None, help='lifetime in hours')
    @click.option('--minutes', type=float, default=0)
    @click.option('--permanent', is_flag=True, help='never expires')
    @click.option('--user', 'users', multiple=True, help='allowed user id (repeatable)')
    @click.option('--group-key', 'group_keys', multiple=True, help='label:key (repeatable)')
    def create_link_cmd(target_id, mode, hours, minutes, permanent, users, group_keys):
        """Create a share link and print its URL."""
        s = current_app.extensions['access_gate']
        keys = []
        for raw in group_keys:
            label, _, key = raw.partition(':')
            if not key:
                label, key = 'group', label
            keys.append({'label': label, 'key': key})
        link = links.create_link(
            target_id, mode, hours,
            ttl_minutes=minutes, permanent=permanent,
            allowed_users=users, group_keys=keys,
            group_key_secret=s.group_key_secret,
            default_ttl_hours=s.default_link_ttl_hours,
        )
        click.echo(f"token:      {link.token}")
        click.echo(f"url:        {s.share_url(link.token)}")
        click.echo(f"expires_at: {link.expires_at_utc.isoformat() if link.expires_at_utc else 'never'}")

    @app.cli.command('issue-session')
    @click.option('--user', 'user_id', required=True)
    @click.option('--email', default=None)
    @click.option('--hours', type=float, default=None)
    def issue_session_cmd(user_id, email, hours):
        """Mint a session token for manual testing."""
        s = current_app.extensions['access_gate']
        claims = {'id': user_id}
        if email:
            claims['email'] = email
        ttl = timedelta(hours=hours if hours is not None else s.session_ttl_hours)
        click.echo(issue_session(claims, ttl, secret=s.session_secret, algorithm=s.session_algorithm))

    @app.cli.command('prep-archive-expired')
    def prep_archive_expired_cmd():
        """Archive PrepAccess windows whose expiry has passed."""
        n = prep.archive_expired()
        click.echo(f"archived {n}")
