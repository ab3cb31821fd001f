# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/telecom_ops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables (if missing) and the default Director account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Seed demo staff, articles (ART001...) and clients for the dashboard.
#
# Users:
# - python -m flask users list [--role Advisor]
# - python -m flask users create --username jdoe --email jdoe@telecom.local --role Advisor ...
#
# Anomalies:
# - python -m flask anomalies scan --advisor-id 3 [--days 30]
#   Run the anomaly rules over one advisor's recent sales.
# - python -m flask anomalies scan-all [--days 30]
#   Run the anomaly rules for every advisor.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
# - python -m flask maintenance mark-overdue

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Article, Client, User
from .models.auth import ROLE_ADVISOR, ROLE_AGENT, ROLE_CONTROLLER, ROLE_DIRECTOR, ROLES
from .services import anomaly_service, invoice_service, session_service
from .services.auth_service import PasswordValidationError, create_user
from .services.catalog_service import REASON_ADJUSTMENT, apply_stock_delta
from .validation import ConflictError, NotFoundError, ValidationError


DEFAULT_PASSWORD = "Password123!"

DEMO_USERS = [
    ("director", "director@telecom.local", "Nadia", "Benali", ROLE_DIRECTOR),
    ("controller", "controller@telecom.local", "Karim", "Haddad", ROLE_CONTROLLER),
    ("agent", "agent@telecom.local", "Samir", "Mansouri", ROLE_AGENT),
    ("advisor1", "advisor1@telecom.local", "Lina", "Cherif", ROLE_ADVISOR),
    ("advisor2", "advisor2@telecom.local", "Yacine", "Bouzid", ROLE_ADVISOR),
]

# code, name, category, service, client_type, price_cents, stock (None = untracked)
DEMO_ARTICLES = [
    ("ART001", "Fibre Modem FM-200", "Hardware", "Internet", "Residential", 159000, 10),
    ("ART002", "4G Router LTE-X", "Hardware", "Internet", "Professional", 890000, 25),
    ("ART003", "IP Desk Phone D10", "Hardware", "Telephone", "Professional", 450000, 40),
    ("ART004", "Fibre 100 Mbps", "Subscription", "Internet", "Residential", 240000, None),
    ("ART005", "Fibre 1 Gbps Pro", "Subscription", "Internet", "Professional", 1250000, None),
    ("ART006", "Fixed Line Unlimited", "Subscription", "Telephone", "Residential", 120000, None),
]

DEMO_CLIENTS = [
    ("Amine Saidi", "0550123456", "Residential", "Algiers"),
    ("Atlas Logistics SARL", "0661987654", "Professional", "Oran"),
    ("Meriem Kaci", "0770456789", "Residential", "Constantine"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for the default Director')
@with_appcontext
def init_system(password):
    """
    Create missing tables and the default Director account.

    Idempotent: existing tables and users are left alone.
    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing telecom operations backend...")
    db.create_all()
    click.echo("PASS Schema ready")

    username, email, first, last, role = DEMO_USERS[0]
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"WARN  User '{username}' already exists, skipping...")
    else:
        try:
            create_user(username, email, password, first_name=first, last_name=last, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{username}': {str(e)}")
            return

    click.echo("\nDONE System initialized. Log in as 'director' and change the password.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@system_group.command('seed-demo')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for seeded users')
@with_appcontext
def seed_demo(password):
    """Seed demo staff, catalog articles and clients. Existing rows are skipped."""
    db.create_all()

    director = None
    for username, email, first, last, role in DEMO_USERS:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            director = director or (existing if role == ROLE_DIRECTOR else None)
            continue
        user = create_user(username, email, password, first_name=first, last_name=last, role=role)
        if role == ROLE_DIRECTOR:
            director = user
        click.echo(f"PASS Created user: {username} ({role})")

    actor_id = director.id if director else None

    for code, name, category, service, client_type, price_cents, stock in DEMO_ARTICLES:
        if db.session.query(Article).filter_by(code=code).first():
            click.echo(f"WARN  Article '{code}' already exists, skipping...")
            continue
        article = Article(
            code=code,
            name=name,
            full_name=name,
            category=category,
            service=service,
            client_type=client_type,
            price_cents=price_cents,
            stock_quantity=0 if stock is not None else None,
            is_active=True,
        )
        db.session.add(article)
        db.session.flush()
        if stock:
            apply_stock_delta(article, stock, reason=REASON_ADJUSTMENT, actor_id=actor_id, note="Demo seed")
        click.echo(f"PASS Created article: {code} {name}")

    for name, phone, client_type, location in DEMO_CLIENTS:
        if db.session.query(Client).filter_by(phone=phone).first():
            continue
        db.session.add(Client(
            name=name,
            phone=phone,
            client_type=client_type,
            location=location,
            created_by_user_id=actor_id,
        ))
        click.echo(f"PASS Created client: {name}")

    db.session.commit()
    click.echo(f"\nDONE Demo data seeded. All demo users share the password: {password}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, first_name, last_name, password, role):
    """
    Create a new user.

    Password must be 8+ chars with uppercase, lowercase, digit and special char.
    """
    try:
        user = create_user(
            username,
            email,
            password,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role and status."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Status'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<12} {user.status}")
    click.echo("=" * 90 + "\n")


@click.group('anomalies')
def anomalies_group():
    """Anomaly scan commands."""


@anomalies_group.command('scan')
@click.option('--advisor-id', type=int, required=True, help='Advisor user ID')
@click.option('--days', type=int, default=None, help='Trailing window in days (default: ANOMALY_WINDOW_DAYS)')
@with_appcontext
def scan_advisor_cli(advisor_id, days):
    """Run the anomaly rules over one advisor's recent sales."""
    try:
        result = anomaly_service.scan_advisor(advisor_id, days=days)
    except (NotFoundError, ValidationError) as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(
        f"PASS Advisor {advisor_id}: checked {result.checked_sales} sales, "
        f"avg {result.avg_sale_cents} cents, {result.new_flags} new flag(s)"
    )
    for flag in result.flags:
        click.echo(f"     [{flag.severity}] sale {flag.sale_id}: {flag.title}")


@anomalies_group.command('scan-all')
@click.option('--days', type=int, default=None, help='Trailing window in days (default: ANOMALY_WINDOW_DAYS)')
@with_appcontext
def scan_all_cli(days):
    """Run the anomaly rules for every advisor."""
    advisors = db.session.query(User).filter_by(role=ROLE_ADVISOR).order_by(User.id.asc()).all()
    total = 0
    for advisor in advisors:
        result = anomaly_service.scan_advisor(advisor.id, days=days)
        total += result.new_flags
        click.echo(f"PASS {advisor.username}: {result.checked_sales} sales, {result.new_flags} new flag(s)")
    click.echo(f"DONE {len(advisors)} advisor(s) scanned, {total} new flag(s)")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked sessions older than the window."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} session(s) older than {older_than_days} days.")


@maintenance_group.command('mark-overdue')
@with_appcontext
def mark_overdue_cli():
    """Move Pending invoices past their due date to Overdue."""
    count = invoice_service.mark_overdue()
    click.echo(f"Marked {count} invoice(s) overdue.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(anomalies_group)
    app.cli.add_command(maintenance_group)
