# Overview: Flask CLI command groups for bootstrap, inspection, and the staff console.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderdesk (PowerShell: $env:FLASK_APP="orderdesk").
# - Use: python -m flask <group> <command> [options]
#
# Database / credentials:
# - python -m flask orders init-db
#   Create all tables (idempotent; use `flask db upgrade` for migrations).
# - python -m flask orders reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask orders hash-password
#   Print a bcrypt hash for ADMIN_PASSWORD_HASH / CHEF_PASSWORD_HASH.
#
# Inspection:
# - python -m flask orders list [--status pending] [--limit 20]
#   Recent orders, newest first.
#
# Staff console (talks to a running API over HTTP):
# - python -m flask staff monitor --url http://127.0.0.1:5000 --role chef
#   Poll every 10 s, bell + toast on new pending orders, repeating bell while
#   any order is pending. Keys: a = accept all, p = toggle accepting, q = quit.
# - python -m flask staff accept-all --url http://127.0.0.1:5000 --role admin
#   Accept every pending order once and exit.

import threading

import click
from flask.cli import with_appcontext

from .console.client import ApiError, OrdersApiClient
from .console.workflow import PREP_TIME_OPTIONS, PendingAlarm, StaffMonitor, format_toast, pending_orders
from .extensions import db
from .models.orders import ORDER_STATUSES
from .services import order_store
from .services.identity_service import hash_password
from .time_utils import to_utc_z


@click.group('orders')
def orders_group():
    """Order database bootstrap and inspection commands."""


@orders_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@orders_group.command('reset-db')
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
    db.create_all()
    click.echo("PASS Database reset")


@orders_group.command('hash-password')
@click.password_option('--password', help='Password to hash (prompted if omitted)')
def hash_password_command(password):
    """Print a bcrypt hash suitable for ADMIN_PASSWORD_HASH or CHEF_PASSWORD_HASH."""
    click.echo(hash_password(password))


@orders_group.command('list')
@click.option('--status', type=click.Choice(ORDER_STATUSES), help='Filter by status')
@click.option('--limit', type=int, default=20, show_default=True, help='Max rows')
@with_appcontext
def list_orders(status, limit):
    """List recent orders, newest first."""
    orders = order_store.recent_orders(limit, status)

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<34} {'Status':<11} {'Total':>9}  {'Customer':<24} {'Created'}")
    click.echo("="*100)
    for order in orders:
        customer = order.customer_name or order.customer_email or order.guest_id or "-"
        click.echo(
            f"{order.id:<34} {order.status:<11} {float(order.total_amount):>9.2f}  "
            f"{customer[:24]:<24} {to_utc_z(order.created_at)}"
        )
    click.echo("="*100)
    click.echo(f"{len(orders)} order(s)")


# =============================================================================
# STAFF CONSOLE
# =============================================================================

def _connect(url, role, password) -> OrdersApiClient:
    client = OrdersApiClient(url)
    try:
        client.login(role, password)
    except ApiError as e:
        client.close()
        raise click.ClickException(f"Login failed: {e}")
    return client


def _ring():
    click.echo("\a", nl=False)


def _toast(order):
    click.echo(click.style(f"BELL {format_toast(order)}", fg='yellow', bold=True))


def _staff_options(f):
    f = click.option('--password', prompt=True, hide_input=True, envvar='ORDERDESK_STAFF_PASSWORD',
                     help='Staff password')(f)
    f = click.option('--role', type=click.Choice(['admin', 'chef']), default='chef', show_default=True,
                     help='Staff role to log in as')(f)
    f = click.option('--url', default='http://127.0.0.1:5000', show_default=True, envvar='ORDERDESK_API_URL',
                     help='Order API base URL')(f)
    return f


@click.group('staff')
def staff_group():
    """Kitchen/admin console commands."""


@staff_group.command('monitor')
@_staff_options
@click.option('--paused', is_flag=True, help='Start with accepting orders OFF (auto-reject)')
@click.option('--interval', type=float, default=10.0, show_default=True, help='Poll interval in seconds')
def monitor(url, role, password, paused, interval):
    """Watch for new orders and approve them from the terminal."""
    client = _connect(url, role, password)
    console = StaffMonitor(
        client,
        notify=_toast,
        alarm=PendingAlarm(_ring),
        accepting=not paused,
        poll_interval=interval,
    )
    stop = threading.Event()
    poller = threading.Thread(target=console.run, args=(stop,), daemon=True)
    poller.start()

    click.echo(f"Monitoring {url} as {role}. Accepting orders: {'ON' if console.accepting else 'OFF'}")
    click.echo("Keys: a = accept all, p = toggle accepting, q = quit")
    try:
        while True:
            key = click.getchar().lower()
            if key == 'q':
                break
            if key == 'p':
                console.set_accepting(not console.accepting)
                state = 'ON' if console.accepting else 'OFF (auto-rejecting new orders)'
                click.echo(click.style(f"Accepting orders: {state}", fg='cyan'))
            elif key == 'a':
                if not console.accepting:
                    click.echo(click.style("Accept all is disabled while not accepting orders", fg='yellow'))
                    continue
                result = console.accept_all()
                color = 'red' if result.failed else 'green'
                click.echo(click.style(result.summary(), fg=color))
                try:
                    console.tick()
                except ApiError as e:
                    click.echo(click.style(f"Refresh failed: {e}", fg='red'))
    except (KeyboardInterrupt, EOFError):
        pass
    finally:
        stop.set()
        poller.join(timeout=interval + 1)
        client.close()
    click.echo("Stopped.")


@staff_group.command('accept-all')
@_staff_options
@click.option('--prep-time', type=click.Choice([str(m) for m in PREP_TIME_OPTIONS]), default=None,
              help='Prep time in minutes for every order (default: each order\'s own)')
def accept_all_command(url, role, password, prep_time):
    """Accept every pending order once."""
    client = _connect(url, role, password)
    try:
        console = StaffMonitor(client, notify=_toast, alarm=PendingAlarm(_ring))
        console.orders = client.list_all()
        if not pending_orders(console.orders):
            click.echo("No pending orders.")
            return
        result = console.accept_all(int(prep_time) if prep_time else None)
        click.echo(result.summary())
        for order_id, reason in sorted(result.failed.items()):
            click.echo(click.style(f"FAIL {order_id}: {reason}", fg='red'))
    except ApiError as e:
        raise click.ClickException(str(e))
    finally:
        client.close()


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(orders_group)
    app.cli.add_command(staff_group)
