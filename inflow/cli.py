"""
InflowHub tenancy — operator CLI.

Inspect what the tenancy core resolves for a user or organization and
run an orphan backfill by hand. Reads Supabase credentials from the
environment variables named in config/tenancy.yaml (a .env file in the
working directory is loaded first). Inspecting another user's tenants
needs a key that bypasses row-level security.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from inflow.config.loader import load_tenancy_config
from inflow.config.schema import TenancyConfig
from inflow.exceptions import TenancyConfigError
from inflow.integrations.supabase_client import TenantStore
from inflow.observability.logging_config import configure_logging
from inflow.tenancy.models import Role, User
from inflow.tenancy.permissions import AuthorizationMatrix, Module
from inflow.tenancy.preferences import MemoryPreferenceStore
from inflow.tenancy.reconciler import OrphanReconciler
from inflow.tenancy.resolver import TenantResolver
from inflow.tenancy.subscription import SubscriptionGate

load_dotenv()

app = typer.Typer(
    name="inflow",
    help="InflowHub tenancy core - tenants, roles and subscriptions",
)
console = Console()

ConfigOption = typer.Option(None, "--config", help="Path to tenancy.yaml")


def _get_config(config_path: Optional[Path]) -> TenancyConfig:
    """Load config, with a friendly error on failure."""
    try:
        return load_tenancy_config(config_path)
    except TenancyConfigError as e:
        console.print(Panel(
            f"[red]{e}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


async def _connect(config: TenancyConfig) -> TenantStore:
    try:
        return await TenantStore.from_config(config)
    except EnvironmentError as e:
        console.print(Panel(
            f"[red]{e}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


# =========================================================================
# Commands
# =========================================================================


@app.command()
def orgs(
    user_id: str = typer.Argument(..., help="Auth user id"),
    config_path: Optional[Path] = ConfigOption,
):
    """Resolve a user's organizations, current tenant and role."""
    configure_logging(level=logging.WARNING)

    async def _run():
        config = _get_config(config_path)
        store = await _connect(config)
        resolver = TenantResolver(
            store, MemoryPreferenceStore(), retry=config.provisioning_retry
        )
        context = await resolver.set_user(User(id=user_id))

        if not context.organizations:
            console.print(f"[yellow]No organizations found for {user_id}[/]")
            return

        table = Table(title=f"Organizations for {user_id}")
        table.add_column("Current", style="green")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Slug", style="white")
        table.add_column("Owner", style="yellow")

        for org in context.organizations:
            table.add_row(
                "●" if org.id == context.current_organization_id else "",
                org.id,
                org.name,
                org.slug,
                "yes" if org.is_owned_by(user_id) else "",
            )

        console.print(table)
        role = context.user_role.value if context.user_role else "-"
        console.print(f"Role in current organization: [bold]{role}[/]")

    asyncio.run(_run())


@app.command()
def permissions(
    role: Role = typer.Argument(..., help="admin, manager or user"),
):
    """Print the permission matrix for a role."""
    matrix = AuthorizationMatrix(role)

    table = Table(title=f"Permissions - {role.value}")
    table.add_column("Module", style="cyan")
    table.add_column("Actions", style="white")

    for module in Module:
        actions = matrix.list_actions(module)
        table.add_row(module.value, ", ".join(actions) if actions else "[dim]-[/]")

    console.print(table)


@app.command()
def subscription(
    organization_id: str = typer.Argument(..., help="Organization id"),
    config_path: Optional[Path] = ConfigOption,
):
    """Show the derived subscription state and the server premium check."""
    configure_logging(level=logging.WARNING)

    async def _run():
        config = _get_config(config_path)
        store = await _connect(config)
        gate = SubscriptionGate(
            store, trial_warning_days=config.subscription.trial_warning_days
        )
        await gate.on_organization_change(organization_id)
        state = gate.state
        server_premium = await gate.check_premium_access(organization_id)

        sub = state.subscription
        console.print(Panel(
            f"Plan: {sub.plan_type.value if sub else '-'}\n"
            f"Status: {sub.status.value if sub else '-'}\n"
            f"Lifecycle: [bold]{state.lifecycle.value}[/]\n"
            f"Active: {state.is_active}\n"
            f"Premium: {state.is_premium}\n"
            f"Trial expired: {state.is_trial_expired}\n"
            f"Days left in trial: {state.days_left_in_trial}\n"
            f"Trial ending soon: {state.trial_ending_soon}\n"
            f"Server premium access: {server_premium}",
            title=f"Subscription: {organization_id}",
        ))

    asyncio.run(_run())


@app.command()
def reconcile(
    user_id: str = typer.Argument(..., help="Auth user id"),
    organization_id: str = typer.Argument(..., help="Organization to assign orphans to"),
    config_path: Optional[Path] = ConfigOption,
):
    """Assign a user's records that have no organization to ORGANIZATION_ID."""
    configure_logging()

    async def _run():
        config = _get_config(config_path)
        store = await _connect(config)
        reconciler = OrphanReconciler(store, config.reconciler.tables)
        report = await reconciler.reconcile(user_id, organization_id)

        table = Table(title=f"Orphan backfill → {organization_id}")
        table.add_column("Table", style="cyan")
        table.add_column("Fixed", style="green")

        for orphan in reconciler.tables:
            if orphan.table in report.failed:
                table.add_row(orphan.table, "[red]failed[/]")
            else:
                table.add_row(orphan.table, str(report.fixed.get(orphan.table, 0)))

        console.print(table)
        if not report.succeeded:
            raise typer.Exit(code=1)

    asyncio.run(_run())


if __name__ == "__main__":
    app()
