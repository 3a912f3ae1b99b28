"""
Orphan-record backfill.

Records created before the user's organization existed (or while it
was still being provisioned) carry a null organization_id. The
reconciler finds the signed-in user's rows with a null foreign key in
each tenant-scoped table and fills it with the current organization.

It only ever fills a missing key: the update repeats the IS NULL
condition, so a row that received an organization in the meantime is
left alone, and a second pass finds nothing to write.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from inflow.config.schema import DEFAULT_ORPHAN_TABLES, OrphanTableConfig
from inflow.exceptions import TenantStoreError
from inflow.integrations.supabase_client import TenantStore

logger = logging.getLogger(__name__)

OrphanTable = OrphanTableConfig

ORPHAN_TABLES: tuple[OrphanTable, ...] = tuple(
    OrphanTable(table=name) for name in DEFAULT_ORPHAN_TABLES
)


class ReconcileReport(BaseModel):
    """What one pass over the orphan tables did."""

    user_id: str
    organization_id: str
    fixed: dict[str, int] = Field(default_factory=dict)
    failed: list[str] = Field(default_factory=list)

    @property
    def total_fixed(self) -> int:
        return sum(self.fixed.values())

    @property
    def succeeded(self) -> bool:
        return not self.failed


class OrphanReconciler:
    """
    Fills null organization ids, one independent query + update per table.

    A failure on one table is logged and recorded in the report; the
    remaining tables are still attempted.
    """

    def __init__(
        self,
        store: TenantStore,
        tables: Optional[Iterable[OrphanTable]] = None,
    ):
        self.store = store
        self.tables: tuple[OrphanTable, ...] = (
            tuple(tables) if tables is not None else ORPHAN_TABLES
        )
        self._completed: set[tuple[str, str]] = set()
        # pair -> generation of the pass running for it
        self._in_flight: dict[tuple[str, str], tuple[int, int]] = {}
        self._epoch = 0
        self._user_epochs: dict[str, int] = {}

    async def _fix_table(
        self, orphan: OrphanTable, user_id: str, organization_id: str
    ) -> int:
        ids = await self.store.find_orphan_ids(
            orphan.table,
            user_id,
            foreign_key=orphan.foreign_key,
            owner_column=orphan.owner_column,
        )
        if not ids:
            return 0
        return await self.store.assign_organization(
            orphan.table,
            ids,
            organization_id,
            foreign_key=orphan.foreign_key,
        )

    async def reconcile(self, user_id: str, organization_id: str) -> ReconcileReport:
        """Run one pass over every configured table."""
        report = ReconcileReport(user_id=user_id, organization_id=organization_id)

        for orphan in self.tables:
            try:
                count = await self._fix_table(orphan, user_id, organization_id)
            except TenantStoreError as e:
                logger.error(f"Failed to reconcile orphans in {orphan.table}: {e}")
                report.failed.append(orphan.table)
                continue

            report.fixed[orphan.table] = count
            if count:
                logger.info(
                    "orphans_assigned",
                    extra={
                        "table": orphan.table,
                        "fixed": count,
                        "user_id": user_id,
                        "organization_id": organization_id,
                    },
                )

        logger.info(
            "orphan_reconcile_finished",
            extra={
                "user_id": user_id,
                "organization_id": organization_id,
                "fixed": report.total_fixed,
                "status": "ok" if report.succeeded else "partial",
            },
        )
        return report

    def _generation(self, user_id: str) -> tuple[int, int]:
        return self._epoch, self._user_epochs.get(user_id, 0)

    async def run_once(
        self, user_id: str, organization_id: str
    ) -> Optional[ReconcileReport]:
        """
        Reconcile a (user, organization) pair unless it already ran cleanly
        or is running right now. Returns None when skipped.

        A pass with failed tables leaves the pair eligible for the next trigger,
        and so does a pass that was still running when its user was forgotten.
        """
        key = (user_id, organization_id)
        if key in self._completed or key in self._in_flight:
            return None

        generation = self._generation(user_id)
        self._in_flight[key] = generation
        try:
            report = await self.reconcile(user_id, organization_id)
        finally:
            if self._in_flight.get(key) == generation:
                del self._in_flight[key]

        if report.succeeded and self._generation(user_id) == generation:
            self._completed.add(key)
        return report

    def forget(self, user_id: Optional[str] = None) -> None:
        """
        Allow pairs to run again (all pairs, or one user's on sign-out).

        Passes still in flight for the forgotten pairs will not mark them
        done, and a new pass for the same pair may start right away.
        """
        if user_id is None:
            self._epoch += 1
            self._completed.clear()
            self._in_flight.clear()
        else:
            self._user_epochs[user_id] = self._user_epochs.get(user_id, 0) + 1
            self._completed = {k for k in self._completed if k[0] != user_id}
            self._in_flight = {
                k: g for k, g in self._in_flight.items() if k[0] != user_id
            }
