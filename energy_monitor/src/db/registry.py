"""
Panel registry collaborator backed by the relational database.

The monitor core only needs two capabilities from the registry: recording
that a panel was seen (``update_last_seen``) and listing panels for display
(``list_panels``). It never creates or deletes registry entries.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from energy_monitor.src.db.models import Panel
from energy_monitor.src.errors import RegistryError
from energy_monitor.src.models import PanelInfo, PanelStatus

logger = logging.getLogger(__name__)


def _panel_status(panel: Panel) -> PanelStatus:
    """Map the stored status column onto PanelStatus; unknown values are OFFLINE."""
    try:
        return PanelStatus(panel.status)
    except ValueError:
        logger.warning(
            "Panel %s has unknown status %r, treating as OFFLINE",
            panel.panel_code,
            panel.status,
        )
        return PanelStatus.OFFLINE


class PanelRegistry(Protocol):
    """Capabilities the monitor requires from the panel registry."""

    async def update_last_seen(
        self, panel_id: str, status: PanelStatus, timestamp: datetime
    ) -> None:
        """Record the panel's status and last-seen time."""
        ...

    async def list_panels(self) -> list[PanelInfo]:
        """Return all known panels ordered by floor."""
        ...


class SqlPanelRegistry:
    """Panel registry stored in the ``panels`` table.

    Args:
        session_factory: Factory producing AsyncSession instances.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def update_last_seen(
        self, panel_id: str, status: PanelStatus, timestamp: datetime
    ) -> None:
        """Update status and last_online for an existing panel.

        Unknown panels are left alone (logged at debug level).

        Raises:
            RegistryError: If the database update fails.
        """
        stmt = (
            update(Panel)
            .where(Panel.panel_code == panel_id)
            .values(status=str(status), last_online=timestamp)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise RegistryError(f"Failed to update panel {panel_id}: {exc}") from exc

        if result.rowcount == 0:
            logger.debug("Panel %s is not in the registry, nothing updated", panel_id)

    async def list_panels(self) -> list[PanelInfo]:
        """Return all panels ordered by floor.

        Raises:
            RegistryError: If the database query fails.
        """
        stmt = select(Panel).order_by(Panel.floor.asc(), Panel.panel_code.asc())
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                panels = result.scalars().all()
        except SQLAlchemyError as exc:
            raise RegistryError(f"Failed to list panels: {exc}") from exc

        return [
            PanelInfo(
                panel_id=panel.panel_code,
                location=panel.location,
                floor=panel.floor,
                status=_panel_status(panel),
                last_online=panel.last_online,
            )
            for panel in panels
        ]
