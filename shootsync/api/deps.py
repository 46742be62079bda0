"""
Shoot Sync — Request dependencies.

Wires the stores and services once per app and resolves the calling owner
from the X-Owner-Email header set by the session layer in front of us.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from shootsync.config import settings
from shootsync.core.calendar_sync import AdapterFactory, CalendarEventSync
from shootsync.core.event_merger import UnifiedEventMerger
from shootsync.core.shoot_scheduler import ShootScheduler
from shootsync.data.db import CalendarCacheDB, ClientDB, IntegrationDB, ShootDB

logger = logging.getLogger(__name__)


@dataclass
class Services:
    shoot_db: ShootDB
    client_db: ClientDB
    cache_db: CalendarCacheDB
    integration_db: IntegrationDB
    calendar_sync: CalendarEventSync
    scheduler: ShootScheduler
    merger: UnifiedEventMerger


def build_services(
    db_path: str | None = None, adapter_factory: AdapterFactory | None = None,
) -> Services:
    """Create every store and service against one SQLite file."""
    shoot_db = ShootDB(db_path)
    client_db = ClientDB(db_path)
    cache_db = CalendarCacheDB(db_path)
    integration_db = IntegrationDB(db_path)
    calendar_sync = CalendarEventSync(
        cache_db, shoot_db, integration_db, adapter_factory=adapter_factory,
    )
    return Services(
        shoot_db=shoot_db,
        client_db=client_db,
        cache_db=cache_db,
        integration_db=integration_db,
        calendar_sync=calendar_sync,
        scheduler=ShootScheduler(shoot_db, client_db, calendar_sync),
        merger=UnifiedEventMerger(shoot_db, cache_db, client_db),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_owner_email(
    x_owner_email: str | None = Header(default=None),
) -> str:
    """The authenticated owner, checked against ALLOWED_OWNER_EMAILS if set."""
    if not x_owner_email or not x_owner_email.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")

    owner = x_owner_email.strip().lower()
    if settings.ALLOWED_OWNER_EMAILS and owner not in settings.ALLOWED_OWNER_EMAILS:
        logger.warning("Unauthorized owner rejected: %s", owner)
        raise HTTPException(status_code=403, detail="Not authorized")
    return owner


def get_scheduler(services: Services = Depends(get_services)) -> ShootScheduler:
    return services.scheduler


def get_calendar_sync(services: Services = Depends(get_services)) -> CalendarEventSync:
    return services.calendar_sync


def get_merger(services: Services = Depends(get_services)) -> UnifiedEventMerger:
    return services.merger
