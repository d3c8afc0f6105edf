from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, case, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.core.geo import GeoLookup
from beacon.db.types import as_utc
from beacon.db.upsert import dialect_insert
from beacon.models.device import Device
from beacon.schemas.common import PageMeta, format_instant
from beacon.schemas.events import DeviceListResponse, DeviceOut

"""
Service Devices (registre).

Rôle (fonctionnel) :
- upsert_device : insert-or-get atomique sur (project_id, device_id) puis mise à jour atomique.
- list_devices  : lecture paginée des devices d’un projet.

Concurrence :
- INSERT … ON CONFLICT DO NOTHING : deux ingestions simultanées d’un même nouveau device
  ne créent jamais deux lignes (la contrainte unique arbitre).
- UPDATE en une instruction :
  - last_seen  = max(last_seen, now)
  - first_seen = min(first_seen, now)  (fixé à la première observation, jamais avancé)
  - os/app version, ip et pays mis à jour s’ils sont fournis.

Note :
- Ne commit pas : s’exécute dans l’unité de travail de l’appelant (ingestion).
"""

logger = logging.getLogger("beacon.devices")


@dataclass(frozen=True)
class DeviceAttributes:
    device_id: str
    platform: str
    os_version: Optional[str] = None
    app_version: Optional[str] = None
    ip_address: Optional[str] = None


async def upsert_device(
    db: AsyncSession,
    project_id: uuid.UUID,
    attrs: DeviceAttributes,
    now: datetime,
    geo: GeoLookup,
) -> Device:
    now = as_utc(now)
    country = geo.ip_to_country(attrs.ip_address)

    insert_stmt = (
        dialect_insert(db, Device)
        .values(
            id=uuid.uuid4(),
            project_id=project_id,
            device_id=attrs.device_id,
            platform=attrs.platform,
            os_version=attrs.os_version,
            app_version=attrs.app_version,
            first_seen=now,
            last_seen=now,
            ip_address=attrs.ip_address,
            country=country,
        )
        .on_conflict_do_nothing(index_elements=["project_id", "device_id"])
    )
    await db.execute(insert_stmt)

    seen = literal(now, DateTime(timezone=True))
    values = {
        "last_seen": case((Device.last_seen < seen, seen), else_=Device.last_seen),
        "first_seen": case((Device.first_seen > seen, seen), else_=Device.first_seen),
        "platform": attrs.platform,
    }
    if attrs.os_version is not None:
        values["os_version"] = attrs.os_version
    if attrs.app_version is not None:
        values["app_version"] = attrs.app_version
    if attrs.ip_address is not None:
        values["ip_address"] = attrs.ip_address
        values["country"] = country

    key = (Device.project_id == project_id, Device.device_id == attrs.device_id)

    await db.execute(
        update(Device).where(*key).values(**values).execution_options(synchronize_session=False)
    )

    device = (
        await db.execute(select(Device).where(*key).execution_options(populate_existing=True))
    ).scalar_one()

    logger.debug(
        "device upserted",
        extra={"project_id": str(project_id), "device_id": attrs.device_id},
    )
    return device


def device_out(device: Device) -> DeviceOut:
    return DeviceOut(
        id=str(device.id),
        device_id=device.device_id,
        platform=device.platform,
        os_version=device.os_version,
        app_version=device.app_version,
        ip_address=device.ip_address,
        country=device.country,
        first_seen=format_instant(as_utc(device.first_seen)),
        last_seen=format_instant(as_utc(device.last_seen)),
    )


async def list_devices(
    db: AsyncSession,
    project_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = 50,
    platform: Optional[str] = None,
) -> DeviceListResponse:
    stmt = select(Device).where(Device.project_id == project_id)
    count_stmt = select(func.count(Device.id)).where(Device.project_id == project_id)
    if platform:
        stmt = stmt.where(Device.platform == platform)
        count_stmt = count_stmt.where(Device.platform == platform)

    total = (await db.execute(count_stmt)).scalar_one()

    stmt = stmt.order_by(Device.last_seen.desc(), Device.id).offset((page - 1) * limit).limit(limit)
    rows = (await db.execute(stmt)).scalars().all()

    return DeviceListResponse(
        data=[device_out(d) for d in rows],
        meta=PageMeta.build(page, limit, total),
    )
