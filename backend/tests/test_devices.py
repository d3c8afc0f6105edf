import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from beacon.core.geo import PrefixGeoLookup
from beacon.db.session import AsyncSessionLocal
from beacon.db.transaction import atomic
from beacon.db.types import as_utc
from beacon.models.device import Device
from beacon.models.metric import Metric
from beacon.services.devices import DeviceAttributes, list_devices, upsert_device
from beacon.services.events import create_event

pytestmark = pytest.mark.anyio

T0 = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
GEO = PrefixGeoLookup()


async def test_first_sighting_then_updates(db, project):
    attrs = DeviceAttributes(device_id="d-1", platform="ios", os_version="17.0", ip_address="192.0.2.10")
    async with atomic(db):
        device = await upsert_device(db, project.id, attrs, T0, GEO)

    assert as_utc(device.first_seen) == T0
    assert as_utc(device.last_seen) == T0
    assert device.country == "US"

    later = DeviceAttributes(device_id="d-1", platform="ios", app_version="2.0")
    async with atomic(db):
        device = await upsert_device(db, project.id, later, T0 + timedelta(hours=1), GEO)

    assert as_utc(device.first_seen) == T0
    assert as_utc(device.last_seen) == T0 + timedelta(hours=1)
    assert device.app_version == "2.0"
    # champs absents : inchangés
    assert device.os_version == "17.0"
    assert device.country == "US"


async def test_out_of_order_sighting_never_moves_last_seen_back(db, project):
    attrs = DeviceAttributes(device_id="d-1", platform="android")
    async with atomic(db):
        await upsert_device(db, project.id, attrs, T0, GEO)
    async with atomic(db):
        device = await upsert_device(db, project.id, attrs, T0 - timedelta(minutes=5), GEO)

    assert as_utc(device.first_seen) == T0 - timedelta(minutes=5)
    assert as_utc(device.last_seen) == T0


async def test_new_ip_updates_country(db, project):
    async with atomic(db):
        await upsert_device(db, project.id, DeviceAttributes("d-1", "web", ip_address="198.51.100.7"), T0, GEO)
    async with atomic(db):
        device = await upsert_device(db, project.id, DeviceAttributes("d-1", "web", ip_address="10.0.0.1"), T0, GEO)

    assert device.ip_address == "10.0.0.1"
    assert device.country is None


async def test_concurrent_first_sightings_create_one_device(project):
    async def ingest(i):
        async with AsyncSessionLocal() as session:
            await create_event(
                session,
                project.id,
                {
                    "device_id": "shared-device",
                    "platform": "ios",
                    "event_type": "app_open",
                    "timestamp": "2026-03-10T11:30:00Z",
                },
                T0 + timedelta(minutes=i),
                GEO,
            )

    await asyncio.gather(*(ingest(i) for i in range(5)))

    async with AsyncSessionLocal() as session:
        devices = (await session.execute(select(Device))).scalars().all()
        counted = (await session.execute(select(func.sum(Metric.value)))).scalar_one()

    assert len(devices) == 1
    assert as_utc(devices[0].first_seen) == T0
    assert as_utc(devices[0].last_seen) == T0 + timedelta(minutes=4)
    assert counted == 5


async def test_list_devices_filters_and_paginates(db, project):
    async with atomic(db):
        for i in range(3):
            await upsert_device(db, project.id, DeviceAttributes(f"ios-{i}", "ios"), T0 + timedelta(minutes=i), GEO)
        await upsert_device(db, project.id, DeviceAttributes("web-0", "web"), T0, GEO)

    page = await list_devices(db, project.id, page=1, limit=2, platform="ios")

    assert page.meta.total == 3
    assert page.meta.pages == 2
    assert [d.device_id for d in page.data] == ["ios-2", "ios-1"]
    assert page.data[0].last_seen == "2026-03-10T12:02:00.000000Z"
