"""Holiday registry tests — CRUD, year filter, audit entries, admin-only writes."""

from __future__ import annotations

import uuid
from datetime import date

import pytest

from hrflow.common.audit import AuditRecorder
from hrflow.common.exceptions import ConflictError, NotFoundException
from hrflow.holidays.service import HolidayRegistry
from tests.conftest import auth_headers


class TestHolidayRegistry:

    async def test_add_and_list_by_year(self, db, staff):
        registry = HolidayRegistry(db)
        await registry.add_holiday(actor_id=staff["admin"].id, name="Republic Day", date=date(2024, 1, 26))
        await registry.add_holiday(actor_id=staff["admin"].id, name="Diwali", date=date(2024, 11, 1))
        await registry.add_holiday(actor_id=staff["admin"].id, name="Republic Day", date=date(2025, 1, 26))

        names = [h.name for h in await registry.list_holidays(2024)]
        assert names == ["Republic Day", "Diwali"]
        assert len(await registry.list_holidays()) == 3

    async def test_duplicate_date_conflict(self, db, staff):
        registry = HolidayRegistry(db)
        await registry.add_holiday(actor_id=staff["admin"].id, name="Holi", date=date(2024, 3, 25))
        with pytest.raises(ConflictError):
            await registry.add_holiday(actor_id=staff["admin"].id, name="Again", date=date(2024, 3, 25))

    async def test_dates_between(self, db, staff):
        registry = HolidayRegistry(db)
        await registry.add_holiday(actor_id=staff["admin"].id, name="A", date=date(2024, 6, 4))
        await registry.add_holiday(actor_id=staff["admin"].id, name="B", date=date(2024, 6, 20))

        assert await registry.dates_between(date(2024, 6, 3), date(2024, 6, 7)) == {date(2024, 6, 4)}

    async def test_add_and_delete_are_audited(self, db, staff):
        registry = HolidayRegistry(db)
        holiday = await registry.add_holiday(actor_id=staff["admin"].id, name="Onam", date=date(2024, 9, 15))
        holiday_id = holiday.id
        await registry.delete_holiday(actor_id=staff["admin"].id, holiday_id=holiday_id)

        actions = [e.action for e in await AuditRecorder(db).entries_for(holiday_id)]
        assert actions == ["add_holiday", "delete_holiday"]
        assert await registry.list_holidays(2024) == []

    async def test_delete_unknown(self, db, staff):
        with pytest.raises(NotFoundException):
            await HolidayRegistry(db).delete_holiday(actor_id=staff["admin"].id, holiday_id=uuid.uuid4())


class TestHolidayAPI:

    async def test_admin_creates_everyone_reads(self, client, staff):
        resp = await client.post(
            "/api/v1/holidays/",
            json={"name": "Independence Day", "date": "2024-08-15"},
            headers=auth_headers(staff["admin"]),
        )
        assert resp.status_code == 201, resp.text

        resp = await client.get("/api/v1/holidays/", params={"year": 2024}, headers=auth_headers(staff["employee"]))
        assert resp.status_code == 200
        assert [h["date"] for h in resp.json()] == ["2024-08-15"]

    async def test_non_admin_cannot_create(self, client, staff):
        resp = await client.post(
            "/api/v1/holidays/",
            json={"name": "Day off", "date": "2024-08-16"},
            headers=auth_headers(staff["manager"]),
        )
        assert resp.status_code == 403

    async def test_duplicate_is_409(self, client, staff):
        headers = auth_headers(staff["admin"])
        payload = {"name": "Independence Day", "date": "2024-08-15"}
        assert (await client.post("/api/v1/holidays/", json=payload, headers=headers)).status_code == 201
        assert (await client.post("/api/v1/holidays/", json=payload, headers=headers)).status_code == 409
