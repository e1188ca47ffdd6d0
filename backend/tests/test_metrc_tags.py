"""METRC tag registry: import, assignment, consumption, voiding."""

import pytest
from sqlalchemy import select

from growtrack.middleware.exceptions import (
    InvalidTagFormat,
    PlantAlreadyTagged,
    TagAlreadyAssigned,
    TagNotAvailable,
    TagNotFound,
)
from growtrack.models import GrowthPhase, MetrcTag, TagStatus
from growtrack.schemas.plant import PlantCreate
from growtrack.services import metrc_tags as tag_service
from growtrack.services import plants as plant_service

TAG_1 = "1A4000000000000000001"
TAG_2 = "1A4000000000000000002"
TAG_3 = "1A4000000000000000003"


async def _status_of(db, tag: str) -> TagStatus:
    result = await db.execute(select(MetrcTag.status).where(MetrcTag.tag == tag))
    return result.scalar_one()


@pytest.fixture
def make_plant(db_session, test_user, strains, room_factory):
    tray = {}

    async def _make():
        if "id" not in tray:
            room = await room_factory(test_user, capacities=(10,))
            tray["id"] = room.racks[0].trays[0].id
        return await plant_service.create_plant(
            db_session, test_user,
            PlantCreate(
                tray_id=tray["id"],
                strain_id=strains["Blue Dream"].id,
                growth_phase=GrowthPhase.FLOWERING,
            ),
        )

    return _make


@pytest.mark.unit
class TestTagFormat:

    def test_normalizes_case_and_whitespace(self):
        assert tag_service.validate_tag("  1a4000000000000000001 ") == TAG_1

    @pytest.mark.parametrize("raw", ["BADTAG", "", "1A400001", "2A4000000000000000001"])
    def test_rejects_malformed(self, raw):
        with pytest.raises(InvalidTagFormat):
            tag_service.validate_tag(raw)


@pytest.mark.unit
@pytest.mark.asyncio
class TestTagImport:

    async def test_invalid_tag_reported_valid_ones_inserted(self, db_session, test_user):
        result = await tag_service.import_tags(
            db_session, test_user, [TAG_1, "BADTAG", TAG_2]
        )

        assert [o.item for o in result.succeeded] == [TAG_1, TAG_2]
        assert len(result.failed) == 1
        assert result.failed[0].item == "BADTAG"
        assert result.failed[0].error_code == "INVALID_TAG_FORMAT"

        stats = await tag_service.tag_stats(db_session, test_user.facility_id)
        assert stats.available == 2
        assert stats.total == 2

    async def test_duplicates_reported_per_item(self, db_session, test_user):
        await tag_service.import_tags(db_session, test_user, [TAG_1])

        result = await tag_service.import_tags(
            db_session, test_user, [TAG_1, TAG_2, TAG_2.lower()]
        )

        assert [o.item for o in result.succeeded] == [TAG_2]
        assert [o.error_code for o in result.failed] == [
            "TAG_ALREADY_EXISTS", "TAG_ALREADY_EXISTS",
        ]
        stats = await tag_service.tag_stats(db_session, test_user.facility_id)
        assert stats.total == 2

    async def test_tag_inserted_concurrently_reported_per_item(
        self, db_session, test_user, monkeypatch
    ):
        await tag_service.import_tags(db_session, test_user, [TAG_1])

        # The pre-check misses TAG_1, as when another import commits it
        # between the lookup and the insert
        async def nothing_existing(db, candidates):
            return set()

        monkeypatch.setattr(tag_service, "_existing_tags", nothing_existing)

        result = await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2, TAG_3])

        assert [o.item for o in result.succeeded] == [TAG_2, TAG_3]
        assert [(o.item, o.error_code) for o in result.failed] == [
            (TAG_1, "TAG_ALREADY_EXISTS"),
        ]
        stats = await tag_service.tag_stats(db_session, test_user.facility_id)
        assert (stats.total, stats.available) == (3, 3)


@pytest.mark.unit
@pytest.mark.asyncio
class TestTagAssignment:

    async def test_assigned_tag_cannot_go_to_second_plant(
        self, db_session, test_user, make_plant
    ):
        await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2])
        plant_a = await make_plant()
        plant_b = await make_plant()

        row = await tag_service.assign_tag(db_session, test_user, TAG_1, plant_a)
        assert plant_a.metrc_label == TAG_1
        assert row.status == TagStatus.ASSIGNED
        assert row.plant_id == plant_a.id

        with pytest.raises(TagNotAvailable):
            await tag_service.assign_tag(db_session, test_user, TAG_1, plant_b)
        assert plant_b.metrc_label is None

    async def test_unknown_tag_not_found(self, db_session, test_user, make_plant):
        plant = await make_plant()
        with pytest.raises(TagNotFound):
            await tag_service.assign_tag(db_session, test_user, TAG_3, plant)

    async def test_plant_with_label_cannot_take_second_tag(
        self, db_session, test_user, make_plant
    ):
        await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2])
        plant = await make_plant()
        await tag_service.assign_tag(db_session, test_user, TAG_1, plant)

        with pytest.raises(PlantAlreadyTagged):
            await tag_service.assign_tag(db_session, test_user, TAG_2, plant)
        assert await _status_of(db_session, TAG_2) == TagStatus.AVAILABLE

    async def test_tag_from_other_facility_not_found(
        self, db_session, test_user, other_user, make_plant
    ):
        await tag_service.import_tags(db_session, other_user, [TAG_1])
        plant = await make_plant()

        with pytest.raises(TagNotFound):
            await tag_service.assign_tag(db_session, test_user, TAG_1, plant)


@pytest.mark.unit
@pytest.mark.asyncio
class TestTagTransitions:

    async def test_destroyed_plant_uses_up_its_tag(self, db_session, test_user, make_plant):
        await tag_service.import_tags(db_session, test_user, [TAG_1])
        plant = await make_plant()
        await plant_service.tag_plant(db_session, test_user, plant.id, TAG_1)

        await plant_service.destroy_plant(db_session, test_user, plant.id, "Hermaphrodite")

        assert await _status_of(db_session, TAG_1) == TagStatus.USED
        # A used tag never returns to the pool
        other = await make_plant()
        with pytest.raises(TagNotAvailable):
            await tag_service.assign_tag(db_session, test_user, TAG_1, other)

    async def test_reassign_supersedes_old_tag(self, db_session, test_user, make_plant):
        await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2])
        plant = await make_plant()
        await plant_service.tag_plant(db_session, test_user, plant.id, TAG_1)

        await plant_service.reassign_plant_tag(db_session, test_user, plant.id, TAG_2)

        assert plant.metrc_label == TAG_2
        old = (await db_session.execute(
            select(MetrcTag.status, MetrcTag.superseded, MetrcTag.used_at)
            .where(MetrcTag.tag == TAG_1)
        )).one()
        assert old.status == TagStatus.USED
        assert old.superseded is True
        assert old.used_at is not None
        assert await _status_of(db_session, TAG_2) == TagStatus.ASSIGNED

    async def test_reassign_to_unavailable_tag_keeps_current(
        self, db_session, test_user, make_plant
    ):
        await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2])
        first = await make_plant()
        second = await make_plant()
        await plant_service.tag_plant(db_session, test_user, first.id, TAG_1)
        await plant_service.tag_plant(db_session, test_user, second.id, TAG_2)

        with pytest.raises(TagNotAvailable):
            await plant_service.reassign_plant_tag(db_session, test_user, first.id, TAG_2)
        assert first.metrc_label == TAG_1
        assert await _status_of(db_session, TAG_1) == TagStatus.ASSIGNED

    async def test_void_available_tag(self, db_session, test_user):
        result = await tag_service.import_tags(db_session, test_user, [TAG_1])
        tag_id = result.succeeded[0].entity_id

        row = await tag_service.void_tag(db_session, test_user, tag_id)

        assert row.status == TagStatus.VOIDED
        assert row.voided_at is not None
        with pytest.raises(TagAlreadyAssigned):
            await tag_service.void_tag(db_session, test_user, tag_id)

    async def test_assigned_tag_cannot_be_voided(self, db_session, test_user, make_plant):
        result = await tag_service.import_tags(db_session, test_user, [TAG_1])
        plant = await make_plant()
        await plant_service.tag_plant(db_session, test_user, plant.id, TAG_1)

        with pytest.raises(TagAlreadyAssigned):
            await tag_service.void_tag(db_session, test_user, result.succeeded[0].entity_id)
        assert await _status_of(db_session, TAG_1) == TagStatus.ASSIGNED

    async def test_stats_count_every_status(self, db_session, test_user, make_plant):
        result = await tag_service.import_tags(db_session, test_user, [TAG_1, TAG_2, TAG_3])
        plant = await make_plant()
        await plant_service.tag_plant(db_session, test_user, plant.id, TAG_1)
        await tag_service.void_tag(db_session, test_user, result.succeeded[2].entity_id)

        stats = await tag_service.tag_stats(db_session, test_user.facility_id)
        assert (stats.available, stats.assigned, stats.used, stats.voided) == (1, 1, 0, 1)
        assert stats.total == 3
