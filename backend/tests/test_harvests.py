"""Harvest workflow: creation, the stage machine, weights, review, inventory."""

import pytest
from sqlalchemy import select

from growtrack.middleware.exceptions import (
    BusinessLogicError,
    HarvestStageError,
    PlantNotActive,
    PlantNotFlowering,
)
from growtrack.models import (
    GrowthPhase,
    HarvestStatus,
    MetrcTag,
    PlantStatus,
    RoomType,
    TagStatus,
)
from growtrack.schemas.harvest import HarvestCreate, HarvestUpdate, StrainWeightRecord
from growtrack.schemas.plant import PlantCreate
from growtrack.services import audit as audit_service
from growtrack.services import harvests as harvest_service
from growtrack.services import metrc_tags as tag_service
from growtrack.services import plants as plant_service
from growtrack.services import spatial


@pytest.fixture
def flowering(db_session, test_user, strains, room_factory):
    """Place flowering plants of the given strains into one fresh tray."""
    async def _make(*strain_names, capacity=None):
        room = await room_factory(test_user, capacities=(capacity or len(strain_names),))
        tray = room.racks[0].trays[0]
        plants = []
        for name in strain_names:
            plants.append(await plant_service.create_plant(
                db_session, test_user,
                PlantCreate(
                    tray_id=tray.id,
                    strain_id=strains[name].id,
                    growth_phase=GrowthPhase.FLOWERING,
                ),
            ))
        return tray, plants
    return _make


async def _harvest(db, user, plants, **kwargs):
    return await harvest_service.create_harvest(
        db, user, HarvestCreate(plant_ids=[p.id for p in plants], **kwargs)
    )


async def _walk_to(db, user, harvest, target: HarvestStatus):
    """Drive a harvest through every stage up to ``target``."""
    steps = [
        (HarvestStatus.WET_WEIGHT_RECORDED,
         lambda: harvest_service.record_wet_weight(db, user, harvest.id, 2000)),
        (HarvestStatus.DRYING_STARTED,
         lambda: harvest_service.start_drying(db, user, harvest.id)),
        (HarvestStatus.DRY_WEIGHT_RECORDED,
         lambda: harvest_service.record_dry_weight(db, user, harvest.id, 600)),
        (HarvestStatus.DRYING_FINISHED,
         lambda: harvest_service.finish_drying(db, user, harvest.id)),
        (HarvestStatus.TRIMMING_STARTED,
         lambda: harvest_service.start_trimming(db, user, harvest.id)),
        (HarvestStatus.TRIMMING_FINISHED,
         lambda: harvest_service.finish_trimming(db, user, harvest.id)),
        (HarvestStatus.CURING_FINISHED,
         lambda: harvest_service.finish_curing(db, user, harvest.id)),
    ]
    for status, step in steps:
        if harvest_service._stage_index(harvest.status) >= harvest_service._stage_index(status):
            continue
        harvest = await step()
        if status == target:
            break
    return harvest


@pytest.mark.unit
@pytest.mark.asyncio
class TestHarvestCreation:

    async def test_harvest_frees_slot_and_is_audited(self, db_session, test_user, flowering):
        tray, (plant_a, plant_b) = await flowering("Blue Dream", "Blue Dream")
        assert await spatial.occupancy_of(db_session, tray.id) == 2

        harvest = await _harvest(db_session, test_user, [plant_a])

        assert plant_a.status == PlantStatus.HARVESTED
        assert plant_a.harvest_id == harvest.id
        assert plant_a.tray_id is None
        assert plant_b.status == PlantStatus.ACTIVE
        assert await spatial.occupancy_of(db_session, tray.id) == 1

        events, total = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id
        )
        assert total == 1
        assert events[0].event_type == "harvest_created"
        assert events[0].metadata["plant_count"] == 1
        assert events[0].detail == "1 plant · whole plant · Blue Dream"

    async def test_defaults(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream", "OG Kush")

        first = await _harvest(db_session, test_user, plants[:1])
        second = await _harvest(db_session, test_user, plants[1:], wet_weight_grams=900)

        assert (first.name, second.name) == ("Harvest 1", "Harvest 2")
        assert first.status == HarvestStatus.CREATED
        assert second.status == HarvestStatus.WET_WEIGHT_RECORDED
        assert first.harvest_date is not None

    async def test_harvest_uses_up_plant_tag(self, db_session, test_user, flowering):
        tag = "1A4000000000000000001"
        await tag_service.import_tags(db_session, test_user, [tag])
        _, (plant,) = await flowering("OG Kush")
        await plant_service.tag_plant(db_session, test_user, plant.id, tag)

        await _harvest(db_session, test_user, [plant])

        status = (await db_session.execute(
            select(MetrcTag.status).where(MetrcTag.tag == tag)
        )).scalar_one()
        assert status == TagStatus.USED

    async def test_only_flowering_active_plants(
        self, db_session, test_user, strains, flowering
    ):
        tray, (plant,) = await flowering("Blue Dream", capacity=2)
        veg = await plant_service.create_plant(
            db_session, test_user,
            PlantCreate(tray_id=tray.id, strain_id=strains["Blue Dream"].id,
                        growth_phase=GrowthPhase.VEGETATIVE),
        )

        with pytest.raises(PlantNotFlowering):
            await _harvest(db_session, test_user, [plant, veg])
        assert plant.status == PlantStatus.ACTIVE

        await _harvest(db_session, test_user, [plant])
        with pytest.raises(PlantNotActive):
            await _harvest(db_session, test_user, [plant])

    async def test_drying_room_must_be_dry_or_cure(
        self, db_session, test_user, room_factory, flowering
    ):
        _, plants = await flowering("Blue Dream", "Blue Dream")
        flower_room = await room_factory(test_user, room_type=RoomType.FLOWER)
        dry_room = await room_factory(test_user, room_type=RoomType.DRY, name="Dry 1")

        with pytest.raises(BusinessLogicError) as exc_info:
            await _harvest(db_session, test_user, plants[:1], drying_room_id=flower_room.id)
        assert exc_info.value.error_code == "INVALID_DRYING_ROOM"

        harvest = await _harvest(
            db_session, test_user, plants[:1], drying_room_id=dry_room.id
        )
        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert detail.drying_room_name == "Dry 1"

    async def test_plants_join_only_before_drying(self, db_session, test_user, flowering):
        _, (first, second, third) = await flowering("Blue Dream", "OG Kush", "OG Kush")
        harvest = await _harvest(db_session, test_user, [first])

        await harvest_service.add_plants(db_session, test_user, harvest.id, [second.id])
        assert await harvest_service.plant_count(db_session, harvest.id) == 2

        harvest = await _walk_to(db_session, test_user, harvest, HarvestStatus.DRYING_STARTED)
        with pytest.raises(HarvestStageError):
            await harvest_service.add_plants(db_session, test_user, harvest.id, [third.id])
        assert third.status == PlantStatus.ACTIVE


@pytest.mark.unit
@pytest.mark.asyncio
class TestStageMachine:

    async def test_full_pipeline(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        harvest = await _walk_to(db_session, test_user, harvest, HarvestStatus.CURING_FINISHED)

        assert harvest.status == HarvestStatus.CURING_FINISHED
        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert detail.wet_weight_grams == 2000
        assert detail.dry_weight_grams == 600
        assert (detail.drying_days, detail.trimming_days, detail.curing_days) == (0, 0, 0)
        assert detail.total_days == 0

        _, total = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id
        )
        # created + seven stage transitions
        assert total == 8

    async def test_skipping_a_stage_rejected(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        with pytest.raises(HarvestStageError) as exc_info:
            await harvest_service.start_drying(db_session, test_user, harvest.id)
        assert exc_info.value.error_code == "HARVEST_STAGE_ERROR"

        harvest = await _walk_to(db_session, test_user, harvest, HarvestStatus.DRYING_STARTED)
        with pytest.raises(HarvestStageError):
            await harvest_service.finish_drying(db_session, test_user, harvest.id)
        assert harvest.status == HarvestStatus.DRYING_STARTED

    async def test_stage_cannot_repeat(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants, wet_weight_grams=1500)

        with pytest.raises(HarvestStageError):
            await harvest_service.record_wet_weight(db_session, test_user, harvest.id, 1600)
        assert harvest.wet_weight_grams == 1500

    async def test_flower_weight_requires_trimming(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)
        harvest = await _walk_to(db_session, test_user, harvest, HarvestStatus.DRYING_FINISHED)
        body = StrainWeightRecord(strain_id=strains["Blue Dream"].id, flower_weight_grams=400)

        with pytest.raises(HarvestStageError):
            await harvest_service.record_strain_weight(db_session, test_user, harvest.id, body)

        await harvest_service.start_trimming(db_session, test_user, harvest.id)
        weight = await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id, body
        )
        assert weight.flower_weight_grams == 400

    async def test_waste_window(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        with pytest.raises(HarvestStageError):
            await harvest_service.record_waste(db_session, test_user, harvest.id, 30)

        await _walk_to(db_session, test_user, harvest, HarvestStatus.TRIMMING_STARTED)
        harvest = await harvest_service.record_waste(db_session, test_user, harvest.id, 30)
        assert harvest.waste_weight_grams == 30

    async def test_trimming_start_records_days_since_drying(
        self, db_session, test_user, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)
        await _walk_to(db_session, test_user, harvest, HarvestStatus.TRIMMING_STARTED)

        events, _ = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id, limit=1
        )
        assert events[0].event_type == "harvest_trimming_started"
        assert events[0].metadata["days_since_drying"] == 0
        assert events[0].detail == "dry 600g (1.32lb) · 0 days after drying"

    async def test_trimming_totals_in_audit_detail(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)
        await _walk_to(db_session, test_user, harvest, HarvestStatus.TRIMMING_STARTED)
        await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id,
            StrainWeightRecord(
                strain_id=strains["Blue Dream"].id,
                flower_weight_grams=400,
                shake_weight_grams=50,
            ),
        )
        await harvest_service.record_waste(db_session, test_user, harvest.id, 30)
        await harvest_service.finish_trimming(db_session, test_user, harvest.id)

        events, _ = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id, limit=1
        )
        assert events[0].event_type == "harvest_trimming_finished"
        assert events[0].detail == (
            "flower 400g (0.88lb) · shake 50g (0.11lb) · waste 30g (0.07lb) · 0 days"
        )


@pytest.mark.unit
@pytest.mark.asyncio
class TestReviewAndEdits:

    async def test_review_only_after_curing_and_once(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        with pytest.raises(HarvestStageError):
            await harvest_service.admin_review(db_session, test_user, harvest.id)

        await _walk_to(db_session, test_user, harvest, HarvestStatus.CURING_FINISHED)
        reviewed = await harvest_service.admin_review(db_session, test_user, harvest.id)
        assert reviewed.admin_reviewed_at is not None
        assert reviewed.admin_reviewed_by == test_user.id

        with pytest.raises(BusinessLogicError) as exc_info:
            await harvest_service.admin_review(db_session, test_user, harvest.id)
        assert exc_info.value.error_code == "HARVEST_ALREADY_REVIEWED"

    async def test_update_logs_changed_fields_only(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants, name="Fall run")

        await harvest_service.update_harvest(
            db_session, test_user, harvest.id,
            HarvestUpdate(name="Fall run", notes="Heavy trichomes"),
        )

        events, total = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id
        )
        assert total == 2
        assert events[0].event_type == "harvest_updated"
        assert events[0].metadata["changed_fields"] == ["notes"]

        await harvest_service.update_harvest(
            db_session, test_user, harvest.id, HarvestUpdate(notes="Heavy trichomes")
        )
        _, total = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id
        )
        assert total == 2

    async def test_close_requires_curing_and_review(self, db_session, test_user, flowering):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        with pytest.raises(HarvestStageError):
            await harvest_service.close_harvest(db_session, test_user, harvest.id)

        await _walk_to(db_session, test_user, harvest, HarvestStatus.CURING_FINISHED)
        with pytest.raises(BusinessLogicError) as exc_info:
            await harvest_service.close_harvest(db_session, test_user, harvest.id)
        assert exc_info.value.error_code == "HARVEST_NOT_REVIEWED"
        assert harvest.status == HarvestStatus.CURING_FINISHED

        await harvest_service.admin_review(db_session, test_user, harvest.id)
        closed = await harvest_service.close_harvest(db_session, test_user, harvest.id)
        assert closed.status == HarvestStatus.CLOSED
        assert closed.closed_at is not None
        assert closed.closed_by == test_user.id

        events, _ = await audit_service.list_events(
            db_session, test_user.facility_id, trackable_id=harvest.id, limit=1
        )
        assert events[0].event_type == "harvest_closed"
        assert events[0].metadata["closed_by"] == test_user.full_name

    async def test_closed_harvest_is_read_only(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)
        await _walk_to(db_session, test_user, harvest, HarvestStatus.CURING_FINISHED)
        await harvest_service.admin_review(db_session, test_user, harvest.id)
        await harvest_service.close_harvest(db_session, test_user, harvest.id)

        with pytest.raises(HarvestStageError):
            await harvest_service.update_harvest(
                db_session, test_user, harvest.id, HarvestUpdate(notes="late note")
            )
        with pytest.raises(HarvestStageError):
            await harvest_service.record_strain_weight(
                db_session, test_user, harvest.id,
                StrainWeightRecord(strain_id=strains["Blue Dream"].id, flower_weight_grams=1),
            )
        with pytest.raises(HarvestStageError):
            await harvest_service.close_harvest(db_session, test_user, harvest.id)


@pytest.mark.unit
@pytest.mark.asyncio
class TestStrainWeights:

    async def test_strain_outside_harvest_rejected(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)

        with pytest.raises(BusinessLogicError) as exc_info:
            await harvest_service.record_strain_weight(
                db_session, test_user, harvest.id,
                StrainWeightRecord(strain_id=strains["OG Kush"].id, wet_weight_grams=999),
            )
        assert exc_info.value.error_code == "STRAIN_NOT_IN_HARVEST"

        rows = await harvest_service.flower_inventory(db_session, test_user.facility_id)
        assert "OG Kush" not in {r.strain_name for r in rows}

    async def test_detail_lists_member_strains(self, db_session, test_user, flowering):
        _, plants = await flowering("OG Kush", "Blue Dream", "OG Kush")
        harvest = await _harvest(db_session, test_user, plants)

        detail = await harvest_service.harvest_detail(db_session, harvest)

        assert [(s.strain_name, s.plant_count) for s in detail.strains_in_harvest] == [
            ("Blue Dream", 1), ("OG Kush", 2),
        ]

    async def test_loss_and_trim_totals_derived(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream", "OG Kush")
        harvest = await _harvest(db_session, test_user, plants)
        harvest = await _walk_to(db_session, test_user, harvest, HarvestStatus.TRIMMING_STARTED)

        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert detail.dry_weight_loss_pct == 70.0
        assert (detail.flower_weight_grams, detail.shake_weight_grams) == (None, None)

        for name, flower, shake in (("Blue Dream", 400, 50), ("OG Kush", 250, None)):
            await harvest_service.record_strain_weight(
                db_session, test_user, harvest.id,
                StrainWeightRecord(
                    strain_id=strains[name].id,
                    flower_weight_grams=flower,
                    shake_weight_grams=shake,
                ),
            )

        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert (detail.flower_weight_grams, detail.shake_weight_grams) == (650, 50)

    async def test_loss_falls_back_to_strain_rows(
        self, db_session, test_user, strains, flowering
    ):
        _, plants = await flowering("Blue Dream")
        harvest = await _harvest(db_session, test_user, plants)
        blue = strains["Blue Dream"].id
        await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id,
            StrainWeightRecord(strain_id=blue, wet_weight_grams=1000),
        )
        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert detail.dry_weight_loss_pct is None

        await harvest_service.record_wet_weight(db_session, test_user, harvest.id, 1000)
        await harvest_service.start_drying(db_session, test_user, harvest.id)
        await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id,
            StrainWeightRecord(strain_id=blue, dry_weight_grams=250),
        )

        detail = await harvest_service.harvest_detail(db_session, harvest)
        assert detail.dry_weight_loss_pct == 75.0


@pytest.mark.unit
@pytest.mark.asyncio
class TestFlowerInventory:

    async def test_weights_stay_per_strain(self, db_session, test_user, strains, flowering):
        _, plants = await flowering("Blue Dream", "OG Kush")
        harvest = await _harvest(db_session, test_user, plants, wet_weight_grams=3000)
        await harvest_service.start_drying(db_session, test_user, harvest.id)

        for name, grams in (("Blue Dream", 500), ("OG Kush", 300)):
            await harvest_service.record_strain_weight(
                db_session, test_user, harvest.id,
                StrainWeightRecord(strain_id=strains[name].id, dry_weight_grams=grams),
            )

        rows = await harvest_service.flower_inventory(db_session, test_user.facility_id)
        by_strain = {r.strain_name: r for r in rows}
        assert set(by_strain) == {"Blue Dream", "OG Kush"}
        assert by_strain["Blue Dream"].dry_weight_grams == 500
        assert by_strain["OG Kush"].dry_weight_grams == 300

    async def test_totals_across_harvests(self, db_session, test_user, strains, flowering):
        _, plants = await flowering("Blue Dream", "Blue Dream")
        blue = strains["Blue Dream"].id
        for plant, grams in zip(plants, (100, 250)):
            harvest = await _harvest(db_session, test_user, [plant])
            await harvest_service.record_strain_weight(
                db_session, test_user, harvest.id,
                StrainWeightRecord(strain_id=blue, wet_weight_grams=grams),
            )

        (row,) = await harvest_service.flower_inventory(db_session, test_user.facility_id)
        assert row.harvest_count == 2
        assert row.wet_weight_grams == 350
        assert row.dry_weight_grams == 0

    async def test_upsert_keeps_earlier_weights(self, db_session, test_user, strains, flowering):
        _, plants = await flowering("OG Kush")
        og = strains["OG Kush"].id
        harvest = await _harvest(db_session, test_user, plants, wet_weight_grams=800)
        await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id,
            StrainWeightRecord(strain_id=og, wet_weight_grams=800),
        )
        await harvest_service.start_drying(db_session, test_user, harvest.id)
        await harvest_service.record_strain_weight(
            db_session, test_user, harvest.id,
            StrainWeightRecord(strain_id=og, dry_weight_grams=240),
        )

        detail = await harvest_service.harvest_detail(db_session, harvest)
        (weight,) = detail.weights
        assert (weight.wet_weight_grams, weight.dry_weight_grams) == (800, 240)
