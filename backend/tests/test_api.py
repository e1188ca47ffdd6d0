"""HTTP surface: auth, error envelope, tenant isolation, end-to-end flows.

Seed data is committed by the fixtures; every request opens its own
session, so state is verified through responses only.
"""

from pathlib import Path

import pytest

from growtrack.config import settings
from growtrack.middleware.exceptions import DuplicateRecord
from growtrack.services import plants as plant_service

TAG_1 = "1A4000000000000000001"
TAG_2 = "1A4000000000000000002"


async def _create_room(client, headers, capacities=(2,), room_type="flower", name="Flower A"):
    resp = await client.post("/api/rooms", json={
        "name": name,
        "room_type": room_type,
        "floor_count": 1,
        "racks": [{
            "floor": 1,
            "position": 0,
            "trays": [{"position": i, "capacity": c} for i, c in enumerate(capacities)],
        }],
    }, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _place(client, headers, tray_id, strain_id, phase="flowering"):
    return await client.post("/api/plants/", json={
        "tray_id": tray_id, "strain_id": strain_id, "growth_phase": phase,
    }, headers=headers)


@pytest.mark.api
@pytest.mark.asyncio
class TestHealthAndAuth:

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_readiness_checks_database(self, client):
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] == "ok"

    async def test_missing_token_rejected(self, client, test_user):
        resp = await client.get("/api/plants/")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "HTTP_401"

    async def test_garbage_token_rejected(self, client, test_user):
        resp = await client.get(
            "/api/plants/", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert resp.status_code == 401

    async def test_viewer_reads_but_cannot_write(
        self, client, viewer_headers, strains
    ):
        assert (await client.get("/api/rooms", headers=viewer_headers)).status_code == 200
        assert (await client.get("/api/strains/", headers=viewer_headers)).status_code == 200

        resp = await client.post(
            "/api/metrc-tags/import", json={"tags": [TAG_1]}, headers=viewer_headers
        )
        assert resp.status_code == 403

    async def test_only_admin_reviews_harvests(self, client, grower_headers):
        resp = await client.post(
            "/api/harvests/some-id/admin-review", headers=grower_headers
        )
        assert resp.status_code == 403
        resp = await client.post("/api/harvests/some-id/close", headers=grower_headers)
        assert resp.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestFacilityEndpoints:

    async def test_room_tree_and_live_stats(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers, capacities=(2, 1))
        tray_id = room["racks"][0]["trays"][0]["id"]
        assert room["stats"]["total_capacity"] == 3
        assert room["racks"][0]["trays"][0]["display_name"] == "Tray 1"

        resp = await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)
        assert resp.status_code == 201

        facility = (await client.get("/api/facility", headers=auth_headers)).json()
        (summary,) = facility["rooms"]
        assert summary["stats"] == {
            "total_capacity": 3,
            "active_plant_count": 1,
            "occupied_zone_count": 1,
            "total_zone_count": 2,
        }

        tray = (await client.get(f"/api/trays/{tray_id}", headers=auth_headers)).json()
        assert (tray["occupancy"], tray["can_place"]) == (1, True)

        floor = (await client.get(
            f"/api/rooms/{room['id']}/floors/1", headers=auth_headers
        )).json()
        assert floor["racks"][0]["trays"][0]["plants"][0]["strain_name"] == "Blue Dream"

    async def test_rack_and_tray_added_to_existing_room(self, client, auth_headers):
        room = await _create_room(client, auth_headers, capacities=())

        resp = await client.patch(
            f"/api/rooms/{room['id']}", json={"floor_count": 2}, headers=auth_headers
        )
        assert resp.status_code == 200

        rack = (await client.post(
            f"/api/rooms/{room['id']}/racks", json={"floor": 2}, headers=auth_headers
        )).json()
        tray = await client.post(
            f"/api/racks/{rack['id']}/trays", json={"capacity": 6}, headers=auth_headers
        )
        assert tray.status_code == 201
        assert tray.json()["can_place"] is True

        detail = (await client.get(f"/api/rooms/{room['id']}", headers=auth_headers)).json()
        assert detail["stats"]["total_capacity"] == 6

    async def test_request_validation_envelope(self, client, auth_headers):
        resp = await client.post("/api/rooms", json={
            "name": "Bad", "floor_count": 1, "racks": [{"floor": 3}],
        }, headers=auth_headers)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.api
@pytest.mark.asyncio
class TestPlantFlow:

    async def test_capacity_and_tag_scenario(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers, capacities=(2,))
        tray_id = room["racks"][0]["trays"][0]["id"]
        blue = strains["Blue Dream"].id

        plant_a = (await _place(client, auth_headers, tray_id, blue)).json()
        plant_b = (await _place(client, auth_headers, tray_id, blue)).json()
        resp = await _place(client, auth_headers, tray_id, blue)
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "CAPACITY_EXCEEDED"
        assert error["details"] == {"capacity": 2, "occupancy": 2}

        imported = (await client.post(
            "/api/metrc-tags/import",
            json={"tags": [TAG_1, "BADTAG", TAG_2]},
            headers=auth_headers,
        )).json()
        assert (imported["succeeded"], imported["failed"]) == (2, 1)
        rejected = imported["items"][1]
        assert (rejected["item"], rejected["ok"]) == ("BADTAG", False)
        assert rejected["error_code"] == "INVALID_TAG_FORMAT"

        resp = await client.post(
            f"/api/plants/{plant_a['id']}/tag", json={"tag": TAG_1}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert resp.json()["metrc_label"] == TAG_1

        resp = await client.post(
            f"/api/plants/{plant_b['id']}/tag", json={"tag": TAG_1}, headers=auth_headers
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "TAG_NOT_AVAILABLE"

        stats = (await client.get("/api/metrc-tags/stats", headers=auth_headers)).json()
        assert (stats["available"], stats["assigned"]) == (1, 1)

        found = (await client.get(
            "/api/plants/lookup", params={"q": TAG_1.lower()}, headers=auth_headers
        )).json()
        assert found["id"] == plant_a["id"]

    async def test_failed_request_leaves_no_partial_write(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers, capacities=(1,))
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["OG Kush"].id)).json()

        resp = await client.post(
            f"/api/plants/{plant['id']}/tag", json={"tag": TAG_1}, headers=auth_headers
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TAG_NOT_FOUND"

        events = (await client.get(
            f"/api/plants/{plant['id']}/events", headers=auth_headers
        )).json()
        assert [e["event_type"] for e in events["items"]] == ["placed"]

    async def test_observation_with_photo(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)).json()

        resp = await client.post(
            f"/api/plants/{plant['id']}/events",
            data={"notes": "Spotted powdery mildew"},
            files=[("photos", ("leaf.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg"))],
            headers=auth_headers,
        )
        assert resp.status_code == 201, resp.text
        event = resp.json()
        assert event["event_type"] == "observation"
        assert event["notes"] == "Spotted powdery mildew"
        (url,) = event["photo_urls"]
        assert url.startswith(f"{settings.media_base_url}/observations/")
        stored = Path(settings.media_root) / url.removeprefix(f"{settings.media_base_url}/")
        assert stored.read_bytes() == b"\xff\xd8\xff fake jpeg"

        feed = (await client.get("/api/plants/feed", headers=auth_headers)).json()
        assert feed["items"][0]["event_type"] == "observation"
        assert feed["items"][0]["strain_name"] == "Blue Dream"

    async def test_empty_observation_rejected(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)).json()

        resp = await client.post(
            f"/api/plants/{plant['id']}/events", data={"notes": "  "}, headers=auth_headers
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "EMPTY_OBSERVATION"

    async def test_rejected_observation_stores_no_photos(
        self, client, auth_headers, strains
    ):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)).json()
        plant_photos = f"observations/*/{plant['id']}/*"

        resp = await client.post(
            f"/api/plants/{plant['id']}/events",
            data={"notes": "  "},
            files=[("photos", ("empty.jpg", b"", "image/jpeg"))],
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "EMPTY_OBSERVATION"
        assert list(Path(settings.media_root).glob(plant_photos)) == []

    async def test_failed_observation_discards_stored_photos(
        self, client, auth_headers, strains, monkeypatch
    ):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)).json()

        async def fail(*args, **kwargs):
            raise DuplicateRecord("observation")

        monkeypatch.setattr(plant_service, "add_observation", fail)
        resp = await client.post(
            f"/api/plants/{plant['id']}/events",
            data={"notes": "Yellowing fan leaves"},
            files=[("photos", ("leaf.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg"))],
            headers=auth_headers,
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_RECORD"
        assert list(Path(settings.media_root).glob(f"observations/*/{plant['id']}/*")) == []

    async def test_quick_entry(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers, capacities=(5,))
        tray_id = room["racks"][0]["trays"][0]["id"]
        await client.post(
            "/api/metrc-tags/", json={"tags": f"{TAG_1}\n{TAG_2}"}, headers=auth_headers
        )

        resp = await client.post("/api/plants/bulk", json={
            "tray_id": tray_id,
            "strain_id": strains["OG Kush"].id,
            "prefix": TAG_1[:-1],
            "suffixes": "1,2,3",
        }, headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert (body["succeeded"], body["failed"]) == (2, 1)
        assert body["items"][2]["error_code"] == "TAG_NOT_FOUND"

        listed = (await client.get(
            "/api/plants/", params={"room_id": room["id"]}, headers=auth_headers
        )).json()
        assert listed["total"] == 2


@pytest.mark.api
@pytest.mark.asyncio
class TestHarvestFlow:

    async def test_harvest_to_review(self, client, auth_headers, strains):
        room = await _create_room(client, auth_headers, capacities=(2,))
        tray_id = room["racks"][0]["trays"][0]["id"]
        plants = [
            (await _place(client, auth_headers, tray_id, strains[name].id)).json()
            for name in ("Blue Dream", "OG Kush")
        ]

        resp = await client.post("/api/harvests/", json={
            "plant_ids": [p["id"] for p in plants], "wet_weight_grams": 2400,
        }, headers=auth_headers)
        assert resp.status_code == 201
        harvest = resp.json()
        assert harvest["name"] == "Harvest 1"
        assert harvest["plant_count"] == 2
        hid = harvest["id"]

        tray = (await client.get(f"/api/trays/{tray_id}", headers=auth_headers)).json()
        assert tray["occupancy"] == 0

        resp = await client.post(f"/api/harvests/{hid}/finish-drying", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "HARVEST_STAGE_ERROR"

        assert (await client.post(
            f"/api/harvests/{hid}/start-drying", headers=auth_headers
        )).status_code == 200
        for name, grams in (("Blue Dream", 500), ("OG Kush", 300)):
            resp = await client.post(f"/api/harvests/{hid}/strain-weights", json={
                "strain_id": strains[name].id, "dry_weight_grams": grams,
            }, headers=auth_headers)
            assert resp.status_code == 200

        steps = [
            ("dry-weight", {"grams": 800}),
            ("finish-drying", None),
            ("start-trimming", None),
            ("finish-trimming", None),
            ("finish-curing", None),
            ("admin-review", None),
        ]
        for step, body in steps:
            resp = await client.post(
                f"/api/harvests/{hid}/{step}", json=body, headers=auth_headers
            )
            assert resp.status_code == 200, (step, resp.text)

        detail = resp.json()
        assert detail["status"] == "curing_finished"
        assert detail["admin_reviewed_at"] is not None
        assert {w["strain_name"]: w["dry_weight_grams"] for w in detail["weights"]} == {
            "Blue Dream": 500, "OG Kush": 300,
        }
        assert detail["dry_weight_loss_pct"] == 66.7
        assert [(s["strain_name"], s["plant_count"]) for s in detail["strains_in_harvest"]] == [
            ("Blue Dream", 1), ("OG Kush", 1),
        ]

        resp = await client.post(f"/api/harvests/{hid}/close", headers=auth_headers)
        assert resp.status_code == 200, resp.text
        closed = resp.json()
        assert closed["status"] == "closed"
        assert closed["closed_at"] is not None

        resp = await client.patch(
            f"/api/harvests/{hid}", json={"notes": "late"}, headers=auth_headers
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "HARVEST_STAGE_ERROR"

        inventory = (await client.get(
            "/api/harvests/flower-inventory", headers=auth_headers
        )).json()
        assert {r["strain_name"]: r["dry_weight_grams"] for r in inventory} == {
            "Blue Dream": 500, "OG Kush": 300,
        }

        feed = (await client.get(
            "/api/audit-events/", params={"trackable_id": hid}, headers=auth_headers
        )).json()
        assert feed["items"][0]["event_type"] == "harvest_closed"
        assert feed["items"][1]["event_type"] == "harvest_admin_reviewed"
        assert feed["items"][0]["trackable_name"] == "Harvest 1"
        assert feed["items"][-1]["event_type"] == "harvest_created"

    async def test_batch_with_note(self, client, auth_headers, strains):
        resp = await client.post("/api/batches/", json={
            "batch_type": "seed", "strain_id": strains["OG Kush"].id, "initial_count": 10,
        }, headers=auth_headers)
        assert resp.status_code == 201
        batch = resp.json()
        assert batch["active_plant_count"] == 0

        resp = await client.post(
            f"/api/batches/{batch['id']}/notes", json={"notes": "Germinated 9/10"},
            headers=auth_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["label"] == "Note added"
        assert resp.json()["trackable_name"] == batch["name"]


@pytest.mark.api
@pytest.mark.asyncio
class TestTenantIsolation:

    async def test_other_facility_sees_nothing(
        self, client, auth_headers, other_headers, strains
    ):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]
        plant = (await _place(client, auth_headers, tray_id, strains["Blue Dream"].id)).json()

        for path in (
            f"/api/rooms/{room['id']}",
            f"/api/trays/{tray_id}",
            f"/api/plants/{plant['id']}",
        ):
            resp = await client.get(path, headers=other_headers)
            assert resp.status_code == 404, path

        listed = (await client.get("/api/plants/", headers=other_headers)).json()
        assert listed["total"] == 0
        assert (await client.get("/api/rooms", headers=other_headers)).json() == []

    async def test_cannot_place_into_other_facility_tray(
        self, client, auth_headers, other_headers, strains
    ):
        room = await _create_room(client, auth_headers)
        tray_id = room["racks"][0]["trays"][0]["id"]

        resp = await _place(client, other_headers, tray_id, strains["Blue Dream"].id)
        assert resp.status_code == 404

        tray = (await client.get(f"/api/trays/{tray_id}", headers=auth_headers)).json()
        assert tray["occupancy"] == 0
