"""Test the HTTP JSON API."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.models.contact import Contact


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json()["live_connections"] == 0


@pytest.mark.asyncio
async def test_contact_crud(client: AsyncClient, seeded: AsyncSession):
    response = await client.post(
        "/api/custom-fields", json={"section": "contacts", "field_name": "Language"}
    )
    assert response.status_code == 201

    response = await client.post("/api/contacts", json={
        "firstname": "Ann",
        "surname": "Lee",
        "custom_fields": {"Language": "English", "Unknown": "dropped"},
    }, headers={"X-User-Id": "4"})
    assert response.status_code == 201
    created = response.json()
    assert created["custom_fields"] == {"Language": "English"}
    assert created["created_by"] == 4

    response = await client.patch(f"/api/contacts/{created['id']}", json={"surname": "Lee-Park"})
    assert response.status_code == 200
    assert response.json()["surname"] == "Lee-Park"
    assert response.json()["firstname"] == "Ann"

    response = await client.get(f"/api/contacts/{created['id']}")
    assert response.json()["surname"] == "Lee-Park"

    response = await client.get("/api/contacts", params={"search": "lee"})
    assert response.json()["total"] == 1

    response = await client.delete(f"/api/contacts/{created['id']}")
    assert response.json() == {"deleted": True}
    assert (await client.get(f"/api/contacts/{created['id']}")).status_code == 404
    assert (await client.delete(f"/api/contacts/{created['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_contact_validation_errors(client: AsyncClient, contact: Contact):
    assert (await client.get("/api/contacts", params={"sort": "password"})).status_code == 400
    assert (await client.get("/api/contacts", params={"direction": "sideways"})).status_code == 422
    assert (await client.patch("/api/contacts/9999", json={"surname": "x"})).status_code == 404
    assert (await client.get("/api/contacts/groupings/email")).status_code == 400
    response = await client.post("/api/contacts", json={"firstname": "x"}, headers={"X-User-Id": "abc"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_import_contacts(client: AsyncClient):
    response = await client.post("/api/contacts/import", json={"contacts": [
        {"firstname": "A", "external_id": "e1", "electoral_district": "North"},
        {"firstname": "B", "external_id": "e2", "electoral_district": "South"},
    ]})
    assert response.status_code == 201
    assert response.json()["imported"] == 2

    response = await client.post("/api/contacts/import", json={"contacts": [
        {"firstname": "C", "external_id": "e3"},
        {"firstname": "D", "external_id": "e1"},
    ]})
    assert response.status_code == 400
    assert (await client.get("/api/contacts")).json()["total"] == 2

    response = await client.get("/api/contacts/groupings/electoral_district")
    assert response.json()["values"] == ["North", "South"]

    assert (await client.post("/api/contacts/import", json={"contacts": []})).status_code == 422


@pytest.mark.asyncio
async def test_dispatch_routes(client: AsyncClient, contact: Contact):
    response = await client.post(
        "/api/dispatch/ride-status", json={"contact_id": contact.id, "ride_status": "Scheduled"}
    )
    assert response.json()["ride_status"] == "Scheduled"

    response = await client.post("/api/dispatch/voted", json={"contact_id": contact.id, "voted": True})
    assert response.json()["voted"] is True

    response = await client.post(
        "/api/dispatch/bulk", json={"contact_ids": [contact.id, 9999], "ride_status": "Completed"}
    )
    assert response.json() == {"updated": 1}

    assert (await client.post("/api/dispatch/bulk", json={"contact_ids": [contact.id]})).status_code == 400
    response = await client.post("/api/dispatch/voted", json={"contact_id": 9999, "voted": True})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_canvass_commit_and_interactions(client: AsyncClient, seeded: AsyncSession, contact: Contact):
    response = await client.post("/api/canvass/commit", json={
        "changes": [{"contact_id": contact.id, "custom_fields": {"Support Level": "Undecided"}}],
        "user_id": 2,
    })
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    interaction_id = body["interactions"][0]["id"]

    # Same session window: the interaction is edited, not duplicated.
    response = await client.post("/api/canvass/commit", json={
        "changes": [{"contact_id": contact.id, "custom_fields": {"Wants Sign": True}}],
    })
    assert response.json()["interactions"][0]["id"] == interaction_id

    response = await client.get(f"/api/contacts/{contact.id}/interactions")
    interactions = response.json()["interactions"]
    assert len(interactions) == 1
    assert interactions[0]["custom_fields"] == {"Support Level": "Undecided", "Wants Sign": "true"}

    response = await client.delete(f"/api/interactions/{interaction_id}")
    assert response.json() == {"deleted": True}
    assert (await client.delete(f"/api/interactions/{interaction_id}")).status_code == 404


@pytest.mark.asyncio
async def test_failed_canvass_batch_returns_error(client: AsyncClient, seeded: AsyncSession, contact: Contact):
    response = await client.post("/api/canvass/commit", json={"changes": [
        {"contact_id": contact.id, "custom_fields": {"Support Level": "Undecided"}},
        {"contact_id": 424242, "custom_fields": {}},
    ]})
    assert response.status_code == 500
    assert "424242" in response.json()["error"]

    response = await client.get(f"/api/contacts/{contact.id}/interactions")
    assert response.json()["interactions"] == []


@pytest.mark.asyncio
async def test_create_interaction_route(client: AsyncClient, seeded: AsyncSession, contact: Contact):
    response = await client.post(f"/api/contacts/{contact.id}/interactions", json={
        "interaction_type": "Phone Call",
        "section": "interactions",
        "custom_fields": {"Notes": "Call back Tuesday"},
    })
    assert response.status_code == 201
    assert response.json()["custom_fields"] == {"Notes": "Call back Tuesday"}

    response = await client.post("/api/contacts/9999/interactions", json={"interaction_type": "x"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_custom_field_routes(client: AsyncClient, seeded: AsyncSession):
    response = await client.get("/api/custom-fields", params={"section": "dispatch"})
    assert [f["field_name"] for f in response.json()["fields"]] == ["Ride Status", "Voted"]

    response = await client.post("/api/custom-fields", json={
        "section": "scrutineer", "field_name": "Table", "field_type": "select", "options": ["1", "2"],
    })
    assert response.status_code == 201
    field_id = response.json()["id"]

    duplicate = await client.post("/api/custom-fields", json={"section": "scrutineer", "field_name": "Table"})
    assert duplicate.status_code == 400
    bad_section = await client.post("/api/custom-fields", json={"section": "nowhere", "field_name": "x"})
    assert bad_section.status_code == 400

    response = await client.patch(f"/api/custom-fields/{field_id}", json={"options": ["1", "2", "3"]})
    assert response.json()["options"] == ["1", "2", "3"]
    assert (await client.patch("/api/custom-fields/9999", json={"field_name": "x"})).status_code == 404

    assert (await client.delete(f"/api/custom-fields/{field_id}")).json() == {"deleted": True}
    assert (await client.delete(f"/api/custom-fields/{field_id}")).status_code == 404

    default_id = (await client.get("/api/custom-fields", params={"section": "canvass"})).json()["fields"][0]["id"]
    assert (await client.delete(f"/api/custom-fields/{default_id}")).status_code == 400


@pytest.mark.asyncio
async def test_change_routes(client: AsyncClient):
    assert (await client.get("/api/changes/last-id")).json() == {"last_change_id": 0}

    created = (await client.post("/api/contacts", json={"firstname": "Ann"})).json()
    await client.patch(f"/api/contacts/{created['id']}", json={"surname": "Lee"})

    response = await client.get("/api/changes", params={"since": 0})
    body = response.json()
    assert [(c["record_id"], c["action"]) for c in body["changes"]] == [
        (created["id"], "INSERT"),
        (created["id"], "UPDATE"),
    ]
    assert body["last_change_id"] == 2

    response = await client.get("/api/changes", params={"since": 1, "table": "contacts", "limit": 1})
    assert len(response.json()["changes"]) == 1

    response = await client.get("/api/changes/backfill", params={"since": 0})
    backfill = response.json()
    assert backfill["last_change_id"] == 2
    assert backfill["changes"]["contacts"][0]["surname"] == "Lee"

    assert (await client.get("/api/changes", params={"table": "secrets"})).status_code == 400
    assert (await client.get("/api/changes", params={"limit": 101})).status_code == 422
    assert (await client.get("/api/changes/last-id", params={"table": "contacts"})).json() == {
        "last_change_id": 2
    }
