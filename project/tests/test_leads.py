"""Tests for lead endpoints: role scoping, permissions, notes, stats."""
from datetime import timedelta
from io import BytesIO

import openpyxl
import pytest
from httpx import AsyncClient
from sqlalchemy import update

from conftest import TestUsers, lead_payload
from leadflow.models.lead import Lead
from leadflow.services.spreadsheet import EXPORT_HEADERS, XLSX_MEDIA_TYPE
from leadflow.utils.database import AsyncSessionLocal, utcnow


async def create_lead(client: AsyncClient, user, **overrides) -> dict:
    response = await client.post("/leads", json=lead_payload(**overrides), headers=TestUsers.headers(user))
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Authentication
# =============================================================================

@pytest.mark.asyncio
async def test_leads_require_token(client: AsyncClient):
    response = await client.get("/leads")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_garbage_token_is_rejected(client: AsyncClient):
    response = await client.get("/leads", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


# =============================================================================
# Create
# =============================================================================

@pytest.mark.asyncio
async def test_agent_created_lead_is_assigned_to_agent(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.agent, assignedTo=users.other_agent.id)
    assert lead["assignedTo"] == users.agent.id
    assert lead["assignee"]["name"] == "Bob Agent"
    assert lead["status"] == "New"


@pytest.mark.asyncio
async def test_admin_can_create_unassigned_or_assigned(client: AsyncClient, users: TestUsers):
    unassigned = await create_lead(client, users.super_admin)
    assigned = await create_lead(client, users.sub_admin, assignedTo=users.agent.id)
    assert unassigned["assignedTo"] is None
    assert assigned["assignedTo"] == users.agent.id


@pytest.mark.asyncio
async def test_assignment_to_missing_user_is_rejected(client: AsyncClient, users: TestUsers):
    response = await client.post(
        "/leads", json=lead_payload(assignedTo=9999), headers=TestUsers.headers(users.super_admin)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_required_fields_fail_validation(client: AsyncClient, users: TestUsers):
    response = await client.post("/leads", json={"name": "Only name"}, headers=TestUsers.headers(users.agent))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_tags_are_stored_without_duplicates(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.agent, tags=["vip", " vip ", "", "q3"])
    assert lead["tags"] == ["vip", "q3"]


# =============================================================================
# List / role scoping
# =============================================================================

@pytest.mark.asyncio
async def test_agent_sees_only_own_leads_regardless_of_filter(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent, name="Mine")
    await create_lead(client, users.other_agent, name="Theirs")
    await create_lead(client, users.super_admin, name="Unassigned")

    for params in ({}, {"assignedTo": users.other_agent.id}, {"assignedTo": "junk"}):
        response = await client.get("/leads", params=params, headers=TestUsers.headers(users.agent))
        assert response.status_code == 200
        items = response.json()["items"]
        assert [lead["name"] for lead in items] == ["Mine"]
        assert all(lead["assignedTo"] == users.agent.id for lead in items)


@pytest.mark.asyncio
async def test_admin_sees_all_and_can_filter_by_assignee(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent, name="Mine")
    await create_lead(client, users.other_agent, name="Theirs")

    everything = await client.get("/leads", headers=TestUsers.headers(users.sub_admin))
    assert everything.json()["pagination"]["total"] == 2

    filtered = await client.get(
        "/leads", params={"assignedTo": users.other_agent.id}, headers=TestUsers.headers(users.sub_admin)
    )
    assert [lead["name"] for lead in filtered.json()["items"]] == ["Theirs"]


@pytest.mark.asyncio
async def test_tag_filter_matches_any_tag(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.super_admin, name="A", tags=["a"])
    await create_lead(client, users.super_admin, name="B", tags=["b", "x"])
    await create_lead(client, users.super_admin, name="C", tags=["c"])

    response = await client.get("/leads", params={"tags": "a, b,  b"}, headers=TestUsers.headers(users.super_admin))
    assert sorted(lead["name"] for lead in response.json()["items"]) == ["A", "B"]

    response = await client.get("/leads", params={"tags": " , "}, headers=TestUsers.headers(users.super_admin))
    assert response.json()["pagination"]["total"] == 3


@pytest.mark.asyncio
async def test_search_is_case_insensitive_over_contact_fields(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.super_admin, name="Acme Corp", email="buyer@acme.com")
    await create_lead(client, users.super_admin, name="Globex", source="Referral ACME partner")
    await create_lead(client, users.super_admin, name="Initech", email="bill@initech.com")

    response = await client.get("/leads", params={"search": "acme"}, headers=TestUsers.headers(users.super_admin))
    assert sorted(lead["name"] for lead in response.json()["items"]) == ["Acme Corp", "Globex"]

    response = await client.get("/leads", params={"search": "100%"}, headers=TestUsers.headers(users.super_admin))
    assert response.json()["items"] == []


@pytest.mark.asyncio
async def test_status_filter_and_unknown_status_is_ignored(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.super_admin, name="Fresh")
    await create_lead(client, users.super_admin, name="Closed", status="Won")

    won = await client.get("/leads", params={"status": "Won"}, headers=TestUsers.headers(users.super_admin))
    assert [lead["name"] for lead in won.json()["items"]] == ["Closed"]

    unknown = await client.get("/leads", params={"status": "Bogus"}, headers=TestUsers.headers(users.super_admin))
    assert unknown.json()["pagination"]["total"] == 2


@pytest.mark.asyncio
async def test_date_range_with_one_bound(client: AsyncClient, users: TestUsers):
    old = await create_lead(client, users.super_admin, name="Old")
    await create_lead(client, users.super_admin, name="New")
    async with AsyncSessionLocal() as session:
        await session.execute(
            update(Lead).where(Lead.id == old["id"]).values(created_at=utcnow() - timedelta(days=30))
        )
        await session.commit()

    since = (utcnow() - timedelta(days=1)).date().isoformat()
    recent = await client.get("/leads", params={"startDate": since}, headers=TestUsers.headers(users.super_admin))
    assert [lead["name"] for lead in recent.json()["items"]] == ["New"]

    older = await client.get("/leads", params={"endDate": since}, headers=TestUsers.headers(users.super_admin))
    assert [lead["name"] for lead in older.json()["items"]] == ["Old"]


@pytest.mark.asyncio
async def test_pagination_defaults_to_ten(client: AsyncClient, users: TestUsers):
    for i in range(12):
        await create_lead(client, users.super_admin, name=f"Lead {i}")

    first = await client.get("/leads", headers=TestUsers.headers(users.super_admin))
    body = first.json()
    assert len(body["items"]) == 10
    assert body["pagination"] == {"total": 12, "page": 1, "pages": 2, "limit": 10}
    assert body["items"][0]["name"] == "Lead 11"

    second = await client.get("/leads", params={"page": 2}, headers=TestUsers.headers(users.super_admin))
    assert len(second.json()["items"]) == 2


# =============================================================================
# Update / delete
# =============================================================================

@pytest.mark.asyncio
async def test_assignment_unlocks_agent_update(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.super_admin)

    denied = await client.put(
        f"/leads/{lead['id']}", json={"status": "Contacted"}, headers=TestUsers.headers(users.agent)
    )
    assert denied.status_code == 403

    assigned = await client.put(
        f"/leads/{lead['id']}", json={"assignedTo": users.agent.id}, headers=TestUsers.headers(users.super_admin)
    )
    assert assigned.status_code == 200
    assert assigned.json()["assignedTo"] == users.agent.id

    allowed = await client.put(
        f"/leads/{lead['id']}", json={"status": "Contacted"}, headers=TestUsers.headers(users.agent)
    )
    assert allowed.status_code == 200
    assert allowed.json()["status"] == "Contacted"


@pytest.mark.asyncio
async def test_denied_update_has_no_effect(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.other_agent, name="Untouched")
    await client.put(f"/leads/{lead['id']}", json={"name": "Hijacked"}, headers=TestUsers.headers(users.agent))

    response = await client.get(f"/leads/{lead['id']}", headers=TestUsers.headers(users.super_admin))
    assert response.json()["name"] == "Untouched"


@pytest.mark.asyncio
async def test_agent_cannot_reassign_own_lead(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.agent)
    response = await client.put(
        f"/leads/{lead['id']}",
        json={"assignedTo": users.other_agent.id, "tags": ["hot"]},
        headers=TestUsers.headers(users.agent),
    )
    assert response.status_code == 200
    assert response.json()["assignedTo"] == users.agent.id
    assert response.json()["tags"] == ["hot"]


@pytest.mark.asyncio
async def test_missing_lead_is_404_before_permission(client: AsyncClient, users: TestUsers):
    for method in ("put", "delete"):
        kwargs = {"json": {"name": "x"}} if method == "put" else {}
        response = await getattr(client, method)("/leads/9999", headers=TestUsers.headers(users.agent), **kwargs)
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_agent_cannot_delete_even_assigned_lead(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.agent)
    response = await client.delete(f"/leads/{lead['id']}", headers=TestUsers.headers(users.agent))
    assert response.status_code == 403

    still_there = await client.get(f"/leads/{lead['id']}", headers=TestUsers.headers(users.agent))
    assert still_there.status_code == 200


@pytest.mark.asyncio
async def test_admins_can_delete(client: AsyncClient, users: TestUsers):
    for admin in (users.super_admin, users.sub_admin):
        lead = await create_lead(client, users.agent)
        response = await client.delete(f"/leads/{lead['id']}", headers=TestUsers.headers(admin))
        assert response.status_code == 200
        gone = await client.get(f"/leads/{lead['id']}", headers=TestUsers.headers(admin))
        assert gone.status_code == 404


@pytest.mark.asyncio
async def test_agent_cannot_read_foreign_lead(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.other_agent)
    response = await client.get(f"/leads/{lead['id']}", headers=TestUsers.headers(users.agent))
    assert response.status_code == 403


# =============================================================================
# Notes
# =============================================================================

@pytest.mark.asyncio
async def test_note_lifecycle(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.agent)

    response = await client.post(
        f"/leads/{lead['id']}/note", json={"text": "Called, left voicemail"}, headers=TestUsers.headers(users.agent)
    )
    assert response.status_code == 200
    notes = response.json()["notes"]
    assert len(notes) == 1
    assert notes[0]["author"] == "Bob Agent"
    assert notes[0]["text"] == "Called, left voicemail"

    second = await client.post(
        f"/leads/{lead['id']}/note", json={"text": "Follow-up booked"}, headers=TestUsers.headers(users.sub_admin)
    )
    assert [n["author"] for n in second.json()["notes"]] == ["Bob Agent", "Sam Sub"]

    note_id = notes[0]["id"]
    removed = await client.delete(f"/leads/{lead['id']}/note/{note_id}", headers=TestUsers.headers(users.agent))
    assert removed.status_code == 200
    assert [n["text"] for n in removed.json()["notes"]] == ["Follow-up booked"]

    again = await client.delete(f"/leads/{lead['id']}/note/{note_id}", headers=TestUsers.headers(users.agent))
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_note_requires_read_access(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.other_agent)
    response = await client.post(
        f"/leads/{lead['id']}/note", json={"text": "sneaky"}, headers=TestUsers.headers(users.agent)
    )
    assert response.status_code == 403


# =============================================================================
# Stats
# =============================================================================

@pytest.mark.asyncio
async def test_stats_for_admin(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent, name="A1")
    await create_lead(client, users.agent, name="A2", status="Won")
    await create_lead(client, users.other_agent, name="C1")
    await create_lead(client, users.super_admin, name="U1")

    response = await client.get("/leads/stats", headers=TestUsers.headers(users.super_admin))
    assert response.status_code == 200
    stats = response.json()

    assert stats["totalLeads"] == 4
    distribution = {row["status"]: row["count"] for row in stats["statusDistribution"]}
    assert distribution == {"New": 3, "Contacted": 0, "Qualified": 0, "Lost": 0, "Won": 1}

    performance = {row["agentId"]: row for row in stats["agentPerformance"]}
    assert performance[users.agent.id]["count"] == 2
    assert performance[users.agent.id]["name"] == "Bob Agent"
    assert performance[None]["count"] == 1
    assert len(stats["recentLeads"]) == 4
    assert stats["recentLeads"][0]["name"] == "U1"


@pytest.mark.asyncio
async def test_stats_for_agent_cover_own_leads(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent)
    await create_lead(client, users.other_agent)

    stats = (await client.get("/leads/stats", headers=TestUsers.headers(users.agent))).json()
    assert stats["totalLeads"] == 1
    assert [row["agentId"] for row in stats["agentPerformance"]] == [users.agent.id]


# =============================================================================
# Import / export
# =============================================================================

def build_workbook(rows: list[list]) -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["Name", "Email", "Phone", "Source", "Status", "Tags"])
    for row in rows:
        ws.append(row)
    out = BytesIO()
    wb.save(out)
    return out.getvalue()


def upload(content: bytes) -> dict:
    return {"file": ("leads.xlsx", content, XLSX_MEDIA_TYPE)}


@pytest.mark.asyncio
async def test_import_creates_leads_and_skips_nameless_rows(client: AsyncClient, users: TestUsers):
    content = build_workbook([
        ["Imported One", "one@example.com", "111", "Fair", "qualified", "vip, expo"],
        ["Imported Two", "two@example.com", "222", None, None, None],
        [None, "orphan@example.com", "333", "Fair", "New", None],
    ])
    response = await client.post("/leads/import", files=upload(content), headers=TestUsers.headers(users.sub_admin))
    assert response.status_code == 200
    assert response.json() == {"message": "Leads imported successfully", "count": 2, "skipped": 1}

    listing = (await client.get("/leads", headers=TestUsers.headers(users.sub_admin))).json()
    by_name = {lead["name"]: lead for lead in listing["items"]}
    assert by_name["Imported One"]["status"] == "Qualified"
    assert by_name["Imported One"]["tags"] == ["vip", "expo"]
    assert by_name["Imported Two"]["source"] == "Imported"
    assert by_name["Imported Two"]["status"] == "New"


@pytest.mark.asyncio
async def test_import_forbidden_for_agents(client: AsyncClient, users: TestUsers):
    content = build_workbook([["X", "x@example.com", "1", "Fair", "New", ""]])
    response = await client.post("/leads/import", files=upload(content), headers=TestUsers.headers(users.agent))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_import_rejects_non_spreadsheet(client: AsyncClient, users: TestUsers):
    response = await client.post(
        "/leads/import", files=upload(b"definitely not xlsx"), headers=TestUsers.headers(users.super_admin)
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_export_contains_visible_leads(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent, name="Agent Lead", tags=["a", "b"])
    await create_lead(client, users.other_agent, name="Other Lead")

    response = await client.get("/leads/export", headers=TestUsers.headers(users.agent))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith(XLSX_MEDIA_TYPE)
    assert "leads.xlsx" in response.headers["content-disposition"]

    ws = openpyxl.load_workbook(BytesIO(response.content)).active
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == EXPORT_HEADERS
    assert len(rows) == 2
    assert rows[1][0] == "Agent Lead"
    assert rows[1][5] == "a, b"
    assert rows[1][6] == "Bob Agent"


# =============================================================================
# Out-of-range input
# =============================================================================

HUGE = "99999999999999999999"


@pytest.mark.asyncio
async def test_out_of_range_query_values_are_ignored(client: AsyncClient, users: TestUsers):
    await create_lead(client, users.agent, name="Visible")
    headers = TestUsers.headers(users.super_admin)

    for params in ({"page": HUGE}, {"assignedTo": HUGE}, {"limit": HUGE}, {"endDate": "0001-01-01T00:00:00+01:00"}):
        response = await client.get("/leads", params=params, headers=headers)
        assert response.status_code == 200, params
        assert [lead["name"] for lead in response.json()["items"]] == ["Visible"]

    export = await client.get("/leads/export", params={"assignedTo": HUGE}, headers=headers)
    assert export.status_code == 200


@pytest.mark.asyncio
async def test_out_of_range_lead_id_is_not_found(client: AsyncClient, users: TestUsers):
    headers = TestUsers.headers(users.super_admin)
    assert (await client.get(f"/leads/{HUGE}", headers=headers)).status_code == 404
    assert (await client.put(f"/leads/{HUGE}", json={"name": "x"}, headers=headers)).status_code == 404
    assert (await client.delete(f"/leads/{HUGE}", headers=headers)).status_code == 404
    assert (await client.post(f"/leads/{HUGE}/note", json={"text": "x"}, headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_out_of_range_assignee_is_rejected(client: AsyncClient, users: TestUsers):
    response = await client.post(
        "/leads", json=lead_payload(assignedTo=int(HUGE)), headers=TestUsers.headers(users.super_admin)
    )
    assert response.status_code in (400, 422)


# =============================================================================
# Update validation
# =============================================================================

@pytest.mark.asyncio
async def test_update_rejects_empty_required_fields(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.super_admin, name="Keep Me")
    headers = TestUsers.headers(users.super_admin)

    response = await client.put(f"/leads/{lead['id']}", json={"name": "", "phone": ""}, headers=headers)
    assert response.status_code == 422

    stored = (await client.get(f"/leads/{lead['id']}", headers=headers)).json()
    assert stored["name"] == "Keep Me"
    assert stored["phone"] == lead["phone"]


@pytest.mark.asyncio
async def test_update_null_required_field_is_skipped(client: AsyncClient, users: TestUsers):
    lead = await create_lead(client, users.super_admin, name="Keep Me")
    response = await client.put(
        f"/leads/{lead['id']}", json={"name": None, "source": "Referral"}, headers=TestUsers.headers(users.super_admin)
    )
    assert response.status_code == 200
    assert response.json()["name"] == "Keep Me"
    assert response.json()["source"] == "Referral"
