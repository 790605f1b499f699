import json
import pytest
from httpx import AsyncClient
from sqlalchemy import update
from src.protocols.models import protocol_table
from tests.factories import TJMG

NEW_PROTOCOL = {
    "processNumber": "5001234-56.2024.8.13.0024",
    "court": TJMG,
    "system": "PJe",
    "jurisdiction": "1º Grau",
    "processType": "civel",
    "taskCode": "1020",
    "petitionType": "Manifestação",
    "isFatal": True,
    "guias": [{"id": "g1", "number": "0001.2024", "system": "PJe"}],
    "documents": [{"id": "d1", "name": "peticao.pdf", "size": 2048, "type": "application/pdf"}],
}


async def create(client: AsyncClient, employee_id: int, **overrides) -> dict:
    response = await client.post(
        "/v1/protocols", json={**NEW_PROTOCOL, "createdBy": employee_id, **overrides}
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_answers_in_camel_case(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)

    assert protocol["status"] == "Pending"
    assert protocol["assignedTo"] is None
    assert protocol["isFatal"] is True
    assert protocol["guias"] == [{"id": "g1", "number": "0001.2024", "system": "PJe"}]
    assert [entry["action"] for entry in protocol["activityLog"]] == ["created"]
    assert protocol["activityLog"][0]["performedById"] == employee_id


@pytest.mark.asyncio
async def test_distribution_is_routed_to_manual_review(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id, isDistribution=True)

    assert protocol["assignedTo"] == "Carlos"
    assert protocol["isDistribution"] is True


@pytest.mark.asyncio
async def test_create_without_creator_is_bad_request(async_client: AsyncClient):
    response = await async_client.post("/v1/protocols", json=NEW_PROTOCOL)

    assert response.status_code == 400
    assert "creator" in response.json()["detail"].lower()


@pytest.mark.asyncio
async def test_update_flow(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)

    response = await async_client.put(
        f"/v1/protocols/{protocol['id']}",
        json={"status": "Filed", "performedBy": "robot"},
    )
    assert response.status_code == 200
    assert response.json() == {"changes": 1}

    stored = (await async_client.get(f"/v1/protocols/{protocol['id']}")).json()
    assert stored["status"] == "Filed"
    assert stored["createdByEmail"] == "ana.souza@escritorio.com"
    assert stored["activityLog"][-1]["performedBy"] == "robot"

    response = await async_client.put(f"/v1/protocols/{protocol['id']}", json={"status": "Pending"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)

    response = await async_client.put(
        f"/v1/protocols/{protocol['id']}", json={"status": "Filed", "createdAt": "2020-01-01"}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_protocol_is_not_found(async_client: AsyncClient):
    assert (await async_client.get("/v1/protocols/nope")).status_code == 404
    assert (await async_client.put("/v1/protocols/nope", json={"taskCode": "1"})).status_code == 404
    assert (await async_client.delete("/v1/protocols/nope")).status_code == 404


@pytest.mark.asyncio
async def test_delete(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)

    response = await async_client.delete(f"/v1/protocols/{protocol['id']}")

    assert response.json() == {"changes": 1}
    assert (await async_client.get(f"/v1/protocols/{protocol['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_queues_and_moves(async_client: AsyncClient, employee_id):
    first = await create(async_client, employee_id)
    second = await create(async_client, employee_id)

    automated = (await async_client.get("/v1/protocols/queues/automated")).json()
    assert {p["id"] for p in automated} == {first["id"], second["id"]}

    response = await async_client.post(
        f"/v1/protocols/{first['id']}/move", json={"assignedTo": "Maria", "performedBy": "Carlos"}
    )
    assert response.json() == {"changes": 1}

    response = await async_client.post(
        "/v1/protocols/move", json={"ids": [first["id"], second["id"]], "assignedTo": "Carlos"}
    )
    assert response.json() == {"changes": 2}
    assert (await async_client.get("/v1/protocols/queues/automated")).json() == []
    assert len((await async_client.get("/v1/protocols/queues/Carlos")).json()) == 2

    response = await async_client.post("/v1/protocols/move", json={"ids": [], "assignedTo": "Maria"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_return_resubmit_cancel(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)
    url = f"/v1/protocols/{protocol['id']}"

    response = await async_client.post(f"{url}/return", json={"reason": "missing signature"})
    assert response.status_code == 200
    stored = (await async_client.get(url)).json()
    assert stored["status"] == "Returned"
    assert stored["returnReason"] == "missing signature"

    response = await async_client.post(
        f"{url}/resubmit", json={"corrections": {"observations": "signature attached"}}
    )
    assert response.status_code == 200
    stored = (await async_client.get(url)).json()
    assert stored["status"] == "Pending"
    assert stored["assignedTo"] == "Carlos"

    response = await async_client.post(f"{url}/cancel", json={"performedBy": "Carlos"})
    assert response.status_code == 200
    assert (await async_client.get(url)).json()["status"] == "Cancelled"

    response = await async_client.post(f"{url}/return", json={"reason": "too late"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_preview_and_purge(async_client: AsyncClient, employee_id):
    protocol = await create(async_client, employee_id)
    await create(async_client, employee_id)
    await async_client.put(f"/v1/protocols/{protocol['id']}", json={"status": "Filed"})

    preview = (await async_client.get("/v1/admin/protocols/finalized/preview")).json()
    assert preview["total"] == 1
    assert preview["peticionados"] == 1

    response = await async_client.delete("/v1/admin/protocols/finalized")
    assert response.json() == {"total": 1, "peticionados": 1, "cancelados": 0, "devolvidos": 0}

    stats = (await async_client.get("/v1/admin/stats")).json()
    assert stats["protocols_total"] == 1
    assert stats["pending_by_queue"] == {"automated": 1}


@pytest.mark.asyncio
async def test_listing_survives_a_malformed_row(async_client: AsyncClient, db, employee_id):
    damaged = await create(async_client, employee_id)
    healthy = await create(async_client, employee_id)
    await db.execute(
        update(protocol_table)
        .where(protocol_table.c.id == damaged["id"])
        .values(documents=json.dumps([{"name": "peticao.pdf"}]))
    )

    response = await async_client.get("/v1/protocols")

    assert response.status_code == 200
    listed = {p["id"]: p for p in response.json()}
    assert listed[damaged["id"]]["documents"] == []
    assert len(listed[healthy["id"]]["documents"]) == 1
