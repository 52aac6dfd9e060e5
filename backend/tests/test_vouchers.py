"""
Voucher workflow tests: routing to the active VO, the pending -> approved /
rejected state machine and role-scoped visibility.
"""
from datetime import datetime

import pytest
from sqlalchemy import select, update, func

from backend.models.user import User, VODetails
from backend.models.voucher import Voucher, VoucherStatus
from backend.services import voucher_workflow
from backend.utils.errors import Forbidden, InvalidTransition, PreconditionFailed, ValidationError

DOWNLOAD_URL = "https://storage.example.com/vouchers/2024-05/scan-001.pdf"


def _voucher(**overrides):
    body = {
        "url_data": {
            "downloadURL": DOWNLOAD_URL,
            "fileName": "scan-001.pdf",
            "contentType": "application/pdf",
            "size": 20480,
        },
    }
    body.update(overrides)
    return body


async def _submit(client, **overrides):
    r = await client.post("/api/vouchers/", json=_voucher(**overrides))
    assert r.status_code == 201
    return r.json()["data"]["id"]


async def _voucher_count(db):
    result = await db.execute(select(func.count()).select_from(Voucher))
    return result.scalar()


# ===================== SUBMIT =====================


async def test_submit_routes_to_active_vo(client, seed_data):
    r = await client.post("/api/vouchers/", json=_voucher(comment="May meals"))
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Voucher sent to Verification Officer successfully"
    data = body["data"]
    assert data["status"] == "pending"
    assert data["deo_id"] == seed_data["deo_id"]
    assert data["vo_id"] == seed_data["vo_id"]
    assert data["vo_username"] == "vo1"
    assert data["deo_full_name"] == "Dilani Perera"
    assert data["url_data"]["downloadURL"] == DOWNLOAD_URL
    assert data["comment"] == "May meals"


async def test_officer_names_come_from_details(client, deo2_client, db_session, seed_data):
    await db_session.execute(
        update(VODetails).where(VODetails.user_id == seed_data["vo_id"]).values(full_name="Nimal A. Fernando")
    )
    await db_session.commit()

    r = await client.post("/api/vouchers/", json=_voucher())
    assert r.json()["data"]["vo_full_name"] == "Nimal A. Fernando"

    # No DEO details on file for deo2: the account name is used
    r = await deo2_client.post("/api/vouchers/", json=_voucher())
    assert r.json()["data"]["deo_full_name"] == "Kasun Silva"
    assert r.json()["data"]["vo_full_name"] == "Nimal A. Fernando"


async def test_submit_plain_url_string(client):
    r = await client.post("/api/vouchers/", json={"url_data": DOWNLOAD_URL})
    assert r.status_code == 201
    assert r.json()["data"]["url_data"] == {"downloadURL": DOWNLOAD_URL}


async def test_submit_json_encoded_url_data(client):
    raw = '{"downloadURL": "%s", "fileName": "scan.pdf"}' % DOWNLOAD_URL
    r = await client.post("/api/vouchers/", json={"url_data": raw})
    assert r.status_code == 201
    assert r.json()["data"]["url_data"]["fileName"] == "scan.pdf"


async def test_submit_without_download_url_rejected(client, db_session):
    r = await client.post("/api/vouchers/", json={"url_data": {"fileName": "scan.pdf"}})
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert await _voucher_count(db_session) == 0


async def test_submit_blank_url_rejected(client):
    r = await client.post("/api/vouchers/", json={"url_data": "   "})
    assert r.status_code == 400


async def test_submit_without_active_vo(client, db_session):
    await db_session.execute(update(VODetails).values(is_active=False))
    await db_session.commit()

    r = await client.post("/api/vouchers/", json=_voucher())
    assert r.status_code == 400
    assert r.json()["message"] == "No active Verification Officer found"
    assert await _voucher_count(db_session) == 0


async def test_submit_with_several_active_vos_picks_lowest_id(client, db_session, seed_data):
    await db_session.execute(update(VODetails).values(is_active=True))
    await db_session.commit()

    r = await client.post("/api/vouchers/", json=_voucher())
    assert r.status_code == 201
    assert r.json()["data"]["vo_id"] == min(seed_data["vo_id"], seed_data["vo2_id"])


async def test_submit_sanitizes_comment(client):
    r = await client.post("/api/vouchers/", json=_voucher(comment="<b>Week 2</b> & 3"))
    assert r.status_code == 201
    assert r.json()["data"]["comment"] == "Week 2 & 3"


async def test_vo_cannot_submit(vo_client):
    r = await vo_client.post("/api/vouchers/", json=_voucher())
    assert r.status_code == 403


# ===================== VERIFY =====================


async def test_vo_approves_voucher(client, vo_client):
    voucher_id = await _submit(client)

    r = await vo_client.put(
        f"/api/vouchers/{voucher_id}/verify",
        json={"status": "approved", "comment": "Counts match"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Voucher approved successfully"
    assert body["data"]["status"] == "approved"
    assert body["data"]["comment"] == "Counts match"


async def test_vo_rejects_voucher(client, vo_client):
    voucher_id = await _submit(client)
    r = await vo_client.put(
        f"/api/vouchers/{voucher_id}/verify",
        json={"status": "rejected", "comment": "<i>Signature missing</i>"},
    )
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "rejected"
    assert r.json()["data"]["comment"] == "Signature missing"


async def test_verified_voucher_is_terminal(client, vo_client):
    voucher_id = await _submit(client)
    await vo_client.put(f"/api/vouchers/{voucher_id}/verify", json={"status": "approved", "comment": "ok"})

    r = await vo_client.put(
        f"/api/vouchers/{voucher_id}/verify",
        json={"status": "rejected", "comment": "changed my mind"},
    )
    assert r.status_code == 409
    assert r.json()["message"] == "Voucher has already been approved"

    r = await vo_client.get(f"/api/vouchers/{voucher_id}")
    assert r.json()["data"]["status"] == "approved"
    assert r.json()["data"]["comment"] == "ok"


async def test_verify_back_to_pending_rejected(client, vo_client):
    voucher_id = await _submit(client)
    r = await vo_client.put(f"/api/vouchers/{voucher_id}/verify", json={"status": "pending"})
    assert r.status_code == 400


async def test_verify_unknown_status_rejected(client, vo_client):
    voucher_id = await _submit(client)
    r = await vo_client.put(f"/api/vouchers/{voucher_id}/verify", json={"status": "maybe"})
    assert r.status_code == 400


async def test_verify_by_other_vo_not_found(client, vo2_client):
    voucher_id = await _submit(client)
    r = await vo2_client.put(f"/api/vouchers/{voucher_id}/verify", json={"status": "approved"})
    assert r.status_code == 404
    assert r.json()["message"] == "Voucher not found or not assigned to you"


async def test_verify_missing_voucher(vo_client):
    r = await vo_client.put("/api/vouchers/9999/verify", json={"status": "approved"})
    assert r.status_code == 404


async def test_deo_cannot_verify(client):
    voucher_id = await _submit(client)
    r = await client.put(f"/api/vouchers/{voucher_id}/verify", json={"status": "approved"})
    assert r.status_code == 403


# ===================== VISIBILITY =====================


async def test_deo_sees_only_own_vouchers(client, deo2_client):
    await _submit(client)
    await _submit(client)
    await _submit(deo2_client)

    r = await client.get("/api/vouchers/")
    assert r.status_code == 200
    assert len(r.json()["data"]) == 2

    r = await deo2_client.get("/api/vouchers/")
    assert len(r.json()["data"]) == 1


async def test_vo_sees_vouchers_routed_to_them(client, deo2_client, vo_client, vo2_client):
    await _submit(client)
    await _submit(deo2_client)

    r = await vo_client.get("/api/vouchers/")
    assert len(r.json()["data"]) == 2

    r = await vo2_client.get("/api/vouchers/")
    assert r.json()["data"] == []


async def test_list_newest_first(client):
    first = await _submit(client)
    second = await _submit(client)
    r = await client.get("/api/vouchers/")
    assert [v["id"] for v in r.json()["data"]] == [second, first]


async def test_admin_cannot_list_vouchers(admin_client):
    r = await admin_client.get("/api/vouchers/")
    assert r.status_code == 403


async def test_get_voucher_scoping(client, deo2_client, vo_client, vo2_client):
    voucher_id = await _submit(client)

    assert (await client.get(f"/api/vouchers/{voucher_id}")).status_code == 200
    assert (await vo_client.get(f"/api/vouchers/{voucher_id}")).status_code == 200
    assert (await deo2_client.get(f"/api/vouchers/{voucher_id}")).status_code == 403
    assert (await vo2_client.get(f"/api/vouchers/{voucher_id}")).status_code == 403


async def test_get_missing_voucher(client):
    r = await client.get("/api/vouchers/9999")
    assert r.status_code == 404
    assert r.json()["message"] == "Voucher not found"


# ===================== FILTERS =====================


async def test_filter_by_year_and_month(client, db_session):
    old_id = await _submit(client)
    await _submit(client)
    await db_session.execute(
        update(Voucher).where(Voucher.id == old_id).values(created_at=datetime(2023, 3, 15, 9, 30))
    )
    await db_session.commit()

    r = await client.get("/api/vouchers/", params={"year": 2023})
    assert [v["id"] for v in r.json()["data"]] == [old_id]

    r = await client.get("/api/vouchers/", params={"year": 2023, "month": 3})
    assert [v["id"] for v in r.json()["data"]] == [old_id]

    r = await client.get("/api/vouchers/", params={"year": 2023, "month": 4})
    assert r.json()["data"] == []

    r = await client.get("/api/vouchers/", params={"month": 3})
    assert old_id in [v["id"] for v in r.json()["data"]]


async def test_filter_month_out_of_range(client):
    r = await client.get("/api/vouchers/", params={"month": 13})
    assert r.status_code == 400


# ===================== STORED DATA =====================


async def test_malformed_stored_url_data_passes_through(client, db_session, seed_data):
    db_session.add(Voucher(
        url_data="not-json-at-all",
        status=VoucherStatus.PENDING,
        deo_id=seed_data["deo_id"],
        vo_id=seed_data["vo_id"],
    ))
    await db_session.commit()
    await _submit(client)

    r = await client.get("/api/vouchers/")
    assert r.status_code == 200
    url_values = [v["url_data"] for v in r.json()["data"]]
    assert "not-json-at-all" in url_values
    assert any(isinstance(u, dict) for u in url_values)


# ===================== SERVICE =====================


async def test_service_rejects_non_terminal_status(db_session, seed_data):
    voucher = await voucher_workflow.create_voucher(
        db_session, {"downloadURL": DOWNLOAD_URL}, seed_data["deo"]
    )
    voucher_id = voucher.id

    with pytest.raises(ValidationError):
        await voucher_workflow.verify_voucher(
            db_session, voucher_id, VoucherStatus.PENDING, seed_data["vo"]
        )

    reloaded = await voucher_workflow.get_voucher(db_session, voucher_id, seed_data["deo"])
    assert reloaded.status == VoucherStatus.PENDING


async def test_service_second_transition_is_invalid(db_session, seed_data):
    voucher = await voucher_workflow.create_voucher(
        db_session, {"downloadURL": DOWNLOAD_URL}, seed_data["deo"]
    )
    voucher_id = voucher.id
    vo_id = seed_data["vo_id"]

    await voucher_workflow.verify_voucher(
        db_session, voucher_id, VoucherStatus.REJECTED, seed_data["vo"], comment="Blurry scan"
    )
    with pytest.raises(InvalidTransition):
        await voucher_workflow.verify_voucher(
            db_session, voucher_id, VoucherStatus.APPROVED, seed_data["vo"]
        )

    result = await db_session.execute(
        select(Voucher).where(Voucher.id == voucher_id).execution_options(populate_existing=True)
    )
    stored = result.scalar_one()
    assert stored.status == VoucherStatus.REJECTED
    assert stored.comment == "Blurry scan"
    assert stored.vo_id == vo_id


async def test_service_no_active_vo_writes_nothing(db_session, seed_data):
    await db_session.execute(update(VODetails).values(is_active=False))
    await db_session.commit()

    with pytest.raises(PreconditionFailed):
        await voucher_workflow.create_voucher(
            db_session, {"downloadURL": DOWNLOAD_URL}, seed_data["deo"]
        )
    assert await _voucher_count(db_session) == 0


async def test_resolve_active_vo_ignores_inactive_user(db_session, seed_data):
    await db_session.execute(update(VODetails).values(is_active=True))
    await db_session.execute(
        update(User).where(User.id == seed_data["vo_id"]).values(is_active=False)
    )
    await db_session.commit()

    vo = await voucher_workflow.resolve_active_vo(db_session)
    assert vo.id == seed_data["vo2_id"]


async def test_service_admin_cannot_list(db_session, seed_data):
    with pytest.raises(Forbidden):
        await voucher_workflow.list_vouchers(db_session, seed_data["admin"])
