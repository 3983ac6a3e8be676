from decimal import Decimal
from uuid import UUID

import pytest
from httpx import AsyncClient

from app.api.v1.attendance import service as attendance_service
from app.auth.models import User


def mark_payload(school, student, status, day="2024-03-01", **extra):
    return {
        "class_id": str(school.class_a.id),
        "student_id": str(student.id),
        "date": day,
        "status": status,
        **extra,
    }


async def only_fine(client: AsyncClient, headers, school, student) -> dict:
    response = await client.get(
        f"/api/v1/fines/student/{student.id}/summary", headers=headers(school.admin)
    )
    assert response.status_code == 200
    fines = response.json()["fines"]
    assert len(fines) == 1
    return fines[0]


@pytest.mark.asyncio
async def test_absence_fine_end_to_end(client: AsyncClient, school, headers) -> None:
    student = school.students[0]
    teacher = headers(school.teacher)

    response = await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "absent"), headers=teacher)
    assert response.status_code == 201
    assert response.json()["attendance"]["status"] == "absent"

    fine = await only_fine(client, headers, school, student)
    assert fine["date"] == "2024-03-01"
    assert Decimal(fine["fine_amount"]) == Decimal("50")
    assert Decimal(fine["paid_amount"]) == Decimal("0")
    assert Decimal(fine["pending_amount"]) == Decimal("50")
    assert fine["status"] == "pending"

    response = await client.patch(
        f"/api/v1/fines/{fine['id']}/payment", json={"payment_amount": 30}, headers=teacher
    )
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["remaining_balance"]) == Decimal("20")
    assert Decimal(body["fine"]["paid_amount"]) == Decimal("30")
    assert body["fine"]["status"] == "partially_paid"

    response = await client.patch(
        f"/api/v1/fines/{fine['id']}/payment",
        json={"payment_amount": "20", "payment_method": "online", "remarks": "UPI"},
        headers=teacher,
    )
    assert response.status_code == 200
    body = response.json()["fine"]
    assert Decimal(body["paid_amount"]) == Decimal("50")
    assert Decimal(body["pending_amount"]) == Decimal("0")
    assert body["status"] == "paid"
    assert [p["payment_method"] for p in body["payment_history"]] == ["cash", "online"]

    response = await client.patch(
        f"/api/v1/fines/{fine['id']}/payment", json={"payment_amount": 1}, headers=teacher
    )
    assert response.status_code == 400
    assert response.json() == {"message": "Fine is already fully paid"}

    response = await client.get(f"/api/v1/fines/{fine['id']}/payment-history", headers=headers(student))
    assert response.status_code == 200
    history = response.json()
    assert history["student_name"] == student.full_name
    assert len(history["payment_history"]) == 2


@pytest.mark.asyncio
async def test_mark_returns_200_when_overwriting(client: AsyncClient, school, headers) -> None:
    student = school.students[0]
    teacher = headers(school.teacher)
    first = await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "present"), headers=teacher)
    second = await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "leave"), headers=teacher)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["attendance"]["id"] == first.json()["attendance"]["id"]
    assert second.json()["attendance"]["status"] == "leave"


@pytest.mark.asyncio
async def test_overpayment_error_body(client: AsyncClient, school, headers) -> None:
    student = school.students[0]
    teacher = headers(school.teacher)
    await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "absent"), headers=teacher)
    fine = await only_fine(client, headers, school, student)

    response = await client.patch(
        f"/api/v1/fines/{fine['id']}/payment", json={"payment_amount": 51}, headers=teacher
    )

    assert response.status_code == 400
    body = response.json()
    assert "exceeds pending amount" in body["message"]
    assert Decimal(body["attempted"]) == Decimal("51")
    assert Decimal(body["available"]) == Decimal("50")


@pytest.mark.asyncio
async def test_sub_cent_payment_is_400(client: AsyncClient, school, headers) -> None:
    student = school.students[0]
    teacher = headers(school.teacher)
    await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "absent"), headers=teacher)
    fine = await only_fine(client, headers, school, student)

    response = await client.patch(
        f"/api/v1/fines/{fine['id']}/payment", json={"payment_amount": "0.001"}, headers=teacher
    )
    assert response.status_code == 400
    assert response.json()["message"] == "payment_amount must not have more than 2 decimal places"

    fine = await only_fine(client, headers, school, student)
    assert Decimal(fine["paid_amount"]) == Decimal("0")
    assert fine["status"] == "pending"


@pytest.mark.asyncio
async def test_concurrent_first_mark_conflict_body(client: AsyncClient, school, headers, monkeypatch) -> None:
    student = school.students[0]
    teacher = headers(school.teacher)
    first = await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "present"), headers=teacher)
    assert first.status_code == 201

    async def not_yet_visible(*args, **kwargs):
        return None

    monkeypatch.setattr(attendance_service, "_find_attendance", not_yet_visible)
    response = await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "absent"), headers=teacher)
    assert response.status_code == 400
    assert response.json() == {"message": "Attendance already marked for this student on this date"}

@pytest.mark.asyncio
async def test_service_errors_render_message(client: AsyncClient, school, headers) -> None:
    teacher = headers(school.teacher)

    response = await client.post(
        "/api/v1/attendance/mark", json=mark_payload(school, school.students[0], "late"), headers=teacher
    )
    assert response.status_code == 400
    assert "message" in response.json()

    response = await client.post(
        "/api/v1/attendance/mark", json=mark_payload(school, school.outsider, "present"), headers=teacher
    )
    assert response.status_code == 404
    assert response.json() == {"message": "Student not found or does not belong to this class"}

    response = await client.patch(
        f"/api/v1/fines/{school.admin.id}/payment", json={"payment_amount": 5}, headers=teacher
    )
    assert response.status_code == 404
    assert response.json() == {"message": "Fine record not found"}


@pytest.mark.asyncio
async def test_request_validation_is_400_with_message(client: AsyncClient, school, headers) -> None:
    payload = mark_payload(school, school.students[0], "present")
    del payload["student_id"]
    response = await client.post("/api/v1/attendance/mark", json=payload, headers=headers(school.teacher))
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert "student_id" in body["error"]

    payload = mark_payload(school, school.students[0], "present", day="not-a-date")
    response = await client.post("/api/v1/attendance/mark", json=payload, headers=headers(school.teacher))
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert "date" in body["error"]

    response = await client.patch(
        f"/api/v1/fines/{school.admin.id}/payment", json={"payment_amount": "lots"}, headers=headers(school.teacher)
    )
    assert response.status_code == 400
    assert set(response.json()) == {"message", "error"}


@pytest.mark.asyncio
async def test_bulk_endpoint(client: AsyncClient, school, headers) -> None:
    anil, bina, chetan = school.students[:3]
    payload = {
        "class_id": str(school.class_a.id),
        "date": "2024-03-01",
        "records": [
            {"student_id": str(anil.id), "status": "present"},
            {"student_id": str(bina.id), "status": "absent", "remarks": "fever"},
            {"student_id": str(chetan.id), "status": "leave"},
            {"student_id": str(school.outsider.id), "status": "present"},
        ],
    }
    response = await client.post("/api/v1/attendance/mark-bulk", json=payload, headers=headers(school.teacher))

    assert response.status_code == 200
    results = response.json()["results"]
    assert [UUID(s) for s in results["success"]] == [anil.id, bina.id, chetan.id]
    assert results["updated"] == []
    assert results["failed"] == [
        {"student_id": str(school.outsider.id), "reason": "Student not found or does not belong to this class"}
    ]

    response = await client.get(
        "/api/v1/attendance/class",
        params={"class_id": str(school.class_a.id), "date": "2024-03-01"},
        headers=headers(school.teacher),
    )
    assert response.status_code == 200
    day = response.json()
    assert day["total_students"] == 4
    statuses = {item["student_name"]: item["status"] for item in day["attendance"]}
    assert statuses == {"Anil": "present", "Bina": "absent", "Chetan": "leave", "Divya": "not-marked"}

    fine = await only_fine(client, headers, school, bina)
    assert fine["status"] == "pending"


@pytest.mark.asyncio
async def test_update_and_delete_endpoints(client: AsyncClient, school, headers) -> None:
    student = school.students[1]
    teacher = headers(school.teacher)
    created = await client.post(
        "/api/v1/attendance/mark",
        json=mark_payload(school, student, "present", remarks="on time"),
        headers=teacher,
    )
    attendance_id = created.json()["attendance"]["id"]

    response = await client.put(f"/api/v1/attendance/{attendance_id}", json={"status": "absent"}, headers=teacher)
    assert response.status_code == 200
    assert response.json()["attendance"]["remarks"] == "on time"
    fine = await only_fine(client, headers, school, student)

    response = await client.put(f"/api/v1/attendance/{attendance_id}", json={"remarks": ""}, headers=teacher)
    assert response.json()["attendance"]["remarks"] == ""

    response = await client.delete(f"/api/v1/attendance/{attendance_id}", headers=teacher)
    assert response.status_code == 200
    assert response.json()["deleted_fines"] == 1

    response = await client.get(f"/api/v1/fines/{fine['id']}/payment-history", headers=teacher)
    assert response.status_code == 404

    response = await client.delete(f"/api/v1/attendance/{attendance_id}", headers=teacher)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_clear_and_sync_endpoints(client: AsyncClient, school, headers) -> None:
    student = school.students[2]
    teacher = headers(school.teacher)
    for day in ("2024-03-01", "2024-03-02"):
        await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "absent", day=day), headers=teacher)

    response = await client.post(f"/api/v1/fines/student/{student.id}/clear", headers=teacher)
    assert response.status_code == 200
    body = response.json()
    assert body["cleared_fines"] == 2
    assert Decimal(body["amount_cleared"]) == Decimal("100")
    assert Decimal(body["updated_summary"]["total_pending"]) == Decimal("0")

    response = await client.post(f"/api/v1/fines/student/{student.id}/clear", json={}, headers=teacher)
    assert response.status_code == 404
    assert response.json() == {"message": "No pending fines found for this student"}

    response = await client.post("/api/v1/fines/sync", json={}, headers=headers(school.admin))
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats == {"total_absent_records": 2, "fines_created": 0, "fines_updated": 0, "existing_fines": 2}

    response = await client.post(
        "/api/v1/fines/sync",
        json={"start_date": "2024-03-05", "end_date": "2024-03-01"},
        headers=headers(school.admin),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_student_history_endpoint(client: AsyncClient, school, headers) -> None:
    student = school.students[3]
    await client.post("/api/v1/attendance/mark", json=mark_payload(school, student, "present"), headers=headers(school.teacher))

    response = await client.get(f"/api/v1/attendance/student/{student.id}", headers=headers(student))
    assert response.status_code == 200
    body = response.json()
    assert body["stats"]["total"] == 1
    assert body["stats"]["attendance_percentage"] == 100.0


# ----- Auth guards -----
@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: AsyncClient, school) -> None:
    response = await client.post("/api/v1/attendance/mark", json=mark_payload(school, school.students[0], "present"))
    assert response.status_code == 401
    assert response.json() == {"message": "Not authenticated"}

    response = await client.get(
        f"/api/v1/attendance/student/{school.students[0].id}",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.json() == {"message": "Could not validate credentials"}
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_inactive_user_is_rejected(client: AsyncClient, school, headers, db_session) -> None:
    teacher = await db_session.get(User, school.teacher.id)
    teacher.status = "INACTIVE"
    await db_session.commit()

    response = await client.post(
        "/api/v1/attendance/mark", json=mark_payload(school, school.students[0], "present"), headers=headers(school.teacher)
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_role_guards(client: AsyncClient, school, headers) -> None:
    student = school.students[0]

    response = await client.post(
        "/api/v1/attendance/mark", json=mark_payload(school, student, "present"), headers=headers(student)
    )
    assert response.status_code == 403
    assert response.json() == {"message": "Insufficient permissions"}

    response = await client.post(f"/api/v1/fines/student/{student.id}/clear", headers=headers(student))
    assert response.status_code == 403

    response = await client.post("/api/v1/fines/sync", headers=headers(school.teacher))
    assert response.status_code == 403

    response = await client.post("/api/v1/fines/sync", headers=headers(school.admin))
    assert response.status_code == 200
    assert response.json()["stats"]["total_absent_records"] == 0
