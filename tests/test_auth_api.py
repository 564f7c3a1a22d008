from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

import app.admin.routers.auth as auth_router
from app.admin.crud.admins import get_admin_by_email
from app.admin.models import Admin
from app.students.models import Student

from conftest import ADMIN_PASSWORD, auth_headers, create_admin, create_student

API = "/api/v1"


@pytest.fixture
def sent_codes(monkeypatch):
    """Capture OTP emails instead of sending them"""
    codes = {}

    async def fake_send(email, otp):
        codes[email] = otp
        return True

    monkeypatch.setattr(auth_router, "send_otp_email", fake_send)
    return codes


async def login(client, email, password):
    return await client.post(f"{API}/auth/login", json={"email": email, "password": password})


async def test_signup_verify_login(client, db_manager, sent_codes):
    signup = await client.post(
        f"{API}/auth/signup",
        json={"email": "Owner2@Example.com", "password": "hunter22", "business_name": "Quiet Corner"},
    )
    assert signup.status_code == 201

    async with db_manager.session() as s:
        stored = await get_admin_by_email(s, "owner2@example.com")
        assert stored.is_verified is False
        otp = stored.otp
    assert len(otp) == 6

    wrong = await client.post(
        f"{API}/auth/verify-otp", json={"email": "owner2@example.com", "otp": "0000000"}
    )
    assert wrong.status_code == 400

    verified = await client.post(
        f"{API}/auth/verify-otp", json={"email": "owner2@example.com", "otp": otp}
    )
    assert verified.status_code == 200
    assert verified.json()["role"] == "admin"

    again = await client.post(
        f"{API}/auth/verify-otp", json={"email": "owner2@example.com", "otp": otp}
    )
    assert again.status_code == 409
    assert sent_codes == {"owner2@example.com": otp}

    logged_in = await login(client, "owner2@example.com", "hunter22")
    assert logged_in.status_code == 200
    token = logged_in.json()["access_token"]

    me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["business_name"] == "Quiet Corner"
    assert me.json()["is_subscribed"] is False


async def test_signup_twice_for_verified_admin_conflicts(client, admin, sent_codes):
    response = await client.post(
        f"{API}/auth/signup", json={"email": admin.email, "password": "whatever1"}
    )
    assert response.status_code == 409
    assert sent_codes == {}


async def stored_otp(db_manager, model, user_id):
    async with db_manager.session() as s:
        return (await s.get(model, user_id)).otp


async def test_admin_password_reset(client, db_manager, admin, sent_codes):
    requested = await client.post(
        f"{API}/auth/forgot-password", json={"email": admin.email.upper()}
    )
    assert requested.status_code == 200
    otp = await stored_otp(db_manager, Admin, admin.id)

    wrong = await client.post(
        f"{API}/auth/reset-password",
        json={"email": admin.email, "otp": "0000000", "new_password": "fresh-pass"},
    )
    assert wrong.status_code == 400

    reset = await client.post(
        f"{API}/auth/reset-password",
        json={"email": admin.email, "otp": otp, "new_password": "fresh-pass"},
    )
    assert reset.status_code == 200
    assert sent_codes == {admin.email: otp}

    assert (await login(client, admin.email, ADMIN_PASSWORD)).status_code == 401
    assert (await login(client, admin.email, "fresh-pass")).status_code == 200

    reused = await client.post(
        f"{API}/auth/reset-password",
        json={"email": admin.email, "otp": otp, "new_password": "another-pass"},
    )
    assert reused.status_code == 400


async def test_student_replaces_default_password(client, db_manager, admin, sent_codes):
    student = await create_student(db_manager, admin.id, "pupil@example.com")

    requested = await client.post(
        f"{API}/auth/forgot-password", json={"email": "pupil@example.com"}
    )
    assert requested.status_code == 200
    otp = await stored_otp(db_manager, Student, student.id)

    reset = await client.post(
        f"{API}/auth/reset-password",
        json={"email": "pupil@example.com", "otp": otp, "new_password": "my-own-pass"},
    )
    assert reset.status_code == 200

    logged_in = await login(client, "pupil@example.com", "my-own-pass")
    assert logged_in.status_code == 200
    assert logged_in.json()["role"] == "student"
    assert await stored_otp(db_manager, Student, student.id) is None


async def test_password_reset_rejections(client, db_manager, admin, sent_codes):
    unknown = await client.post(
        f"{API}/auth/forgot-password", json={"email": "nobody@example.com"}
    )
    assert unknown.status_code == 404

    unverified = await create_admin(db_manager, email="u@example.com", is_verified=False)
    blocked = await client.post(
        f"{API}/auth/forgot-password", json={"email": unverified.email}
    )
    assert blocked.status_code == 403

    await client.post(f"{API}/auth/forgot-password", json={"email": admin.email})
    otp = await stored_otp(db_manager, Admin, admin.id)
    async with db_manager.session() as s:
        await s.execute(
            update(Admin)
            .where(Admin.id == admin.id)
            .values(otp_expires=datetime.now(timezone.utc) - timedelta(minutes=1))
        )
        await s.commit()

    expired = await client.post(
        f"{API}/auth/reset-password",
        json={"email": admin.email, "otp": otp, "new_password": "fresh-pass"},
    )
    assert expired.status_code == 400
    assert expired.json()["message"] == "OTP has expired"
    assert "fresh-pass" not in expired.text
    assert sent_codes == {admin.email: otp}


async def test_login_failures_look_the_same(client, admin):
    wrong_password = await login(client, admin.email, "not-the-password")
    unknown = await login(client, "nobody@example.com", ADMIN_PASSWORD)

    assert wrong_password.status_code == 401
    assert unknown.status_code == 401
    assert wrong_password.json()["message"] == unknown.json()["message"]


async def test_protected_routes_need_a_token(client):
    response = await client.get(f"{API}/admin/shifts/")
    assert response.status_code == 401

    garbage = await client.get(
        f"{API}/admin/shifts/", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert garbage.status_code == 401


async def test_management_requires_verified_and_subscribed_admin(client, db_manager):
    unverified = await create_admin(db_manager, email="u@example.com", is_verified=False)
    unsubscribed = await create_admin(db_manager, email="s@example.com", is_subscribed=False)

    for user in (unverified, unsubscribed):
        response = await client.get(f"{API}/admin/seats/", headers=auth_headers(user))
        assert response.status_code == 403


async def test_revoked_subscription_applies_to_existing_token(client, db_manager, admin):
    headers = auth_headers(admin)
    assert (await client.get(f"{API}/admin/seats/", headers=headers)).status_code == 200

    async with db_manager.session() as s:
        await s.execute(update(Admin).where(Admin.id == admin.id).values(is_subscribed=False))
        await s.commit()

    assert (await client.get(f"{API}/admin/seats/", headers=headers)).status_code == 403


async def test_student_token_cannot_manage(client, db_manager, admin):
    async with db_manager.session() as s:
        student = Student(
            admin_id=admin.id, name="S", email="s@example.com", password="x", monthly_fee=Decimal("0")
        )
        s.add(student)
        await s.commit()

    response = await client.get(f"{API}/admin/seats/", headers=auth_headers(student, "student"))
    assert response.status_code == 403


async def test_room_setup_and_student_portal(client, db_manager, admin):
    headers = auth_headers(admin)

    shifts = await client.post(
        f"{API}/admin/shifts/",
        json={
            "num_shifts": 3,
            "hours_per_shift": "4",
            "start_time": "06:00",
            "fees": ["100", "150", "200"],
            "discounts": {"discount_2_shifts": "10"},
        },
        headers=headers,
    )
    assert shifts.status_code == 201
    body = shifts.json()
    assert [(s["start_time"], s["end_time"]) for s in body["shifts"]] == [
        ("06:00", "10:00"),
        ("10:00", "14:00"),
        ("14:00", "18:00"),
    ]
    assert body["version"] == 1

    overlong = await client.post(
        f"{API}/admin/shifts/",
        json={"num_shifts": 3, "hours_per_shift": "9", "start_time": "06:00", "fees": [1, 2, 3]},
        headers=headers,
    )
    assert overlong.status_code == 400

    quote = await client.post(
        f"{API}/admin/shifts/quote", json={"shift_numbers": [1, 2]}, headers=headers
    )
    assert Decimal(quote.json()["monthly_fee"]) == Decimal("225.00")

    seats = await client.post(f"{API}/admin/seats/", json={"num_seats": 2}, headers=headers)
    assert seats.status_code == 201
    seat_id = seats.json()["seats"][0]["id"]

    enrolled = await client.post(
        f"{API}/admin/students/",
        json={"name": "Asha", "email": "asha@example.com", "shift_numbers": [1, 2], "seat_id": seat_id},
        headers=headers,
    )
    assert enrolled.status_code == 201
    student = enrolled.json()
    assert Decimal(student["monthly_fee"]) == Decimal("225.00")
    assert student["seat_number"] == 1

    taken = await client.post(
        f"{API}/admin/students/",
        json={"name": "Ravi", "email": "ravi@example.com", "shift_numbers": [3], "seat_id": seat_id},
        headers=headers,
    )
    assert taken.status_code == 409

    locked = await client.delete(f"{API}/admin/shifts/", headers=headers)
    assert locked.status_code == 409

    available = await client.get(f"{API}/admin/seats/available", headers=headers)
    assert available.json()["available"] == 1

    student_login = await login(client, "asha@example.com", "student123")
    assert student_login.status_code == 200
    assert student_login.json()["role"] == "student"
    student_headers = {"Authorization": f"Bearer {student_login.json()['access_token']}"}

    unpaid = await client.get(f"{API}/students/me", headers=student_headers)
    assert unpaid.status_code == 403

    paid = await client.patch(
        f"{API}/admin/students/{student['id']}/payment", json={"has_paid": True}, headers=headers
    )
    assert paid.json()["has_paid"] is True

    me = await client.get(f"{API}/students/me", headers=student_headers)
    assert me.status_code == 200
    assert me.json()["shift_numbers"] == [1, 2]

    schedule = await client.get(f"{API}/students/me/shifts", headers=student_headers)
    assert [w["start_time"] for w in schedule.json()] == ["06:00", "10:00"]

    listing = await client.get(f"{API}/admin/students/?page=1&size=10", headers=headers)
    assert listing.json()["total"] == 1


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
