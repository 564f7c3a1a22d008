import os

os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["VALIDATE_CONFIG_ON_IMPORT"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("EMAIL_API_URL", None)
os.environ.pop("MASTER_ADMIN_EMAIL", None)

from decimal import Decimal  # noqa: E402
from typing import List, Optional  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402

from app.main import app  # noqa: E402
from app.core.database import DatabaseManager  # noqa: E402
from app.core.jwt_auth import jwt_manager  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.admin.models import Admin  # noqa: E402
from app.admin.schemas.shifts import ShiftConfigure, ShiftDiscounts  # noqa: E402
from app.admin.services.razorpay_client import get_billing_client  # noqa: E402
from app.students.models import Student  # noqa: E402

ADMIN_PASSWORD = "secret123"


class FakeBillingClient:
    """Records gateway calls and returns canned ids"""

    def __init__(self):
        self.plans = []
        self.subscriptions = []
        self.cancelled = []
        self.cancel_error = None

    async def create_plan(self, name, amount, currency, period, interval, description=""):
        self.plans.append(
            {"name": name, "amount": amount, "currency": currency, "period": period, "interval": interval}
        )
        return {"id": f"plan_test_{len(self.plans)}"}

    async def create_subscription(self, plan_id, total_count, customer_email, customer_phone, admin_id):
        self.subscriptions.append(
            {"plan_id": plan_id, "total_count": total_count, "admin_id": admin_id}
        )
        return {"id": f"sub_test_{len(self.subscriptions)}", "status": "created"}

    async def cancel_subscription(self, subscription_id):
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(subscription_id)
        return {"id": subscription_id, "status": "cancelled"}


@pytest.fixture
async def db_manager(tmp_path):
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'studyroom.db'}")

    @event.listens_for(manager.engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await manager.create_tables()
    yield manager
    await manager.close_connections()


@pytest.fixture
async def session(db_manager):
    async with db_manager.session() as s:
        yield s


async def create_admin(
    db_manager: DatabaseManager,
    email: str = "owner@example.com",
    is_verified: bool = True,
    is_subscribed: bool = True,
    is_master: bool = False,
) -> Admin:
    async with db_manager.session() as s:
        admin = Admin(
            email=email,
            password=hash_password(ADMIN_PASSWORD),
            name="Owner",
            is_verified=is_verified,
            is_subscribed=is_subscribed,
            is_master=is_master,
        )
        s.add(admin)
        await s.commit()
        return admin


async def create_student(
    db_manager: DatabaseManager, admin_id: int, email: str, name: str = "Student"
) -> Student:
    """Bare student row without shift links"""
    async with db_manager.session() as s:
        student = Student(
            admin_id=admin_id,
            name=name,
            email=email,
            password="not-a-real-hash",
            monthly_fee=Decimal("0"),
        )
        s.add(student)
        await s.commit()
        return student


@pytest.fixture
async def admin(db_manager) -> Admin:
    return await create_admin(db_manager)


@pytest.fixture
async def other_admin(db_manager) -> Admin:
    return await create_admin(db_manager, email="rival@example.com")


def shift_request(
    num_shifts: int = 3,
    hours_per_shift="4",
    start_time: str = "06:00",
    fees: Optional[List] = None,
    **discounts,
) -> ShiftConfigure:
    return ShiftConfigure(
        num_shifts=num_shifts,
        hours_per_shift=Decimal(str(hours_per_shift)),
        start_time=start_time,
        fees=[Decimal(str(f)) for f in (fees if fees is not None else [100, 150, 200])],
        discounts=ShiftDiscounts(**discounts) if discounts else None,
    )


def auth_headers(user, role: str = "admin") -> dict:
    token = jwt_manager.create_access_token(user.id, user.email, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def billing():
    return FakeBillingClient()


@pytest.fixture
async def client(db_manager, billing):
    app.state.db = db_manager
    app.dependency_overrides[get_billing_client] = lambda: billing
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
