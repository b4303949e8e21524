"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# 必須在匯入 app 之前設定：不連資料庫、上傳檔案寫到暫存資料夾
os.environ["AUTO_INIT_DB"] = "0"
os.environ.setdefault("UPLOAD_ROOT", tempfile.mkdtemp(prefix="yard-uploads-"))
os.environ.setdefault("SECRET_KEY", "test-only-secret")

from fastapi.testclient import TestClient  # noqa: E402

from errors import ConflictState  # noqa: E402
from main import app  # noqa: E402
from models import Actor, Order, OrderStatus, OrderView, Role, User  # noqa: E402
from repository import get_order_repository, get_user_repository  # noqa: E402

DEFAULT_PASSWORD = "secret123"
_EPOCH = datetime(2025, 5, 1, 8, 0, tzinfo=timezone.utc)


class _Clock:
    """每次呼叫往後推一秒，讓「新的在前」的排序可以預期"""

    def __init__(self):
        self.ticks = 0

    def now(self) -> datetime:
        self.ticks += 1
        return _EPOCH + timedelta(seconds=self.ticks)


class InMemoryUserRepository:
    """In-memory user store for testing."""

    def __init__(self, clock: _Clock):
        self.clock = clock
        self.users: dict[int, User] = {}

    def add(self, email: str, role: Role, name: str = "Test User", password_digest: str = "", **extra) -> User:
        if any(u.email == email for u in self.users.values()):
            raise ConflictState("Email is already registered")
        user = User(
            id=len(self.users) + 1,
            email=email,
            role=role,
            name=name,
            password_digest=password_digest,
            created_at=self.clock.now(),
            **extra,
        )
        self.users[user.id] = user
        return user

    async def create(self, *, email, password_digest, role, name, phone=None, area=None, tools=None) -> User:
        return self.add(
            email, role, name, password_digest, phone=phone, area=area, tools=list(tools or [])
        )

    async def get(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        return next((u for u in self.users.values() if u.email == email), None)

    async def list_by_role(self, role: Role) -> list[User]:
        found = [u for u in self.users.values() if u.role == role]
        return sorted(found, key=lambda u: (u.created_at, u.id), reverse=True)


class InMemoryOrderRepository:
    """In-memory order store with the same conditional-update semantics as the SQL version."""

    def __init__(self, users: InMemoryUserRepository, clock: _Clock):
        self.users = users
        self.clock = clock
        self.orders: dict[int, Order] = {}

    async def create(self, *, customer_id, work_type, address, estimated_price, description=None,
                     latitude=None, longitude=None, has_tools=False, photo_refs=None) -> Order:
        now = self.clock.now()
        order = Order(
            id=len(self.orders) + 1,
            customer_id=customer_id,
            work_type=work_type,
            address=address,
            estimated_price=estimated_price,
            description=description,
            latitude=latitude,
            longitude=longitude,
            has_tools=has_tools,
            photo_refs=list(photo_refs or []),
            created_at=now,
            updated_at=now,
        )
        self.orders[order.id] = order
        return order

    async def get(self, order_id: int) -> Order | None:
        return self.orders.get(order_id)

    async def _update_if(self, order_id: int, condition, **changes) -> Order | None:
        # 讓出事件迴圈，模擬多個請求同時抵達；檢查與寫入之間沒有 await
        await asyncio.sleep(0)
        order = self.orders.get(order_id)
        if order is None or not condition(order):
            return None
        updated = order.model_copy(update={**changes, "updated_at": self.clock.now()})
        self.orders[order_id] = updated
        return updated

    async def accept(self, order_id: int, worker_id: int) -> Order | None:
        return await self._update_if(
            order_id,
            lambda o: o.status == OrderStatus.PENDING,
            worker_id=worker_id,
            status=OrderStatus.ACCEPTED,
        )

    async def complete(self, order_id: int, worker_id: int) -> Order | None:
        return await self._update_if(
            order_id,
            lambda o: o.worker_id == worker_id and o.status == OrderStatus.ACCEPTED,
            status=OrderStatus.COMPLETED,
        )

    async def rate(self, order_id: int, customer_id: int, rating: int, feedback) -> Order | None:
        return await self._update_if(
            order_id,
            lambda o: o.customer_id == customer_id and o.status == OrderStatus.COMPLETED and o.rating is None,
            rating=rating,
            feedback=feedback,
        )

    def _view(self, order: Order, customer: bool, worker: bool, email: bool = False) -> OrderView:
        extra = {}
        if customer:
            c = self.users.users[order.customer_id]
            extra.update(customer_name=c.name, customer_phone=c.phone)
            if email:
                extra["customer_email"] = c.email
        if worker and order.worker_id is not None:
            w = self.users.users[order.worker_id]
            extra.update(worker_name=w.name, worker_phone=w.phone)
            if email:
                extra["worker_email"] = w.email
        return OrderView(**order.model_dump(), **extra)

    def _newest_first(self, orders):
        return sorted(orders, key=lambda o: (o.created_at, o.id), reverse=True)

    async def list_by_status(self, status: OrderStatus) -> list[OrderView]:
        found = [o for o in self.orders.values() if o.status == status]
        return [self._view(o, customer=True, worker=False) for o in self._newest_first(found)]

    async def list_for_customer(self, customer_id: int) -> list[OrderView]:
        found = [o for o in self.orders.values() if o.customer_id == customer_id]
        return [self._view(o, customer=False, worker=True) for o in self._newest_first(found)]

    async def list_for_worker(self, worker_id: int) -> list[OrderView]:
        found = [o for o in self.orders.values() if o.worker_id == worker_id]
        return [self._view(o, customer=True, worker=False) for o in self._newest_first(found)]

    async def list_all(self) -> list[OrderView]:
        return [
            self._view(o, customer=True, worker=True, email=True)
            for o in self._newest_first(self.orders.values())
        ]


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def users_repo(clock):
    return InMemoryUserRepository(clock)


@pytest.fixture
def orders_repo(users_repo, clock):
    return InMemoryOrderRepository(users_repo, clock)


@pytest.fixture
def customer(users_repo) -> Actor:
    return users_repo.add("carol@example.com", Role.CUSTOMER, "Carol", phone="+420111").as_actor()


@pytest.fixture
def worker(users_repo) -> Actor:
    return users_repo.add("walt@example.com", Role.WORKER, "Walt", phone="+420222").as_actor()


@pytest.fixture
def other_worker(users_repo) -> Actor:
    return users_repo.add("wendy@example.com", Role.WORKER, "Wendy").as_actor()


@pytest.fixture
def admin(users_repo) -> Actor:
    return users_repo.add("admin@example.com", Role.ADMIN, "Admin").as_actor()


@pytest.fixture
def api(users_repo, orders_repo):
    """Install the in-memory repositories into the app."""
    app.dependency_overrides[get_user_repository] = lambda: users_repo
    app.dependency_overrides[get_order_repository] = lambda: orders_repo
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(api):
    """Anonymous test client."""
    return TestClient(api)


@pytest.fixture
def login_as(api):
    """Register a user through the API and return a client holding its session cookie."""

    def _login(email: str, role: str = "customer", name: str = "Test User", **extra) -> TestClient:
        session = TestClient(api)
        form = {"email": email, "password": DEFAULT_PASSWORD, "role": role, "name": name, **extra}
        response = session.post("/api/register", data=form)
        assert response.status_code == 200, response.text
        response = session.post("/api/login", data={"email": email, "password": DEFAULT_PASSWORD})
        assert response.status_code == 200, response.text
        return session

    return _login
