from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
import pytest_asyncio

from marketplace.core.db import close_db, init_db
from marketplace.models.account import Kitchen, User
from marketplace.models.order import PaymentMethod
from marketplace.schemas.order import CartItem, CheckoutRequest
from marketplace.services.order_service import checkout
from marketplace.services.wallet_ledger import create_wallet, credit, find_user_wallet

TEST_DB_URL = "sqlite://:memory:"


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test."""
    await init_db(TEST_DB_URL)
    yield
    await close_db()


async def fund(user: User, amount: str) -> None:
    wallet = await find_user_wallet(user.id)
    await credit(wallet.id, Decimal(amount), note="Opening balance")


@pytest.fixture
def fund_wallet(db):
    return fund


@pytest.fixture
def make_user(db):
    async def _make(balance: str = None, is_admin: bool = False) -> User:
        user = await User.create(
            email=f"{uuid4().hex[:10]}@example.com",
            first_name="Test",
            last_name="User",
            is_admin=is_admin,
        )
        await create_wallet(user.id)
        if balance:
            await fund(user, balance)
        return user
    return _make


@pytest_asyncio.fixture
async def market(make_user):
    """A buyer, a vendor with one kitchen (and its payout wallet) and an admin."""
    buyer = await make_user()
    vendor = await make_user()
    admin = await make_user(is_admin=True)
    kitchen = await Kitchen.create(owner=vendor, name="Mama's Kitchen")
    await create_wallet(kitchen.id, is_kitchen_wallet=True)
    return SimpleNamespace(buyer=buyer, vendor=vendor, admin=admin, kitchen=kitchen)


@pytest.fixture
def place_order(market):
    async def _place(total: str = "1200.00", method: PaymentMethod = PaymentMethod.WALLET, buyer: User = None):
        request = CheckoutRequest(
            kitchen_id=market.kitchen.id,
            items=[CartItem(meal_id=uuid4(), price=Decimal(total), quantity=1)],
            payment_method=method,
            delivery_address="12 Allen Avenue, Ikeja",
        )
        return await checkout(buyer or market.buyer, request)
    return _place
