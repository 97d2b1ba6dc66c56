# scripts/seed_data.py
import asyncio
from decimal import Decimal

from tortoise import Tortoise
from tortoise.transactions import in_transaction

from marketplace.core.db import DB_URL, MODELS_MODULES
from marketplace.models.account import Kitchen, User
from marketplace.models.wallet import Wallet
from marketplace.services.wallet_ledger import create_wallet, credit


async def init():
    await Tortoise.init(db_url=DB_URL, modules={"models": MODELS_MODULES})
    # don't generate schemas here (already created), but safe to call in dev:
    # await Tortoise.generate_schemas()


async def ensure_wallet(owner_id, is_kitchen_wallet=False) -> Wallet:
    wallet = await Wallet.get_or_none(owner_id=owner_id)
    if wallet:
        return wallet
    return await create_wallet(owner_id, is_kitchen_wallet)


async def seed():
    buyer, _ = await User.get_or_create(email="buyer@example.com", defaults={"first_name": "Demo", "last_name": "Buyer"})
    vendor, _ = await User.get_or_create(email="vendor@example.com", defaults={"first_name": "Demo", "last_name": "Vendor"})
    admin, _ = await User.get_or_create(email="admin@example.com", defaults={"first_name": "Demo", "last_name": "Admin", "is_admin": True})
    print("Users:", str(buyer.id), str(vendor.id), str(admin.id))

    kitchen, _ = await Kitchen.get_or_create(owner=vendor, name="Demo Kitchen")
    print("Kitchen:", kitchen.id)

    buyer_wallet = await ensure_wallet(buyer.id)
    await ensure_wallet(vendor.id)
    await ensure_wallet(admin.id)
    await ensure_wallet(kitchen.id, is_kitchen_wallet=True)

    # Opening balance goes through the ledger so the wallet still replays from zero
    if buyer_wallet.balance == 0:
        async with in_transaction() as conn:
            await credit(buyer_wallet.id, Decimal("5000.00"), note="Opening balance", user_id=buyer.id, conn=conn)

    print("Wallets seeded.")


async def main():
    await init()
    await seed()
    await Tortoise.close_connections()

if __name__ == "__main__":
    asyncio.run(main())
