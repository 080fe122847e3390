"""
Idempotent seed: an adviser account plus a few sample clients for local use.
Override the adviser with SEED_ADVISER_EMAIL / SEED_ADVISER_PASSWORD.
"""
import asyncio
from datetime import datetime, timezone
import os
import uuid

from database import get_db_context
from auth import hash_password

SEED_ADVISER_EMAIL = os.environ.get("SEED_ADVISER_EMAIL", "adviser@perpetualwealth.com.au")
SEED_ADVISER_PASSWORD = os.environ.get("SEED_ADVISER_PASSWORD", "Adviser123!")
SEED_ADVISER_NAME = os.environ.get("SEED_ADVISER_NAME", "Demo Adviser")

SAMPLE_CLIENTS = [
    {
        "firstName": "Sarah",
        "lastName": "Mitchell",
        "dob": "1980-03-14T00:00:00+00:00",
        "email": "sarah.mitchell@example.com",
        "mobile": "0412 345 678",
        "state": "NSW",
        "maritalStatus": "MARRIED",
        "numberOfDependants": 2,
        "annualIncome": 145000,
        "rentalIncome": 26000,
        "currentSuper": 210000,
        "currentSavings": 45000,
        "currentShares": 60000,
        "assets": [
            {"name": "Home", "currentValue": 950000, "type": "property"},
            {"name": "Investment unit", "currentValue": 620000, "type": "property"},
        ],
        "liabilities": [
            {"name": "Home loan", "balance": 410000, "interestRate": 6.1, "monthlyRepayment": 2900, "type": "mortgage"},
            {"name": "Unit loan", "balance": 480000, "interestRate": 6.4, "monthlyRepayment": 3100, "type": "mortgage"},
        ],
    },
    {
        "firstName": "Daniel",
        "lastName": "Nguyen",
        "dob": "1991-09-02T00:00:00+00:00",
        "email": "daniel.nguyen@example.com",
        "mobile": "0433 222 111",
        "state": "VIC",
        "maritalStatus": "SINGLE",
        "numberOfDependants": 0,
        "annualIncome": 98000,
        "currentSuper": 72000,
        "currentSavings": 30000,
        "assets": [],
        "liabilities": [
            {"name": "Car loan", "balance": 18000, "interestRate": 8.5, "monthlyRepayment": 450, "type": "personal-loan"},
        ],
    },
]


async def seed_database():
    print("Seeding database (idempotent)...")

    async with get_db_context() as db:
        now = datetime.now(timezone.utc).isoformat()

        # 1) Adviser
        adviser = await db.users.find_one({"email": SEED_ADVISER_EMAIL}, {"_id": 0})
        if not adviser:
            adviser = {
                "id": str(uuid.uuid4()),
                "email": SEED_ADVISER_EMAIL,
                "name": SEED_ADVISER_NAME,
                "role": "ADVISER",
                "password_hash": hash_password(SEED_ADVISER_PASSWORD),
                "is_active": True,
                "last_login": None,
                "created_at": now,
            }
            await db.users.insert_one(dict(adviser))
            print(f"  ADVISER created: {SEED_ADVISER_EMAIL}")
        else:
            print(f"  ADVISER already exists: {SEED_ADVISER_EMAIL}")

        # 2) Sample clients, matched on email per adviser
        for sample in SAMPLE_CLIENTS:
            exists = await db.clients.find_one({"userId": adviser["id"], "email": sample["email"]})
            if exists:
                print(f"  CLIENT already exists: {sample['firstName']} {sample['lastName']}")
                continue
            await db.clients.insert_one({
                **sample,
                "id": str(uuid.uuid4()),
                "userId": adviser["id"],
                "createdAt": now,
                "updatedAt": now,
            })
            print(f"  CLIENT created: {sample['firstName']} {sample['lastName']}")

    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed_database())
