from datetime import datetime, timedelta, timezone

import pytest

from tests.fakes.firestore import FakeFirestore

USER_ID = "user-1"

EXPENSES_MODULE = {
    "name": "Expenses",
    "description": "Track spending",
    "schemas": {
        "default": {
            "label": "Expense",
            "version": 2,
            "fields": {
                "title": {"type": "text", "label": "Title", "required": True},
                "amount": {"type": "currency", "label": "Amount", "required": True},
                "category": {"type": "enum", "label": "Category", "options": ["food", "travel"]},
                "account": {"type": "reference", "label": "Account"},
            },
            "effects": [
                {
                    "type": "adjust_reference",
                    "referenceField": "account",
                    "targetField": "balance",
                    "operation": "subtract",
                    "amountField": "amount",
                },
            ],
        },
        "accounts": {
            "label": "Account",
            "fields": {
                "name": {"type": "text", "label": "Name", "required": True},
                "balance": {"type": "number", "label": "Balance"},
            },
        },
    },
}


def created_at(minutes: int) -> datetime:
    return datetime(2025, 6, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes)


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def expenses_db(db):
    """Expenses module with one account (balance 100) and three expenses"""

    base = f"users/{USER_ID}/modules/expenses"
    db.seed(base, EXPENSES_MODULE)
    db.seed(f"{base}/entries/acct-1", {
        "schemaKey": "accounts",
        "data": {"name": "Checking", "balance": 100},
        "createdAt": created_at(0),
    })
    for minutes, (entry_id, title, amount, category) in enumerate([
        ("exp-1", "Coffee", 4.5, "food"),
        ("exp-2", "Train", 30, "travel"),
        ("exp-3", "Lunch", 12, "food"),
    ], start=1):
        db.seed(f"{base}/entries/{entry_id}", {
            "schemaKey": "default",
            "data": {"title": title, "amount": amount, "category": category},
            "createdAt": created_at(minutes),
        })
    return db
