"""Engine URL handling and JSON column encoding."""
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from luxetix.database import dumps_payment_data, normalize_database_url


@pytest.mark.parametrize("url", [
    "postgresql://postgres:pw@db.supabase.co:6543/postgres",
    "postgres://postgres:pw@db.supabase.co:6543/postgres",
    "postgresql+asyncpg://postgres:pw@db.supabase.co:6543/postgres",
])
def test_postgres_urls_use_psycopg(url):
    assert normalize_database_url(url) == "postgresql+psycopg://postgres:pw@db.supabase.co:6543/postgres"


def test_sqlite_url_is_untouched():
    assert normalize_database_url("sqlite+aiosqlite:///./luxetix.db") == "sqlite+aiosqlite:///./luxetix.db"


def test_payment_data_encoding():
    order_id = uuid.uuid4()
    encoded = json.loads(dumps_payment_data({
        "amount": Decimal("200000.00"),
        "fee": Decimal("2500.50"),
        "order_id": order_id,
        "expires_at": datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
    }))

    assert encoded == {
        "amount": 200000,
        "fee": "2500.50",
        "order_id": str(order_id),
        "expires_at": "2026-03-01T12:00:00+00:00",
    }


def test_unknown_types_are_rejected():
    with pytest.raises(TypeError):
        dumps_payment_data({"value": object()})
