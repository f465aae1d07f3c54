from datetime import timedelta
from decimal import Decimal

from models import Payment, User, utcnow


def test_timestamps_default_to_aware_utc():
    now = utcnow()
    assert now.utcoffset() == timedelta(0)
    assert User(name="Alice").created_at.tzinfo is not None
    payment = Payment(from_user_id=1, to_user_id=2, currency="USD", amount=Decimal("5.00"))
    assert payment.created_at.utcoffset() == timedelta(0)
    assert payment.resolved_at is None
