"""Tests for daily order/KOT/invoice number sequences."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from restopos.models.sequence import SequenceCounter
from restopos.services.numbering import SequenceGenerator


class TestSequenceGenerator:

    def test_order_numbers_increase_within_a_day(self, db_session, clock):
        numbers = SequenceGenerator(db_session, clock=clock)
        assert numbers.generate_order_number() == "ORD-260314-0001"
        assert numbers.generate_order_number() == "ORD-260314-0002"
        db_session.commit()

        counter = db_session.query(SequenceCounter).filter_by(scope="ORD", day="260314").one()
        assert counter.value == 2

    def test_kot_sequences_are_per_order_type(self, db_session, clock):
        numbers = SequenceGenerator(db_session, clock=clock)
        assert numbers.generate_kot_number("dine_in") == "KOT-DI-260314-0001"
        assert numbers.generate_kot_number("takeaway") == "KOT-TA-260314-0001"
        assert numbers.generate_kot_number("dine_in") == "KOT-DI-260314-0002"
        assert numbers.generate_kot_number("third_party") == "KOT-TP-260314-0001"

    def test_unknown_order_type_rejected(self, db_session, clock):
        with pytest.raises(ValueError):
            SequenceGenerator(db_session, clock=clock).generate_kot_number("drive_through")

    def test_invoice_numbers(self, db_session, clock):
        numbers = SequenceGenerator(db_session, clock=clock)
        assert numbers.generate_invoice_number() == "INV-260314-0001"
        # independent of the order sequence
        numbers.generate_order_number()
        assert numbers.generate_invoice_number() == "INV-260314-0002"

    def test_sequence_restarts_next_business_day(self, db_session, clock):
        numbers = SequenceGenerator(db_session, clock=clock)
        numbers.generate_order_number()
        numbers.generate_order_number()

        clock.now = clock.now + timedelta(days=1)
        assert numbers.generate_order_number() == "ORD-260315-0001"

    def test_business_day_follows_configured_timezone(self, db_session):
        # 18:29 UTC is 23:59 in Kolkata; 18:30 UTC is already the next day
        before = SequenceGenerator(
            db_session, clock=lambda: datetime(2026, 3, 14, 18, 29, tzinfo=timezone.utc), timezone="Asia/Kolkata",
        )
        after = SequenceGenerator(
            db_session, clock=lambda: datetime(2026, 3, 14, 18, 30, tzinfo=timezone.utc), timezone="Asia/Kolkata",
        )
        assert before.business_day() == "260314"
        assert after.business_day() == "260315"

    def test_rolled_back_number_is_reissued(self, db_session, clock):
        numbers = SequenceGenerator(db_session, clock=clock)
        numbers.generate_order_number()
        db_session.commit()

        assert numbers.generate_order_number() == "ORD-260314-0002"
        db_session.rollback()
        assert numbers.generate_order_number() == "ORD-260314-0002"

    def test_losing_the_first_insert_race_falls_back_to_increment(self, db_session, clock, monkeypatch):
        # another writer already created today's row and issued five numbers
        db_session.add(SequenceCounter(scope="ORD", day="260314", value=5))
        db_session.commit()

        real_execute = db_session.execute
        calls = []

        def execute(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 1:
                # our increment ran before the other writer's insert was visible
                return SimpleNamespace(rowcount=0)
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", execute)

        assert SequenceGenerator(db_session, clock=clock).generate_order_number() == "ORD-260314-0006"
        db_session.commit()
        assert db_session.query(SequenceCounter).filter_by(scope="ORD").count() == 1
        assert db_session.query(SequenceCounter).filter_by(scope="ORD").one().value == 6
