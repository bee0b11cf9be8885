# Overview: Pytest coverage for the advance lifecycle and settlement arithmetic.

"""
Advance Ledger Tests

Covers:
- Issuance (remaining = amount, status pending, supplier balance up)
- Partial and full settlement, including over-settlement clamp
- remaining + sum(settlements) == amount after every step
- Settled advances reject further settlement with no side effects
- Only a buy from the same supplier settles an advance, and only once
- Outstanding queries (oldest first) and list summary
"""

import pytest

from goldledger.extensions import db
from goldledger.models import Advance, AdvanceSettlement, GoldTransaction, LedgerEvent, Supplier
from goldledger.services import advance_service, transaction_service
from goldledger.validation import InvalidStateError, NotFoundError, ValidationError


def _settled_total(advance_id: int) -> float:
    return sum(
        s.amount for s in db.session.query(AdvanceSettlement).filter_by(advance_id=advance_id).all()
    )


def _assert_reconciles(advance: Advance):
    db.session.refresh(advance)
    assert advance.remaining_balance >= 0
    assert advance.remaining_balance + _settled_total(advance.id) == pytest.approx(advance.amount)


def _deliver(supplier_id: int):
    return transaction_service.record_buy(
        supplier_id=supplier_id,
        weight_grams=1.0,
        purity_percentage=0.999,
        spot_price_per_oz=2350.0,
    )


@pytest.fixture
def delivery(supplier):
    """A recorded buy to settle advances against (no advance attached)."""
    return _deliver(supplier.id)


class TestIssueAdvance:
    def test_issue_sets_remaining_and_pending(self, supplier):
        """S1: issue 1000 USD."""
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000, currency="USD")

        assert advance.remaining_balance == pytest.approx(1000)
        assert advance.status == "pending"
        assert advance.supplier_name == "Kwame Mensah"
        assert advance.settled_date is None
        assert db.session.get(Supplier, supplier.id).outstanding_balance == pytest.approx(1000)

    def test_issue_accumulates_supplier_balance(self, supplier):
        advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        advance_service.issue_advance(supplier_id=supplier.id, amount=250.5)

        assert db.session.get(Supplier, supplier.id).outstanding_balance == pytest.approx(1250.5)

    @pytest.mark.parametrize("amount", [0, -5, "abc", None])
    def test_issue_rejects_non_positive_amount(self, supplier, amount):
        with pytest.raises(ValidationError):
            advance_service.issue_advance(supplier_id=supplier.id, amount=amount)
        assert db.session.query(Advance).count() == 0
        assert db.session.get(Supplier, supplier.id).outstanding_balance == 0

    def test_issue_rejects_unknown_supplier(self, db_session):
        with pytest.raises(NotFoundError):
            advance_service.issue_advance(supplier_id=9999, amount=100)

    def test_issue_rejects_unknown_payment_method(self, supplier):
        with pytest.raises(ValidationError):
            advance_service.issue_advance(supplier_id=supplier.id, amount=100, payment_method="cheque")

    def test_issue_defaults_currency_from_config(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100)
        assert advance.currency == "USD"

    def test_issue_writes_audit_event(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100, created_by="clerk")
        event = db.session.query(LedgerEvent).filter_by(event_type="advance.issued").one()
        assert event.entity_id == advance.id
        assert event.actor == "clerk"


class TestSettleWithDelivery:
    def test_partial_settlement(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)

        advance_service.settle_with_delivery(
            advance_id=advance.id,
            transaction_id=delivery.id,
            gold_value=400,
            weight_grams=5,
        )

        advance = db.session.get(Advance, advance.id)
        assert advance.remaining_balance == pytest.approx(600)
        assert advance.status == "partial"
        assert advance.settled_date is None
        assert db.session.get(Supplier, supplier.id).outstanding_balance == pytest.approx(600)
        _assert_reconciles(advance)

    def test_exact_settlement_marks_settled(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=500)

        advance_service.settle_with_delivery(
            advance_id=advance.id,
            transaction_id=delivery.id,
            gold_value=500,
            weight_grams=7,
        )

        advance = db.session.get(Advance, advance.id)
        assert advance.remaining_balance == 0
        assert advance.status == "settled"
        assert advance.settled_date is not None
        _assert_reconciles(advance)

    def test_over_settlement_applies_only_remaining(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=300)

        advance_service.settle_with_delivery(
            advance_id=advance.id,
            transaction_id=delivery.id,
            gold_value=450,
            weight_grams=6,
        )

        advance = db.session.get(Advance, advance.id)
        assert advance.remaining_balance == 0
        assert advance.status == "settled"
        settlement = db.session.query(AdvanceSettlement).filter_by(advance_id=advance.id).one()
        assert settlement.amount == pytest.approx(300)
        # Supplier balance is credited with the applied amount only
        assert db.session.get(Supplier, supplier.id).outstanding_balance == pytest.approx(0)
        _assert_reconciles(advance)

    def test_remaining_is_monotonic_across_settlements(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        seen = [1000.0]

        for value in (100, 250.25, 0.75, 900):
            advance_service.settle_with_delivery(
                advance_id=advance.id,
                transaction_id=_deliver(supplier.id).id,
                gold_value=value,
                weight_grams=1,
            )
            current = db.session.get(Advance, advance.id)
            assert current.remaining_balance <= seen[-1]
            seen.append(current.remaining_balance)
            _assert_reconciles(current)

        assert seen[-1] == 0
        assert db.session.get(Advance, advance.id).status == "settled"

    def test_settled_advance_rejects_further_settlement(self, supplier, delivery):
        """S6: no change to remaining balance or history."""
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100)
        advance_service.settle_with_delivery(
            advance_id=advance.id, transaction_id=delivery.id, gold_value=100, weight_grams=1,
        )
        settled_date = db.session.get(Advance, advance.id).settled_date

        with pytest.raises(InvalidStateError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=_deliver(supplier.id).id, gold_value=50, weight_grams=1,
            )

        advance = db.session.get(Advance, advance.id)
        assert advance.remaining_balance == 0
        assert advance.settled_date == settled_date
        assert db.session.query(AdvanceSettlement).filter_by(advance_id=advance.id).count() == 1

    @pytest.mark.parametrize("gold_value", [0, -10])
    def test_non_positive_gold_value_rejected(self, supplier, delivery, gold_value):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100)

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=delivery.id, gold_value=gold_value, weight_grams=1,
            )
        assert db.session.get(Advance, advance.id).remaining_balance == pytest.approx(100)

    def test_unknown_advance(self, supplier, delivery):
        with pytest.raises(NotFoundError):
            advance_service.settle_with_delivery(
                advance_id=424242, transaction_id=delivery.id, gold_value=10, weight_grams=1,
            )

    def test_unknown_transaction(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100)
        with pytest.raises(NotFoundError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=424242, gold_value=10, weight_grams=1,
            )
        assert db.session.get(Advance, advance.id).remaining_balance == pytest.approx(100)

    def test_settlement_history_serialized(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=100)
        advance_service.settle_with_delivery(
            advance_id=advance.id,
            transaction_id=delivery.id,
            gold_value=40,
            weight_grams=2.5,
            notes="first drop",
        )

        data = advance_service.get_advance(advance.id).to_dict()
        assert data["status"] == "partial"
        assert data["settlement_history"] == [{
            "transaction_id": delivery.id,
            "amount": 40.0,
            "weight_grams": 2.5,
            "date": data["settlement_history"][0]["date"],
            "notes": "first drop",
        }]

    def test_settlement_links_transaction(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        advance_service.settle_with_delivery(
            advance_id=advance.id, transaction_id=delivery.id, gold_value=120, weight_grams=1,
        )

        tx = db.session.get(GoldTransaction, delivery.id)
        assert tx.advance_id == advance.id
        assert tx.advance_deducted == pytest.approx(120)


class TestSettlementEligibility:
    """Only a buy from the advance's own supplier settles it, once."""

    def _assert_untouched(self, advance_id, supplier_id, balance):
        advance = db.session.get(Advance, advance_id)
        assert advance.remaining_balance == pytest.approx(advance.amount)
        assert db.session.query(AdvanceSettlement).filter_by(advance_id=advance_id).count() == 0
        assert db.session.get(Supplier, supplier_id).outstanding_balance == pytest.approx(balance)

    def test_sell_cannot_settle(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        sale = transaction_service.record_sell(supplier_id=supplier.id, weight_grams=1, spot_price_per_oz=2400)

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=sale.id, gold_value=100, weight_grams=1,
            )
        self._assert_untouched(advance.id, supplier.id, 1000)
        assert db.session.get(GoldTransaction, sale.id).advance_id is None

    def test_other_suppliers_buy_cannot_settle(self, supplier, other_supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        foreign = _deliver(other_supplier.id)

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=foreign.id, gold_value=100, weight_grams=1,
            )
        self._assert_untouched(advance.id, supplier.id, 1000)

    def test_same_transaction_cannot_settle_twice(self, supplier, delivery):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=1000)
        advance_service.settle_with_delivery(
            advance_id=advance.id, transaction_id=delivery.id, gold_value=100, weight_grams=1,
        )

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=delivery.id, gold_value=100, weight_grams=1,
            )

        advance = db.session.get(Advance, advance.id)
        assert advance.remaining_balance == pytest.approx(900)
        assert db.session.query(AdvanceSettlement).filter_by(advance_id=advance.id).count() == 1
        assert db.session.get(Supplier, supplier.id).outstanding_balance == pytest.approx(900)
        assert db.session.get(GoldTransaction, delivery.id).advance_deducted == pytest.approx(100)

    def test_transaction_linked_to_another_advance_cannot_settle(self, supplier, delivery):
        first = advance_service.issue_advance(supplier_id=supplier.id, amount=500)
        second = advance_service.issue_advance(supplier_id=supplier.id, amount=700)
        advance_service.settle_with_delivery(
            advance_id=first.id, transaction_id=delivery.id, gold_value=50, weight_grams=1,
        )

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=second.id, transaction_id=delivery.id, gold_value=50, weight_grams=1,
            )
        self._assert_untouched(second.id, supplier.id, 1150)

    def test_buy_that_deducted_an_advance_cannot_settle_it_again(self, supplier):
        advance = advance_service.issue_advance(supplier_id=supplier.id, amount=5000)
        tx = transaction_service.record_buy(
            supplier_id=supplier.id, weight_grams=1, spot_price_per_oz=2350, advance_id=advance.id,
        )

        with pytest.raises(ValidationError):
            advance_service.settle_with_delivery(
                advance_id=advance.id, transaction_id=tx.id, gold_value=10, weight_grams=1,
            )
        assert db.session.query(AdvanceSettlement).filter_by(advance_id=advance.id).count() == 1


class TestAdvanceQueries:
    def test_list_outstanding_oldest_first(self, supplier, other_supplier, delivery):
        newer = advance_service.issue_advance(
            supplier_id=supplier.id, amount=200, given_date="2024-03-02T09:00:00Z",
        )
        older = advance_service.issue_advance(
            supplier_id=supplier.id, amount=100, given_date="2024-03-01T09:00:00Z",
        )
        done = advance_service.issue_advance(
            supplier_id=supplier.id, amount=50, given_date="2024-02-01T09:00:00Z",
        )
        advance_service.issue_advance(supplier_id=other_supplier.id, amount=999)
        advance_service.settle_with_delivery(
            advance_id=done.id, transaction_id=delivery.id, gold_value=50, weight_grams=1,
        )

        ids = [a.id for a in advance_service.list_outstanding(supplier.id)]
        assert ids == [older.id, newer.id]

    def test_list_outstanding_unknown_supplier(self, db_session):
        with pytest.raises(NotFoundError):
            advance_service.list_outstanding(9999)

    def test_list_advances_summary_and_filters(self, supplier, delivery):
        a1 = advance_service.issue_advance(supplier_id=supplier.id, amount=100)
        advance_service.issue_advance(supplier_id=supplier.id, amount=300)
        advance_service.settle_with_delivery(
            advance_id=a1.id, transaction_id=delivery.id, gold_value=100, weight_grams=1,
        )

        result = advance_service.list_advances(supplier_id=supplier.id)
        assert result["pagination"]["total"] == 2
        assert result["summary"] == {"total_outstanding": 300.0, "count": 1}

        settled = advance_service.list_advances(status="settled")
        assert [a.id for a in settled["items"]] == [a1.id]

    def test_list_advances_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            advance_service.list_advances(status="overdue")
