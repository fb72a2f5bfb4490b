"""
Tests for TripSplit

Test strategy:
1. Unit tests for individual components (models, engine)
2. Integration tests for flows (with the in-memory adapter)
3. No real API calls in tests
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from tripsplit.models.ledger import (
    RECORD_COLUMNS,
    AccountType,
    Category,
    LedgerInfo,
    Member,
    RawTransactionRecord,
    Transaction,
    TransactionDraft,
    Transfer,
)
from tripsplit.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from member names."""
        member = Member(name="  Mandy  ")
        assert member.name == "Mandy"
        assert len(member.id) == 9

    def test_member_rejects_empty_name(self):
        """Test that an empty member name is rejected."""
        with pytest.raises(ValueError):
            Member(name="   ")

    def test_ledger_info_upper_cases_currency(self):
        """Test LedgerInfo currency normalization."""
        ledger = LedgerInfo(id="l1", name="Swiss", currency="chf", members=["A", "B"])
        assert ledger.currency == "CHF"
        assert ledger.exchange_rate == Decimal("1")

    def test_transaction_cleans_split_with(self):
        """Test that blank and duplicate participant ids are dropped."""
        t = Transaction(
            payer_id="a",
            currency="twd",
            home_amount=Decimal("100"),
            split_with=["a", "", "b", "a", "  "],
        )
        assert t.split_with == ["a", "b"]
        assert t.currency == "TWD"

    def test_transaction_not_split_has_no_participants(self):
        """Test that a non-split transaction exposes no participants."""
        t = Transaction(payer_id="a", currency="TWD", is_split=False, split_with=["a"])
        assert t.participants == []
        assert t.home_share("a") == Decimal("0")

    def test_transaction_equal_shares(self):
        """Test equal shares are computed on demand."""
        t = Transaction(
            payer_id="a",
            currency="CHF",
            original_amount=Decimal("90"),
            home_amount=Decimal("3195"),
            split_with=["a", "b", "c"],
        )
        assert t.home_share("b") == Decimal("1065")
        assert t.origin_share("b") == Decimal("30")
        assert t.home_share("z") == Decimal("0")
        assert t.is_custom is False

    def test_transaction_origin_share_is_proportional_without_origin_splits(self):
        """Test origin shares follow the home shares when only those are stored."""
        t = Transaction(
            payer_id="a",
            currency="CHF",
            original_amount=Decimal("100"),
            home_amount=Decimal("3550"),
            split_with=["a", "b"],
            custom_splits={"a": Decimal("2130"), "b": Decimal("1420")},
        )
        assert t.origin_share("a") == Decimal("60")
        assert t.origin_share("b") == Decimal("40")
        assert t.effective_rate == Decimal("35.5")

    def test_transaction_effective_rate_falls_back_to_stored_rate(self):
        """Test effective rate when there is no origin amount."""
        t = Transaction(
            payer_id="a",
            currency="CHF",
            original_amount=Decimal("0"),
            home_amount=Decimal("100"),
            exchange_rate=Decimal("35.5"),
        )
        assert t.effective_rate == Decimal("35.5")

    def test_draft_rejects_negative_amount(self):
        """Test that negative draft amounts are rejected."""
        with pytest.raises(ValueError):
            TransactionDraft(currency="TWD", original_amount=Decimal("-1"))

    def test_draft_rejects_unknown_source(self):
        """Test the draft source pattern."""
        with pytest.raises(ValueError):
            TransactionDraft(currency="TWD", source="email")

    def test_transfer_requires_positive_amount(self):
        """Test that a zero transfer is rejected."""
        with pytest.raises(ValueError):
            Transfer(from_id="b", to_id="a", amount=Decimal("0"))


class TestRawTransactionRecord:
    """Tests for the persisted row shape."""

    def test_coerces_cell_values_to_text(self):
        """Test that numeric and empty cells become strings."""
        record = RawTransactionRecord(
            originalAmount=12.5,
            homeAmount=None,
            isSplit="是",
        )
        assert record.original_amount == "12.5"
        assert record.home_amount == ""
        assert record.is_split == "是"

    def test_to_row_follows_column_order(self):
        """Test row serialization order."""
        record = RawTransactionRecord(date="2024-05-01", merchant="Coop", splits="A:10")
        row = record.to_row()
        assert len(row) == len(RECORD_COLUMNS)
        assert row[0] == "2024-05-01"
        assert row[1] == "Coop"
        assert row[RECORD_COLUMNS.index("splits")] == "A:10"

    def test_from_row_pads_missing_cells(self):
        """Test that short rows are padded with blanks."""
        record = RawTransactionRecord.from_row(["2024-05-01", "Coop", "Bread"], row_index=5)
        assert record.row_index == 5
        assert record.item == "Bread"
        assert record.splits == ""
        assert record.exchange_rate == ""


class TestLedgerEnums:
    """Tests for category and account type enums."""

    def test_category_values(self):
        """Test persisted category strings."""
        assert Category.LODGING.value == "住宿"
        assert Category.PERSONAL.value == "個人消費"

    def test_category_parse_falls_back_to_misc(self):
        """Test that unknown categories map to misc."""
        assert Category.parse("用餐") == Category.DINING
        assert Category.parse(" 交通 ") == Category.TRANSPORT
        assert Category.parse("Food") == Category.MISC
        assert Category.parse(None) == Category.MISC

    def test_account_type_values(self):
        """Test persisted account type strings."""
        assert AccountType("公帳") == AccountType.PUBLIC
        assert AccountType("私帳") == AccountType.PRIVATE


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            description="Member added",
        )
        assert event.event_type == AuditEventType.MEMBER_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Transaction created",
            details={"merchant": "Coop", "home_amount": "900"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_created"
        assert log_dict["details"]["merchant"] == "Coop"
        assert log_dict["correlation_id"] is None

    def test_audit_event_builder_transaction_created(self):
        """Test AuditEventBuilder.transaction_created."""
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_created(
            transaction_id="abc123def",
            merchant="Coop",
            home_amount="900",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == "abc123def"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_ledger_load_failed(self):
        """Test AuditEventBuilder.ledger_load_failed."""
        event = AuditEventBuilder.ledger_load_failed("ledger-1", "timeout", 3)
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "timeout"
        assert event.details["attempts"] == 3
        assert event.is_user_action is False

    def test_audit_event_builder_member_renamed_is_warning(self):
        """Test that renames are flagged since stored rows use names."""
        event = AuditEventBuilder.member_renamed("a", "A", "Anna")
        assert event.severity == AuditSeverity.WARNING
        assert event.details["historical_rows_resolve"] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
