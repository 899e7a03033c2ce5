"""Tests for SequenceService: monotonic counters and formatted codes."""

from transformation_kernel.services.sequence_service import SequenceService


class TestSequenceService:

    def test_first_value_is_one(self, session):
        seq = SequenceService(session)

        assert seq.current_value("widgets") is None
        assert seq.next_value("widgets") == 1
        assert seq.current_value("widgets") == 1

    def test_values_increase(self, session):
        seq = SequenceService(session)
        values = [seq.next_value("widgets") for _ in range(5)]
        session.commit()

        assert values == [1, 2, 3, 4, 5]
        assert seq.current_value("widgets") == 5

    def test_names_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value("a")
        seq.next_value("a")

        assert seq.next_value("b") == 1

    def test_next_code_padding(self, session):
        seq = SequenceService(session)

        assert seq.next_code("orders", "TRN-20240315-", 5) == "TRN-20240315-00001"
        assert seq.next_code("orders", "TRN-20240315-", 5) == "TRN-20240315-00002"

    def test_rolled_back_value_is_reissued(self, session):
        seq = SequenceService(session)
        seq.next_value("widgets")
        session.commit()

        seq.next_value("widgets")
        session.rollback()

        assert seq.next_value("widgets") == 2
