"""
On-hand reconstruction through the pipeline.

Verifies:
- Scenario C: receive 50 from Acme into MAIN, issue 20 to Cust1 -> 30
- Transfers split the balance between warehouses
- A newly posted movement invalidates the cached row
- Unregistered warehouse codes are refused before anything is written
"""

from decimal import Decimal

import pytest

from docpost_kernel.domain.values import ExternalParty
from docpost_kernel.exceptions import InvalidMovementError, UnknownWarehouseError


@pytest.fixture
def scenario_c(pipeline):
    pipeline.record_movement("X", Decimal("50"), source=ExternalParty("Acme"), destination="MAIN")
    pipeline.record_movement("X", Decimal("20"), source="MAIN", destination=ExternalParty("Cust1"))
    return pipeline


class TestScenarioC:

    def test_on_hand(self, scenario_c, deterministic_clock):
        row = scenario_c.on_hand("X")

        assert row.total == Decimal("30")
        assert row.by_warehouse == {"MAIN": Decimal("30")}
        assert row.last_counterparty == "Cust1"
        assert row.last_movement_at == deterministic_clock.now()

    def test_unknown_sku_is_empty(self, scenario_c):
        row = scenario_c.on_hand("NOPE")

        assert row.total == Decimal("0")
        assert row.by_warehouse == {}
        assert row.last_counterparty is None


class TestCaching:

    def test_cached_until_new_movement(self, scenario_c, captured_logs):
        first = scenario_c.on_hand("X")
        second = scenario_c.on_hand("X")
        assert second is first

        scenario_c.record_movement("X", Decimal("5"), source=ExternalParty("Acme"), destination="MAIN")
        third = scenario_c.on_hand("X")

        assert third.total == Decimal("35")
        rebuilt = [r for r in captured_logs() if r["message"] == "on_hand_rebuilt"]
        assert len(rebuilt) == 2

    def test_posting_invalidates(self, pipeline, make_routed_document):
        assert pipeline.on_hand("X").total == Decimal("0")

        document = make_routed_document()
        pipeline.post(document.id)

        assert pipeline.on_hand("X").total == Decimal("10")


class TestTransfers:

    def test_transfer_between_warehouses(self, scenario_c, deterministic_clock):
        scenario_c.register_warehouse("B2", "Overflow")
        deterministic_clock.advance(3600)

        scenario_c.record_movement("X", Decimal("12"), source="MAIN", destination="b2")

        row = scenario_c.on_hand("X")
        assert row.total == Decimal("30")
        assert row.by_warehouse == {"MAIN": Decimal("18"), "B2": Decimal("12")}
        assert row.last_counterparty == "MAIN"

    def test_unknown_code_refused(self, scenario_c):
        with pytest.raises(UnknownWarehouseError):
            scenario_c.record_movement("X", Decimal("1"), source="MAIN", destination="ACME")
        assert scenario_c.on_hand("X").total == Decimal("30")

    def test_zero_quantity_refused(self, scenario_c):
        with pytest.raises(InvalidMovementError):
            scenario_c.record_movement("X", Decimal("0"), destination="MAIN")
