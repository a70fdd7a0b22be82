"""
Tests for UncertaintyChain row operations and incremental recomputation.
"""

import math

import pytest

from uchain import Element, NumberPair, OperationKind, UncertaintyChain, set_config

K = OperationKind


def assert_result(chain, value, uncertainty):
    assert chain.get_result() == pytest.approx(value)
    assert chain.get_resulting_uncertainty() == pytest.approx(uncertainty)


def exact_chain():
    """1 + 2 * 3 with no uncertainty, so every step is exact arithmetic."""
    chain = UncertaintyChain(value=1.0)
    chain.add(K.ADD, 2.0)
    chain.add(K.MUL, 3.0)
    return chain


class TestConstruction:

    def test_default_chain(self):
        chain = UncertaintyChain()
        assert chain.count() == 1
        assert len(chain) == 1
        assert chain.get_type(0) is K.START
        assert chain.result == NumberPair(0.0, 0.0)

    def test_starting_value(self):
        chain = UncertaintyChain(value=1.5, uncertainty=0.1)
        assert chain.get_starting_value() == 1.5
        assert chain.get_starting_uncertainty() == 0.1
        assert chain.starting == NumberPair(1.5, 0.1)
        assert_result(chain, 1.5, 0.1)

    def test_capacity(self):
        assert UncertaintyChain().capacity == 10
        chain = UncertaintyChain(capacity=3)
        assert chain.capacity == 3
        for _ in range(5):
            chain.add(K.ADD, 1.0)
        assert chain.capacity >= 6

    def test_configured_capacity(self):
        set_config(default_capacity=4)
        assert UncertaintyChain().capacity == 4


class TestScenarios:

    def test_add_propagates_uncertainty(self):
        chain = UncertaintyChain(value=1.5, uncertainty=0.1)
        chain.add(K.ADD, 3.2, 0.3)
        assert_result(chain, 4.7, 0.4)
        assert str(chain) == "4.7 ± 0.4"

    def test_divide_by_zero_poisons_the_tail(self):
        chain = UncertaintyChain(value=2.0, uncertainty=0.1)
        chain.add(K.DIV, 0.0, 0.0)
        assert math.isnan(chain.get_result())
        assert math.isnan(chain.get_resulting_uncertainty())

        chain.add(K.ADD, 1.0, 0.1)
        assert chain.get_type(1) is K.DIV
        assert chain.get_type(2) is K.INVALID
        assert math.isnan(chain.get_value(2))
        assert math.isnan(chain.get_uncertainty(2))
        assert math.isnan(chain.get_result())

    def test_poison_covers_every_later_row(self):
        chain = UncertaintyChain(value=2.0, uncertainty=0.1)
        chain.add(K.DIV, 0.0)
        chain.add(K.ADD, 1.0)
        chain.add(K.MUL, 2.0)
        assert [chain.get_type(i) for i in range(4)] == [K.START, K.DIV, K.INVALID, K.INVALID]

        # a change above the offending row does not remove the division by zero
        chain.set_starting_value(3.0)
        assert chain.get_type(2) is K.INVALID
        assert chain.get_type(3) is K.INVALID

    def test_fixing_the_offending_row_restores_the_tail(self):
        chain = UncertaintyChain(value=2.0, uncertainty=0.1)
        chain.add(K.DIV, 0.0, 0.0)
        chain.add(K.ADD, 1.0, 0.1)

        chain.set(1, 4.0)
        assert chain.get_type(2) is K.ADD
        assert chain.get_value(2) == 1.0
        assert chain.get_uncertainty(2) == 0.1
        assert_result(chain, 1.5, 0.1)

    def test_row_zero_is_protected(self):
        chain = UncertaintyChain(value=1.5, uncertainty=0.1)
        chain.add(K.ADD, 3.2, 0.3)

        chain.remove(0)
        chain.add_at(0, K.MUL, 2.0, 0.1)

        assert chain.count() == 2
        assert chain.get_type(0) is K.START
        assert chain.get_value(0) == 1.5
        assert chain.get_uncertainty(0) == 0.1
        assert_result(chain, 4.7, 0.4)


class TestRowOperations:

    def test_add_pair(self):
        chain = UncertaintyChain(value=1.5, uncertainty=0.1)
        chain.add(K.ADD, NumberPair(3.2, 0.3))
        assert_result(chain, 4.7, 0.4)

    def test_add_element(self):
        chain = UncertaintyChain(value=1.5, uncertainty=0.1)
        el = Element.of(K.ADD, 3.2, 0.3)
        chain.add_element(el)
        assert_result(chain, 4.7, 0.4)
        # the chain keeps its own copy
        assert el.cumulative_in == NumberPair(0.0, 0.0)

    def test_negative_uncertainty_is_stored_absolute(self):
        chain = UncertaintyChain()
        chain.add(K.ADD, 1.0, -0.2)
        assert chain.get_uncertainty(1) == 0.2

    def test_start_and_invalid_rows_are_rejected(self):
        chain = exact_chain()
        chain.add(K.START, 5.0)
        chain.add(K.INVALID, 5.0)
        chain.add_at(1, K.START, 5.0)
        assert chain.count() == 3
        assert_result(chain, 9.0, 0.0)

    def test_add_at(self):
        chain = exact_chain()
        chain.add_at(1, K.SUB, 1.0)
        assert chain.count() == 4
        assert chain.get_type(1) is K.SUB
        assert_result(chain, 6.0, 0.0)

    def test_add_at_past_the_end_appends(self):
        chain = exact_chain()
        chain.add_at(99, K.ADD, 1.0)
        assert chain.count() == 4
        assert chain.get_type(3) is K.ADD
        assert_result(chain, 10.0, 0.0)

    def test_remove(self):
        chain = exact_chain()
        chain.remove(1)
        assert chain.count() == 2
        assert_result(chain, 3.0, 0.0)

    def test_remove_last(self):
        chain = exact_chain()
        chain.remove(2)
        assert_result(chain, 3.0, 0.0)

    @pytest.mark.parametrize("row", [0, 3, 99, -1])
    def test_remove_rejected(self, row):
        chain = exact_chain()
        chain.remove(row)
        assert chain.count() == 3
        assert_result(chain, 9.0, 0.0)

    def test_swap(self):
        chain = exact_chain()
        chain.swap(1, 2)
        assert chain.get_type(1) is K.MUL
        assert chain.get_type(2) is K.ADD
        assert_result(chain, 5.0, 0.0)

    @pytest.mark.parametrize("row1, row2", [(0, 1), (1, 0), (1, 3), (-1, 2)])
    def test_swap_rejected(self, row1, row2):
        chain = exact_chain()
        chain.swap(row1, row2)
        assert chain.get_type(1) is K.ADD
        assert_result(chain, 9.0, 0.0)

    def test_set(self):
        chain = exact_chain()
        chain.set(1, 5.0)
        assert_result(chain, 18.0, 0.0)
        chain.set(1, 5.0, 0.2)
        assert chain.get_uncertainty(1) == 0.2
        assert_result(chain, 18.0, 0.6)

    def test_set_keeps_uncertainty(self):
        chain = UncertaintyChain()
        chain.add(K.ADD, 1.0, 0.2)
        chain.set(1, 3.0)
        assert chain.get_uncertainty(1) == 0.2

    def test_set_uncertainty(self):
        chain = exact_chain()
        chain.set_uncertainty(2, 0.1)
        assert_result(chain, 9.0, 0.3)

    def test_set_out_of_range(self):
        chain = exact_chain()
        chain.set(7, 1.0)
        chain.set_uncertainty(7, 1.0)
        assert chain.count() == 3
        assert_result(chain, 9.0, 0.0)

    def test_set_starting_value(self):
        chain = exact_chain()
        chain.set_starting_value(2.0)
        assert_result(chain, 12.0, 0.0)
        chain.set_starting_value(2.0, 0.1)
        chain.set_starting_uncertainty(0.2)
        assert chain.get_starting_uncertainty() == 0.2
        assert chain.get_starting_value() == 2.0

    def test_set_element(self):
        chain = exact_chain()
        chain.set_element(2, Element.of(K.SUB, 1.0))
        assert chain.get_type(2) is K.SUB
        assert_result(chain, 2.0, 0.0)

    def test_set_element_row_zero_stays_start(self):
        chain = exact_chain()
        chain.set_element(0, Element.of(K.ADD, 5.0))
        assert chain.get_type(0) is K.START
        assert chain.get_value(0) == 5.0
        assert_result(chain, 21.0, 0.0)

    def test_clear(self):
        chain = exact_chain()
        chain.clear()
        assert chain.count() == 1
        assert chain.get_type(0) is K.START
        assert chain.get_value(0) == 0.0
        assert chain.result == NumberPair(0.0, 0.0)

    def test_recompute(self):
        chain = exact_chain()
        before = chain.result
        chain.recompute()
        assert chain.result == before
        chain.recompute(99)
        assert chain.result == before


class TestQueries:

    def test_out_of_range_rows(self):
        chain = exact_chain()
        assert math.isnan(chain.get_value(3))
        assert math.isnan(chain.get_uncertainty(-1))
        assert chain.get_type(3) is K.INVALID
        assert chain.get_element(3).kind is K.INVALID

    def test_get_element_is_a_copy(self):
        chain = exact_chain()
        el = chain.get_element(1)
        el.set_value(100.0)
        assert chain.get_value(1) == 2.0

    def test_cumulative_is_cached(self):
        chain = exact_chain()
        assert chain.get_element(1).cumulative_in == NumberPair(1.0, 0.0)
        assert chain.get_element(2).cumulative_in == NumberPair(3.0, 0.0)

    def test_rows(self):
        rows = list(exact_chain().rows())
        assert [r[0] for r in rows] == [0, 1, 2]
        assert [r[1] for r in rows] == [K.START, K.ADD, K.MUL]
        assert [r[3].value for r in rows] == [1.0, 3.0, 9.0]

    def test_iterates_elements(self):
        kinds = [el.kind for el in exact_chain()]
        assert kinds == [K.START, K.ADD, K.MUL]


class TestIncrementalRecompute:
    """Only rows at or after the earliest affected row are recomputed."""

    @pytest.fixture
    def calls(self, monkeypatch):
        seen = []
        original = Element.compute

        def counting(self, cumulative=None):
            seen.append(self)
            return original(self, cumulative)

        monkeypatch.setattr(Element, "compute", counting)
        return seen

    def five_rows(self):
        chain = UncertaintyChain(value=1.0)
        for v in (1.0, 2.0, 3.0, 4.0):
            chain.add(K.ADD, v)
        return chain

    def test_set_last_row(self, calls):
        chain = self.five_rows()
        calls.clear()
        chain.set(4, 10.0)
        assert len(calls) == 1
        assert_result(chain, 17.0, 0.0)

    def test_set_starting_value(self, calls):
        chain = self.five_rows()
        calls.clear()
        chain.set_starting_value(0.0)
        assert len(calls) == 5

    def test_append(self, calls):
        chain = self.five_rows()
        calls.clear()
        chain.add(K.ADD, 5.0)
        assert len(calls) == 2
        assert_result(chain, 16.0, 0.0)

    def test_swap(self, calls):
        chain = self.five_rows()
        calls.clear()
        chain.swap(3, 4)
        assert len(calls) == 3
