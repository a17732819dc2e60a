import operator

import pytest

from parloop.aggregate import NotProvided, aggregate, reduce_results, ON_ERROR_CONTINUE, ON_ERROR_RAISE
from parloop.errors import BackendSubmissionError, ItemEvaluationFailure, MultiItemError, SlotStateError
from parloop.items import ErrorMarker, Slot, WorkItem, make_work_items


def make_slots(outcomes):
    slots = []
    for index, outcome in enumerate(outcomes):
        slot = Slot(index)
        if isinstance(outcome, Exception):
            slot.set_failure(ItemEvaluationFailure(index, outcome))
        else:
            slot.set_value(outcome)
        slots.append(slot)
    return slots


class TestSlot:
    def test_resolved_once(self):
        slot = Slot(0)
        assert slot.pending
        slot.set_value(1)
        assert slot.value == 1
        with pytest.raises(SlotStateError):
            slot.set_value(2)
        with pytest.raises(SlotStateError):
            slot.set_failure(ValueError())

    def test_wrong_payload(self):
        slot = Slot(0)
        with pytest.raises(SlotStateError):
            slot.value
        slot.set_failure(ValueError())
        assert slot.failed
        with pytest.raises(SlotStateError):
            slot.value
        assert isinstance(slot.error, ValueError)


class TestWorkItems:
    def test_lockstep(self):
        items = make_work_items({'x': [1, 2, 3]}, y='ab')
        assert items == [WorkItem(0, {'x': 1, 'y': 'a'}), WorkItem(1, {'x': 2, 'y': 'b'})]

    def test_bindings_sequence(self):
        items = make_work_items([{'x': 1}, {'x': 2}])
        assert [item.index for item in items] == [0, 1]
        assert items[1].bindings == {'x': 2}

    def test_no_iterables(self):
        assert make_work_items() == []

    def test_duplicate_name(self):
        with pytest.raises(TypeError):
            make_work_items({'x': [1]}, x=[2])


class TestAggregate:
    def test_all_succeed(self):
        assert aggregate(make_slots([1, 2, 3])) == [1, 2, 3]

    def test_raise_first(self):
        first = ValueError('item zero')
        slots = make_slots([first, 1, KeyError('item two'), 3, 4])
        with pytest.raises(MultiItemError) as excinfo:
            aggregate(slots, ON_ERROR_RAISE)

        error = excinfo.value
        assert error.index == 0
        assert error.detail is first
        assert error.indices == [0, 2]
        assert error.n_items == 5
        assert error.__cause__ is first
        assert 'item 0 failed: ValueError: item zero' in str(error)

    def test_raise_first_unordered_slots(self):
        slots = make_slots([1, ValueError('one'), ValueError('two')])
        with pytest.raises(MultiItemError) as excinfo:
            aggregate(list(reversed(slots)))
        assert excinfo.value.index == 1

    def test_submission_failure_detail(self):
        slot = Slot(0)
        cause = RuntimeError('refused')
        slot.set_failure(BackendSubmissionError(0, cause))
        with pytest.raises(MultiItemError) as excinfo:
            aggregate([slot])
        assert excinfo.value.detail is cause
        assert isinstance(excinfo.value.error, BackendSubmissionError)

    def test_continue_with_markers(self):
        failure = ZeroDivisionError()
        results = aggregate(make_slots([1, failure, 3]), ON_ERROR_CONTINUE)
        assert results[0] == 1
        assert results[2] == 3
        assert isinstance(results[1], ErrorMarker)
        assert results[1].index == 1
        assert results[1].cause is failure
        assert not results[1]

    def test_bad_mode(self):
        with pytest.raises(ValueError):
            aggregate(make_slots([1]), 'ignore')

    def test_multi_item_error_needs_failures(self):
        with pytest.raises(ValueError):
            MultiItemError([])


class TestReduce:
    def test_default_is_list(self):
        results = (1, 2, 3)
        reduced = reduce_results(results)
        assert reduced == [1, 2, 3]
        assert reduce_results(results) == reduced

    def test_default_copies(self):
        results = [3, 1, 2]
        reduced = reduce_results(results)
        reduced.append(4)
        assert results == [3, 1, 2]

    def test_fold(self):
        assert reduce_results([1, 2, 3, 4], operator.add) == 10
        assert reduce_results(['a', 'b', 'c'], operator.add, init='>') == '>abc'

    def test_fold_is_left_to_right(self):
        assert reduce_results([1, 2, 3], lambda acc, x: acc * 10 + x) == 123

    def test_empty(self):
        assert reduce_results([]) == []
        assert reduce_results([], operator.add) is None
        assert reduce_results([], operator.add, init=0) == 0

    def test_multicombine(self):
        assert reduce_results([1, 2, 3], max, multicombine=True) == 3
        assert reduce_results([[1], [2]], lambda *lists: sum(lists, []), init=[0], multicombine=True) == [0, 1, 2]

    def test_final(self):
        assert reduce_results([1, 2, 3], operator.add, final=lambda total: total / 3) == 2
        assert reduce_results([1, 2], final=tuple) == (1, 2)

    def test_init_requires_combine(self):
        with pytest.raises(ValueError):
            reduce_results([1], init=0)

    def test_not_provided_sentinel(self):
        assert reduce_results([1], operator.add, init=NotProvided) == 1
