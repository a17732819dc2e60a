import pytest

from parloop.closures import SourceClosure
from parloop.discovery import CaptureSet
from parloop.engine import dispatch, check_concurrency_cap
from parloop.errors import BackendSubmissionError, ItemEvaluationFailure
from parloop.items import WorkItem, make_work_items
from parloop.work_managers import SerialWorkManager, ThreadsWorkManager, as_backend

from .tsupport import ScriptedBackend

POLL = 0.001


def doubled(n_items):
    return [2 * x for x in range(n_items)]


class TestOrdering:
    @pytest.mark.parametrize('seed', range(5))
    def test_random_completion_order(self, seed):
        backend = ScriptedBackend(concurrency=4, order='random', seed=seed)
        slots = dispatch(make_work_items(x=range(20)), SourceClosure('x * 2'), CaptureSet(), backend, 4, poll_interval=POLL)
        assert [slot.index for slot in slots] == list(range(20))
        assert [slot.value for slot in slots] == doubled(20)

    def test_reverse_completion_order(self):
        backend = ScriptedBackend(concurrency=5, order='lifo')
        slots = dispatch(make_work_items(x=range(5)), SourceClosure('x * 2'), CaptureSet(), backend, 5, poll_interval=POLL)
        assert backend.released() == [4, 3, 2, 1, 0]
        assert [slot.value for slot in slots] == doubled(5)

    def test_empty(self):
        backend = ScriptedBackend()
        assert dispatch([], SourceClosure('x'), CaptureSet(), backend, 3) == []
        assert backend.n_submitted == 0

    def test_misnumbered_items(self):
        items = [WorkItem(1, {'x': 1})]
        with pytest.raises(ValueError):
            dispatch(items, SourceClosure('x'), CaptureSet(), ScriptedBackend(), 1)


class TestConcurrency:
    @pytest.mark.parametrize('cap', [1, 2, 3, 7])
    def test_outstanding_bounded(self, cap):
        backend = ScriptedBackend(concurrency=cap, order='random', seed=cap)
        dispatch(make_work_items(x=range(25)), SourceClosure('x'), CaptureSet(), backend, cap, poll_interval=POLL)
        assert backend.max_outstanding == cap
        assert backend.n_submitted == 25

    def test_cap_one_is_sequential(self):
        backend = ScriptedBackend(concurrency=1, order='random', seed=0)
        slots = dispatch(make_work_items(x=range(6)), SourceClosure('x * 2'), CaptureSet(), backend, 1, poll_interval=POLL)

        expected = []
        for serial in range(6):
            expected.extend([('submit', serial), ('release', serial), ('collect', serial)])
        assert backend.events == expected
        assert backend.max_outstanding == 1
        assert [slot.value for slot in slots] == doubled(6)

    def test_cap_below_backend_limit(self):
        backend = ScriptedBackend(concurrency=8, order='random', seed=1)
        dispatch(make_work_items(x=range(12)), SourceClosure('x'), CaptureSet(), backend, 2, poll_interval=POLL)
        assert backend.max_outstanding == 2

    @pytest.mark.parametrize('cap', [0, -1, 1.5, True, None, '2'])
    def test_bad_cap(self, cap):
        with pytest.raises(ValueError):
            check_concurrency_cap(cap)


class TestFailures:
    def test_submission_failure_isolated(self):
        backend = ScriptedBackend(concurrency=2, order='fifo', fail_submissions={3})
        slots = dispatch(make_work_items(x=range(6)), SourceClosure('x * 2'), CaptureSet(), backend, 2, poll_interval=POLL)

        assert slots[3].failed
        assert isinstance(slots[3].error, BackendSubmissionError)
        assert isinstance(slots[3].error.cause, RuntimeError)
        assert slots[3].error.index == 3
        assert [slot.value for slot in slots if not slot.failed] == [0, 2, 4, 8, 10]

    def test_evaluation_failure_isolated(self):
        backend = ScriptedBackend(concurrency=3, order='random', seed=2)
        slots = dispatch(make_work_items(x=range(-2, 3)), SourceClosure('12 // x'), CaptureSet(), backend, 3, poll_interval=POLL)

        assert [slot.failed for slot in slots] == [False, False, True, False, False]
        assert isinstance(slots[2].error, ItemEvaluationFailure)
        assert isinstance(slots[2].error.cause, ZeroDivisionError)
        assert [slots[i].value for i in (0, 1, 3, 4)] == [-6, -12, 12, 6]

    def test_all_submissions_fail(self):
        backend = ScriptedBackend(fail_submissions=range(4))
        slots = dispatch(make_work_items(x=range(4)), SourceClosure('x'), CaptureSet(), backend, 2)
        assert all(slot.failed for slot in slots)

    def test_interruption_cancels_outstanding(self):
        backend = ScriptedBackend(concurrency=3, order='fifo', interrupt_after=2)
        with pytest.raises(KeyboardInterrupt):
            dispatch(make_work_items(x=range(10)), SourceClosure('x'), CaptureSet(), backend, 3, poll_interval=POLL)

        cancelled = [handle for handle in backend.handles if handle.cancelled]
        assert len(cancelled) == 3
        assert not any(handle.collected for handle in cancelled)
        assert all(handle.collected for handle in backend.handles if not handle.cancelled)
        assert backend.n_submitted == 5


class TestWorkManagerBackends:
    def test_serial(self):
        with SerialWorkManager() as work_manager:
            slots = dispatch(
                make_work_items(x=range(10)), SourceClosure('x * 2'), CaptureSet(), as_backend(work_manager), 1, poll_interval=POLL
            )
        assert [slot.value for slot in slots] == doubled(10)

    def test_threads(self):
        with ThreadsWorkManager(n_workers=4) as work_manager:
            backend = as_backend(work_manager)
            slots = dispatch(
                make_work_items(x=range(50)),
                SourceClosure('x * scale'),
                CaptureSet({'scale': 2}),
                backend,
                backend.max_concurrency(),
            )
        assert [slot.value for slot in slots] == doubled(50)

    def test_threads_failure(self):
        with ThreadsWorkManager(n_workers=2) as work_manager:
            slots = dispatch(make_work_items(x=range(4)), SourceClosure('1 // (x - 1)'), CaptureSet(), as_backend(work_manager), 2)
        assert [slot.failed for slot in slots] == [False, True, False, False]
        assert slots[1].error.remote_traceback is None
