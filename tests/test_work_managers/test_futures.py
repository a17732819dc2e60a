import pytest

from parloop.work_managers import SerialWorkManager
from parloop.work_managers.core import WMFuture, FutureWatcher, FutureCancelled
from .tsupport import ExceptionForTest, will_fail, will_succeed, identity


class TestWMFuture:
    def test_result(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_succeed)
            assert future.get_result() is True

    def test_discarded_result(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(identity, (1,))
            assert future.get_result(discard=True) == 1
            assert future.get_result() is None

    def test_kept_result(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(identity, (1,))
            assert future.result == 1
            assert future.result == 1

    def test_exception_raise(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_fail)
            with pytest.raises(ExceptionForTest):
                future.get_result()

    def test_exception_retrieve(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_fail)
            exc = future.exception
            assert isinstance(exc, ExceptionForTest)
            assert future.traceback is not None

    def test_success_wait(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_succeed)
            future.wait()

    def test_exception_wait(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_fail)
            future.wait()

    def test_is_done(self):
        with SerialWorkManager() as work_manager:
            future = work_manager.submit(will_succeed)
            future.wait()
            assert future.done


class TestResolution:
    def test_poll(self):
        future = WMFuture()
        assert not future.poll()
        future._set_result(3)
        assert future.poll()

    def test_resolved_exactly_once(self):
        future = WMFuture()
        future._set_result(1)
        future._set_result(2)
        future._set_exception(ExceptionForTest())
        assert future.get_exception() is None
        assert future.get_result() == 1

    def test_cancel_pending(self):
        future = WMFuture()
        assert future.cancel()
        assert future.cancelled
        assert future.done
        with pytest.raises(FutureCancelled):
            future.get_result()

    def test_cancel_resolved(self):
        future = WMFuture()
        future._set_result(1)
        assert not future.cancel()
        assert not future.cancelled
        assert future.get_result() == 1

    def test_remote_traceback_text(self):
        future = WMFuture()
        future._set_exception(ExceptionForTest('remote'), 'Traceback (most recent call last):\n...')
        assert future.get_traceback().startswith('Traceback')
        with pytest.raises(ExceptionForTest):
            future.get_result()


class TestFutureWatcher:
    def test_signalled_on_completion(self):
        futures = [WMFuture() for i in range(3)]
        watcher = FutureWatcher(futures, threshold=2)
        futures[0]._set_result(0)
        assert not watcher.wait(0)
        futures[2]._set_result(2)
        assert watcher.wait(0)
        assert set(watcher.reset()) == {futures[0], futures[2]}
        assert not watcher.event.is_set()

    def test_already_resolved(self):
        future = WMFuture()
        future._set_result(None)
        watcher = FutureWatcher([future])
        assert watcher.wait(0)
        assert watcher.reset() == [future]
