import pytest

from parloop.closures import SourceClosure
from parloop.discovery import CaptureSet
from parloop.work_managers.core import FutureWatcher


class ExceptionForTest(Exception):
    pass


def will_succeed():
    return True


def will_fail():
    raise ExceptionForTest('failed as expected')


def will_busyhang():
    while True:
        pass


def will_busyhang_uninterruptible():
    while True:
        try:
            pass
        except BaseException:
            pass


def identity(x):
    return x


def busy_identity(x):
    import time

    delay = 0.01
    start = time.time()
    while time.time() - start < delay:
        pass
    return x


def random_int(seed=None):
    import random
    import sys

    if seed is not None:
        random.seed(seed)

    return random.randint(0, sys.maxsize)


def get_process_index():
    import os
    import time

    time.sleep(1)  # this ensures that each task gets its own worker
    return os.environ['PARLOOP_PROCESS_INDEX']


class CommonWorkManagerTests:
    MED_TEST_SIZE = 256

    def test_submit(self):
        future = self.work_manager.submit(will_succeed)
        assert future.get_result() is True

    def test_submit_results_in_order(self):
        futures = [self.work_manager.submit(identity, args=(i,)) for i in range(self.MED_TEST_SIZE)]
        assert [future.get_result() for future in futures] == list(range(self.MED_TEST_SIZE))

    def test_watcher_sees_every_future(self):
        futures = [self.work_manager.submit(busy_identity, args=(i,)) for i in range(self.MED_TEST_SIZE)]
        watcher = FutureWatcher(futures, threshold=len(futures))
        assert watcher.wait(timeout=60)
        assert set(watcher.reset()) == set(futures)

    def test_watcher_wakes_on_first(self):
        futures = [self.work_manager.submit(identity, args=(i,)) for i in range(self.MED_TEST_SIZE)]
        watcher = FutureWatcher(futures, threshold=1)
        assert watcher.wait(timeout=60)
        completed = watcher.reset()
        assert completed
        assert all(future.done for future in completed)

    def test_exception_raise(self):
        future = self.work_manager.submit(will_fail)
        with pytest.raises(ExceptionForTest):
            future.get_result()

    def test_exception_retrieve(self):
        future = self.work_manager.submit(will_fail)
        exc = future.get_exception()
        assert exc.args[0] == 'failed as expected'

    def test_submit_item(self):
        closure = SourceClosure('x * scale')
        capture_set = CaptureSet({'scale': 3})
        futures = [self.work_manager.submit_item(closure, capture_set, {'x': i}) for i in range(10)]
        assert [future.get_result() for future in futures] == [3 * i for i in range(10)]

    def test_submit_item_failure(self):
        future = self.work_manager.submit_item(SourceClosure('x * undefined_name'), CaptureSet(), {'x': 1})
        with pytest.raises(NameError):
            future.get_result()

    def test_max_concurrency(self):
        assert self.work_manager.max_concurrency() == self.work_manager.n_workers


class CommonParallelTests:
    def test_random_seq(self):
        futures = [self.work_manager.submit(random_int) for n in range(self.MED_TEST_SIZE)]
        result_list = [future.get_result() for future in futures]
        result_set = set(result_list)
        assert len(result_list) == len(result_set)

    def test_random_seq_improper_seeding(self):
        futures = [self.work_manager.submit(random_int, args=(1979,)) for n in range(self.MED_TEST_SIZE)]
        result_list = [future.get_result() for future in futures]
        result_set = set(result_list)

        assert len(result_list) != len(result_set)
