"""
SharedPipeline tests: a handle is loaded once, concurrent callers on any
thread or event loop share the in-flight load, and a failed load can be
retried.
"""

import asyncio
import threading
import time

import pytest

from emotion_detection.inference.base import SharedPipeline, pairs_from_pipeline_output
from emotion_detection.utils.errors import InvalidResponse, ModelUnavailable


class CountingFactory:
    def __init__(self, delay: float = 0.05, fail_times: int = 0):
        self.calls = 0
        self.delay = delay
        self.fail_times = fail_times
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
            call_no = self.calls
        time.sleep(self.delay)
        if call_no <= self.fail_times:
            raise OSError("weights not found")
        return object()


class TestSharedPipeline:
    def test_concurrent_callers_share_one_load(self):
        factory = CountingFactory()
        shared = SharedPipeline("test", factory)

        async def scenario():
            return await asyncio.gather(*(shared.get() for _ in range(8)))

        handles = asyncio.run(scenario())
        assert factory.calls == 1
        assert all(h is handles[0] for h in handles)
        assert shared.loaded

    def test_loaded_handle_is_memoized(self):
        factory = CountingFactory(delay=0)
        shared = SharedPipeline("test", factory)

        first = asyncio.run(shared.get())
        second = asyncio.run(shared.get())
        assert first is second
        assert factory.calls == 1
        assert shared.load_seconds is not None

    def test_failed_load_raises_model_unavailable(self):
        shared = SharedPipeline("test", CountingFactory(delay=0, fail_times=1))

        with pytest.raises(ModelUnavailable) as exc_info:
            asyncio.run(shared.get())
        assert "weights not found" in str(exc_info.value)
        assert not shared.loaded

    def test_failed_load_can_be_retried(self):
        factory = CountingFactory(delay=0, fail_times=1)
        shared = SharedPipeline("test", factory)

        with pytest.raises(ModelUnavailable):
            asyncio.run(shared.get())
        handle = asyncio.run(shared.get())
        assert handle is not None
        assert factory.calls == 2

    def test_concurrent_callers_all_see_failure(self):
        factory = CountingFactory(fail_times=1)
        shared = SharedPipeline("test", factory)

        async def scenario():
            return await asyncio.gather(*(shared.get() for _ in range(4)), return_exceptions=True)

        outcomes = asyncio.run(scenario())
        assert factory.calls == 1
        assert all(isinstance(o, ModelUnavailable) for o in outcomes)

    def test_callers_on_separate_event_loops_share_one_load(self):
        factory = CountingFactory(delay=0.3)
        shared = SharedPipeline("test", factory)
        handles = []

        def worker():
            handles.append(asyncio.run(shared.get()))

        threads = [threading.Thread(target=worker) for _ in range(2)]
        threads[0].start()
        time.sleep(0.05)
        threads[1].start()
        for t in threads:
            t.join(timeout=5)

        assert factory.calls == 1
        assert len(handles) == 2
        assert handles[0] is handles[1]

    def test_failure_seen_on_another_loop_can_be_retried(self):
        factory = CountingFactory(delay=0.5, fail_times=1)
        shared = SharedPipeline("test", factory)
        outcomes = []

        def worker():
            try:
                outcomes.append(asyncio.run(shared.get()))
            except ModelUnavailable as e:
                outcomes.append(e)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert factory.calls == 1
        assert all(isinstance(o, ModelUnavailable) for o in outcomes)
        assert asyncio.run(shared.get()) is not None
        assert factory.calls == 2

    def test_cancelled_caller_does_not_cancel_the_load(self):
        factory = CountingFactory(delay=0.2)
        shared = SharedPipeline("test", factory)

        async def scenario():
            first = asyncio.ensure_future(shared.get())
            second = asyncio.ensure_future(shared.get())
            await asyncio.sleep(0.05)
            first.cancel()
            return await second

        assert asyncio.run(scenario()) is not None
        assert factory.calls == 1
        assert shared.loaded

    def test_model_unavailable_from_factory_is_not_rewrapped(self):
        def factory():
            raise ModelUnavailable("missing dependency", backend="deepface")

        shared = SharedPipeline("deepface", factory)
        with pytest.raises(ModelUnavailable) as exc_info:
            asyncio.run(shared.get())
        assert exc_info.value.backend == "deepface"

    def test_status(self):
        shared = SharedPipeline("test", CountingFactory(delay=0), model_id="some/model")
        assert shared.status()["loaded"] is False
        asyncio.run(shared.get())
        status = shared.status()
        assert status["loaded"] is True
        assert status["model"] == "some/model"
        assert status["loading"] is False


class TestPipelineOutput:
    def test_flat_list(self):
        pairs = pairs_from_pipeline_output([{"label": "joy", "score": 0.9}, {"label": "anger", "score": 0.1}])
        assert pairs == [("joy", 0.9), ("anger", 0.1)]

    def test_nested_list(self):
        pairs = pairs_from_pipeline_output([[{"label": "joy", "score": 0.9}]])
        assert pairs == [("joy", 0.9)]

    def test_empty_list(self):
        assert pairs_from_pipeline_output([]) == []

    @pytest.mark.parametrize(
        "items",
        [
            None,
            {"label": "joy", "score": 0.9},
            [{"label": "joy"}],
            [{"label": "joy", "score": "high"}],
            ["joy"],
        ],
    )
    def test_malformed_output(self, items):
        with pytest.raises(InvalidResponse):
            pairs_from_pipeline_output(items)
