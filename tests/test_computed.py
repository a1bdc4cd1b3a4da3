"""Tests for computed cells."""

import pytest

from monitorable import Encased, autorun, computed, equal, postpone, value


class TestComputed:
    def test_lazy_eval(self):
        call_count = 0
        o = value(5)

        def fn():
            nonlocal call_count
            call_count += 1
            return o() * 2

        c = computed(fn)
        assert call_count == 0  # not yet evaluated
        assert c() == 10
        assert call_count == 1

    def test_caches_until_dirty(self):
        call_count = 0
        o = value(5)

        def fn():
            nonlocal call_count
            call_count += 1
            return o() * 2

        c = computed(fn)
        c()
        c.value
        assert call_count == 1  # cached, no re-eval
        o(6)
        assert c() == 12
        assert call_count == 2

    def test_no_dependency_caches_forever(self):
        calls = []
        c = computed(lambda: calls.append(1) or len(calls))
        assert c() == 1
        assert c() == 1

    def test_dependency_tracking(self):
        """Computed tracks dependencies dynamically."""
        flag = value(True)
        a = value(1)
        b = value(2)

        c = computed(lambda: a() if flag() else b())
        assert c() == 1

        flag(False)
        assert c() == 2  # now depends on b, not a

    def test_chained_computed(self):
        o = value(3)
        doubled = computed(lambda: o() * 2)
        quadrupled = computed(lambda: doubled() * 2)
        assert quadrupled() == 12
        o(5)
        assert quadrupled() == 20

    def test_propagates_to_autorun(self):
        """Computed invalidation propagates to downstream runners."""
        o = value(5)
        c = computed(lambda: o() * 2)
        log = []
        autorun(lambda: log.append(c()))
        assert log == [10]
        o(10)
        assert log == [10, 20]


class TestComputedWatch:
    def test_watch_without_prior_read(self):
        v = value(1)
        c = computed(lambda: v() * 2)
        seen = []
        c.watch(lambda cell, stopped: seen.append(cell()))
        v(5)
        assert seen == [10]

    def test_one_notification_per_change(self):
        x = value(1)
        c = computed(lambda: x() + 1)
        assert c() == 2
        first, second = [], []
        c.watch(lambda cell, stopped: first.append(cell()))
        c.watch(lambda cell, stopped: second.append(cell()))
        x(2)
        assert first == [3]
        assert second == [3]
        x(3)
        assert first == [3, 4]
        assert second == [3, 4]

    def test_watcher_not_reading_still_notified(self):
        x = value(1)
        c = computed(lambda: x())
        log = []
        c.watch(lambda cell, stopped: log.append(stopped))
        x(2)
        x(3)
        assert log == [False, False]

    def test_batch_coalesces(self):
        x = value(0)
        c = computed(lambda: x() * 10)
        log = []
        c.watch(lambda cell, stopped: log.append(cell()))

        def writes():
            x(1)
            x(2)
            x(3)
            assert log == []

        postpone(writes)
        assert log == [30]


class TestComputedSetter:
    def test_setter_receives_writes(self):
        base = value(1)
        c = computed(lambda: base() * 2, lambda v: base(v // 2))
        assert c() == 2
        c(10)
        assert base() == 5
        assert c() == 10

    def test_write_without_setter_ignored(self):
        base = value(1)
        c = computed(lambda: base())
        c.value = 99
        assert c() == 1

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            computed(42)
        with pytest.raises(TypeError):
            computed(lambda: 1, "setter")


class TestComputedErrors:
    def test_raising_getter_retries(self):
        source = value(0)
        attempts = []

        def fn():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("first read fails")
            return source()

        c = computed(fn)
        with pytest.raises(RuntimeError):
            c()
        assert c() == 0
        assert len(attempts) == 2


class TestComputedStop:
    def test_stop_forces_final_evaluation(self):
        calls = []
        source = value(4)
        c = computed(lambda: calls.append(1) or source())
        c.stop()
        assert calls == [1]
        source(5)
        assert c() == 4

    def test_stop_notifies_once(self):
        source = value(1)
        c = computed(lambda: source())
        log = []
        c.watch(lambda cell, stopped: log.append(stopped))
        c.stop()
        c.stop()
        assert log == [True]

    def test_stop_releases_dependencies(self):
        source = value(1)
        c = computed(lambda: source())
        c()
        c.stop()
        log = []
        c.watch(lambda cell, stopped: log.append(stopped))
        source(2)
        assert log == []
        assert c() == 1


class TestComputedProxy:
    def test_result_is_encased(self):
        target = {"n": 1}
        source = value(target)
        c = computed(lambda: source(), proxy=True)
        assert type(c()) is Encased
        assert equal(c(), target)

    def test_writes_through_result_reach_readers(self):
        target = {"n": 1}
        c = computed(lambda: target, proxy=True)
        log = []
        autorun(lambda: log.append(c()["n"]))
        c()["n"] = 2
        assert log == [1, 2]


class TestComputedRepr:
    def test_repr_does_not_evaluate(self):
        calls = []
        c = computed(lambda: calls.append(1) or 3)
        assert repr(c) == "Value(<pending>)"
        assert calls == []
        c()
        assert repr(c) == "Value(3)"
        assert calls == [1]

    def test_repr_of_failed_getter(self):
        def fn():
            raise RuntimeError("no value")

        c = computed(fn)
        with pytest.raises(RuntimeError):
            c()
        assert repr(c) == "Value(<pending>)"
