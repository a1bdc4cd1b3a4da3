"""Tests for mark_read, observe, mark_change and postpone."""

import pytest

from monitorable import ReadMap, mark_change, mark_read, observe, postpone, watch_prop


class Target:
    pass


class TestMarkRead:
    def test_noop_without_observe(self):
        a = Target()
        mark_read(a, "x")  # nothing to record into, must not raise

    def test_records_distinct_keys_in_order(self):
        a = Target()
        read = ReadMap()
        observe(read, lambda: (mark_read(a, "x"), mark_read(a, "y"), mark_read(a, "x")))
        assert list(read[a]) == ["x", "y"]
        assert read[a] == {"x": False, "y": False}

    def test_numeric_keys_become_strings(self):
        a = Target()
        read = ReadMap()
        observe(read, lambda: mark_read(a, 3))
        assert list(read[a]) == ["3"]

    def test_sentinel_keys(self):
        a = Target()
        read = ReadMap()
        observe(read, lambda: (mark_read(a, True), mark_read(a, False)))
        assert list(read[a]) == [True, False]

    def test_invalid_targets_and_keys_ignored(self):
        a = Target()
        read = ReadMap()

        def fn():
            mark_read(None, "x")
            mark_read(42, "x")
            mark_read("text", "x")
            mark_read(a, None)
            mark_read(a, [1, 2])

        observe(read, fn)
        assert len(read) == 0

    def test_unhashable_targets_tracked_by_identity(self):
        d = {}
        read = ReadMap()
        observe(read, lambda: mark_read(d, "k"))
        assert d in read
        assert {} not in read


class TestObserve:
    def test_returns_result(self):
        assert observe(ReadMap(), lambda: 42) == 42

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            observe(ReadMap(), 42)

    def test_nested_recording_does_not_mix(self):
        a, b = Target(), Target()
        map1, map2 = ReadMap(), ReadMap()

        def outer():
            mark_read(a, "x")
            observe(map2, lambda: mark_read(b, "y"))
            mark_read(a, "z")

        observe(map1, outer)
        assert list(map1) == [a]
        assert list(map1[a]) == ["x", "z"]
        assert list(map2) == [b]
        assert list(map2[b]) == ["y"]

    def test_restores_context_on_exception(self):
        a = Target()
        outer = ReadMap()

        def failing():
            raise ValueError("boom")

        def fn():
            with pytest.raises(ValueError):
                observe(ReadMap(), failing)
            mark_read(a, "after")

        observe(outer, fn)
        assert list(outer[a]) == ["after"]

    def test_postpone_option_batches(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("x"))

        def fn():
            mark_change(a, "x")
            mark_change(a, "x")
            assert log == []

        observe(ReadMap(), fn, postpone=True)
        assert log == ["x"]

    def test_postpone_flags_keys_changed_during_run(self):
        a = Target()
        read = ReadMap()

        def fn():
            mark_read(a, "x")
            mark_change(a, "x")

        observe(read, fn, postpone=True)
        assert read[a] == {"x": True}


class TestMarkChange:
    def test_fires_watchers_in_order(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append(1))
        watch_prop(a, "x", lambda: log.append(2))
        watch_prop(a, "y", lambda: log.append("y"))
        mark_change(a, "x")
        assert log == [1, 2]

    def test_numeric_key_matches_string_watch(self):
        a = Target()
        log = []
        watch_prop(a, "0", lambda: log.append("hit"))
        mark_change(a, 0)
        assert log == ["hit"]

    def test_watcher_added_during_round_not_fired(self):
        a = Target()
        log = []

        def first():
            log.append("first")
            watch_prop(a, "x", lambda: log.append("late"))

        watch_prop(a, "x", first)
        mark_change(a, "x")
        assert log == ["first"]
        mark_change(a, "x")
        assert log == ["first", "first", "late"]

    def test_self_unsubscribe_during_round(self):
        a = Target()
        log = []
        cancel = None

        def once():
            log.append("once")
            cancel()

        cancel = watch_prop(a, "x", once)
        watch_prop(a, "x", lambda: log.append("other"))
        mark_change(a, "x")
        mark_change(a, "x")
        assert log == ["once", "other", "other"]

    def test_watcher_cancelled_by_earlier_watcher_skipped(self):
        a = Target()
        log = []
        cancel_second = None

        def first():
            log.append("first")
            cancel_second()

        watch_prop(a, "x", first)
        cancel_second = watch_prop(a, "x", lambda: log.append("second"))
        mark_change(a, "x")
        assert log == ["first"]

    def test_failing_watcher_does_not_stop_others(self, caplog):
        a = Target()
        log = []

        def bad():
            raise RuntimeError("bad watcher")

        watch_prop(a, "x", bad)
        watch_prop(a, "x", lambda: log.append("ok"))
        mark_change(a, "x")
        assert log == ["ok"]
        errors = [r.exc_info[1] for r in caplog.records if r.exc_info]
        assert [str(e) for e in errors] == ["bad watcher"]


class TestPostpone:
    def test_coalesces_until_exit(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("x"))

        def writes():
            for _ in range(5):
                mark_change(a, "x")
            assert log == []
            return "done"

        assert postpone(writes) == "done"
        assert log == ["x"]

    def test_flush_order_is_first_change_order(self):
        a, b = Target(), Target()
        log = []
        watch_prop(a, "x", lambda: log.append("a.x"))
        watch_prop(a, "y", lambda: log.append("a.y"))
        watch_prop(b, "x", lambda: log.append("b.x"))

        def writes():
            mark_change(b, "x")
            mark_change(a, "y")
            mark_change(a, "x")
            mark_change(b, "x")

        postpone(writes)
        assert log == ["b.x", "a.y", "a.x"]

    def test_nested_joins_outer_batch(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("x"))

        def outer():
            postpone(lambda: mark_change(a, "x"))
            assert log == []
            mark_change(a, "x")

        postpone(outer)
        assert log == ["x"]

    def test_priority_flushes_on_own_exit(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("x"))

        def outer():
            postpone(lambda: mark_change(a, "x"), True)
            assert log == ["x"]

        postpone(outer)
        assert log == ["x"]

    def test_disdeferable_fires_immediately(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("now"), True)
        watch_prop(a, "x", lambda: log.append("later"))

        def writes():
            mark_change(a, "x")
            assert log == ["now"]

        postpone(writes)
        assert log == ["now", "later"]

    def test_flushes_on_exception(self):
        a = Target()
        log = []
        watch_prop(a, "x", lambda: log.append("x"))

        def writes():
            mark_change(a, "x")
            raise KeyError("boom")

        with pytest.raises(KeyError):
            postpone(writes)
        assert log == ["x"]

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            postpone(None)
