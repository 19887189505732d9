"""
Tests for the leading + trailing throttled flusher, driven by a manual clock.
"""

import pytest

from chatstream.sessions.throttle import ManualClock, ThrottledFlusher


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def flusher(clock, emitted):
    return ThrottledFlusher(emitted.append, 0.1, clock=clock)


class TestThrottledFlusher:
    def test_first_push_flushes_immediately(self, flusher, emitted):
        flusher.push("Hi")
        assert emitted == ["Hi"]

    def test_pushes_inside_window_wait_for_trailing_flush(self, flusher, emitted, clock):
        flusher.push("Hi")
        flusher.push(" there")
        flusher.push("!")
        assert emitted == ["Hi"]

        clock.advance(0.05)
        assert emitted == ["Hi"]

        clock.advance(0.05)
        assert emitted == ["Hi", "Hi there!"]

    def test_trailing_flush_opens_a_new_window(self, flusher, emitted, clock):
        flusher.push("a")
        flusher.push("b")
        clock.advance(0.1)
        flusher.push("c")
        assert emitted == ["a", "ab"]

        clock.advance(0.05)
        assert emitted == ["a", "ab"]
        clock.advance(0.05)
        assert emitted == ["a", "ab", "abc"]

    def test_push_after_idle_is_leading_again(self, flusher, emitted, clock):
        flusher.push("a")
        clock.advance(1.0)
        flusher.push("b")
        assert emitted == ["a", "ab"]

    def test_flush_emits_buffer_and_cancels_timer(self, flusher, emitted, clock):
        flusher.push("a")
        flusher.push("b")
        assert clock.pending == 1

        flusher.flush()
        assert emitted == ["a", "ab"]
        assert clock.pending == 0

        clock.advance(1.0)
        assert emitted == ["a", "ab"]

    def test_flush_with_empty_buffer_is_noop(self, flusher, emitted):
        flusher.push("a")
        flusher.flush()
        assert emitted == ["a"]

    def test_stop_drops_pending_timer_and_ignores_pushes(self, flusher, emitted, clock):
        flusher.push("a")
        flusher.push("b")
        flusher.stop()
        flusher.push("c")
        clock.advance(1.0)

        assert emitted == ["a"]
        assert flusher.text == "ab"

    def test_trailing_only(self, clock, emitted):
        flusher = ThrottledFlusher(emitted.append, 0.1, leading=False, clock=clock)
        flusher.push("a")
        assert emitted == []
        clock.advance(0.1)
        assert emitted == ["a"]

    def test_emissions_only_ever_extend(self, flusher, emitted, clock):
        for index, fragment in enumerate(["The", " quick", " brown", " fox", " jumps"]):
            flusher.push(fragment)
            clock.advance(0.03 * (index % 3))
        flusher.flush()

        assert emitted[-1] == "The quick brown fox jumps"
        for previous, current in zip(emitted, emitted[1:]):
            assert current.startswith(previous)
            assert len(current) > len(previous)

    def test_empty_fragments_are_ignored(self, flusher, emitted):
        flusher.push("")
        assert emitted == []

    def test_window_must_be_positive(self, emitted, clock):
        with pytest.raises(ValueError):
            ThrottledFlusher(emitted.append, 0, clock=clock)
