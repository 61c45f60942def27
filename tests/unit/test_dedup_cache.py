"""Unit tests for the recent message id window."""

import pytest

from twitch_eventsub.eventsub import RecentMessageCache


def test_second_sighting_is_duplicate():
    cache = RecentMessageCache(10)
    assert cache.check_and_add("a") is False
    assert cache.check_and_add("a") is True
    assert "a" in cache
    assert len(cache) == 1


def test_oldest_id_is_evicted():
    cache = RecentMessageCache(2)
    cache.check_and_add("a")
    cache.check_and_add("b")
    cache.check_and_add("c")

    assert "a" not in cache
    assert len(cache) == 2
    assert cache.check_and_add("a") is False


def test_discard_and_clear():
    cache = RecentMessageCache(3)
    cache.check_and_add("a")
    cache.check_and_add("b")
    cache.discard("a")
    assert "a" not in cache
    cache.clear()
    assert len(cache) == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        RecentMessageCache(0)
