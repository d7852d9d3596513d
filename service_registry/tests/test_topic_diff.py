"""
Unit tests for the topic-set diff helpers.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_registry.app.devices.models import Topic
from service_registry.app.devices.topics import (
    normalize_topic_names,
    topics_to_add,
    topics_to_remove,
    unique_in_order,
)
from shared.errors import InvalidInputError


class TestNormalizeTopicNames:
    """Test cases for normalize_topic_names."""

    def test_single_name_becomes_list(self):
        assert normalize_topic_names("t1") == ["t1"]

    def test_list_is_kept_in_order(self):
        assert normalize_topic_names(["b", "a", "b"]) == ["b", "a", "b"]

    def test_none_is_empty(self):
        assert normalize_topic_names(None) == []

    def test_empty_name_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_topic_names(["t1", ""])

    def test_too_long_name_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_topic_names("x" * 16)

    def test_non_list_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_topic_names({"t1": 1})

    def test_lookup_mode_skips_validation(self):
        assert normalize_topic_names(["x" * 40, 3, "t1"], validate=False) == ["x" * 40, "t1"]


class TestTopicsToAdd:
    """Test cases for the add diff (set difference)."""

    def test_only_new_names(self):
        assert topics_to_add(["t1", "t3", "t2"], ["t1", "t2"]) == ["t3"]

    def test_request_repeats_collapsed(self):
        assert topics_to_add(["t3", "t4", "t3"], ["t1"]) == ["t3", "t4"]

    def test_input_order_preserved(self):
        assert topics_to_add(["z", "a", "m"], []) == ["z", "a", "m"]

    def test_all_existing_gives_nothing(self):
        assert topics_to_add(["t1", "t2"], ["t2", "t1"]) == []

    def test_exact_match_only(self):
        assert topics_to_add(["T1", "t1 "], ["t1"]) == ["T1", "t1 "]


class TestTopicsToRemove:
    """Test cases for the remove diff (intersection by name)."""

    @pytest.fixture
    def current(self):
        return [Topic(id=1, name="t1"), Topic(id=2, name="t2"), Topic(id=3, name="t3")]

    def test_selects_requested_records(self, current):
        removed = topics_to_remove(current, ["t3", "t1"])
        assert [t.id for t in removed] == [1, 3]

    def test_unknown_names_ignored(self, current):
        assert topics_to_remove(current, ["nope"]) == []

    def test_repeated_request_selects_once(self, current):
        assert [t.name for t in topics_to_remove(current, ["t2", "t2"])] == ["t2"]


def test_unique_in_order():
    assert unique_in_order(["a", "b", "a", "c", "b"]) == ["a", "b", "c"]
