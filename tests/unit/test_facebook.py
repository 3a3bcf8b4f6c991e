"""Unit tests for the post/connection/event export normalizer."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from lifeline.adapters.facebook import (
    is_facebook_export,
    normalize_facebook,
    path_kind,
    record_kind,
    repair_text,
)
from lifeline.core.errors import FormatError
from lifeline.core.models import EventSource, Layer

POSTS = [
    {
        "timestamp": 1700000000,
        "data": [{"post": "Had a great time at the beach with friends"}],
        "attachments": [
            {
                "data": [
                    {
                        "place": {
                            "name": "Santa Monica Beach",
                            "coordinate": {"latitude": 34.0195, "longitude": -118.4912},
                        }
                    }
                ]
            }
        ],
    },
    {
        "timestamp": 1700000100,
        "title": "Jane shared a photo.",
        "attachments": [{"data": [{"media": {"uri": "photos/1.jpg"}}]}],
    },
    {"timestamp": 1700000200, "data": [{"post": "x" * 150}]},
    {"timestamp": 1700000300},
    {"data": [{"post": "no timestamp"}]},
]


class TestRepairText:
    def test_mojibake_repaired(self):
        """UTF-8 read as Latin-1 is repaired."""
        assert repair_text("CafÃ©") == "Café"

    def test_clean_text_untouched(self):
        """Text that is already clean is left alone."""
        assert repair_text("Café") == "Café"
        assert repair_text("plain") == "plain"
        assert repair_text("日本") == "日本"

    def test_non_string(self):
        """Non-strings give None."""
        assert repair_text(None) is None
        assert repair_text(5) is None


class TestPosts:
    def test_posts(self):
        """Posts become events with location, media flag and truncated titles."""
        result = normalize_facebook({"your_posts": POSTS}, "your_posts.json")
        assert result.errors == []
        beach, shared, long_post = result.events

        assert beach.title == "Had a great time at the beach with friends"
        assert beach.start == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)
        assert beach.event_type == "post"
        assert beach.layer is Layer.TRAVEL
        assert beach.location.name == "Santa Monica Beach"
        assert beach.location.latitude == 34.0195
        assert beach.source_id == "fb_post_1700000000"
        assert beach.source is EventSource.FACEBOOK

        assert shared.event_type == "photo_post"
        assert shared.metadata["has_media"] is True
        assert shared.layer is Layer.MEDIA

        assert len(long_post.title) == 100
        assert long_post.title.endswith("...")
        assert long_post.description == "x" * 150

    def test_first_alias_wins(self):
        """Only the first post alias present is read."""
        data = {"posts": POSTS[:1], "your_posts": POSTS[1:2]}
        result = normalize_facebook(data, "export.json")
        assert [e.source_id for e in result.events] == ["fb_post_1700000000"]


class TestFriends:
    def test_friends(self):
        """Friends become repaired relationship events from the first alias."""
        data = {
            "friends_v2": [{"name": "JosÃ© Garcia", "timestamp": 1600000000}],
            "friends": [{"name": "Ignored", "timestamp": 1600000000}],
        }
        result = normalize_facebook(data, "friends.json")
        assert len(result.events) == 1
        event = result.events[0]
        assert event.title == "Connected with José Garcia"
        assert event.layer is Layer.RELATIONSHIPS
        assert event.event_type == "connection"
        assert event.metadata["friend_name"] == "José Garcia"

    def test_raw_array_with_path_hint(self):
        """A bare array is typed by its path."""
        result = normalize_facebook([{"name": "Bob", "timestamp": 1600000000}], "friends_and_followers/friends.json")
        assert [e.title for e in result.events] == ["Connected with Bob"]


class TestEvents:
    def test_joined_invited_hosted(self):
        """Joined, invited and hosted events are all read."""
        data = {
            "event_responses": {
                "events_joined": [
                    {
                        "name": "Concert in the park",
                        "start_timestamp": 1690000000,
                        "end_timestamp": 1690010000,
                        "place": {"name": "Central Park"},
                    }
                ],
                "events_invited": [{"name": "Team dinner", "start_timestamp": 1690100000}],
            },
            "your_events": [{"name": "My birthday party", "start_timestamp": 1690200000}],
        }
        result = normalize_facebook(data, "your_event_responses.json")
        joined, invited, hosted = result.events

        assert joined.metadata["response"] == "joined"
        assert joined.layer is Layer.TRAVEL
        assert joined.end == datetime.fromtimestamp(1690010000, UTC)
        assert joined.location.name == "Central Park"
        assert invited.metadata["response"] == "invited"
        assert invited.layer is Layer.WORK
        assert hosted.metadata["response"] == "hosted"
        assert hosted.layer is Layer.RELATIONSHIPS
        assert {e.event_type for e in result.events} == {"event"}


class TestDetection:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("posts/your_posts_1.json", "posts"),
            ("friends_and_followers/friends.json", "friends"),
            ("friends/friend_requests_received.json", None),
            ("events/your_event_responses.json", "events"),
            ("messages/inbox.json", None),
        ],
    )
    def test_path_kind(self, path, expected):
        """Paths map to a concept, excluding friend requests."""
        assert path_kind(path) == expected

    def test_record_kind(self):
        """Records are typed by their keys."""
        assert record_kind({"name": "Gala", "start_timestamp": 1}) == "events"
        assert record_kind({"timestamp": 1, "title": "Hi"}) == "posts"
        assert record_kind({"timestamp": 1, "name": "Ann"}) == "friends"
        assert record_kind({"junk": 1}) is None
        assert record_kind("junk") is None

    def test_raw_array_by_record_shape(self):
        """A bare array without a path hint is typed per record."""
        data = [
            {"timestamp": 1600000000, "title": "Hello world"},
            {"name": "Ann", "timestamp": 1600000001},
            {"name": "Gala", "start_timestamp": 1600000002},
            {"junk": 1},
        ]
        result = normalize_facebook(data, "export.json")
        assert sorted(e.event_type for e in result.events) == ["connection", "event", "post"]

    def test_is_facebook_export(self):
        """Recognizable containers are detected."""
        assert is_facebook_export({"friends_v2": []})
        assert is_facebook_export({"event_responses": {}})
        assert not is_facebook_export({"foo": 1})
        assert not is_facebook_export([])

    def test_unknown_shape(self):
        """Unrecognized JSON is a format error."""
        with pytest.raises(FormatError):
            normalize_facebook({"foo": 1}, "data.json")
