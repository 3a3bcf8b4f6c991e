"""Unit tests for the layer classifier."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from lifeline.core.models import Layer
from lifeline.layers import (
    LAYER_KEYWORDS,
    LAYER_PRIORITY,
    LOCATION_BONUS,
    classify,
    classify_fields,
    matching_layers,
    merge_keywords,
    normalize_text,
)


class TestClassify:
    def test_travel_with_matched_keywords(self):
        """Every matched keyword is reported with the score."""
        result = classify("Flight to hotel for vacation")
        assert result.layer is Layer.TRAVEL
        assert {"flight", "hotel", "vacation"} <= set(result.matched_keywords)
        assert result.score == 3

    def test_case_insensitive(self):
        """Matching ignores case."""
        assert classify("DENTIST").layer is Layer.HEALTH

    def test_diacritics_ignored(self):
        """Matching ignores diacritics."""
        assert classify("Hôtel booking").layer is Layer.TRAVEL

    def test_default_when_nothing_matches(self):
        """No match gives media with a zero score."""
        result = classify("xyzzy")
        assert result.layer is Layer.MEDIA
        assert result.score == 0
        assert result.matched_keywords == ()

    def test_empty_and_none(self):
        """Empty input gives media."""
        assert classify("").layer is Layer.MEDIA
        assert classify(None).layer is Layer.MEDIA

    def test_min_score_fallback(self):
        """Scores under min_score fall back to the default."""
        assert classify("gym").layer is Layer.HEALTH
        assert classify("gym", min_score=2).layer is Layer.MEDIA

    def test_custom_default(self):
        """The fallback layer can be changed."""
        assert classify("xyzzy", default=Layer.WORK).layer is Layer.WORK


class TestTieBreak:
    def test_priority_not_match_order(self):
        """Equal scores resolve by the fixed priority order."""
        assert classify("meeting at the gym").layer is Layer.WORK
        assert classify("gym meeting").layer is Layer.WORK

    def test_travel_beats_work(self):
        """Travel wins a tie with work."""
        assert classify("hotel meeting").layer is Layer.TRAVEL

    def test_priority_order(self):
        """The priority list covers every layer, travel first."""
        assert LAYER_PRIORITY[0] is Layer.TRAVEL
        assert LAYER_PRIORITY[-1] is Layer.MEDIA
        assert set(LAYER_PRIORITY) == set(Layer)


class TestLocationBonus:
    def test_bonus_applies_to_travel(self):
        """A location alone makes an event travel."""
        result = classify("xyzzy", has_location=True)
        assert result.layer is Layer.TRAVEL
        assert result.score == LOCATION_BONUS

    def test_bonus_can_be_outscored(self):
        """Enough keywords beat the location bonus."""
        result = classify("doctor appointment at the clinic", has_location=True)
        assert result.layer is Layer.HEALTH

    def test_classify_fields_location_implies_bonus(self):
        """A location name implies the bonus unless overridden."""
        assert classify_fields(title="Lunch", location="Rome").layer is Layer.TRAVEL
        assert classify_fields(title="Lunch", location="Rome", has_location=False).layer is Layer.MEDIA

    def test_classify_fields_concatenates(self):
        """Title, description and extras are scored together."""
        result = classify_fields(title="Quarterly", description="budget review", extra=["with the team"])
        assert result.layer is Layer.WORK


class TestCustomKeywords:
    def test_extra_keywords(self):
        """Extra keywords are normalized and matched."""
        result = classify("pottery evening", extra_keywords={"education": ["Pottery"]})
        assert result.layer is Layer.EDUCATION
        assert result.matched_keywords == ("pottery",)

    def test_builtin_table_untouched(self):
        """Extra keywords never reach the built-in table."""
        classify("pottery", extra_keywords={Layer.EDUCATION: ["pottery"]})
        assert "pottery" not in LAYER_KEYWORDS[Layer.EDUCATION]

    def test_builtin_table_is_read_only(self):
        """The built-in table cannot be assigned to."""
        with pytest.raises(TypeError):
            LAYER_KEYWORDS[Layer.TRAVEL] = ()  # type: ignore[index]

    def test_merge_returns_new_table(self):
        """Merging builds a new table."""
        merged = merge_keywords({"work": ["jira"]})
        assert merged is not LAYER_KEYWORDS
        assert "jira" in merged[Layer.WORK]
        assert "jira" not in LAYER_KEYWORDS[Layer.WORK]

    def test_merge_ignores_unknown_layers(self):
        """Unknown layer names are ignored when merging."""
        merged = merge_keywords({"hobbies": ["knitting"]})
        assert all("knitting" not in words for words in merged.values())

    def test_merge_without_extra_is_base(self):
        """No extras returns the built-in table itself."""
        assert merge_keywords(None) is LAYER_KEYWORDS

    def test_concurrent_calls_do_not_interfere(self):
        """Each caller sees only its own extra keywords."""

        def run(layer: Layer) -> Layer:
            return classify("zorbing", extra_keywords={layer: ["zorbing"]}).layer

        layers = list(Layer) * 20
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, layers))
        assert results == layers


class TestMatchingLayers:
    def test_multiple(self):
        """Every layer with a match is listed in priority order."""
        assert matching_layers("Flight to the dentist") == [Layer.TRAVEL, Layer.HEALTH]

    def test_none(self):
        """No match lists nothing."""
        assert matching_layers("xyzzy") == []
        assert matching_layers(None) == []


def test_normalize_text():
    """Text is lowercased and stripped of diacritics."""
    assert normalize_text("Café ÜBER") == "cafe uber"
