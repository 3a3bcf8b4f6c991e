"""Layer classifier: keyword scoring over the seven fixed categories.

The built-in keyword table is an immutable constant.  Per-call extra
keywords are merged into a fresh table, never written back, so concurrent
callers cannot see each other's additions.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from lifeline.core.models import DEFAULT_LAYER, Layer

KeywordTable = Mapping[Layer, tuple[str, ...]]

LAYER_KEYWORDS: KeywordTable = MappingProxyType({
    Layer.TRAVEL: (
        "flight", "airport", "airline", "airplane", "plane",
        "hotel", "hostel", "airbnb", "accommodation", "resort",
        "travel", "trip", "vacation", "holiday", "journey",
        "passport", "visa", "customs", "immigration",
        "tourist", "sightseeing", "destination",
        "road trip", "cruise", "tour",
        "departure", "arrival", "layover", "transit",
    ),
    Layer.WORK: (
        "meeting", "standup", "stand-up", "sync",
        "call", "conference", "presentation", "demo",
        "interview", "review", "retrospective", "retro",
        "work", "office", "workplace", "coworking",
        "deadline", "sprint", "milestone", "project",
        "client", "customer", "stakeholder",
        "onboarding", "training", "workshop",
        "promotion", "salary", "performance",
        "team", "department", "company",
        "linkedin", "professional", "networking",
        "contract", "freelance", "consulting",
    ),
    Layer.HEALTH: (
        "doctor", "physician", "specialist", "nurse",
        "hospital", "clinic", "medical", "healthcare",
        "dentist", "dental", "orthodontist",
        "therapist", "therapy", "counseling", "counselor",
        "psychiatrist", "psychologist", "mental health",
        "gym", "workout", "exercise", "fitness",
        "yoga", "meditation", "wellness",
        "physical therapy", "physiotherapy",
        "checkup", "check-up", "appointment", "screening",
        "vaccine", "vaccination", "immunization",
        "prescription", "medication", "pharmacy",
        "surgery", "procedure", "treatment",
        "blood test", "lab work", "x-ray", "mri",
        "optometrist", "eye exam", "glasses",
        "dermatologist", "chiropractor", "nutritionist",
    ),
    Layer.EDUCATION: (
        "class", "lecture", "seminar", "tutorial",
        "course", "coursework", "curriculum",
        "exam", "quiz", "assessment",
        "study", "studying", "homework", "assignment",
        "school", "university", "college", "campus",
        "professor", "teacher", "instructor", "tutor",
        "degree", "diploma", "certificate", "certification",
        "graduation", "graduated", "commencement", "convocation",
        "scholarship", "fellowship",
        "research", "thesis", "dissertation",
        "student", "academic", "educational",
        "library", "laboratory",
        "gpa", "credits",
        "enrollment", "semester",
    ),
    Layer.RELATIONSHIPS: (
        "wedding", "marriage", "engagement", "proposal",
        "anniversary", "birthday", "celebration",
        "family", "parent", "sibling", "relative",
        "friend", "friendship", "bestie",
        "dating", "relationship",
        "baby shower", "newborn",
        "reunion", "gathering", "party",
        "funeral", "memorial",
        "divorce", "separation", "breakup",
        "adoption", "custody",
        "godparent", "baptism", "christening",
        "bar mitzvah", "bat mitzvah",
        "connected with", "introduced",
    ),
    Layer.ECONOMICS: (
        "salary", "wage", "income", "earnings",
        "tax", "taxes", "irs",
        "investment", "investing", "portfolio",
        "stock", "stocks", "bond", "mutual fund",
        "retirement", "401k", "pension",
        "mortgage", "loan", "debt", "credit",
        "bank", "banking",
        "budget", "budgeting", "financial",
        "insurance", "premium",
        "purchase", "bought",
        "property", "real estate", "apartment",
        "vehicle", "lease",
        "business", "startup", "entrepreneur",
        "invoice", "payment",
    ),
    Layer.MEDIA: (
        "photo", "picture", "image", "selfie",
        "video", "movie", "film", "recording",
        "post", "status", "shared",
        "instagram", "facebook", "twitter", "tiktok",
        "youtube", "spotify", "netflix",
        "concert", "album", "playlist", "song", "music",
        "book", "reading", "podcast", "article",
        "game", "gaming", "stream", "twitch",
        "upload", "download",
    ),
})

# Highest priority first; decides ties between equal scores
LAYER_PRIORITY: tuple[Layer, ...] = (
    Layer.TRAVEL,
    Layer.WORK,
    Layer.HEALTH,
    Layer.RELATIONSHIPS,
    Layer.EDUCATION,
    Layer.ECONOMICS,
    Layer.MEDIA,
)

LOCATION_BONUS = 2


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one piece of text."""

    layer: Layer
    score: int = 0
    matched_keywords: tuple[str, ...] = ()
    scores: dict[Layer, int] = field(default_factory=dict, compare=False)


def normalize_text(text: str) -> str:
    """Lower-case and strip diacritics so 'Café' matches 'cafe'."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def merge_keywords(
    extra: Mapping[Layer | str, Iterable[str]] | None = None,
    base: KeywordTable = LAYER_KEYWORDS,
) -> KeywordTable:
    """Return a new table with *extra* keywords appended to *base*.

    Neither input is modified.  Unknown layer names are ignored.
    """
    if not extra:
        return base
    merged: dict[Layer, tuple[str, ...]] = dict(base)
    for key, words in extra.items():
        layer = key if isinstance(key, Layer) else Layer.parse(key)
        if layer is None:
            continue
        additions = tuple(
            normalize_text(w).strip() for w in words if isinstance(w, str) and w.strip()
        )
        existing = merged.get(layer, ())
        merged[layer] = existing + tuple(w for w in additions if w not in existing)
    return MappingProxyType(merged)


def score_layers(text: str, keywords: KeywordTable) -> dict[Layer, tuple[int, tuple[str, ...]]]:
    """Substring-match every keyword against normalized *text*."""
    lowered = normalize_text(text)
    results: dict[Layer, tuple[int, tuple[str, ...]]] = {}
    for layer in LAYER_PRIORITY:
        matched = tuple(kw for kw in keywords.get(layer, ()) if kw in lowered)
        results[layer] = (len(matched), matched)
    return results


def classify(
    text: str | None,
    *,
    extra_keywords: Mapping[Layer | str, Iterable[str]] | None = None,
    has_location: bool = False,
    min_score: int = 1,
    default: Layer = DEFAULT_LAYER,
) -> Classification:
    """Pick the best layer for *text*.

    Highest score wins; ties go to the layer that comes first in
    LAYER_PRIORITY.  Scores below *min_score* fall back to *default*.
    """
    text = text if isinstance(text, str) else ""
    scored = score_layers(text, merge_keywords(extra_keywords))
    scores = {layer: count for layer, (count, _) in scored.items()}
    if has_location:
        scores[Layer.TRAVEL] += LOCATION_BONUS

    best_layer = default
    best_score = 0
    for layer in LAYER_PRIORITY:
        if scores[layer] > best_score:
            best_layer = layer
            best_score = scores[layer]

    if best_score < max(min_score, 1):
        return Classification(layer=default, scores=scores)

    return Classification(
        layer=best_layer,
        score=best_score,
        matched_keywords=scored[best_layer][1],
        scores=scores,
    )


def classify_fields(
    *,
    title: str | None = None,
    description: str | None = None,
    location: str | None = None,
    extra: Iterable[str | None] = (),
    has_location: bool | None = None,
    extra_keywords: Mapping[Layer | str, Iterable[str]] | None = None,
    min_score: int = 1,
    default: Layer = DEFAULT_LAYER,
) -> Classification:
    """Concatenate structured fields and classify the result.

    A populated *location* implies the travel bonus unless *has_location*
    says otherwise.
    """
    parts = [title, description, location, *extra]
    combined = " ".join(p for p in parts if isinstance(p, str) and p)
    if has_location is None:
        has_location = bool(location and location.strip())
    return classify(
        combined,
        extra_keywords=extra_keywords,
        has_location=has_location,
        min_score=min_score,
        default=default,
    )


def matching_layers(
    text: str | None,
    *,
    extra_keywords: Mapping[Layer | str, Iterable[str]] | None = None,
) -> list[Layer]:
    """Every layer with a positive score, in priority order."""
    if not text:
        return []
    scored = score_layers(text, merge_keywords(extra_keywords))
    return [layer for layer in LAYER_PRIORITY if scored[layer][0] > 0]
