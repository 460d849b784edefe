import pytest

from leadscout.etl import normalize
from leadscout.models import ExistingBusiness


def test_parse_rating_handles_locales_and_bounds():
    assert normalize.parse_rating("4,6") == 4.6
    assert normalize.parse_rating("Rated 4.2 stars") == 4.2
    assert normalize.parse_rating("5") == 5.0
    assert normalize.parse_rating("0") is None
    assert normalize.parse_rating("7.5") is None
    assert normalize.parse_rating("") is None
    assert normalize.parse_rating(None) is None
    assert normalize.parse_rating("no rating") is None


def test_parse_review_count_strips_separators():
    assert normalize.parse_review_count("1 234 avis") == 1234
    assert normalize.parse_review_count("(87)") == 87
    assert normalize.parse_review_count("1.024") == 1024
    assert normalize.parse_review_count("reviews") is None
    assert normalize.parse_review_count(None) is None


def test_exclusion_key_is_case_and_whitespace_insensitive():
    assert normalize.exclusion_key("  Boulangerie Dupont ", "Rue Haute 4 ") == ("boulangerie dupont", "rue haute 4")
    assert normalize.exclusion_key("Acme", None) == ("acme", "")


def test_build_exclusion_set_ignores_nameless_entries():
    keys = normalize.build_exclusion_set([ExistingBusiness("Acme", "Main"), ExistingBusiness("", "Nowhere")])
    assert keys == frozenset({("acme", "main")})


def test_rating_filter_keeps_missing_ratings():
    assert normalize.passes_rating_filter(None, 4.0) is True
    assert normalize.passes_rating_filter(3.9, 4.0) is False
    assert normalize.passes_rating_filter(4.0, 4.0) is True
    assert normalize.passes_rating_filter(1.0, None) is True
    assert normalize.passes_rating_filter(1.0, 0) is True


def test_to_candidate_builds_typed_record():
    candidate = normalize.to_candidate(
        {
            "name": " Garage Lambert ",
            "rating": "4,3",
            "review_count": "1 204",
            "category": None,
            "address": "Rue de Huy 12, 4000 Liège",
            "phone": " +32 4 123 45 67 ",
            "website_url": "https://garage-lambert.be/",
            "source_url": "https://www.google.com/maps/place/Garage",
        },
        category="Garages",
        location_query="Liège",
    )

    assert candidate.name == "Garage Lambert"
    assert candidate.rating == 4.3
    assert candidate.review_count == 1204
    assert candidate.category == "Garages"
    assert candidate.phone == "+32 4 123 45 67"
    assert candidate.has_website is True
    assert candidate.website_score is None
    assert candidate.location_query == "Liège"
    assert candidate.as_row()["google_maps_url"] == "https://www.google.com/maps/place/Garage"


def test_to_candidate_requires_name():
    assert normalize.to_candidate({"name": "   "}, category="x", location_query="y") is None
    assert normalize.to_candidate({}, category="x", location_query="y") is None


def test_normalize_batch_filters_without_mutating_exclusions():
    excluded = frozenset({("known", "")})
    raws = [
        {"name": "Known"},
        {"name": "Low", "rating": "2.0"},
        {"name": "Fresh", "rating": "4.5", "address": "A"},
        {"name": "fresh", "rating": "4.9", "address": " a"},
        {"name": None},
        {"name": "Unrated"},
    ]

    accepted = normalize.normalize_batch(
        raws, excluded=excluded, min_rating=4.0, category="Cafés", location_query="Liège"
    )

    assert [c.name for c in accepted] == ["Fresh", "Unrated"]
    assert excluded == frozenset({("known", "")})


RAW_BATCHES = [
    [
        {"name": "Boulangerie A", "address": "Rue A 1", "rating": "4,8"},
        {"name": "boulangerie a", "address": " RUE A 1", "rating": "4,9"},
        {"name": "Boulangerie B", "address": "Rue B 2", "rating": "3,1"},
        {"name": "Boulangerie C", "rating": "4,2"},
    ],
    [
        {"name": "Garage X", "address": "Quai 3"},
        {"name": "Garage Y", "address": "Quai 4", "rating": "4.0"},
        {"name": "GARAGE X", "address": "quai 3 "},
        {"name": None, "address": "Quai 5"},
    ],
]

EXCLUSION_SETS = [
    frozenset(),
    frozenset({("boulangerie a", "rue a 1"), ("garage y", "quai 4")}),
    frozenset({("boulangerie c", ""), ("garage x", "quai 3"), ("unrelated", "")}),
]


@pytest.mark.parametrize("raws", RAW_BATCHES)
@pytest.mark.parametrize("excluded", EXCLUSION_SETS)
def test_normalize_batch_is_idempotent(raws, excluded):
    kwargs = dict(excluded=excluded, min_rating=4.0, category="Shops", location_query="Liège")

    first = normalize.normalize_batch(raws, **kwargs)
    second = normalize.normalize_batch(raws, **kwargs)

    assert first == second
    keys = [normalize.exclusion_key(c.name, c.address) for c in first]
    assert len(keys) == len(set(keys))


@pytest.mark.parametrize("raws", RAW_BATCHES)
@pytest.mark.parametrize("excluded", EXCLUSION_SETS)
def test_normalize_batch_never_returns_excluded_keys(raws, excluded):
    accepted = normalize.normalize_batch(
        raws, excluded=excluded, min_rating=None, category="Shops", location_query="Liège"
    )

    assert all(normalize.exclusion_key(c.name, c.address) not in excluded for c in accepted)
