from leadscout.etl.ranking import rank_candidates
from leadscout.models import Candidate


def _c(name, rating=None, website=None, score=None):
    return Candidate(name=name, rating=rating, website_url=website, website_score=score)


def test_no_website_group_first_by_ascending_rating():
    ranked = rank_candidates([_c("high", 4.8), _c("site", 4.0, "https://a.be", 40), _c("low", 4.2)])
    assert [c.name for c in ranked] == ["low", "high", "site"]


def test_website_group_by_descending_score_with_unscored_last():
    ranked = rank_candidates(
        [
            _c("unscored", website="https://u.be"),
            _c("ok", website="https://o.be", score=30),
            _c("bad", website="https://b.be", score=85),
        ]
    )
    assert [c.name for c in ranked] == ["bad", "ok", "unscored"]


def test_missing_rating_sorts_as_zero_and_ties_are_stable():
    ranked = rank_candidates([_c("first", 4.0), _c("unrated"), _c("second", 4.0)])
    assert [c.name for c in ranked] == ["unrated", "first", "second"]


def test_truncation_happens_after_sorting():
    ranked = rank_candidates([_c("a", 5.0), _c("b", 1.0), _c("c", 3.0)], limit=2)
    assert [c.name for c in ranked] == ["b", "c"]


def test_empty_input():
    assert rank_candidates([], limit=5) == []
