from journaldesk.services.conflict_service import (
    CONFLICT_AUTHOR,
    CONFLICT_DOMAIN,
    CONFLICT_PREVIOUS,
    ConflictService,
    assess_reviewer,
)

AUTHORS = [
    {"name": "Amina Author", "email": "amina@unilag.edu.ng", "affiliation": "University of Lagos Medical School"},
    {"name": "Kofi Mensah", "email": "kofi@ug.edu.gh"},
]


def test_author_email_is_high_risk():
    result = assess_reviewer({"email": "KOFI@ug.edu.gh"}, AUTHORS)
    assert result["risk_level"] == "high"
    assert CONFLICT_AUTHOR in result["conflicts"]


def test_same_domain_is_high_risk():
    result = assess_reviewer({"email": "dean@unilag.edu.ng"}, AUTHORS)
    assert result == {"conflicts": [CONFLICT_DOMAIN], "risk_level": "high"}


def test_similar_affiliation_is_medium_risk():
    result = assess_reviewer(
        {"email": "x@other.org", "affiliation": "Lagos University Teaching Hospital"}, AUTHORS
    )
    assert result["risk_level"] == "medium"
    assert result["conflicts"] == ["Similar affiliation to Amina Author"]


def test_short_shared_words_do_not_count():
    result = assess_reviewer({"email": "x@other.org", "affiliation": "The Uni of Ibadan"}, AUTHORS)
    assert result == {"conflicts": [], "risk_level": "low"}


def test_previous_review_of_same_authors_is_medium_risk():
    result = assess_reviewer(
        {"email": "x@other.org"}, AUTHORS, previously_reviewed_emails=["Amina@unilag.edu.ng"]
    )
    assert result == {"conflicts": [CONFLICT_PREVIOUS], "risk_level": "medium"}


def test_missing_reviewer_email_is_low_risk():
    assert assess_reviewer({"email": None}, AUTHORS)["risk_level"] == "low"


def test_check_uses_reviews_of_other_submissions(fake_db, people):
    authors = [{"name": "Amina Author", "email": "amina@unilag.edu.ng"}]
    older = fake_db.seed("articles", {"title": "Earlier paper", "authors": authors})[0]
    older_sub = fake_db.seed("submissions", {"article_id": older["id"], "submitter_id": people.author.user_id})[0]
    fake_db.seed("reviews", {"submission_id": older_sub["id"], "reviewer_id": people.reviewer.user_id})
    current = fake_db.seed("articles", {"title": "New paper", "authors": authors})[0]
    current_sub = fake_db.seed("submissions", {"article_id": current["id"], "submitter_id": people.author.user_id})[0]

    reviewers = [
        {"id": people.reviewer.user_id, "email": "rita@example.com"},
        {"id": people.reviewer2.user_id, "email": "ravi@example.com"},
    ]
    checked = {r["id"]: r for r in ConflictService().check(reviewers, current_sub["id"], authors)}

    assert checked[people.reviewer.user_id]["conflicts"] == [CONFLICT_PREVIOUS]
    assert checked[people.reviewer2.user_id]["risk_level"] == "low"
