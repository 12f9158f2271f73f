"""Tests for single pull request four-eyes evaluation."""

from deploy_audit.services.verification.four_eyes import (
    evaluate_four_eyes,
    last_substantive_commit,
)
from deploy_audit.services.verification.types import ReviewState, UnverifiedReason
from factories import at, make_commit, make_review


class TestEvaluateFourEyes:
    def test_no_commits(self):
        outcome = evaluate_four_eyes([make_review()], [], "main")

        assert outcome.has_four_eyes is False
        assert outcome.reason == "No commits found in PR"
        assert outcome.reason_code == UnverifiedReason.PR_NOT_APPROVED

    def test_approval_after_last_commit(self):
        outcome = evaluate_four_eyes(
            [make_review("reviewer-b", submitted_at=at(10))],
            [make_commit("c1", authored_at=at(9))],
            "main",
        )

        assert outcome.has_four_eyes is True
        assert outcome.reason == "Approved by reviewer-b after last commit"
        assert outcome.reason_code is None

    def test_approval_at_same_instant_is_not_after(self):
        outcome = evaluate_four_eyes(
            [make_review(submitted_at=at(9))], [make_commit("c1", authored_at=at(9))], "main"
        )
        assert outcome.reason_code == UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT

    def test_trailing_base_merges_are_ignored(self):
        commits = [
            make_commit("c1", authored_at=at(9)),
            make_commit(
                "m1",
                authored_at=at(11),
                message="Merge branch 'main' into feature",
                parents=("c1", "x"),
            ),
        ]
        outcome = evaluate_four_eyes([make_review(submitted_at=at(10))], commits, "main")

        assert outcome.has_four_eyes is True
        assert "after ignoring 1 base-merge commit(s)" in outcome.reason

    def test_only_approved_reviews_count(self):
        reviews = [
            make_review("reviewer-b", state=ReviewState.COMMENTED, submitted_at=at(10)),
            make_review("reviewer-c", state=ReviewState.CHANGES_REQUESTED, submitted_at=at(10)),
            make_review("reviewer-d", state=ReviewState.DISMISSED, submitted_at=at(10)),
        ]
        outcome = evaluate_four_eyes(reviews, [make_commit("c1", authored_at=at(9))], "main")

        assert outcome.has_four_eyes is False
        assert outcome.reason_code == UnverifiedReason.NO_APPROVED_REVIEWS

    def test_approval_without_timestamp(self):
        review = make_review().model_copy(update={"submitted_at": None})

        outcome = evaluate_four_eyes([review], [make_commit("c1")], "main")

        assert outcome.reason_code == UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT

    def test_committer_timestamp_governs_ordering(self):
        commit = make_commit("c1", authored_at=at(8), committed_at=at(11))
        outcome = evaluate_four_eyes([make_review(submitted_at=at(10))], [commit], "main")

        assert outcome.has_four_eyes is False
        assert outcome.reason_code == UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT

    def test_backdated_commit_listed_first_is_caught(self):
        backdated = make_commit("backdated", authored_at=at(8), committed_at=at(11))
        honest = make_commit("honest", authored_at=at(9), committed_at=at(9))

        outcome = evaluate_four_eyes(
            [make_review(submitted_at=at(10))], [backdated, honest], "main"
        )

        assert outcome.has_four_eyes is False
        assert outcome.reason_code == UnverifiedReason.APPROVAL_BEFORE_LAST_COMMIT

    def test_merger_who_is_not_an_author_validates(self):
        commits = [
            make_commit("c1", authored_at=at(9)),
            make_commit("c2", author="dependabot[bot]", authored_at=at(11)),
        ]
        outcome = evaluate_four_eyes(
            [make_review(submitted_at=at(10))], commits, "main", merged_by="Lead-D"
        )

        assert outcome.has_four_eyes is True
        assert "merged by Lead-D who is not a commit author" in outcome.reason

    def test_merger_comparison_is_case_insensitive(self):
        commits = [make_commit("c1", author="Developer-A", authored_at=at(11))]
        outcome = evaluate_four_eyes(
            [make_review(submitted_at=at(10))], commits, "main", merged_by="developer-a"
        )

        assert outcome.has_four_eyes is False

    def test_merger_exception_needs_an_approval(self):
        outcome = evaluate_four_eyes(
            [], [make_commit("c1")], "main", merged_by="lead-d"
        )
        assert outcome.reason_code == UnverifiedReason.NO_APPROVED_REVIEWS


class TestLastSubstantiveCommit:
    def test_all_merges_falls_back_to_last(self):
        commits = [
            make_commit("m1", message="Merge branch 'main' into a", parents=("x", "y")),
            make_commit("m2", message="Merge branch 'main' into a", parents=("m1", "z")),
        ]
        commit, skipped = last_substantive_commit(commits, "main")

        assert commit.sha == "m2"
        assert skipped == 0
