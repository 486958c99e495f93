"""Tests for result aggregation: runs, scores, buckets and top issues."""

from datetime import timedelta

from tests.fixtures.audit_service import make_recommendation, make_result
from worker.audit.aggregator import (
    bucket_distribution,
    cluster_runs,
    overall_score,
    page_scores,
    round_half_up,
    score_bucket,
    summarize,
    top_issues,
    type_scores,
)
from worker.audit.models import AuditType, Priority, ScoreBucket

A = "https://example.com/a"
B = "https://example.com/b"


class TestClusterRuns:
    """Tests for timestamp-based run clustering."""

    def test_four_minutes_apart_is_one_run(self):
        runs = cluster_runs([make_result(A, minutes=0), make_result(B, minutes=4)])
        assert len(runs) == 1

    def test_six_minutes_apart_is_two_runs(self):
        runs = cluster_runs([make_result(A, minutes=0), make_result(B, minutes=6)])
        assert len(runs) == 2
        # Newest run first
        assert runs[0].results[0].page_url == B
        assert runs[1].results[0].page_url == A

    def test_gap_exactly_at_threshold_stays_in_run(self):
        runs = cluster_runs([make_result(A, minutes=0), make_result(B, minutes=5)])
        assert len(runs) == 1

    def test_chained_small_gaps_form_one_run(self):
        results = [make_result(A, minutes=m) for m in (0, 4, 8, 12)]
        assert len(cluster_runs(results)) == 1

    def test_custom_gap(self):
        results = [make_result(A, minutes=0), make_result(B, minutes=2)]
        assert len(cluster_runs(results, gap=timedelta(minutes=1))) == 2

    def test_input_order_does_not_matter(self):
        results = [make_result(A, minutes=20), make_result(B, minutes=0), make_result(A, minutes=1)]
        runs = cluster_runs(results)
        assert [len(r.results) for r in runs] == [1, 2]
        assert runs[0].index == 0

    def test_empty(self):
        assert cluster_runs([]) == []

    def test_run_metadata(self):
        run = cluster_runs(
            [
                make_result(A, AuditType.SEO, minutes=0),
                make_result(A, AuditType.CONTENT, minutes=1),
                make_result(B, AuditType.SEO, minutes=2),
            ]
        )[0]
        assert run.page_urls == [B, A]
        assert run.audit_types == [AuditType.SEO, AuditType.CONTENT]
        assert run.finished_at - run.started_at == timedelta(minutes=2)


class TestScores:
    """Tests for page, type and overall score roll-ups."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2

    def test_page_score_is_mean_over_types(self):
        results = [
            make_result(A, AuditType.SEO, score=80),
            make_result(A, AuditType.CONTENT, score=71),
            make_result(B, AuditType.SEO, score=50),
        ]
        assert page_scores(results) == {A: 76, B: 50}

    def test_type_scores(self):
        results = [
            make_result(A, AuditType.SEO, score=80),
            make_result(B, AuditType.SEO, score=61),
            make_result(A, AuditType.CONTENT, score=40),
        ]
        assert type_scores(results) == {AuditType.SEO: 71, AuditType.CONTENT: 40}

    def test_overall_excludes_failed_results(self):
        results = [
            make_result(A, score=90),
            make_result(B, score=0, error="timeout"),
        ]
        assert overall_score(results) == 90

    def test_overall_of_nothing(self):
        assert overall_score([]) is None


class TestBuckets:
    """Tests for score buckets."""

    def test_boundaries(self):
        assert score_bucket(59) == ScoreBucket.POOR
        assert score_bucket(60) == ScoreBucket.NEEDS_WORK
        assert score_bucket(79) == ScoreBucket.NEEDS_WORK
        assert score_bucket(80) == ScoreBucket.GOOD

    def test_distribution(self):
        assert bucket_distribution([10, 65, 85, 90]) == {
            ScoreBucket.POOR: 1,
            ScoreBucket.NEEDS_WORK: 1,
            ScoreBucket.GOOD: 2,
        }


class TestTopIssues:
    """Tests for top issue ranking."""

    def test_sorted_by_count_ties_first_seen(self):
        results = [
            make_result(
                A,
                recommendations=[
                    make_recommendation(category="Schema"),
                    make_recommendation(category="Meta"),
                    make_recommendation(category="Links"),
                    make_recommendation(category="Links"),
                ],
            )
        ]
        issues = top_issues(results)
        assert [(i.category, i.count) for i in issues] == [("Links", 2), ("Schema", 1), ("Meta", 1)]

    def test_rejected_excluded(self):
        result = make_result(
            A,
            recommendations=[
                make_recommendation(Priority.HIGH, "Meta"),
                make_recommendation(Priority.LOW, "Meta"),
            ],
        )
        rejected = {"seo::https://example.com/a::0"}
        issues = top_issues([result], rejected)
        assert issues[0].count == 1
        assert issues[0].high == 0
        assert issues[0].low == 1

    def test_limit(self):
        result = make_result(
            A, recommendations=[make_recommendation(category=c) for c in "abcde"]
        )
        assert len(top_issues([result], limit=2)) == 2


class TestSummarize:
    """Tests for the run summary."""

    def results(self):
        return [
            make_result(
                A,
                AuditType.SEO,
                score=90,
                recommendations=[make_recommendation(Priority.HIGH, "Meta")],
            ),
            make_result(A, AuditType.CONTENT, score=80),
            make_result(
                B,
                AuditType.SEO,
                score=40,
                recommendations=[
                    make_recommendation(Priority.MEDIUM, "Links"),
                    make_recommendation(Priority.LOW, "Links"),
                ],
            ),
        ]

    def test_summary_totals(self):
        summary = summarize(self.results())
        assert summary.overall_score == 70
        assert [p.page_url for p in summary.pages] == [A, B]
        assert summary.pages[0].score == 85
        assert summary.buckets[ScoreBucket.GOOD] == 1
        assert summary.buckets[ScoreBucket.POOR] == 1
        assert summary.recommendation_counts == {
            Priority.HIGH: 1,
            Priority.MEDIUM: 1,
            Priority.LOW: 1,
        }
        assert summary.top_issues[0].category == "Links"

    def test_rejected_leave_counts_but_not_log(self):
        results = self.results()
        rejected = {"seo::https://example.com/b::0", "seo::https://example.com/b::1"}
        summary = summarize(results, rejected)
        assert summary.recommendation_counts[Priority.MEDIUM] == 0
        assert [i.category for i in summary.top_issues] == ["Meta"]
        assert len(results[2].recommendations) == 2

    def test_filter_by_bucket(self):
        summary = summarize(self.results(), bucket=ScoreBucket.POOR)
        assert [p.page_url for p in summary.pages] == [B]
        assert summary.overall_score == 40

    def test_filter_by_audit_type(self):
        summary = summarize(self.results(), audit_type=AuditType.CONTENT)
        assert [p.page_url for p in summary.pages] == [A]
        assert summary.type_scores == {AuditType.CONTENT: 80}

    def test_filter_by_priority(self):
        summary = summarize(self.results(), priority=Priority.HIGH)
        assert [p.page_url for p in summary.pages] == [A]

    def test_failed_results_counted_not_scored(self):
        results = [make_result(A, score=60), make_result(B, score=0, error="boom")]
        summary = summarize(results)
        assert summary.failed_results == 1
        assert summary.overall_score == 60
        assert summary.pages[1].score is None
        assert summary.pages[1].bucket is None

    def test_to_dict_is_serializable_shape(self):
        data = summarize(self.results()).to_dict()
        assert data["type_scores"] == {"seo": 65, "content": 80}
        assert data["buckets"] == {"poor": 1, "needs-work": 0, "good": 1}
