"""Tests for the charting analytics.

Response latencies for user-001/user-002 in the sample graph (seconds):

    all pairs      1800, 82800, 7200, 73800 (conv-1), 3600, 4200 (conv-2)
    nearest reply  1800, 7200, 73800 (conv-1), 3600 (conv-2)

conv-3's only reply arrives after 48 hours and is never counted.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from commgraph_analytics import analysis
from commgraph_analytics.analysis import ResponsePairing
from commgraph_analytics.db import GraphDB
from commgraph_analytics.filters import DateRangeFilter
from commgraph_analytics.models import ResponseTimeAnalysis
from commgraph_analytics.pairs import normalize_pair

PAIR = normalize_pair("user-001", "user-002")
JUNE_11_TO_12 = DateRangeFilter(
    datetime(2024, 6, 11, tzinfo=timezone.utc),
    datetime(2024, 6, 12, 23, 59, 59, 999999, tzinfo=timezone.utc),
)


def _buckets(result) -> dict[str, int]:
    return {bucket.range: bucket.count for bucket in result.distribution}


# ---------------------------------------------------------------------------
# Message frequency
# ---------------------------------------------------------------------------


class TestMessageFrequency:
    """Tests for analysis.message_frequency."""

    def test_daily(self, sample_db: GraphDB) -> None:
        points = analysis.message_frequency(sample_db, PAIR, granularity="daily")
        assert [(p.period, p.total_messages, p.user1_messages, p.user2_messages) for p in points] == [
            ("2024-06-10T00:00:00Z", 3, 2, 1),
            ("2024-06-11T00:00:00Z", 1, 0, 1),
            ("2024-06-12T00:00:00Z", 3, 2, 1),
            ("2024-07-01T00:00:00Z", 1, 1, 0),
            ("2024-07-03T00:00:00Z", 1, 0, 1),
        ]

    def test_weekly_buckets_start_monday(self, sample_db: GraphDB) -> None:
        points = analysis.message_frequency(sample_db, PAIR, granularity="weekly")
        assert [(p.period, p.total_messages) for p in points] == [
            ("2024-06-10T00:00:00Z", 7),
            ("2024-07-01T00:00:00Z", 2),
        ]

    def test_monthly(self, sample_db: GraphDB) -> None:
        points = analysis.message_frequency(sample_db, PAIR, granularity="monthly")
        assert [(p.period, p.user1_messages, p.user2_messages) for p in points] == [
            ("2024-06-01T00:00:00Z", 4, 3),
            ("2024-07-01T00:00:00Z", 1, 1),
        ]

    def test_date_window(self, sample_db: GraphDB) -> None:
        points = analysis.message_frequency(sample_db, PAIR, JUNE_11_TO_12)
        assert [p.period for p in points] == ["2024-06-11T00:00:00Z", "2024-06-12T00:00:00Z"]

    def test_empty_window(self, sample_db: GraphDB) -> None:
        flt = DateRangeFilter(datetime(2030, 1, 1, tzinfo=timezone.utc), None)
        assert analysis.message_frequency(sample_db, PAIR, flt) == []

    def test_totals_match_user_split(self, sample_db: GraphDB) -> None:
        for point in analysis.message_frequency(sample_db, PAIR):
            assert point.total_messages == point.user1_messages + point.user2_messages


# ---------------------------------------------------------------------------
# Response times
# ---------------------------------------------------------------------------


class TestResponseLatencies:
    """Tests for analysis.response_latencies and response_time_analysis."""

    def test_all_pairs(self, sample_db: GraphDB) -> None:
        latencies = analysis.response_latencies(sample_db, PAIR)
        assert sorted(latencies) == pytest.approx([1800, 3600, 4200, 7200, 73800, 82800])

    def test_nearest_reply(self, sample_db: GraphDB) -> None:
        latencies = analysis.response_latencies(
            sample_db, PAIR, pairing=ResponsePairing.NEAREST_REPLY
        )
        assert sorted(latencies) == pytest.approx([1800, 3600, 7200, 73800])

    def test_all_pairs_summary(self, sample_db: GraphDB) -> None:
        result = analysis.response_time_analysis(sample_db, PAIR)
        assert result.total_responses == 6
        assert result.avg_response_time == pytest.approx(28900)
        assert result.median_response_time == pytest.approx(5700)
        # Exactly one hour lands in the 1-6h bucket.
        assert _buckets(result) == {"<1h": 1, "1-6h": 3, "6-24h": 2}

    def test_nearest_reply_summary(self, sample_db: GraphDB) -> None:
        result = analysis.response_time_analysis(
            sample_db, PAIR, pairing=ResponsePairing.NEAREST_REPLY
        )
        assert result.total_responses == 4
        assert result.avg_response_time == pytest.approx(21600)
        assert result.median_response_time == pytest.approx(5400)
        assert _buckets(result) == {"<1h": 1, "1-6h": 2, "6-24h": 1}

    def test_window_applies_to_earlier_message(self, sample_db: GraphDB) -> None:
        latencies = analysis.response_latencies(sample_db, PAIR, JUNE_11_TO_12)
        assert sorted(latencies) == pytest.approx([3600, 4200])

    def test_no_responses(self, sample_db: GraphDB) -> None:
        result = analysis.response_time_analysis(sample_db, normalize_pair("user-001", "user-004"))
        assert result.total_responses == 0
        assert result.avg_response_time == 0
        assert result.median_response_time == 0
        assert _buckets(result) == {"<1h": 0, "1-6h": 0, "6-24h": 0}


class TestSummarizeLatencies:
    """Tests for analysis.summarize_latencies."""

    def test_bucket_boundaries(self) -> None:
        result = analysis.summarize_latencies([3599.999, 3600, 21599, 21600, 86399])
        assert _buckets(result) == {"<1h": 1, "1-6h": 2, "6-24h": 2}

    def test_even_count_median(self) -> None:
        assert analysis.summarize_latencies([10, 20, 30, 40]).median_response_time == 25

    def test_latency_fields_document_seconds(self) -> None:
        properties = ResponseTimeAnalysis.model_json_schema(by_alias=True)["properties"]
        assert "seconds" in properties["avgResponseTime"]["description"]
        assert "seconds" in properties["medianResponseTime"]["description"]


# ---------------------------------------------------------------------------
# Heatmap, talk/listen, conversation types
# ---------------------------------------------------------------------------


class TestActivityHeatmap:
    """Tests for analysis.activity_heatmap."""

    def test_sparse_iso_weekday_cells(self, sample_db: GraphDB) -> None:
        cells = analysis.activity_heatmap(sample_db, PAIR)
        assert [(c.day_of_week, c.hour, c.message_count) for c in cells] == [
            (1, 9, 2),
            (1, 10, 1),
            (1, 11, 1),
            (2, 8, 1),
            (3, 10, 1),
            (3, 14, 1),
            (3, 15, 2),
        ]

    def test_counts_sum_to_message_total(self, sample_db: GraphDB) -> None:
        assert sum(c.message_count for c in analysis.activity_heatmap(sample_db, PAIR)) == 9

    def test_saturday_is_six(self, sample_db: GraphDB) -> None:
        cells = analysis.activity_heatmap(sample_db, normalize_pair("user-003", "user-004"))
        assert [(c.day_of_week, c.hour, c.message_count) for c in cells] == [(6, 12, 2)]


class TestTalkToListen:
    """Tests for analysis.talk_to_listen and talk_listen_ratio."""

    def test_ratio(self, sample_db: GraphDB) -> None:
        ratio = analysis.talk_to_listen(sample_db, PAIR)
        assert (ratio.user1_messages, ratio.user2_messages) == (5, 4)
        assert ratio.user1_percentage == pytest.approx(55.5556, rel=1e-4)
        assert ratio.user1_percentage + ratio.user2_percentage == 100

    def test_no_messages_is_even(self, sample_db: GraphDB) -> None:
        ratio = analysis.talk_to_listen(sample_db, normalize_pair("user-001", "user-004"))
        assert (ratio.user1_percentage, ratio.user2_percentage) == (50.0, 50.0)

    def test_pure_function(self) -> None:
        ratio = analysis.talk_listen_ratio(1, 3)
        assert (ratio.user1_percentage, ratio.user2_percentage) == (25.0, 75.0)

    def test_percentages_sum_to_exactly_100(self) -> None:
        for user1 in range(0, 40):
            for user2 in range(0, 40):
                if user1 + user2 == 0:
                    continue
                ratio = analysis.talk_listen_ratio(user1, user2)
                assert ratio.user1_percentage + ratio.user2_percentage == 100, (user1, user2)

    def test_one_to_two(self) -> None:
        ratio = analysis.talk_listen_ratio(1, 2)
        assert ratio.user1_percentage == pytest.approx(100 / 3)
        assert ratio.user1_percentage + ratio.user2_percentage == 100


class TestConversationTypes:
    """Tests for analysis.conversation_types."""

    def test_channel_counts_as_group(self, sample_db: GraphDB) -> None:
        shares = analysis.conversation_types(sample_db, PAIR)
        assert [(s.type, s.count) for s in shares] == [("group", 2), ("direct", 1)]
        assert shares[0].percentage == pytest.approx(200 / 3)
        assert sum(s.percentage for s in shares) == 100

    def test_no_shared_conversations(self, sample_db: GraphDB) -> None:
        assert analysis.conversation_types(sample_db, normalize_pair("user-001", "user-004")) == []


# ---------------------------------------------------------------------------
# Message distribution
# ---------------------------------------------------------------------------


class TestMessageDistribution:
    """Tests for analysis.message_distribution."""

    def test_label(self) -> None:
        dist = analysis.message_distribution(16, 25)
        assert (dist.user1_percentage, dist.user2_percentage) == (39, 61)
        assert dist.label == "39% / 61%"
        assert not dist.empty

    def test_no_messages(self) -> None:
        dist = analysis.message_distribution(0, 0)
        assert dist.empty
        assert dist.label == "No messages"
        assert dist.user1_percentage is None

    @pytest.mark.parametrize(("u1", "u2", "expected"), [(0, 12, (0, 100)), (12, 0, (100, 0))])
    def test_extremes(self, u1: int, u2: int, expected: tuple[int, int]) -> None:
        dist = analysis.message_distribution(u1, u2)
        assert (dist.user1_percentage, dist.user2_percentage) == expected

    def test_half_up_drift_absorbed_by_larger_share(self) -> None:
        # 12.5 and 87.5 both round up to 101 in total.
        dist = analysis.message_distribution(1, 7)
        assert (dist.user1_percentage, dist.user2_percentage) == (13, 87)

    def test_always_sums_to_100(self) -> None:
        for u1 in range(0, 40):
            for u2 in range(0, 40):
                dist = analysis.message_distribution(u1, u2)
                if u1 + u2:
                    assert dist.user1_percentage + dist.user2_percentage == 100


# ---------------------------------------------------------------------------
# Aggregated analytics
# ---------------------------------------------------------------------------


class TestAggregatedCommunicationData:
    """Tests for analysis.get_aggregated_communication_data."""

    def test_assembles_all_sections(self, sample_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(sample_db, "user-001", "user-002")
        assert len(data.frequency) == 5
        assert data.response_time.total_responses == 6
        assert len(data.activity_heatmap) == 7
        assert data.talk_to_listen_ratio.user1_messages == 5
        assert [s.type for s in data.conversation_types] == ["group", "direct"]

    def test_reverse_order_swaps_per_user_fields(self, sample_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(sample_db, "user-002", "user-001")
        assert data.talk_to_listen_ratio.user1_messages == 4
        assert data.talk_to_listen_ratio.user2_messages == 5
        ratio = data.talk_to_listen_ratio
        assert ratio.user1_percentage + ratio.user2_percentage == 100
        first = data.frequency[0]
        assert (first.user1_messages, first.user2_messages) == (1, 2)
        assert data.response_time.total_responses == 6

    def test_date_window(self, sample_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(
            sample_db,
            "user-001",
            "user-002",
            date_from=JUNE_11_TO_12.date_from,
            date_to=JUNE_11_TO_12.date_to,
            granularity="weekly",
        )
        assert [(p.period, p.total_messages) for p in data.frequency] == [
            ("2024-06-10T00:00:00Z", 4)
        ]
        assert data.response_time.total_responses == 2
        # Conversation types ignore the window.
        assert sum(s.count for s in data.conversation_types) == 3

    def test_nearest_reply(self, sample_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(
            sample_db, "user-001", "user-002", pairing=ResponsePairing.NEAREST_REPLY
        )
        assert data.response_time.total_responses == 4

    def test_cancelled_yields_defaults(self, sample_db: GraphDB) -> None:
        cancel = threading.Event()
        cancel.set()
        data = analysis.get_aggregated_communication_data(
            sample_db, "user-001", "user-002", cancel=cancel
        )
        assert data.frequency == []
        assert data.activity_heatmap == []
        assert data.conversation_types == []
        assert data.response_time.total_responses == 0
        assert len(data.response_time.distribution) == 3
        assert data.talk_to_listen_ratio.user1_percentage == 50.0

    def test_generous_timeout_completes(self, sample_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(
            sample_db, "user-001", "user-002", timeout=30.0
        )
        assert data.response_time.total_responses == 6

    def test_unknown_users_are_empty(self, empty_db: GraphDB) -> None:
        data = analysis.get_aggregated_communication_data(empty_db, "user-001", "user-002")
        assert data.frequency == []
        assert data.response_time.total_responses == 0
        assert data.talk_to_listen_ratio.user1_percentage == 50.0
