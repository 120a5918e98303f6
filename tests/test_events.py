"""Tests for the ingestion boundary: parsing and quality scoring."""

from datetime import UTC, datetime

import pytest

from stratyx.core.constants import EventType
from stratyx.core.events import (
    KillPayload,
    ObjectivePayload,
    RoundPayload,
    parse_event,
    parse_timestamp,
    score_quality,
)

TS = "2024-05-01T12:00:00Z"


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    def test_iso_with_z_suffix(self):
        ts = parse_timestamp(TS)
        assert ts == datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

    def test_naive_datetime_assumed_utc(self):
        ts = parse_timestamp(datetime(2024, 5, 1, 12, 0, 0))
        assert ts.tzinfo is not None
        assert ts.hour == 12

    def test_epoch_milliseconds(self):
        ts = parse_timestamp(1714564800000)
        assert ts == datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

    @pytest.mark.parametrize("value", ["not-a-date", "", None, True])
    def test_unparseable_returns_none(self, value):
        assert parse_timestamp(value) is None

    @pytest.mark.parametrize("value", [1e20, -1e20, float("nan"), float("inf"), 10**400])
    def test_out_of_range_epoch_returns_none(self, value):
        assert parse_timestamp(value) is None

    def test_offset_past_max_year_returns_none(self):
        assert parse_timestamp("9999-12-31T23:59:59-05:00") is None


class TestScoreQuality:
    """Tests for completeness scoring."""

    def test_complete_kill_scores_one(self):
        data = {"attacker": "A", "victim": "B", "weapon": "ak47"}
        assert score_quality("kill", TS, data) == 1.0

    def test_missing_timestamp_costs_core_and_parse_penalty(self):
        data = {"attacker": "A", "victim": "B", "weapon": "ak47"}
        assert score_quality("kill", None, data) == pytest.approx(0.2)

    def test_invalid_timestamp(self):
        assert score_quality("round_start", "yesterday", {}) == pytest.approx(0.7)

    def test_missing_required_fields_scaled(self):
        data = {"attacker": "A", "victim": "B"}
        assert score_quality("kill", TS, data) == pytest.approx(1 - 0.2 / 3)

    def test_non_mapping_data(self):
        assert score_quality("kill", TS, None) == pytest.approx(0.8)

    def test_never_negative(self):
        assert score_quality(None, None, None) == pytest.approx(0.0)


class TestParseEvent:
    """Tests for building DomainEvents from raw payloads."""

    def test_kill_payload(self):
        event = parse_event(
            {
                "type": "kill",
                "timestamp": TS,
                "data": {"attacker": "A", "victim": "B", "weapon": "awp", "isHeadshot": True},
                "roundNumber": "4",
            }
        )
        assert event.type == EventType.KILL
        assert event.quality == 1.0
        assert event.round_number == 4
        assert isinstance(event.payload, KillPayload)
        assert event.payload.is_headshot is True
        assert event.actor_id == "B"

    def test_actor_prefers_player_id(self):
        event = parse_event({"type": "utility", "timestamp": TS, "data": {"type": "smoke", "playerId": "P1"}})
        assert event.actor_id == "P1"

    def test_actor_unknown(self):
        event = parse_event({"type": "objective", "timestamp": TS, "data": {"location": "A", "action": "lost"}})
        assert event.actor_id == "unknown"
        assert isinstance(event.payload, ObjectivePayload)

    def test_unknown_type_kept_as_unknown(self):
        event = parse_event({"type": "chat", "timestamp": TS, "data": {}})
        assert event.type == EventType.UNKNOWN
        assert event.to_dict()["type"] == "chat"

    def test_round_payload(self):
        event = parse_event({"type": "round_start", "timestamp": TS, "data": {"roundNumber": 7}})
        assert event.payload == RoundPayload(round_number=7)

    def test_data_is_read_only(self):
        event = parse_event({"type": "kill", "timestamp": TS, "data": {"victim": "B"}})
        with pytest.raises(TypeError):
            event.data["victim"] = "C"

    def test_age(self):
        event = parse_event({"type": "round_start", "timestamp": TS, "data": {}})
        now = datetime(2024, 5, 1, 12, 0, 3, tzinfo=UTC)
        assert event.age_ms(now) == pytest.approx(3000)

    def test_payload_built_once(self):
        event = parse_event({"type": "kill", "timestamp": TS, "data": {"victim": "B"}})
        assert event.payload is event.payload
        assert event.payload == KillPayload(attacker=None, victim="B", weapon=None)

    def test_out_of_range_fields_do_not_raise(self):
        event = parse_event(
            {"type": "economy", "timestamp": 1e20, "data": {"amount": 10**400}, "roundNumber": float("inf")}
        )
        assert event.timestamp is None
        assert event.round_number is None
        assert event.payload.amount is None
        assert event.quality < 1.0

    def test_parse_is_idempotent_on_domain_events(self):
        event = parse_event({"type": "kill", "timestamp": TS, "data": {}})
        assert parse_event(event) is event
