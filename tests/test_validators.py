from datetime import date

import pytest

from gnarhub.core.exceptions import ValidationError
from gnarhub.schemas.session import SessionCreate
from gnarhub.utils.sanitize import sanitize_string
from gnarhub.utils.validators import (
    normalize_time,
    parse_model,
    reject_fields,
    validate_rate,
    validate_rating,
    validate_session_date,
    validate_terrain_tags,
    validate_time_range,
)


class TestTimes:

    @pytest.mark.parametrize("raw,expected", [("9:05", "09:05"), ("09:05", "09:05"), ("23:59", "23:59")])
    def test_normalize_time(self, raw, expected):
        assert normalize_time(raw) == expected

    @pytest.mark.parametrize("raw", ["24:00", "9:5", "noon", "", None])
    def test_invalid_time(self, raw):
        with pytest.raises(ValidationError):
            normalize_time(raw)

    def test_padding_keeps_ordering(self):
        assert validate_time_range("9:00", "10:00") == ("09:00", "10:00")

    @pytest.mark.parametrize("start,end", [("14:00", "10:00"), ("10:00", "10:00")])
    def test_end_must_follow_start(self, start, end):
        with pytest.raises(ValidationError) as exc_info:
            validate_time_range(start, end)
        assert exc_info.value.field == "end_time"


class TestValues:

    def test_session_date(self):
        today = date(2026, 1, 10)
        assert validate_session_date(date(2026, 1, 10), today=today) == date(2026, 1, 10)
        with pytest.raises(ValidationError):
            validate_session_date(date(2026, 1, 9), today=today)

    @pytest.mark.parametrize("rate", [20, 500, 72.5])
    def test_rate_in_bounds(self, rate):
        assert validate_rate(rate) == rate

    @pytest.mark.parametrize("rate", [19.99, 501, "60", None, True])
    def test_rate_rejected(self, rate):
        with pytest.raises(ValidationError):
            validate_rate(rate)

    def test_rating(self):
        assert validate_rating(5) == 5
        for bad in (0, 6, 3.5, False):
            with pytest.raises(ValidationError):
                validate_rating(bad)

    def test_terrain_tags_deduped(self):
        assert validate_terrain_tags(["park", "park", "groomers"]) == ["park", "groomers"]
        assert validate_terrain_tags([], required=False) == []
        with pytest.raises(ValidationError):
            validate_terrain_tags([])
        with pytest.raises(ValidationError):
            validate_terrain_tags(["backcountry"])


class TestHelpers:

    def test_sanitize_string(self):
        assert sanitize_string("  <script>x</script>  ") == "scriptx/script"
        assert len(sanitize_string("a" * 5000)) == 2000

    def test_parse_model_reports_field(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_model(SessionCreate, {"mountain_id": "killington"})
        assert exc_info.value.field is not None

    def test_reject_fields(self):
        reject_fields({"rate": 60}, ("status",), "is managed by the booking flow")
        with pytest.raises(ValidationError) as exc_info:
            reject_fields({"status": "booked"}, ("status",), "is managed by the booking flow")
        assert exc_info.value.field == "status"
