"""测试时间与命名工具."""

from datetime import datetime
from zoneinfo import ZoneInfo

from drivesync.utils.timeutil import (
    generate_run_id,
    parse_rfc3339,
    to_rfc3339,
    versioned_file_name,
)


class TestRfc3339:
    """测试 Drive 时间戳转换."""

    def test_parse_zulu(self) -> None:
        assert parse_rfc3339("2026-02-14T06:58:12.345Z") == datetime(2026, 2, 14, 6, 58, 12, 345000)

    def test_parse_offset_converted_to_utc(self) -> None:
        assert parse_rfc3339("2026-02-14T13:58:00+07:00") == datetime(2026, 2, 14, 6, 58)

    def test_parse_empty(self) -> None:
        assert parse_rfc3339(None) is None
        assert parse_rfc3339("") is None

    def test_format(self) -> None:
        assert to_rfc3339(datetime(2026, 2, 14, 6, 58, 12, 999)) == "2026-02-14T06:58:12Z"


class TestRunId:
    def test_format_in_local_timezone(self) -> None:
        now = datetime(2026, 2, 14, 13, 58, 7, tzinfo=ZoneInfo("Asia/Ho_Chi_Minh"))
        assert generate_run_id(now=now) == "260214-135807"


class TestVersionedFileName:
    """测试冲突重命名."""

    def test_with_extension(self) -> None:
        when = datetime(2026, 2, 14, 13, 58)
        assert versioned_file_name("report.pdf", when) == "report_v260214_1358.pdf"

    def test_without_extension(self) -> None:
        when = datetime(2026, 2, 14, 13, 58)
        assert versioned_file_name("README", when) == "README_v260214_1358"

    def test_multiple_dots_keep_last_extension(self) -> None:
        when = datetime(2026, 2, 14, 13, 58)
        assert versioned_file_name("a.b.xlsx", when) == "a.b_v260214_1358.xlsx"
