"""
Tests for RFC 7232 precondition evaluation.
"""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from transferkit.conditional import (
    EntityTag,
    etag_for_md5,
    evaluate_preconditions,
    if_match_precondition,
    if_none_match_precondition,
    strong_compare,
    weak_compare,
)
from transferkit.testing import md5_base64, md5_etag

ETAG = '"xyzzy"'
MODIFIED = datetime(2025, 3, 1, 10, 30, 0, tzinfo=timezone.utc)


def http_date(when: datetime) -> str:
    return format_datetime(when, usegmt=True)


class TestEntityTag:
    """Test entity tag parsing and comparison."""

    def test_parse_strong(self):
        tag = EntityTag.parse(' "abc" ')
        assert tag == EntityTag('"abc"', weak=False)
        assert str(tag) == '"abc"'

    def test_parse_weak(self):
        tag = EntityTag.parse('W/"abc"')
        assert tag.weak
        assert tag.opaque == '"abc"'
        assert str(tag) == 'W/"abc"'

    @pytest.mark.parametrize(
        "a, b, strong, weak",
        [
            ('W/"1"', 'W/"1"', False, True),
            ('W/"1"', 'W/"2"', False, False),
            ('W/"1"', '"1"', False, True),
            ('"1"', '"1"', True, True),
        ],
    )
    def test_comparison_table(self, a, b, strong, weak):
        assert strong_compare(a, b) is strong
        assert weak_compare(a, b) is weak

    def test_missing_tags_never_match(self):
        assert not strong_compare(None, '"1"')
        assert not weak_compare('"1"', None)

    def test_etag_for_md5(self):
        data = b"hello world"
        assert etag_for_md5(md5_base64(data)) == md5_etag(data)
        assert etag_for_md5("XrY7u+Ae7tCTyyK7j1rNww==") == '"5eb63bbbe01eeed093cb22bb8f5acdc3"'


class TestConditionHelpers:
    """Test the individual If-Match / If-None-Match checks."""

    def test_if_match_star(self):
        assert if_match_precondition("*", ETAG)

    def test_if_match_list(self):
        assert if_match_precondition('"a", "xyzzy"', ETAG)
        assert not if_match_precondition('"a", "b"', ETAG)

    def test_if_match_needs_strong_tags(self):
        assert not if_match_precondition('W/"xyzzy"', ETAG)

    def test_if_none_match_star(self):
        assert not if_none_match_precondition("*", ETAG)

    def test_if_none_match_uses_weak_comparison(self):
        assert not if_none_match_precondition('W/"xyzzy"', ETAG)
        assert if_none_match_precondition('"other"', ETAG)

    def test_if_none_match_absent_resource(self):
        assert if_none_match_precondition('"xyzzy"', None)


class TestEvaluatePreconditions:
    """Test the RFC 7232 section 6 evaluation order."""

    def test_no_conditions(self):
        result = evaluate_preconditions("GET", {}, ETAG, MODIFIED)
        assert result.status == 200
        assert result.proceed

    def test_if_match_success(self):
        result = evaluate_preconditions("PUT", {"If-Match": ETAG}, ETAG, MODIFIED)
        assert result.status == 200

    def test_if_match_failure(self):
        result = evaluate_preconditions("GET", {"If-Match": '"other"'}, ETAG, MODIFIED)
        assert result.status == 412
        assert not result.proceed

    def test_if_match_weak_tag_fails(self):
        result = evaluate_preconditions("GET", {"If-Match": 'W/"xyzzy"'}, ETAG, MODIFIED)
        assert result.status == 412

    def test_if_none_match_on_get_is_not_modified(self):
        result = evaluate_preconditions("GET", {"If-None-Match": ETAG}, ETAG, MODIFIED)
        assert result.status == 304

    def test_if_none_match_on_head_is_not_modified(self):
        result = evaluate_preconditions("HEAD", {"If-None-Match": ETAG}, ETAG, MODIFIED)
        assert result.status == 304

    def test_if_none_match_on_put_fails(self):
        result = evaluate_preconditions("PUT", {"If-None-Match": ETAG}, ETAG, MODIFIED)
        assert result.status == 412

    def test_if_none_match_star_on_put_fails(self):
        result = evaluate_preconditions("PUT", {"If-None-Match": "*"}, ETAG, MODIFIED)
        assert result.status == 412

    def test_if_none_match_different_tag_proceeds(self):
        result = evaluate_preconditions("GET", {"If-None-Match": '"other"'}, ETAG, MODIFIED)
        assert result.status == 200

    def test_headers_are_case_insensitive(self):
        result = evaluate_preconditions("get", {"if-none-match": ETAG}, ETAG, MODIFIED)
        assert result.status == 304

    def test_if_unmodified_since_holds(self):
        headers = {"If-Unmodified-Since": http_date(MODIFIED)}
        assert evaluate_preconditions("PUT", headers, ETAG, MODIFIED).status == 200

    def test_if_unmodified_since_fails(self):
        headers = {"If-Unmodified-Since": http_date(MODIFIED - timedelta(hours=1))}
        assert evaluate_preconditions("PUT", headers, ETAG, MODIFIED).status == 412

    def test_if_unmodified_since_ignored_with_if_match(self):
        headers = {
            "If-Match": ETAG,
            "If-Unmodified-Since": http_date(MODIFIED - timedelta(hours=1)),
        }
        assert evaluate_preconditions("PUT", headers, ETAG, MODIFIED).status == 200

    def test_if_modified_since_not_modified(self):
        headers = {"If-Modified-Since": http_date(MODIFIED)}
        assert evaluate_preconditions("GET", headers, ETAG, MODIFIED).status == 304

    def test_if_modified_since_modified(self):
        headers = {"If-Modified-Since": http_date(MODIFIED - timedelta(seconds=1))}
        assert evaluate_preconditions("GET", headers, ETAG, MODIFIED).status == 200

    def test_if_modified_since_ignored_with_if_none_match(self):
        headers = {
            "If-None-Match": '"other"',
            "If-Modified-Since": http_date(MODIFIED + timedelta(days=1)),
        }
        assert evaluate_preconditions("GET", headers, ETAG, MODIFIED).status == 200

    def test_if_modified_since_only_for_get(self):
        headers = {"If-Modified-Since": http_date(MODIFIED)}
        assert evaluate_preconditions("PUT", headers, ETAG, MODIFIED).status == 200

    def test_invalid_dates_are_ignored(self):
        headers = {"If-Unmodified-Since": "yesterday", "If-Modified-Since": "not a date"}
        assert evaluate_preconditions("GET", headers, ETAG, MODIFIED).status == 200

    def test_sub_second_modification_time(self):
        """Modification times are compared at HTTP-date resolution."""
        precise = MODIFIED + timedelta(milliseconds=750)
        headers = {"If-Modified-Since": http_date(MODIFIED)}
        assert evaluate_preconditions("GET", headers, ETAG, precise).status == 304

    def test_posix_timestamp(self):
        headers = {"If-Unmodified-Since": http_date(MODIFIED)}
        result = evaluate_preconditions("PUT", headers, ETAG, MODIFIED.timestamp() + 3600)
        assert result.status == 412

    def test_missing_resource_with_if_match(self):
        result = evaluate_preconditions("PUT", {"If-Match": ETAG}, None, MODIFIED)
        assert result.status == 412

    def test_missing_resource_with_if_none_match(self):
        result = evaluate_preconditions("PUT", {"If-None-Match": ETAG}, None, MODIFIED)
        assert result.status == 200
