"""
Tests for word counts and checksums.
"""

import hashlib

from ecfr_analytics.analysis.metrics import (
    aggregate_checksum,
    build_section,
    calculate_section_checksum,
    calculate_word_count,
    total_word_count,
)


class TestWordCount:

    def test_whitespace_tokens(self):
        assert calculate_word_count("The operator  shall\nkeep records.") == 5

    def test_empty(self):
        assert calculate_word_count("") == 0

    def test_total(self):
        sections = [build_section("1.1", "one two"), build_section("1.2", "three")]
        assert total_word_count(sections) == 3


class TestChecksums:

    def test_section_checksum_is_md5(self):
        assert calculate_section_checksum("abc") == hashlib.md5(b"abc").hexdigest()

    def test_build_section_fills_metrics(self):
        section = build_section("1.1", "Applicants must file.", "Filing")
        assert section.word_count == 3
        assert section.checksum == calculate_section_checksum("Applicants must file.")
        assert section.label == "Filing"

    def test_aggregate_orders_by_identifier(self):
        a = build_section("1.1", "first")
        b = build_section("1.2", "second")
        expected = hashlib.sha256((a.checksum + b.checksum).encode()).hexdigest()

        assert aggregate_checksum([a, b]) == expected
        assert aggregate_checksum([b, a]) == expected

    def test_aggregate_is_repeatable(self):
        sections = [build_section("1.1", "first"), build_section("1.2", "second")]
        assert aggregate_checksum(sections) == aggregate_checksum(list(sections))

    def test_any_edit_changes_aggregate(self):
        before = [build_section("1.1", "first"), build_section("1.2", "second")]
        after = [build_section("1.1", "first"), build_section("1.2", "second!")]
        assert aggregate_checksum(before) != aggregate_checksum(after)

    def test_no_sections(self):
        assert aggregate_checksum([]) == hashlib.sha256(b"").hexdigest()
