"""Tests for diff slicing and line-to-position mapping."""

from __future__ import annotations

import pytest

from autoreview.models.review import FileReport, Finding, FindingKind
from autoreview.services.diff import (
    anchor_findings,
    extract_file_diff,
    map_line_to_position,
    parse_hunks,
    split_diff,
)
from tests.conftest import A_TS_DIFF, B_TS_DIFF, C_TS_DIFF, FULL_DIFF


class TestSplitDiff:
    def test_splits_every_file_in_listing_order(self):
        sections = split_diff(FULL_DIFF)

        assert list(sections) == ["a.ts", "b.ts", "c.ts", "CHANGELOG.md"]
        assert sections["a.ts"] == A_TS_DIFF
        assert sections["b.ts"] == B_TS_DIFF
        assert sections["c.ts"] == C_TS_DIFF

    def test_missing_file_has_no_fragment(self):
        assert extract_file_diff(FULL_DIFF, "missing.ts") is None
        assert extract_file_diff("", "a.ts") is None

    def test_renamed_file_is_keyed_by_new_path(self):
        diff = (
            "diff --git a/old name.py b/new name.py\n"
            "similarity index 90%\n"
            "rename from old name.py\n"
            "rename to new name.py\n"
            "--- a/old name.py\n"
            "+++ b/new name.py\n"
            "@@ -1 +1 @@\n"
            "-x = 1\n"
            "+x = 2\n"
        )

        assert list(split_diff(diff)) == ["new name.py"]

    def test_deleted_file_is_keyed_by_old_path(self):
        diff = (
            "diff --git a/gone.py b/gone.py\n"
            "deleted file mode 100644\n"
            "--- a/gone.py\n"
            "+++ /dev/null\n"
            "@@ -1 +0,0 @@\n"
            "-x = 1\n"
        )

        assert list(split_diff(diff)) == ["gone.py"]

    def test_binary_file_uses_git_header(self):
        diff = "diff --git a/img/logo.png b/img/logo.png\nBinary files a/img/logo.png and b/img/logo.png differ\n"

        assert list(split_diff(diff)) == ["img/logo.png"]

    def test_quoted_non_ascii_path_is_decoded(self):
        diff = (
            'diff --git "a/src/caf\\303\\251.py" "b/src/caf\\303\\251.py"\n'
            "index 1111111..2222222 100644\n"
            '--- "a/src/caf\\303\\251.py"\n'
            '+++ "b/src/caf\\303\\251.py"\n'
            "@@ -1 +1 @@\n"
            "-x = 1\n"
            "+x = 2\n"
        )

        sections = split_diff(diff)

        assert list(sections) == ["src/café.py"]
        assert map_line_to_position(sections["src/café.py"], 1) == 2

    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ('diff --git "a/caf\\303\\251.png" "b/caf\\303\\251.png"\n', "café.png"),
            ('diff --git a/plain.png "b/tab\\there.png"\n', "tab\there.png"),
            ('diff --git "a/say \\"hi\\".png" b/hi.png\n', "hi.png"),
        ],
    )
    def test_quoted_git_header_without_file_lines(self, header, expected):
        diff = header + "Binary files differ\n"

        assert list(split_diff(diff)) == [expected]


class TestParseHunks:
    def test_hunk_headers_and_head_ranges(self):
        hunks = parse_hunks(A_TS_DIFF)

        assert [(h.old_start, h.old_count, h.new_start, h.new_count) for h in hunks] == [
            (10, 5, 10, 7),
            (40, 2, 42, 3),
        ]
        assert hunks[0].header_position == 0
        assert hunks[1].header_position == 9
        assert hunks[0].new_end == 16

    def test_omitted_counts_default_to_one(self):
        hunks = parse_hunks("@@ -3 +3 @@\n-a\n+b\n")

        assert (hunks[0].old_count, hunks[0].new_count) == (1, 1)
        assert hunks[0].positions == {3: 2}


class TestMapLineToPosition:
    @pytest.mark.parametrize(
        ("line", "position"),
        [
            (10, 1),
            (11, 2),
            (12, 3),
            (13, 4),
            (14, 6),
            (16, 8),
            (42, 10),
            (43, 11),
            (44, 12),
        ],
    )
    def test_lines_inside_hunks(self, line, position):
        assert map_line_to_position(A_TS_DIFF, line) == position

    @pytest.mark.parametrize("line", [1, 9, 17, 41, 45, 500])
    def test_lines_outside_every_hunk_have_no_position(self, line):
        assert map_line_to_position(A_TS_DIFF, line) is None

    @pytest.mark.parametrize("line", [None, 0, -3, True])
    def test_invalid_lines_have_no_position(self, line):
        assert map_line_to_position(A_TS_DIFF, line) is None

    def test_no_fragment_has_no_position(self):
        assert map_line_to_position(None, 12) is None
        assert map_line_to_position("", 12) is None

    def test_new_file_positions(self):
        assert map_line_to_position(C_TS_DIFF, 1) == 1
        assert map_line_to_position(C_TS_DIFF, 2) == 2
        assert map_line_to_position(C_TS_DIFF, 3) is None

    def test_no_newline_marker_advances_position(self):
        fragment = (
            "@@ -1,2 +1,2 @@\n"
            " first\n"
            "-last\n"
            "\\ No newline at end of file\n"
            "+last\n"
        )

        assert map_line_to_position(fragment, 1) == 1
        assert map_line_to_position(fragment, 2) == 4

    def test_pure_deletion_hunk_has_no_head_lines(self):
        fragment = "@@ -5,2 +4,0 @@\n-gone\n-also gone\n"

        assert map_line_to_position(fragment, 4) is None
        assert map_line_to_position(fragment, 5) is None


def test_anchor_findings_sets_positions():
    report = FileReport(
        path="a.ts",
        score=6,
        summary="ok",
        findings=[
            Finding(kind=FindingKind.BLOCKING, message="in hunk", line=12),
            Finding(kind=FindingKind.MINOR, message="outside", line=500),
            Finding(kind=FindingKind.IMPROVEMENT, message="no line"),
        ],
    )

    anchored = anchor_findings(report, A_TS_DIFF)

    assert [finding.position for finding in anchored.findings] == [3, None, None]
    assert anchored.findings[0].line == 12
