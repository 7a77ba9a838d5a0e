"""
Record Segmenter
================
Single-pass segmentation of assembled lines into question records.

A question starts at an explicit "Question N" / "Problem N" header, or at a
numbered line ("3.") that is followed closely by the usual section markers.
Each segment is then mined for its problem statement, sample test case,
status tag and marks fraction, with CSV listings filtered out.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .config import ExtractionConfig
from .models import QuestionRecord

logger = logging.getLogger(__name__)

# ─── Anchor Patterns ──────────────────────────────────────────────────────────

# "Question 3", "Problem 12"
EXPLICIT_START_PATTERN = re.compile(r"^(?:question|problem)\s*\d+", re.IGNORECASE)

# "3." or "3. Problem Statement"
NUMBERED_LINE_PATTERN = re.compile(r"^(\d{1,2})\.(.*)$")

PROBLEM_STATEMENT_PATTERN = re.compile(r"^problem\s*statement\b", re.IGNORECASE)
SAMPLE_TEST_CASE_PATTERN = re.compile(r"^sample\s*test\s*case\b", re.IGNORECASE)
ANSWER_PATTERN = re.compile(r"^answer\b", re.IGNORECASE)

# Next-line markers that confirm a numbered line opens a question
SECTION_MARKER_PATTERNS = [
    re.compile(r"^input\s*format\b", re.IGNORECASE),
    re.compile(r"^output\s*format\b", re.IGNORECASE),
    SAMPLE_TEST_CASE_PATTERN,
    re.compile(r"^status\s*:", re.IGNORECASE),
    re.compile(r"^marks\s*:", re.IGNORECASE),
]

STATUS_LINE_PATTERN = re.compile(r"^status\s*:", re.IGNORECASE)
STATUS_PATTERN = re.compile(r"^status\s*:\s*(\w+)", re.IGNORECASE)
TRAILING_META_PATTERN = re.compile(r"^(?:status|marks)\s*:", re.IGNORECASE)

FRACTION_PATTERN = re.compile(r"\d+\s*/\s*\d+")
LABELLED_MARKS_PATTERN = re.compile(r"marks\s*:?\s*(\d+)\s*/\s*(\d+)", re.IGNORECASE)
BARE_MARKS_PATTERN = re.compile(r"(\d+)\s*/\s*(\d+)")

# ─── Noise Patterns ───────────────────────────────────────────────────────────

FILENAME_PATTERN = re.compile(r"\.(csv|py|txt|json)$", re.IGNORECASE)
CSV_HEADER_PATTERN = re.compile(r"^[a-z_]+(?:,[a-z_\s]+)+$", re.IGNORECASE)
NUMERIC_TOKEN_PATTERN = re.compile(r"^[\d.\-:]+$")

# Where the problem statement ends inside the body
STATEMENT_END_PATTERN = re.compile(r"^answer\b|^main\.py\b|^data\d*\.csv\b", re.IGNORECASE)

CSV_HEADER_MAX_TOKEN = 20
CSV_ROW_MIN_TOKENS = 4
CSV_ROW_NUMERIC_RATIO = 0.7


def is_csv_noise(line: str) -> bool:
    """
    True for lines that belong to a pasted data file rather than prose:
    bare filenames, CSV header rows and mostly-numeric CSV data rows.
    """
    trimmed = line.strip()

    if FILENAME_PATTERN.search(trimmed):
        return True

    if CSV_HEADER_PATTERN.match(trimmed):
        parts = trimmed.split(",")
        if all(
            len(p.strip()) < CSV_HEADER_MAX_TOKEN and not p.strip()[:1].isdigit()
            for p in parts
        ):
            return True

    if "," not in trimmed:
        return False

    parts = trimmed.split(",")
    if len(parts) >= CSV_ROW_MIN_TOKENS:
        numeric = sum(1 for p in parts if NUMERIC_TOKEN_PATTERN.match(p.strip()))
        if numeric / len(parts) > CSV_ROW_NUMERIC_RATIO:
            return True

    return False


def parse_marks(line: Optional[str]) -> Optional[tuple[str, int]]:
    """Parse "Marks: 7/10" or a bare "7 / 10" into (obtained, max)."""
    if not line:
        return None
    m = LABELLED_MARKS_PATTERN.search(line) or BARE_MARKS_PATTERN.search(line)
    if not m:
        return None
    return m.group(1), int(m.group(2))


def drop_trailing_meta(lines: list[str]) -> list[str]:
    """Strip trailing "Status:" / "Marks:" lines."""
    end = len(lines)
    while end > 0 and TRAILING_META_PATTERN.match(lines[end - 1]):
        end -= 1
    return lines[:end]


def _first_index(lines: list[str], pattern: re.Pattern) -> Optional[int]:
    for idx, line in enumerate(lines):
        if pattern.match(line):
            return idx
    return None


class RecordSegmenter:
    """
    Splits a cleaned line stream into QuestionRecords.

    Stateless between calls; the same instance can segment any number of
    documents.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def is_question_start(
        self,
        line: str,
        next_line: Optional[str] = None,
        lookahead: Optional[list[str]] = None,
    ) -> bool:
        if not line:
            return False

        if EXPLICIT_START_PATTERN.match(line):
            return True

        m = NUMBERED_LINE_PATTERN.match(line)
        if not m:
            return False

        rest = (m.group(2) or "").strip()
        if not rest or PROBLEM_STATEMENT_PATTERN.match(rest):
            return True

        nl = (next_line or "").strip()
        ahead = list(lookahead) if lookahead else [nl]
        if any(
            PROBLEM_STATEMENT_PATTERN.match(l.strip())
            for l in ahead[: self.config.statement_lookahead]
        ):
            return True

        return any(p.match(nl) for p in SECTION_MARKER_PATTERNS)

    def start_indices(self, lines: list[str]) -> list[int]:
        window = self.config.lookahead_window
        starts = []
        for i, line in enumerate(lines):
            next_line = lines[i + 1] if i + 1 < len(lines) else None
            if self.is_question_start(line, next_line, lines[i + 1 : i + 1 + window]):
                starts.append(i)
        return starts

    def segment(self, lines: list[str]) -> list[QuestionRecord]:
        """Segment lines into question records, preserving source order."""
        starts = self.start_indices(lines)
        questions: list[QuestionRecord] = []

        for n, start in enumerate(starts):
            end = starts[n + 1] if n + 1 < len(starts) else len(lines)
            segment = [l.strip() for l in lines[start:end] if l.strip()]
            record = self.extract_record(segment)
            if record is None:
                logger.debug(f"Dropped segment at line {start}: no problem statement")
                continue
            questions.append(record)

        logger.info(
            f"Segmented {len(lines)} lines into {len(questions)} questions "
            f"({len(starts)} candidate starts)"
        )
        return questions

    def extract_record(self, segment: list[str]) -> Optional[QuestionRecord]:
        """Build a record from one segment, or None if it has no statement."""
        ps_start = _first_index(segment, PROBLEM_STATEMENT_PATTERN)
        stc_start = _first_index(segment, SAMPLE_TEST_CASE_PATTERN)
        ans_start = _first_index(segment, ANSWER_PATTERN)

        status = ""
        status_line = next((l for l in segment if STATUS_LINE_PATTERN.match(l)), None)
        if status_line:
            m = STATUS_PATTERN.match(status_line)
            status = m.group(1) if m else ""

        marks_obtained = ""
        max_marks = self.config.default_max_marks
        marks_line = next(
            (l for l in segment if "marks" in l.lower() and FRACTION_PATTERN.search(l)),
            None,
        )
        fallback_line = next(
            (l for l in reversed(segment) if FRACTION_PATTERN.search(l)), None
        )
        parsed = parse_marks(marks_line) or parse_marks(fallback_line)
        if parsed:
            marks_obtained, max_marks = parsed

        body_start = ps_start + 1 if ps_start is not None else 1
        body_end = stc_start if stc_start is not None else len(segment)
        body = [l for l in segment[body_start:body_end] if not is_csv_noise(l)]

        statement_end = len(body)
        for idx, line in enumerate(body):
            if STATEMENT_END_PATTERN.match(line.strip()):
                statement_end = idx
                break

        problem_statement = "\n".join(drop_trailing_meta(body[:statement_end])).strip()
        if not problem_statement:
            return None

        sample_test_case = ""
        if stc_start is not None:
            stc_end = ans_start if ans_start is not None else len(segment)
            sample_test_case = "\n".join(
                drop_trailing_meta(segment[stc_start + 1 : stc_end])
            ).strip()

        return QuestionRecord(
            problem_statement=problem_statement,
            sample_test_case=sample_test_case,
            status=status,
            max_marks=max_marks,
            marks_obtained=marks_obtained,
        )
