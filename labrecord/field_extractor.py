"""
Field Extractor
===============
Label-driven key/value lookup over assembled lines.

Resolves the student identity block (name, register number, contact and
programme details) and the lab metadata printed in the submission header.
Lookups are best effort: a label that never appears resolves to "".
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .config import ExtractionConfig
from .models import LabInfo, StudentInfo

logger = logging.getLogger(__name__)

# Label synonyms per student field, tried in order; first non-empty wins.
STUDENT_FIELD_LABELS: dict[str, tuple[str, ...]] = {
    "name": ("Name:", "Name"),
    "register_number": (
        "Roll no:",
        "Roll no",
        "Roll Number",
        "Register Number",
        "Reg No",
    ),
    "email": ("Email:", "Email"),
    "phone": ("Phone:", "Phone"),
    "branch": ("Branch:", "Branch"),
    "department": ("Department:", "Department"),
    "batch": ("Batch:", "Batch"),
    "degree": ("Degree:", "Degree"),
}

# Substrings that mean the "register number" lookup caught a neighbouring field
REGISTER_NUMBER_REJECT_MARKERS = (
    "phone",
    "email",
    "@",
    "name",
    "branch",
    "department",
)
REGISTER_NUMBER_MAX_RAW_LENGTH = 20
REGISTER_NUMBER_DIGITS = 12

WEEK_PATTERN = re.compile(r"week\s*(\d+)", re.IGNORECASE)
TOTAL_MARK_PATTERN = re.compile(r"total\s*mark\s*:", re.IGNORECASE)
TOTAL_MARK_VALUE_PATTERN = re.compile(r":\s*(\d+)")
LAB_PATTERN = re.compile(r"lab", re.IGNORECASE)


def normalize_register_number(raw: str) -> str:
    """
    Reduce a raw register-number lookup to exactly 12 digits, or "".

    Values that look like another field leaked in, or that are too long,
    are discarded so the user is asked to enter the number by hand.
    """
    if not raw:
        return ""

    lowered = raw.lower()
    if any(marker in lowered for marker in REGISTER_NUMBER_REJECT_MARKERS):
        return ""
    if len(raw) > REGISTER_NUMBER_MAX_RAW_LENGTH:
        return ""

    digits = re.sub(r"\D", "", raw)
    if len(digits) != REGISTER_NUMBER_DIGITS:
        return ""
    return digits


class FieldExtractor:
    """
    Looks up labelled values in a list of assembled lines.

    A value is either printed after its label on the same line
    ("Name: Asha") or on the line below an otherwise bare caption.
    """

    def __init__(self, lines: list[str]):
        self.lines = lines

    def lookup(self, label: str) -> str:
        """Value for ``label``, or "" when no line starts with it."""
        needle = label.lower()
        idx = self._find(lambda line: line.lower().startswith(needle))
        if idx is None:
            return ""

        same = re.sub(
            r"^" + re.escape(label) + r"\s*:?\s*",
            "",
            self.lines[idx],
            count=1,
            flags=re.IGNORECASE,
        ).strip()
        if same:
            return same
        if idx + 1 < len(self.lines):
            return self.lines[idx + 1]
        return ""

    def lookup_any(self, labels: tuple[str, ...]) -> str:
        for label in labels:
            value = self.lookup(label)
            if value:
                return value
        return ""

    def student_info(self) -> StudentInfo:
        values = {
            field_name: self.lookup_any(labels)
            for field_name, labels in STUDENT_FIELD_LABELS.items()
        }
        raw_register = values["register_number"]
        values["register_number"] = normalize_register_number(raw_register)

        if raw_register and not values["register_number"]:
            logger.info(
                f"Discarded register number candidate {raw_register!r}; "
                f"manual entry required"
            )

        return StudentInfo(**values)

    def _find(self, predicate) -> Optional[int]:
        for idx, line in enumerate(self.lines):
            if predicate(line):
                return idx
        return None


def extract_lab_info(
    lines: list[str],
    config: Optional[ExtractionConfig] = None,
) -> LabInfo:
    """
    Pull experiment metadata out of the header lines.

    Lab and week lines are typically underscore-joined course titles such
    as ``22CS_Machine Learning Lab_Week 3_Regression``.
    """
    config = config or ExtractionConfig()
    info = LabInfo()

    institution_res = [
        re.compile(p, re.IGNORECASE) for p in config.institution_patterns
    ]
    info.institution = next(
        (l for l in lines if any(r.search(l) for r in institution_res)),
        config.default_institution,
    )

    lab_line = next(
        (l for l in lines if LAB_PATTERN.search(l) and len(l) > 20 and "_" in l),
        None,
    )
    if lab_line:
        parts = lab_line.split("_")
        info.lab_name = next(
            (p for p in parts if LAB_PATTERN.search(p)), parts[-1]
        ).strip()

    week_line = next((l for l in lines if WEEK_PATTERN.search(l)), None)
    if week_line:
        info.week_number = f"Week {WEEK_PATTERN.search(week_line).group(1)}"
        parts = week_line.split("_")
        wi = next(
            (i for i, p in enumerate(parts) if re.search("week", p, re.IGNORECASE)),
            None,
        )
        if wi is not None and wi + 1 < len(parts) and parts[wi + 1]:
            info.experiment_title = parts[wi + 1].strip()

    total_line = next((l for l in lines if TOTAL_MARK_PATTERN.search(l)), None)
    if total_line:
        m = TOTAL_MARK_VALUE_PATTERN.search(total_line)
        if m:
            info.total_marks = m.group(1)

    return info
