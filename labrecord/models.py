"""
Data Models
===========
Pydantic models for extracted lab records and pagination plans.
All models are serializable to JSON for the form application.
"""

from __future__ import annotations

import math
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .config import DEFAULT_MAX_MARKS

REGISTER_NUMBER_PATTERN = re.compile(r"^\d{12}$")


def to_float(value) -> float:
    """Lenient numeric parse; blanks, junk, nan and inf count as zero."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


# ─── Extraction Input ─────────────────────────────────────────────────────────


class TextFragment(BaseModel):
    """
    A positioned run of text as emitted by the text-extraction collaborator.
    Not necessarily a whole word or line.
    """
    text: str
    baseline_y: float = Field(
        description="Vertical baseline position in document text space"
    )
    page_index: int = Field(ge=0)


# ─── Extracted Record ─────────────────────────────────────────────────────────


class StudentInfo(BaseModel):
    """Student identity fields looked up by label."""
    name: str = ""
    register_number: str = Field(
        default="",
        description="Empty, or exactly 12 ASCII digits",
    )
    email: str = ""
    phone: str = ""
    branch: str = ""
    department: str = ""
    batch: str = ""
    degree: str = ""


class LabInfo(BaseModel):
    """Experiment metadata printed in the submission header."""
    institution: str = ""
    lab_name: str = ""
    week_number: str = ""
    experiment_title: str = ""
    total_marks: str = ""
    date: str = ""


class QuestionRecord(BaseModel):
    """One detected question block. Immutable once extracted."""
    model_config = ConfigDict(frozen=True)

    problem_statement: str
    sample_test_case: str = ""
    status: str = ""
    max_marks: int = DEFAULT_MAX_MARKS
    marks_obtained: str = ""


class ExtractedRecord(BaseModel):
    """Output of the extraction pipeline."""
    student_info: StudentInfo = Field(default_factory=StudentInfo)
    lab_info: LabInfo = Field(default_factory=LabInfo)
    questions: list[QuestionRecord] = Field(default_factory=list)


# ─── Edited Record ────────────────────────────────────────────────────────────


class RubricItem(BaseModel):
    """A row of the marks rubric printed beside the result."""
    criteria: str
    max_marks: int
    obtained: str = ""


def default_rubric() -> list[RubricItem]:
    return [
        RubricItem(criteria="Implementation", max_marks=40),
        RubricItem(criteria="Output", max_marks=20),
        RubricItem(criteria="Viva & MCQ", max_marks=30),
        RubricItem(criteria="Observation & Record", max_marks=10),
    ]


class LabRecord(ExtractedRecord):
    """
    An extracted record after the user has reviewed it.

    Extracted question text is never modified here; the user only chooses
    which questions to include and fills in the rubric and write-up.
    """
    rubric: list[RubricItem] = Field(default_factory=default_rubric)
    aim: str = ""
    result: str = ""
    include_test_cases: bool = False
    selected_questions: list[int] = Field(default_factory=list)
    manual_register_number: str = ""

    @classmethod
    def from_extracted(cls, extracted: ExtractedRecord) -> LabRecord:
        """Start an edit session: every question selected, test cases shown if any exist."""
        return cls(
            student_info=extracted.student_info,
            lab_info=extracted.lab_info,
            questions=list(extracted.questions),
            selected_questions=list(range(len(extracted.questions))),
            include_test_cases=any(
                q.sample_test_case.strip() for q in extracted.questions
            ),
            manual_register_number=extracted.student_info.register_number,
        )

    @computed_field
    @property
    def effective_register_number(self) -> str:
        manual = re.sub(r"\s", "", self.manual_register_number)
        return manual or self.student_info.register_number

    @computed_field
    @property
    def register_number_valid(self) -> bool:
        return bool(REGISTER_NUMBER_PATTERN.match(self.effective_register_number))

    @computed_field
    @property
    def total_obtained(self) -> float:
        return sum(to_float(q.marks_obtained) for q in self.questions)

    @computed_field
    @property
    def total_max(self) -> float:
        return sum(to_float(q.max_marks) for q in self.questions)

    @computed_field
    @property
    def rubric_obtained(self) -> float:
        return sum(to_float(r.obtained) for r in self.rubric)

    @computed_field
    @property
    def rubric_max(self) -> float:
        return sum(to_float(r.max_marks) for r in self.rubric)

    def selected(self) -> list[QuestionRecord]:
        """Selected questions in source order."""
        chosen = set(self.selected_questions)
        return [q for i, q in enumerate(self.questions) if i in chosen]

    def suggested_filename(self) -> str:
        name = re.sub(r"\s+", "_", self.student_info.name) if self.student_info.name else "student"
        week = re.sub(r"\s+", "_", self.lab_info.week_number) if self.lab_info.week_number else "lab"
        return f"LabRecord_{name}_{week}.pdf"


# ─── Pagination ───────────────────────────────────────────────────────────────


class ProtectedZone(BaseModel):
    """A vertical pixel interval that page breaks should not split."""
    top: float
    bottom: float

    @computed_field
    @property
    def height(self) -> float:
        return self.bottom - self.top


class PageSlice(BaseModel):
    """One planned page: a source pixel range and its printed height."""
    source_top: int = Field(ge=0)
    source_bottom: int = Field(ge=0)
    rendered_height_mm: float

    @computed_field
    @property
    def height_px(self) -> int:
        return self.source_bottom - self.source_top


# ─── Validation ───────────────────────────────────────────────────────────────


class ValidationReport(BaseModel):
    """Post-extraction report on a lab record."""
    total_questions: int = 0
    questions_missing_marks: list[int] = Field(default_factory=list)
    questions_over_max: list[int] = Field(default_factory=list)
    register_number: str = ""
    register_number_valid: bool = False
    missing_student_fields: list[str] = Field(default_factory=list)
    total_obtained: float = 0.0
    total_max: float = 0.0
    rubric_obtained: float = 0.0
    rubric_max: float = 0.0
    rubric_over_max: list[str] = Field(default_factory=list)
    source: Optional[str] = None

    @computed_field
    @property
    def needs_manual_entry(self) -> bool:
        return not self.register_number_valid

    @computed_field
    @property
    def percentage(self) -> float:
        if self.total_max == 0:
            return 0.0
        return round(self.total_obtained / self.total_max * 100, 2)
