"""
Validation Engine
=================
Post-extraction checks on a lab record.

Reports:
    - Total Questions
    - Questions Missing Marks
    - Questions Scoring Above Their Maximum
    - Register Number Validity (manual entry needed or not)
    - Missing Student Fields
    - Question and Rubric Totals

Problems are reported, never raised.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import LabRecord, ValidationReport, to_float

logger = logging.getLogger(__name__)

REQUIRED_STUDENT_FIELDS = ("name", "register_number", "department", "batch")


class RecordValidator:
    """Validates a lab record and produces a report."""

    def validate(
        self,
        record: LabRecord,
        source: Optional[str] = None,
    ) -> ValidationReport:
        report = ValidationReport(source=source)
        report.total_questions = len(record.questions)

        if not record.questions:
            logger.warning("Record has no questions")

        for idx, q in enumerate(record.questions):
            if not q.marks_obtained.strip():
                report.questions_missing_marks.append(idx)
            elif to_float(q.marks_obtained) > q.max_marks:
                report.questions_over_max.append(idx)

        report.register_number = record.effective_register_number
        report.register_number_valid = record.register_number_valid

        student = record.student_info
        report.missing_student_fields = [
            name for name in REQUIRED_STUDENT_FIELDS
            if not (
                record.effective_register_number
                if name == "register_number"
                else getattr(student, name)
            )
        ]

        report.total_obtained = record.total_obtained
        report.total_max = record.total_max
        report.rubric_obtained = record.rubric_obtained
        report.rubric_max = record.rubric_max
        report.rubric_over_max = [
            r.criteria for r in record.rubric
            if to_float(r.obtained) > r.max_marks
        ]

        logger.info("=" * 60)
        logger.info("RECORD VALIDATION")
        logger.info("=" * 60)
        logger.info(f"Total Questions: {report.total_questions}")
        logger.info(f"Questions Missing Marks: {len(report.questions_missing_marks)}")
        logger.info(f"Questions Over Max: {len(report.questions_over_max)}")
        logger.info(
            f"Register Number: {report.register_number or '(none)'} "
            f"({'valid' if report.register_number_valid else 'manual entry required'})"
        )
        if report.missing_student_fields:
            logger.info(
                f"Missing Student Fields: {', '.join(report.missing_student_fields)}"
            )
        logger.info(
            f"Marks: {report.total_obtained:g}/{report.total_max:g} | "
            f"Rubric: {report.rubric_obtained:g}/{report.rubric_max:g}"
        )
        logger.info("=" * 60)

        return report
