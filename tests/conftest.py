"""Shared fixtures: a synthetic submission PDF and page bitmaps."""

from __future__ import annotations

import fitz
import numpy as np
import pytest
from PIL import Image

SUBMISSION_LINES = [
    "PSG Institute of Technology and Applied Research",
    "22CS_Machine Learning Lab_2025",
    "ML_Week 3_Linear Regression",
    "Name: Asha Kumar",
    "Roll no: 715523104012",
    "Department: Computer Science",
    "Batch: 2023-2027",
    "1.",
    "Problem Statement",
    "Write a program to print the sum of two integers.",
    "Sample Test Case",
    "Input: 2 3",
    "Output: 5",
    "Status: Correct",
    "Marks: 10/10",
    "2.",
    "Problem Statement",
    "Reverse the given string.",
    "Status: Wrong",
    "Marks: 0/10",
]


def build_pdf(lines: list[str], line_height: float = 18.0) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    for i, line in enumerate(lines):
        page.insert_text((72, 60 + i * line_height), line, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def inked_bitmap(height: int, width: int = 200, white_rows=()) -> np.ndarray:
    """White page with a black first column on every row except ``white_rows``."""
    arr = np.full((height, width, 3), 255, dtype=np.uint8)
    arr[:, 0] = 0
    for y in white_rows:
        arr[y, 0] = 255
    return arr


@pytest.fixture
def submission_pdf_bytes() -> bytes:
    return build_pdf(SUBMISSION_LINES)


@pytest.fixture
def submission_pdf(tmp_path, submission_pdf_bytes):
    path = tmp_path / "submission.pdf"
    path.write_bytes(submission_pdf_bytes)
    return path


@pytest.fixture
def document_png(tmp_path):
    path = tmp_path / "document.png"
    Image.fromarray(inked_bitmap(1000)).save(path)
    return path
