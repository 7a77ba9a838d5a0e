"""
Lab Record Engine
=================
Extraction and repagination engine for student lab-submission records.

Architecture:
    - Fragment Extractor: Pulls positioned text fragments out of a PDF
    - Line Assembler: Joins fragments into clean lines, strips stutter noise
    - Field Extractor: Label-driven student identity and lab metadata lookup
    - Record Segmenter: Splits lines into question records with marks
    - Ink Density Analyzer: Scores bitmap rows to find quiet cut points
    - Page Break Planner: Plans page slices around protected zones
    - Overlay Stamper: Border, logo and register number marks per page
    - Document Assembler: Composes stamped pages into a PDF

Version: 1.0.0
"""

__version__ = "1.0.0"
