"""Spreadsheet module.

Key modules:
- schemas.py: Sheet / Dataset models
- parser.py: workbook → Dataset, summaries and prompt context
- store.py: JSON persistence keyed by dataset id
"""
