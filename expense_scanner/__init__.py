"""
Expense Scanner - Source Package

Core of a personal expense tracker: receipt photos are sent to a
vision-language model, the free-form answer is normalized into typed
expense records, and the records are filtered and totalled locally.

DESIGN PRINCIPLES:
1. Extraction never crashes the app - it degrades field by field
2. Queries are pure functions over the stored list
3. Storage layer is swappable
4. Every significant step is audited
"""

__version__ = "1.0.0"
__author__ = "Expense Scanner Team"
