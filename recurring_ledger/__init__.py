"""
Recurring Ledger - Source Package

The recurring-transaction scheduler of a personal-finance ledger.
Templates repeat on a fixed interval; a daily sweep turns due templates
into realized ledger entries and moves each template to its next date.

DESIGN PRINCIPLES:
1. Calendar math is pure and deterministic
2. One template's failure never aborts a sweep
3. Every write to a template is a compare-and-set
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Recurring Ledger Team"
