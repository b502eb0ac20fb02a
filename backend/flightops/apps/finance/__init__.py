"""
Finance module.

Invoices, their line items and payments against them.
"""

from . import models  # noqa: F401
