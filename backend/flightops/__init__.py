# backend/flightops/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in flightops/apps/*/models.py.
"""

from .apps.fleet import models as fleet_models                # aircraft
from .apps.scheduling import models as scheduling_models      # instructors, roster rules, bookings
from .apps.finance import models as finance_models            # invoices, items, payments
from .apps.audit import models as audit_models                # append-only audit trail

__all__ = [
    "fleet_models",
    "scheduling_models",
    "finance_models",
    "audit_models",
]
