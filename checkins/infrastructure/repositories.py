"""
Repository entry point.

Each aggregate lives in its own module; import from here so callers don't
depend on the split:

    from checkins.infrastructure.repositories import CheckInRepo, SnapshotRepo
"""

from __future__ import annotations

from .repositories_check_in import CheckInRepo, serialize_check_in, to_check_in
from .repositories_snapshot import SnapshotRepo
from .repositories_teammate import OrganizationRepo, PersonRepo, TargetRepo, TeammateRepo
from .repositories_tenure import TenureRepo

__all__ = [
    "CheckInRepo",
    "SnapshotRepo",
    "TenureRepo",
    "TeammateRepo",
    "PersonRepo",
    "OrganizationRepo",
    "TargetRepo",
    "serialize_check_in",
    "to_check_in",
]
