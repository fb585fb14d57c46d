"""
Staff Module (``backoffice_modules.staff``).

Responsibility
--------------
Employees of a business (create, update, deactivate, delete) and their
attendance (check-in / check-out).

Architecture position
---------------------
**Modules layer** -- service facades over the kernel's User model and the
module's own AttendanceRecordModel.  Authorization goes through the
kernel's PermissionAuthority; role grants follow the configured
assignable-roles map (owner: admin, cashier, waiter, cook; admin:
cashier, waiter, cook).

Invariants enforced
-------------------
* An employee is created with a role the actor may assign.
* Nobody deactivates or deletes their own account.
* At most one open attendance record per user.
"""

from backoffice_modules.staff.models import AttendanceInfo, EmployeeCreated
from backoffice_modules.staff.service import AttendanceService, EmployeeService

__all__ = [
    "AttendanceInfo",
    "AttendanceService",
    "EmployeeCreated",
    "EmployeeService",
]
