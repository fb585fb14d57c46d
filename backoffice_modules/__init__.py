"""
Back-office Modules.

Thin layers over the back-office kernel for concerns that are not part of
the stock ledger itself.  Each module contains:
- Domain models (frozen DTOs)
- ORM persistence models
- A service facade that authorizes through the kernel's
  PermissionAuthority and flushes within the caller's transaction

Modules:
- Staff: employees of a business and their attendance
"""
