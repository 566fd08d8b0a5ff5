"""
teamplanner package

Tenant-scoped authorization and data access for the team planning admin tool:
claims resolution, permission gate, tenant-partitioned Firestore repositories,
and the process-wide session lifecycle.
"""
