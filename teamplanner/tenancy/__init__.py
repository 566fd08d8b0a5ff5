"""
Tenant isolation primitives:
- Resolved identity (claims -> tenant + edit capability)
- Permission gate (advisory, mirrors the Firestore security rules)
- Tenant-scoped path builders
- Out-of-band claims provisioning
"""
