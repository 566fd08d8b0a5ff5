from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True, slots=True)
class Identity:
    """
    Resolved, per-session identity (never persisted).

    - subject_id: Firebase Auth uid
    - tenant_id: tenant partition from the `tenantId` custom claim; None means
      authenticated but unscoped (no tenant access until provisioned)
    - can_edit: `canEdit` custom claim, False when absent
    """

    subject_id: str
    email: str
    display_name: str
    tenant_id: Optional[str]
    can_edit: bool = False
    claims: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_scoped(self) -> bool:
        return self.tenant_id is not None
