from __future__ import annotations

import pytest

from teamplanner.planning.repository import Repositories
from teamplanner.tenancy.context import Identity

from ._fake_firestore import FakeFirestore
from ._fake_identity import FakeIdentityProvider


@pytest.fixture
def fake_db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def repos(fake_db: FakeFirestore) -> Repositories:
    return Repositories.from_client(fake_db)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def editor() -> Identity:
    return Identity(subject_id="u-editor", email="ed@acme.test", display_name="Ed", tenant_id="t1", can_edit=True)


@pytest.fixture
def viewer() -> Identity:
    return Identity(subject_id="u-viewer", email="vi@acme.test", display_name="Vi", tenant_id="t1", can_edit=False)


@pytest.fixture
def unscoped() -> Identity:
    return Identity(subject_id="u-new", email="new@acme.test", display_name="New", tenant_id=None, can_edit=True)
