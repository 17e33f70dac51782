from __future__ import annotations

import pytest

from identity_access.domain.entities.iam import Permission, Principal, Role
from identity_access.errors import ConflictError, NotFoundError


@pytest.fixture
async def seeded(store):
    principal = await store.create_principal(Principal(external_id="tg-1", name="Ann"))
    role = await store.create_role(Role(name="editor"))
    permission = await store.create_permission(
        Permission(name="users:update", resource="users", action="update")
    )
    return principal, role, permission


async def test_duplicate_external_id_conflicts(store, seeded) -> None:
    with pytest.raises(ConflictError):
        await store.create_principal(Principal(external_id="tg-1", name="Someone else"))


async def test_duplicate_role_and_permission_names_conflict(store, seeded) -> None:
    with pytest.raises(ConflictError):
        await store.create_role(Role(name="editor"))
    with pytest.raises(ConflictError):
        await store.create_permission(Permission(name="users:update", resource="x", action="read"))


async def test_assignments_are_idempotent(store, seeded) -> None:
    principal, role, permission = seeded

    assert await store.assign_role(principal.id, role.id) is True
    assert await store.assign_role(principal.id, role.id) is False
    assert await store.assign_permission(role.id, permission.id) is True
    assert await store.assign_permission(role.id, permission.id) is False

    assert store.association_count() == (1, 1)
    assert [r.id for r in await store.list_roles_for_principal(principal.id)] == [role.id]


async def test_assignment_requires_both_ends(store, seeded) -> None:
    principal, role, permission = seeded
    with pytest.raises(NotFoundError):
        await store.assign_role(principal.id, "missing")
    with pytest.raises(NotFoundError):
        await store.assign_role("missing", role.id)
    with pytest.raises(NotFoundError):
        await store.assign_permission(role.id, "missing")
    assert store.association_count() == (0, 0)


async def test_held_role_cannot_be_deleted(store, seeded) -> None:
    principal, role, _ = seeded
    await store.assign_role(principal.id, role.id)

    with pytest.raises(ConflictError):
        await store.delete_role(role.id)
    assert await store.find_role_by_id(role.id) is not None


async def test_granted_permission_cannot_be_deleted(store, seeded) -> None:
    _, role, permission = seeded
    await store.assign_permission(role.id, permission.id)

    with pytest.raises(ConflictError):
        await store.delete_permission(permission.id)
    assert await store.find_permission_by_id(permission.id) is not None


async def test_deleting_role_drops_its_grants(store, seeded) -> None:
    _, role, permission = seeded
    await store.assign_permission(role.id, permission.id)

    await store.delete_role(role.id)

    assert await store.count_roles_with_permission(permission.id) == 0
    await store.delete_permission(permission.id)


async def test_remove_missing_assignment_is_not_found(store, seeded) -> None:
    principal, role, permission = seeded
    with pytest.raises(NotFoundError):
        await store.remove_role(principal.id, role.id)
    with pytest.raises(NotFoundError):
        await store.remove_permission(role.id, permission.id)


async def test_permissions_for_roles_are_deduplicated(store, seeded) -> None:
    _, role, permission = seeded
    other = await store.create_role(Role(name="reviewer"))
    await store.assign_permission(role.id, permission.id)
    await store.assign_permission(other.id, permission.id)

    granted = await store.list_permissions_for_roles([role.id, other.id])

    assert [p.id for p in granted] == [permission.id]


async def test_returned_entities_are_copies(store, seeded) -> None:
    principal, _, _ = seeded
    fetched = await store.find_principal_by_id(principal.id)
    fetched.name = "changed"
    assert (await store.find_principal_by_id(principal.id)).name == "Ann"


async def test_update_principal_touches_updated_at(store, seeded) -> None:
    principal, _, _ = seeded
    updated = await store.update_principal(principal.id, {"is_active": False})
    assert updated.is_active is False
    assert updated.updated_at >= principal.updated_at
    with pytest.raises(NotFoundError):
        await store.update_principal("missing", {"name": "x"})
