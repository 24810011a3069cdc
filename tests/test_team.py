import pytest

from application.dtos.team import AddMember, CreateOrganization, UpdateMemberRole
from application.services.team_service import TeamService
from domain.common.exceptions import (
    AlreadyAMemberException,
    InsufficientRoleException,
    LastOwnerException,
    NotAMemberException,
    OrganizationNotFoundException,
    UserNotFoundException,
)
from domain.team.entity import TeamRole


@pytest.fixture
def team_service(uow_factory) -> TeamService:
    return TeamService(uow_factory)


@pytest.fixture
async def org(team_service, seed):
    owner = await seed.user("owner@example.com")
    created = await team_service.create_organization(owner.id, CreateOrganization(name="Acme"))
    return created, owner


@pytest.mark.asyncio
async def test_creator_becomes_owner(team_service, org):
    created, owner = org

    members = await team_service.list_members(created.id, owner.id)

    assert [(m.user_id, m.role) for m in members] == [(owner.id, TeamRole.OWNER)]
    memberships = await team_service.list_my_memberships(owner.id)
    assert memberships[0].organization_id == created.id


@pytest.mark.asyncio
async def test_add_member_by_email(team_service, org, seed):
    created, owner = org
    user = await seed.user("dev@example.com")

    member = await team_service.add_member(created.id, owner.id, AddMember(email="dev@example.com", role=TeamRole.ADMIN))

    assert member.user_id == user.id
    assert member.role == TeamRole.ADMIN
    assert member.invited_by == owner.id
    with pytest.raises(AlreadyAMemberException):
        await team_service.add_member(created.id, owner.id, AddMember(email="dev@example.com"))


@pytest.mark.asyncio
async def test_add_unknown_user_is_not_found(team_service, org):
    created, owner = org

    with pytest.raises(UserNotFoundException):
        await team_service.add_member(created.id, owner.id, AddMember(email="ghost@example.com"))


@pytest.mark.asyncio
async def test_admin_cannot_grant_owner(team_service, org, seed):
    created, owner = org
    admin_user = await seed.user("admin@example.com")
    await seed.user("new@example.com")
    await team_service.add_member(created.id, owner.id, AddMember(email="admin@example.com", role=TeamRole.ADMIN))

    with pytest.raises(InsufficientRoleException):
        await team_service.add_member(created.id, admin_user.id, AddMember(email="new@example.com", role=TeamRole.OWNER))

    member = await team_service.add_member(created.id, admin_user.id, AddMember(email="new@example.com"))
    assert member.role == TeamRole.MEMBER


@pytest.mark.asyncio
async def test_members_cannot_manage(team_service, org, seed):
    created, owner = org
    plain = await seed.user("plain@example.com")
    await seed.user("new@example.com")
    await team_service.add_member(created.id, owner.id, AddMember(email="plain@example.com"))

    with pytest.raises(InsufficientRoleException):
        await team_service.add_member(created.id, plain.id, AddMember(email="new@example.com"))


@pytest.mark.asyncio
async def test_outsiders_are_rejected(team_service, org, seed):
    created, _ = org
    outsider = await seed.user("outsider@example.com")

    with pytest.raises(NotAMemberException):
        await team_service.list_members(created.id, outsider.id)
    with pytest.raises(OrganizationNotFoundException):
        await team_service.list_members("missing-org", outsider.id)


@pytest.mark.asyncio
async def test_last_owner_cannot_leave_or_be_demoted(team_service, org):
    created, owner = org
    [membership] = await team_service.list_members(created.id, owner.id)

    with pytest.raises(LastOwnerException):
        await team_service.leave_organization(created.id, owner.id)
    with pytest.raises(LastOwnerException):
        await team_service.update_member_role(
            created.id, owner.id, membership.id, UpdateMemberRole(role=TeamRole.ADMIN)
        )


@pytest.mark.asyncio
async def test_owner_can_leave_once_another_owner_exists(team_service, org, seed):
    created, owner = org
    second = await seed.user("second@example.com")
    await team_service.add_member(created.id, owner.id, AddMember(email="second@example.com", role=TeamRole.OWNER))

    await team_service.leave_organization(created.id, owner.id)

    members = await team_service.list_members(created.id, second.id)
    assert [(m.user_id, m.role) for m in members] == [(second.id, TeamRole.OWNER)]


@pytest.mark.asyncio
async def test_admin_cannot_remove_owner(team_service, org, seed):
    created, owner = org
    admin_user = await seed.user("admin@example.com")
    await team_service.add_member(created.id, owner.id, AddMember(email="admin@example.com", role=TeamRole.ADMIN))
    owner_member = next(m for m in await team_service.list_members(created.id, owner.id) if m.user_id == owner.id)

    with pytest.raises(InsufficientRoleException):
        await team_service.remove_member(created.id, admin_user.id, owner_member.id)


@pytest.mark.asyncio
async def test_owner_removes_member(team_service, org, seed):
    created, owner = org
    await seed.user("dev@example.com")
    member = await team_service.add_member(created.id, owner.id, AddMember(email="dev@example.com"))

    await team_service.remove_member(created.id, owner.id, member.id)

    assert len(await team_service.list_members(created.id, owner.id)) == 1
