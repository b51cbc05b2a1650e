"""
Resolves what a user may do inside a conference.

A user can hold several role rows in the same conference at once, so every check
here is a membership test against the user's role set.
"""
import logging

from sqlalchemy import func, select

from .db import unit_of_work
from .exceptions import (
    AlreadyExistsError,
    ForbiddenError,
    LastChairError,
    NotFoundError,
    ValidationError,
)
from .models import REVIEWER_ROLES, Conference, ConferenceMember, MemberRole, User


def parse_role(value):
    try:
        return MemberRole(value)
    except ValueError:
        raise ValidationError(
            "Invalid role. Must be one of: {}".format(", ".join(r.value for r in MemberRole))
        )


class MembershipStore:
    def __init__(self, session, logger=logging.getLogger(__name__)):
        self.session = session
        self.logger = logger

    def get_conference(self, conference_id):
        conference = self.session.get(Conference, conference_id)
        if conference is None:
            raise NotFoundError("Conference not found")
        return conference

    def get_user(self, user_id):
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def roles(self, conference_id, user_id):
        rows = self.session.scalars(
            select(ConferenceMember.role).where(
                ConferenceMember.conference_id == conference_id,
                ConferenceMember.user_id == user_id,
            )
        )
        return frozenset(rows)

    def has_role(self, conference_id, user_id, *roles):
        return not self.roles(conference_id, user_id).isdisjoint(roles)

    def is_chair(self, conference_id, user_id):
        return self.has_role(conference_id, user_id, MemberRole.CHAIR)

    def is_admin(self, user_id):
        user = self.session.get(User, user_id)
        return bool(user is not None and user.is_admin)

    def is_chair_or_admin(self, conference_id, user_id):
        return self.is_admin(user_id) or self.is_chair(conference_id, user_id)

    def require_chair_or_admin(self, conference_id, user_id):
        if not self.is_chair_or_admin(conference_id, user_id):
            raise ForbiddenError("Chair or admin access required")

    def require_member(self, conference_id, user_id):
        if self.is_admin(user_id):
            return
        if not self.roles(conference_id, user_id):
            raise ForbiddenError("You are not a member of this conference")

    def reviewer_pool(self, conference_id):
        """Distinct ids of members holding REVIEWER or CHAIR, in id order."""
        rows = self.session.scalars(
            select(ConferenceMember.user_id)
            .where(
                ConferenceMember.conference_id == conference_id,
                ConferenceMember.role.in_(REVIEWER_ROLES),
            )
            .distinct()
            .order_by(ConferenceMember.user_id)
        )
        return list(rows)

    def list_members(self, conference_id):
        self.get_conference(conference_id)
        members = self.session.scalars(
            select(ConferenceMember)
            .where(ConferenceMember.conference_id == conference_id)
            .order_by(ConferenceMember.user_id, ConferenceMember.role)
        )

        by_user = {}
        for member in members:
            entry = by_user.setdefault(
                member.user_id,
                {"user": member.user.to_dict(), "memberships": []},
            )
            entry["memberships"].append({"id": member.id, "role": member.role.value})

        for entry in by_user.values():
            entry["roles"] = sorted(m["role"] for m in entry["memberships"])
        return list(by_user.values())

    def add_member(self, conference_id, user_id, role):
        role = parse_role(role)
        self.get_conference(conference_id)
        self.get_user(user_id)

        if role in self.roles(conference_id, user_id):
            raise AlreadyExistsError("User already has this role in this conference")

        with unit_of_work(self.session):
            member = ConferenceMember(conference_id=conference_id, user_id=user_id, role=role)
            self.session.add(member)

        self.logger.info(
            "Added {} as {} to conference {}".format(user_id, role.value, conference_id)
        )
        return member

    def _get_member(self, conference_id, member_id):
        member = self.session.get(ConferenceMember, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        if member.conference_id != conference_id:
            raise ValidationError("Member does not belong to this conference")
        return member

    def _chair_count(self, conference_id):
        return self.session.scalar(
            select(func.count(ConferenceMember.id)).where(
                ConferenceMember.conference_id == conference_id,
                ConferenceMember.role == MemberRole.CHAIR,
            )
        )

    def change_role(self, conference_id, member_id, role):
        role = parse_role(role)
        member = self._get_member(conference_id, member_id)

        if member.role == role:
            return member

        if member.role == MemberRole.CHAIR and self._chair_count(conference_id) <= 1:
            raise LastChairError("Cannot downgrade the last chair of the conference")

        if role in self.roles(conference_id, member.user_id):
            raise AlreadyExistsError("User already has this role in this conference")

        with unit_of_work(self.session):
            member.role = role
        return member

    def remove_member(self, conference_id, member_id):
        member = self._get_member(conference_id, member_id)

        if member.role == MemberRole.CHAIR and self._chair_count(conference_id) <= 1:
            raise LastChairError("Cannot remove the last chair of the conference")

        with unit_of_work(self.session):
            self.session.delete(member)

        self.logger.info("Removed membership {} from conference {}".format(member_id, conference_id))