"""Create, update and remove library users together with their profiles.

A member or staff account is a Django ``User``, a role group and a profile
row. Each function writes all three inside one transaction, so a failure at
any step leaves nothing behind.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from circulation import services as circulation
from circulation.exceptions import ValidationFailed
from core.roles import MEMBER, LIBRARIAN, STAFF_ROLES, assign_role
from .models import Member, Staff

logger = logging.getLogger(__name__)

USER_FIELDS = ('username', 'email', 'first_name', 'last_name')


def _create_user(user_data, password):
    User = get_user_model()
    if User.objects.filter(username=user_data['username']).exists():
        raise ValidationFailed(f"Username '{user_data['username']}' is already taken.")
    email = user_data.get('email')
    if email and User.objects.filter(email__iexact=email).exists():
        raise ValidationFailed(f"Email '{email}' is already registered.")
    user = User(**{key: user_data.get(key, '') for key in USER_FIELDS})
    if password:
        user.set_password(password)
    else:
        user.set_unusable_password()
    user.save()
    return user


def _update_user(user, user_data, password=None):
    for key in USER_FIELDS:
        if key in user_data:
            setattr(user, key, user_data[key])
    if password:
        user.set_password(password)
    user.save()


@transaction.atomic
def create_member(user_data, profile_data=None, password=None):
    user = _create_user(user_data, password)
    assign_role(user, MEMBER)
    member = Member(user=user, **(profile_data or {}))
    member.full_clean(exclude=['user', 'library_card_number'])
    member.save()
    logger.info("Member %s created for user %s", member.library_card_number, user.pk)
    return member


@transaction.atomic
def update_member(member, user_data=None, profile_data=None, password=None):
    _update_user(member.user, user_data or {}, password)
    for key, value in (profile_data or {}).items():
        setattr(member, key, value)
    member.full_clean(exclude=['user'])
    member.save()
    logger.info("Member %s updated", member.library_card_number)
    return member


def _delete_user(user, who):
    if user.loans.open().exists():
        raise ValidationFailed(f"Cannot delete a {who} who still has books on loan.")
    # Copies held for the user go back on the shelf.
    for reservation in user.reservations.active():
        circulation.cancel(reservation)
    user.loans.all().delete()
    user.delete()


@transaction.atomic
def delete_member(member):
    card = member.library_card_number
    _delete_user(member.user, "member")
    logger.info("Member %s deleted", card)


@transaction.atomic
def create_staff(user_data, profile_data=None, password=None, role=LIBRARIAN):
    if role not in STAFF_ROLES:
        raise ValidationFailed(f"'{role}' is not a staff role.")
    user = _create_user(user_data, password)
    assign_role(user, role)
    staff = Staff(user=user, **(profile_data or {}))
    staff.full_clean(exclude=['user', 'employee_id'])
    staff.save()
    logger.info("Staff %s created for user %s as %s", staff.employee_id, user.pk, role)
    return staff


@transaction.atomic
def update_staff(staff, user_data=None, profile_data=None, password=None, role=None):
    _update_user(staff.user, user_data or {}, password)
    if role is not None:
        if role not in STAFF_ROLES:
            raise ValidationFailed(f"'{role}' is not a staff role.")
        assign_role(staff.user, role)
    for key, value in (profile_data or {}).items():
        setattr(staff, key, value)
    staff.full_clean(exclude=['user'])
    staff.save()
    logger.info("Staff %s updated", staff.employee_id)
    return staff


@transaction.atomic
def delete_staff(staff):
    employee_id = staff.employee_id
    _delete_user(staff.user, "staff member")
    logger.info("Staff %s deleted", employee_id)
