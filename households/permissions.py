from django.core.exceptions import ObjectDoesNotExist

from rest_framework.permissions import BasePermission

from households.models import HouseholdModel


def get_user_household_id(user) -> int | None:
    try:
        return user.household_membership.household_id
    except (ObjectDoesNotExist, AttributeError):
        return None


class HouseholdMemberPermission(BasePermission):
    """
    Only authenticated users that belong to a household may access household records,
    and only the records of their own household.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return get_user_household_id(request.user) is not None

    def has_object_permission(self, request, view, obj):
        if isinstance(obj, HouseholdModel):
            return get_user_household_id(request.user) == obj.household_id
        return False
