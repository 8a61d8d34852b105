from django.db.models import Manager

from common.exceptions import HouseholdRequiredError
from households.querysets import BaseHouseholdModelQuerySet


class BaseHouseholdModelManager(Manager):
    """
    Base manager for household models. Every read must be scoped to one household.
    """

    def get_queryset(self):
        return BaseHouseholdModelQuerySet(self.model, using=self._db)

    def filter_by_household(self, household_id: int):
        """
        Filters the queryset by the specified household ID.
        :param household_id: ID of the household to filter by.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_household(household_id)

    def filter_by_user_household(self, user):
        """
        Filters the queryset by the household ``user`` belongs to.
        :param user: member of the household.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_user_household(user)

    def get(self, *args, **kwargs):
        return self.get_queryset().get(*args, **kwargs)

    def count(self):
        return self.get_queryset().count()

    def create(self, **kwargs):
        if "household_id" not in kwargs and "household" not in kwargs:
            raise HouseholdRequiredError()
        return super().create(**kwargs)
