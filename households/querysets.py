from django.core.exceptions import ImproperlyConfigured
from django.db.models.query import QuerySet


HOUSEHOLD_FIELD = "household"


class BaseHouseholdModelQuerySet(QuerySet):
    """
    QuerySet for records owned by a household.

    Reads, counts and bulk deletes refuse to run until the query is narrowed to a household,
    either by id (``filter_by_household``) or through a member (``filter_by_user_household``).
    Records never move between households, so ``update`` rejects the household field.
    """

    def filter_by_household(self, household_id: int):
        """
        Records of one household.
        :param household_id: ID of the household to filter by.
        :return: Filtered QuerySet.
        """
        return super().filter(household_id=household_id)

    def filter_by_user_household(self, user):
        """
        Records of the household ``user`` belongs to. Empty for users outside any household.
        :param user: a user instance, usually ``request.user``.
        :return: Filtered QuerySet.
        """
        return super().filter(**{f"{HOUSEHOLD_FIELD}__memberships__user": user})

    def _is_household_scoped(self) -> bool:
        return HOUSEHOLD_FIELD in str(self.query.where)

    def _check_household_scope(self, operation: str):
        if not self._is_household_scoped():
            raise ImproperlyConfigured(
                f"Cannot {operation} {self.model.__name__} records without a household filter. "
                "Use filter_by_household() or filter_by_user_household() first."
            )

    def __iter__(self):
        self._check_household_scope("read")
        return super().__iter__()

    def count(self):
        self._check_household_scope("count")
        return super().count()

    def get(self, *args, **kwargs):
        lookups = {key.split("__")[0] for key in kwargs}
        if not lookups & {HOUSEHOLD_FIELD, f"{HOUSEHOLD_FIELD}_id"}:
            self._check_household_scope("get")
        return super().get(*args, **kwargs)

    def delete(self):
        self._check_household_scope("delete")
        return super().delete()

    def update(self, **kwargs):
        if HOUSEHOLD_FIELD in kwargs or f"{HOUSEHOLD_FIELD}_id" in kwargs:
            raise ValueError(
                f"{self.model.__name__} records cannot be moved to another household."
            )
        return super().update(**kwargs)
