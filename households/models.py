from django.conf import settings
from django.db import models

from common.models import BaseModel
from households.managers import BaseHouseholdModelManager


class Household(BaseModel):
    """
    A household sharing one calendar. It is the tenant every calendar record belongs to.
    """

    name = models.CharField(max_length=255)

    def __str__(self):
        return self.name


class HouseholdMembership(BaseModel):
    """
    Links a user to the single household they belong to.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="household_membership",
    )
    household = models.ForeignKey(
        Household,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    def __str__(self):
        return f"{self.user} in {self.household}"


class HouseholdModel(BaseModel):
    """
    Abstract base for records owned by a household. Queries should use the `household` field.
    """

    household = models.ForeignKey(
        Household,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="The household this record belongs to.",
    )

    objects: BaseHouseholdModelManager = BaseHouseholdModelManager()
    original_manager = models.Manager()

    class Meta:
        abstract = True
