from model_bakery import baker

from households.models import Household, HouseholdMembership


class HouseholdFactory:
    def create_household(self, members=(), **kwargs) -> Household:
        household = baker.make(Household, **kwargs)
        for user in members:
            baker.make(HouseholdMembership, household=household, user=user)
        return household
