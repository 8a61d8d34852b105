import pytest
from rest_framework.test import APIClient


@pytest.fixture
def user_password():
    from users.factories import DEFAULT_TEST_USER_PASSWORD

    return DEFAULT_TEST_USER_PASSWORD


@pytest.fixture
def user(user_password):
    from users.factories import UserFactory

    return UserFactory().create_user(first_name="Alex", last_name="Doe")


@pytest.fixture
def household(user):
    from households.factories import HouseholdFactory

    return HouseholdFactory().create_household(members=[user], name="Doe household")


@pytest.fixture
def other_member(household):
    from households.models import HouseholdMembership
    from users.factories import UserFactory

    member = UserFactory().create_user(first_name="Sam", last_name="Doe")
    HouseholdMembership.objects.create(user=member, household=household)
    return member


@pytest.fixture
def auth_client(user, household, user_password):
    client = APIClient()
    client.login(email=user.email, password=user_password)
    return client


@pytest.fixture
def anonymous_client():
    client = APIClient()
    return client


@pytest.fixture
def di_container():
    """Fixture to create a DI container."""
    from di_core.containers import container

    return container
