class CommonError(Exception):
    """Base exception for common app errors"""

    pass


class HouseholdRequiredError(CommonError):
    def __init__(self, message="`household` is required to create an instance."):
        super().__init__(message)
