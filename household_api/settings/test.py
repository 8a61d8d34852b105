from .base import *


SECRET_KEY = "test"  # nosec

DEBUG = False

DATABASES = {
    "default": db_url("sqlite://:memory:"),
}

STATIC_ROOT = base_dir_join("staticfiles")
STATIC_URL = "/static/"

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Speed up password hashing
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

LOGGING["loggers"][""]["level"] = "WARNING"  # noqa: F405
