import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "coopdesk-insecure-development-key")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "lending",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": ["django.template.context_processors.request"]},
    },
]

ROOT_URLCONF = "coopdesk.urls"
WSGI_APPLICATION = "coopdesk.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_TZ = True

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "EXCEPTION_HANDLER": "lending.exceptions.lending_exception_handler",
}

# Engine knobs. DEFAULT_PLAN seeds a tenant's plan mirror until the
# subscription service writes one; -1 means unlimited.
LENDING = {
    "DEFAULT_PLAN": {
        "max_products": int(os.environ.get("LENDING_MAX_PRODUCTS", "-1")),
        "max_active_loans": int(os.environ.get("LENDING_MAX_ACTIVE_LOANS", "-1")),
        "max_outstanding_amount": int(os.environ.get("LENDING_MAX_OUTSTANDING_AMOUNT", "-1")),
    },
    "MEMBER_DIRECTORY": os.environ.get("LENDING_MEMBER_DIRECTORY", "lending.members.accept_any_member"),
    "LOAN_CODE_DIGITS": 6,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "lending": {
            "handlers": ["console"],
            "level": os.environ.get("LENDING_LOG_LEVEL", "INFO"),
        },
    },
}
