"""
Django settings for the commsblock project - API + WORKERS

Campaign compile-and-send backend. Only contains what's needed for the
REST API, the tracking endpoints and the sender/stats worker processes.
"""

from pathlib import Path
from environs import Env
import os

env = Env()
env.read_env()

BASE_DIR = Path(__file__).resolve().parent.parent

# ==============================================================================
# SECURITY
# ==============================================================================

SECRET_KEY = env("DJANGO_SECRET_KEY", default="django-insecure-local-development-key")
DEBUG = env.bool("DJANGO_DEBUG", default=False)

if not DEBUG:
    ALLOWED_HOSTS = env.list("DJANGO_ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "testserver"])
    CSRF_TRUSTED_ORIGINS = env.list("DJANGO_CSRF_TRUSTED_ORIGINS", default=[])
else:
    ALLOWED_HOSTS = [
        "localhost",
        "127.0.0.1",
        "testserver",
        ".ngrok-free.app",
    ]
    CSRF_TRUSTED_ORIGINS = ["https://*.ngrok-free.app"]


# ==============================================================================
# APPLICATIONS
# ==============================================================================

INSTALLED_APPS = [
    # Django core (minimal for API)
    "django.contrib.admin",  # Keep for admin panel
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # REST Framework
    "rest_framework",
    "django_filters",
    "whitenoise.runserver_nostatic",

    # Local apps
    "tenants.apps.TenantsConfig",
    "audience.apps.AudienceConfig",
    "campaigns.apps.CampaignsConfig",
    "tracking.apps.TrackingConfig",
    "delivery.apps.DeliveryConfig",
]

# ==============================================================================
# MIDDLEWARE
# ==============================================================================

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ==============================================================================
# URLS & WSGI
# ==============================================================================

ROOT_URLCONF = "commsblock.urls"
WSGI_APPLICATION = "commsblock.wsgi.application"

# ==============================================================================
# TEMPLATES (Minimal - Only for Admin)
# ==============================================================================

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# ==============================================================================
# DATABASE
# ==============================================================================

DATABASES = {
    "default": env.dj_db_url("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")
}

# ==============================================================================
# PASSWORDS (admin users only)
# ==============================================================================

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# ==============================================================================
# REST FRAMEWORK
# ==============================================================================

# Authentication and entitlement are handled upstream; requests are scoped
# by the X-Tenant-Id header (see tenants.permissions).
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "tenants.permissions.HasTenantHeader",
    ],
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 50,
    "UNAUTHENTICATED_USER": None,
}

# ==============================================================================
# INTERNATIONALIZATION
# ==============================================================================

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# ==============================================================================
# STATIC FILES (Only for Django Admin)
# ==============================================================================

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

if DEBUG:
    STORAGES = {
        "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
        "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
    }
else:
    STORAGES = {
        "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
        "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
    }
    WHITENOISE_AUTOREFRESH = False
    WHITENOISE_USE_FINDERS = True
    WHITENOISE_MANIFEST_STRICT = False

# ==============================================================================
# EMAIL CONFIGURATION
# ==============================================================================

if DEBUG:
    EMAIL_FILE_PATH = str(BASE_DIR / "sent_emails")
    EMAIL_BACKEND = "django.core.mail.backends.filebased.EmailBackend"
else:
    EMAIL_BACKEND = "django.core.mail.backends.smtp.EmailBackend"
    EMAIL_HOST = env("COMM_SMTP_HOST", default="localhost")
    EMAIL_PORT = env.int("COMM_SMTP_PORT", default=587)
    EMAIL_USE_TLS = env.bool("COMM_SMTP_TLS", default=True)
    EMAIL_HOST_USER = env("COMM_SMTP_USER", default="")
    EMAIL_HOST_PASSWORD = env("COMM_SMTP_PASS", default="")
    EMAIL_TIMEOUT = env.int("COMM_SMTP_TIMEOUT", default=30)

DEFAULT_FROM_EMAIL = env("COMM_FROM_ADDRESS", default="no-reply@example.com")
COMM_FROM_ADDRESS = DEFAULT_FROM_EMAIL

# Admin notification
ADMINS = [("Platform Ops", env("COMM_ADMIN_EMAIL", default="ops@example.com"))]
SERVER_EMAIL = env("COMM_SERVER_EMAIL", default="server@example.com")

# ==============================================================================
# TRACKING & TOKENS
# ==============================================================================

TRACKING_DOMAIN = env("COMM_TRACKING_DOMAIN", default="track.example.com")
COMM_PUBLIC_BASE = env("COMM_PUBLIC_BASE", default="http://localhost:8000")
COMM_UNSUB_MAILTO = env("COMM_UNSUB_MAILTO", default="unsubscribe@example.com")

TRACKING_TOKEN_SECRET = env("SERVICE_JWT_SECRET", default=SECRET_KEY)
CLICK_TOKEN_TTL_DAYS = 90
UNSUBSCRIBE_TOKEN_TTL_DAYS = env.int("COMM_UNSUBSCRIBE_TTL_DAYS", default=30)

# ==============================================================================
# DELIVERY PROVIDER
# ==============================================================================

# "smtp" sends through EMAIL_BACKEND, "api" posts to DELIVERY_API_BASE
MAIL_TRANSPORT = env("COMM_MAIL_TRANSPORT", default="smtp")
DELIVERY_API_BASE = env("DELIVERY_API_BASE", default="https://api.example.com")
DELIVERY_API_KEY = env("DELIVERY_API_KEY", default="")
DELIVERY_LOGS_TOKEN = env("DELIVERY_LOGS_TOKEN", default="")
DELIVERY_API_TIMEOUT = env.int("DELIVERY_API_TIMEOUT", default=15)
DELIVERY_WEBHOOK_SECRET = env("COMM_WEBHOOK_SECRET", default="")

# ==============================================================================
# WORKERS
# ==============================================================================

SENDER_TICK_SECONDS = 5
SENDER_HEARTBEAT_SECONDS = 30
STATS_TICK_SECONDS = 15
STATS_HEARTBEAT_SECONDS = 60

SEND_MAX_ATTEMPTS = 3
SEND_BACKOFF_BASE_MS = 500
SEND_LEASE_TTL_SECONDS = env.int("SEND_LEASE_TTL_SECONDS", default=300)

DEFAULT_CHUNK_SIZE = 100
DEFAULT_CHUNK_DELAY_SECONDS = 30

# ==============================================================================
# LOGGING
# ==============================================================================

LOGS_DIR = Path(env("COMM_LOGS_DIR", default=str(BASE_DIR / "logs")))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {asctime} {module} {message}",
            "style": "{",
        },
        "detailed": {
            "format": "{levelname} {asctime} {name} {module} {funcName} {lineno} {message}",
            "style": "{",
        },
    },
    "filters": {
        "require_debug_true": {"()": "django.utils.log.RequireDebugTrue"},
        "require_debug_false": {"()": "django.utils.log.RequireDebugFalse"},
    },
    "handlers": {
        "console": {
            "level": "DEBUG" if DEBUG else "INFO",
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
        "file_debug": {
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOGS_DIR / "debug.log"),
            "maxBytes": 1024 * 1024 * 5,  # 5 MB
            "backupCount": 10,
            "formatter": "detailed",
        },
        "file_info": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOGS_DIR / "info.log"),
            "maxBytes": 1024 * 1024 * 5,
            "backupCount": 10,
            "formatter": "verbose",
        },
        "file_error": {
            "level": "ERROR",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOGS_DIR / "error.log"),
            "maxBytes": 1024 * 1024 * 5,
            "backupCount": 10,
            "formatter": "detailed",
        },
        "critical_errors": {
            "level": "CRITICAL",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOGS_DIR / "critical.log"),
            "maxBytes": 1024 * 1024 * 5,
            "backupCount": 30,
            "formatter": "detailed",
        },
        "timed_rotating_file": {
            "level": "INFO",
            "class": "logging.handlers.TimedRotatingFileHandler",
            "filename": str(LOGS_DIR / "daily.log"),
            "when": "midnight",
            "interval": 1,
            "backupCount": 30,
            "formatter": "verbose",
        },
        "mail_admins": {
            "level": "ERROR",
            "filters": ["require_debug_false"],
            "class": "django.utils.log.AdminEmailHandler",
            "formatter": "detailed",
            "include_html": True,
        },
    },
    "loggers": {
        "": {  # Root logger
            "handlers": ["console", "file_info", "file_error", "timed_rotating_file"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": True,
        },
        "django": {
            "handlers": ["console", "file_info", "mail_admins"],
            "level": "INFO",
            "propagate": False,
        },
        "django.request": {
            "handlers": ["file_error", "mail_admins", "critical_errors"],
            "level": "ERROR",
            "propagate": False,
        },
        "django.security": {
            "handlers": ["file_error", "mail_admins", "critical_errors"],
            "level": "ERROR",
            "propagate": False,
        },
        # App-specific loggers
        "tenants": {
            "handlers": ["console", "file_debug", "file_info", "file_error"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
        "audience": {
            "handlers": ["console", "file_debug", "file_info", "file_error"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
        "campaigns": {
            "handlers": ["console", "file_debug", "file_info", "file_error"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
        "tracking": {
            "handlers": ["console", "file_debug", "file_info", "file_error"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
        "delivery": {
            "handlers": ["console", "file_debug", "file_info", "file_error", "critical_errors"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
    },
}

# ==============================================================================
# PRODUCTION SECURITY
# ==============================================================================

if not DEBUG:
    SECURE_SSL_REDIRECT = env.bool("DJANGO_SECURE_SSL_REDIRECT", default=False)
    SECURE_HSTS_SECONDS = env.int("DJANGO_SECURE_HSTS_SECONDS", default=0)
    SECURE_HSTS_INCLUDE_SUBDOMAINS = env.bool("DJANGO_SECURE_HSTS_INCLUDE_SUBDOMAINS", default=False)
    SECURE_HSTS_PRELOAD = env.bool("DJANGO_SECURE_HSTS_PRELOAD", default=False)
    SESSION_COOKIE_SECURE = env.bool("DJANGO_SESSION_COOKIE_SECURE", default=True)
    CSRF_COOKIE_SECURE = env.bool("DJANGO_CSRF_COOKIE_SECURE", default=True)
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# ==============================================================================
# MISC
# ==============================================================================

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
