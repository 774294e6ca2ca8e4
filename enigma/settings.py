from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_number(name: str, default=None, *, cast=float, minimum=None):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        val = cast(raw)
    except ValueError:
        raise ImproperlyConfigured(f"{name} must be a number, got {raw!r}")
    if minimum is not None and val < minimum:
        raise ImproperlyConfigured(f"{name} must be >= {minimum}, got {val}")
    return val

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# The queue is meant for a single host; keep it bound to localhost by default
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",") if h.strip()]

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",

    # Local
    "encoding",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "enigma.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
            ],
        },
    },
]

WSGI_APPLICATION = "enigma.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "enigma"),
            "USER": env("DB_USER", "enigma"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "enigma.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
}

# -----------------------------------------------------
# Celery / Redis (only used when ENCODING_DISPATCH=celery)
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
# A single transcode step has no time limit; a hung ffmpeg only blocks its own video
CELERY_TASK_TIME_LIMIT = env_number("CELERY_TASK_TIME_LIMIT", None, cast=int, minimum=1)

# -----------------------------------------------------
# Encoding queue
# -----------------------------------------------------
ENCODING_POLL_INTERVAL = env_number("ENCODING_POLL_INTERVAL", 5.0, minimum=0.1)
# Unset means unbounded: every pending video gets its own run
ENCODING_MAX_CONCURRENT = env_number("ENCODING_MAX_CONCURRENT", None, cast=int, minimum=1)
ENCODING_DISPATCH = env("ENCODING_DISPATCH", "thread")
if ENCODING_DISPATCH not in {"thread", "celery"}:
    raise ImproperlyConfigured(f"ENCODING_DISPATCH must be 'thread' or 'celery', got {ENCODING_DISPATCH!r}")
# Start the scheduler inside the web server process (enigma/wsgi.py) instead of via run_encoding_queue
ENCODING_AUTOSTART = env_bool("ENCODING_AUTOSTART", False)
# A live run refreshes its heartbeat this often; recovery only resets rows silent for longer than ENCODING_STALE_AFTER
ENCODING_HEARTBEAT_INTERVAL = env_number("ENCODING_HEARTBEAT_INTERVAL", 10.0, minimum=0.1)
ENCODING_STALE_AFTER = env_number("ENCODING_STALE_AFTER", 60.0, minimum=1)
if ENCODING_STALE_AFTER <= ENCODING_HEARTBEAT_INTERVAL:
    raise ImproperlyConfigured("ENCODING_STALE_AFTER must be longer than ENCODING_HEARTBEAT_INTERVAL")

FFMPEG_BINARY = env("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = env("FFPROBE_BINARY", "ffprobe")

ENCODING_CALLBACK_URL = env("ENCODING_CALLBACK_URL", "")
ENCODING_CALLBACK_TIMEOUT = env_number("ENCODING_CALLBACK_TIMEOUT", 10.0, minimum=0.1)

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "encoding": {
            "handlers": ["console"],
            "level": env("ENCODING_LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
