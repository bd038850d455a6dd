from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "micropub-insecure-dev-key")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = ["testserver", "localhost", "127.0.0.1", "example.com"]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "micropub.apps.MicropubConfig",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

USE_TZ = True
TIME_ZONE = "UTC"

MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

MICROPUB_BASE_URL = os.environ.get("MICROPUB_BASE_URL", "")
MICROPUB_ME_PATH = os.environ.get("MICROPUB_ME_PATH") or None
MICROPUB_TOKEN_ENDPOINT = os.environ.get("MICROPUB_TOKEN_ENDPOINT", "https://tokens.indieauth.com/token")
MICROPUB_TOKEN_VERIFIER = os.environ.get("MICROPUB_TOKEN_VERIFIER") or None
MICROPUB_UPLOAD_ROOT = MEDIA_ROOT / "temp"
MICROPUB_SITE_ROOT = BASE_DIR
MICROPUB_HTTP_TIMEOUT = 10

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {"class": "logging.StreamHandler"},
    },
    "loggers": {
        "micropub": {
            "handlers": ["console"],
            "level": os.environ.get("MICROPUB_LOG_LEVEL", "WARNING"),
        },
    },
}
