import os


def _origins(raw):
    return [o.strip() for o in raw.split(",") if o.strip()]


class Config:
    """
    Default settings, read from the environment at import time.
    create_app() can override any of them with an explicit mapping.
    """
    TRACKING_DB = os.environ.get("TRACKING_DB", "tracking.db")
    TRACKING_DB_TIMEOUT = float(os.environ.get("TRACKING_DB_TIMEOUT", "5.0"))

    TRACKING_HOST = os.environ.get("TRACKING_HOST", "0.0.0.0")
    TRACKING_PORT = int(os.environ.get("TRACKING_PORT", "8091"))

    # number of reverse proxies in front of us (0 = trust the socket peer)
    TRACKING_PROXY_COUNT = int(os.environ.get("TRACKING_PROXY_COUNT", "0"))

    # CORS allowlist for browser pages posting events cross-origin
    CORS_ALLOW_ORIGINS = _origins(os.environ.get("CORS_ALLOW_ORIGINS", ""))
