"""Client identification headers sent on every call to the IdP."""

import base64
import json
import platform
from functools import lru_cache

import httpx

from idp_bridge import __version__

CLIENT_NAME = "idp-bridge"
CLIENT_INFO_HEADER = "X-Client-Info"


@lru_cache(maxsize=1)
def client_info_headers() -> dict[str, str]:
    """Headers identifying this package, computed once per process."""
    info = {
        "name": CLIENT_NAME,
        "version": __version__,
        "env": {"python": platform.python_version(), "httpx": httpx.__version__},
    }
    encoded = base64.urlsafe_b64encode(json.dumps(info).encode("utf-8")).decode("ascii")
    return {
        "User-Agent": f"{CLIENT_NAME}/{__version__}",
        CLIENT_INFO_HEADER: encoded.rstrip("="),
    }
