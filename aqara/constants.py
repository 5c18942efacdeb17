"""Constants and configuration defaults for the Aqara Open API client."""

from enum import Enum

from .errors import ConfigError


class Region(Enum):
    """Aqara cloud deployments. Each region maps to exactly one base URL."""

    CHINA = "https://open-cn.aqara.com/v3.0/open/api"
    USA = "https://open-usa.aqara.com/v3.0/open/api"
    EUROPE = "https://open-ger.aqara.com/v3.0/open/api"
    KOREA = "https://open-kr.aqara.com/v3.0/open/api"
    RUSSIA = "https://open-ru.aqara.com/v3.0/open/api"
    SINGAPORE = "https://open-sg.aqara.com/v3.0/open/api"

    @property
    def base_url(self) -> str:
        return self.value

    @classmethod
    def parse(cls, name: str) -> "Region":
        """Look up a region by name ("singapore", "SG", "usa", ...)."""
        key = (name or "").strip().upper()
        key = _REGION_ALIASES.get(key, key)
        try:
            return cls[key]
        except KeyError:
            known = ", ".join(r.name.lower() for r in cls)
            raise ConfigError(f"Unknown region {name!r} (expected one of: {known})") from None


_REGION_ALIASES = {
    "CN": "CHINA",
    "US": "USA",
    "EU": "EUROPE",
    "GER": "EUROPE",
    "KR": "KOREA",
    "RU": "RUSSIA",
    "SG": "SINGAPORE",
}


def resolve(region: Region) -> str:
    """Return the base URL of ``region``."""
    return region.base_url


# HTTP defaults
DEFAULT_LANG = "en"
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 30.0
DEFAULT_CONNECT_RETRIES = 0
DEFAULT_BODY_SNIPPET_LEN = 2048

# Token lifecycle
DEFAULT_REFRESH_MARGIN = 60.0
DEFAULT_TOKEN_VALIDITY = 7 * 24 * 3600  # platform default "7d"

# Signing
NONCE_LENGTH = 30
SIGN_DELIMITER = "&"

# Signed header names
HEADER_ACCESS_TOKEN = "Accesstoken"
HEADER_APP_ID = "Appid"
HEADER_KEY_ID = "Keyid"
HEADER_NONCE = "Nonce"
HEADER_TIME = "Time"
HEADER_SIGN = "Sign"
HEADER_LANG = "Lang"

# Business codes
CODE_SUCCESS = 0
CODE_RATE_LIMITED = 429
TOKEN_EXPIRED_CODES = frozenset({106, 108})
AUTH_REJECTION_CODES = frozenset({106, 107, 108, 109, 403})

# Token issuance intents
INTENT_REFRESH_TOKEN = "config.auth.refreshToken"
INTENT_GET_TOKEN = "config.auth.getToken"
INTENT_GET_AUTH_CODE = "config.auth.getAuthCode"
INTENT_CREATE_ACCOUNT = "config.auth.createAccount"

# Resource intents
INTENT_POSITION_LIST = "query.position.info"
INTENT_POSITION_DETAIL = "query.position.detail"
INTENT_POSITION_CREATE = "config.position.create"
INTENT_POSITION_DELETE = "config.position.delete"
INTENT_DEVICE_INFO = "query.device.info"
INTENT_DEVICE_SUB_INFO = "query.device.subInfo"
INTENT_DEVICE_NAME = "config.device.name"
INTENT_SCENE_LIST_BY_POSITION = "query.scene.listByPositionId"
INTENT_SCENE_RUN = "config.scene.run"
INTENT_VOICE_COMMAND = "command.device.resource"

# Environment variables read by ClientBuilder.from_env
ENV_APP_ID = "AQARA_APP_ID"
ENV_KEY_ID = "AQARA_KEY_ID"
ENV_APP_KEY = "AQARA_APP_KEY"
ENV_REGION = "AQARA_REGION"
ENV_BASE_URL = "AQARA_BASE_URL"
ENV_ACCESS_TOKEN = "AQARA_ACCESS_TOKEN"
ENV_REFRESH_TOKEN = "AQARA_REFRESH_TOKEN"
ENV_LANG = "AQARA_LANG"
ENV_PROXY = "AQARA_PROXY"
ENV_DEBUG_WIRE = "AQARA_DEBUG_WIRE"
