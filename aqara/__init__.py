"""Aqara Open API client."""

import logging

from .version import __version__

# Errors
from .errors import (
    AqaraError,
    ConfigError,
    AuthError,
    TransportError,
    ApiError,
    RateLimitedError,
    ProtocolError,
)

# Models
from .models import (
    Credentials,
    AuthCodeGrant,
    Session,
    IssuedToken,
    SignedRequest,
    Envelope,
)

# Constants
from .constants import Region, resolve

# Signing
from .protocol import sign, sign_request, generate_nonce

# Token lifecycle
from .tokens import TokenManager

# Construction and dispatch
from .config import ClientBuilder, ClientConfig
from .api import AqaraAPI

# Resources
from .services import Page, Position, PositionPage, Device, Scene

# Logging
from .log import configure_logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    '__version__',
    # Errors
    'AqaraError',
    'ConfigError',
    'AuthError',
    'TransportError',
    'ApiError',
    'RateLimitedError',
    'ProtocolError',
    # Models
    'Credentials',
    'AuthCodeGrant',
    'Session',
    'IssuedToken',
    'SignedRequest',
    'Envelope',
    # Constants
    'Region',
    'resolve',
    # Signing
    'sign',
    'sign_request',
    'generate_nonce',
    # Tokens
    'TokenManager',
    # Client
    'ClientBuilder',
    'ClientConfig',
    'AqaraAPI',
    # Resources
    'Page',
    'Position',
    'PositionPage',
    'Device',
    'Scene',
    # Logging
    'configure_logging',
]
