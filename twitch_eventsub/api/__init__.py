from .auth import AppTokenProvider, StaticTokenProvider, TokenProvider
from .data import DataObject, parse_timestamp
from .eventsub import HelixEventSubApi, HelixEventSubSubscription
from .helix import HelixClient
from .users import HelixUser, HelixUsersApi

__all__ = [
    "AppTokenProvider",
    "DataObject",
    "HelixClient",
    "HelixEventSubApi",
    "HelixEventSubSubscription",
    "HelixUser",
    "HelixUsersApi",
    "StaticTokenProvider",
    "TokenProvider",
    "parse_timestamp",
]
