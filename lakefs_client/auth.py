"""Authentication schemes and the credential store.

Each scheme is a small value object that knows how to turn the current
credentials into a contribution (headers, query pairs, cookies). An
operation lists the scheme names it accepts; every listed scheme whose
credential is set contributes, the rest are skipped. The server decides
whether what arrived was sufficient and answers 401 if not.
"""

from __future__ import annotations

import base64
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from lakefs_client.models import CredentialsConfig, ParamLocation

logger = logging.getLogger(__name__)

TokenSupplier = Callable[[], str | None]


class CredentialStore:
    """Process-wide credentials, read on demand by the auth schemes.

    Calls only read from the store. Updates (token refresh, re-login) are
    made by whoever owns the credentials, through the setters below; the
    lock keeps a reader from seeing a half-updated username/password pair.

    access_token may be a string or a zero-argument callable returning the
    current token, so a refreshing provider can be plugged in.
    """

    def __init__(
        self,
        username: str | None = None,
        password: str | None = None,
        access_token: str | TokenSupplier | None = None,
        api_keys: Mapping[str, str] | None = None,
        api_key_prefixes: Mapping[str, str] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._username = username
        self._password = password
        self._access_token = access_token
        self._api_keys = dict(api_keys or {})
        self._api_key_prefixes = dict(api_key_prefixes or {})

    @classmethod
    def from_config(cls, config: CredentialsConfig) -> CredentialStore:
        return cls(
            username=config.username,
            password=config.password,
            access_token=config.access_token,
            api_keys=config.api_keys,
            api_key_prefixes=config.api_key_prefixes,
        )

    def basic_credentials(self) -> tuple[str, str] | None:
        """(username, password), or None unless both are set."""
        with self._lock:
            if self._username is None or self._password is None:
                return None
            return self._username, self._password

    def access_token(self) -> str | None:
        with self._lock:
            token = self._access_token
        if callable(token):
            return token()
        return token

    def api_key(self, scheme_name: str) -> str | None:
        """API key for a scheme with its configured prefix, or None."""
        with self._lock:
            key = self._api_keys.get(scheme_name)
            prefix = self._api_key_prefixes.get(scheme_name)
        if key is None:
            return None
        return f"{prefix} {key}" if prefix else key

    def set_basic_credentials(self, username: str | None, password: str | None) -> None:
        with self._lock:
            self._username = username
            self._password = password

    def set_access_token(self, token: str | TokenSupplier | None) -> None:
        with self._lock:
            self._access_token = token

    def set_api_key(self, scheme_name: str, key: str | None, prefix: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._api_keys.pop(scheme_name, None)
            else:
                self._api_keys[scheme_name] = key
            if prefix is None:
                self._api_key_prefixes.pop(scheme_name, None)
            else:
                self._api_key_prefixes[scheme_name] = prefix


@dataclass
class AuthContribution:
    """What the selected schemes add to a request."""

    headers: dict[str, str] = field(default_factory=dict)
    query: list[tuple[str, str]] = field(default_factory=list)
    cookies: dict[str, str] = field(default_factory=dict)

    def merge(self, other: AuthContribution) -> None:
        self.headers.update(other.headers)
        self.query.extend(other.query)
        self.cookies.update(other.cookies)

    def __bool__(self) -> bool:
        return bool(self.headers or self.query or self.cookies)


class AuthScheme:
    """Base class for authentication schemes."""

    def contribute(self, store: CredentialStore) -> AuthContribution | None:
        """Return this scheme's contribution, or None if its credential is unset."""
        raise NotImplementedError


@dataclass(frozen=True)
class HttpBasicAuth(AuthScheme):
    """HTTP basic authentication from the store's username and password."""

    def contribute(self, store: CredentialStore) -> AuthContribution | None:
        credentials = store.basic_credentials()
        if credentials is None:
            return None
        username, password = credentials
        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        return AuthContribution(headers={"Authorization": f"Basic {token}"})


@dataclass(frozen=True)
class HttpBearerAuth(AuthScheme):
    """Bearer token authentication (JWT)."""

    def contribute(self, store: CredentialStore) -> AuthContribution | None:
        token = store.access_token()
        if not token:
            return None
        return AuthContribution(headers={"Authorization": f"Bearer {token}"})


@dataclass(frozen=True)
class ApiKeyAuth(AuthScheme):
    """API key sent in a header, query parameter, or cookie.

    Attributes:
        credential_name: Key into the store's api_keys (the scheme name).
        location: HEADER, QUERY, or COOKIE.
        param_name: Header, query parameter, or cookie name on the wire.
    """

    credential_name: str
    location: ParamLocation
    param_name: str

    def __post_init__(self) -> None:
        if self.location not in (ParamLocation.HEADER, ParamLocation.QUERY, ParamLocation.COOKIE):
            raise ValueError(f"API key cannot be sent in {self.location.value}")

    def contribute(self, store: CredentialStore) -> AuthContribution | None:
        key = store.api_key(self.credential_name)
        if not key:
            return None
        if self.location == ParamLocation.HEADER:
            return AuthContribution(headers={self.param_name: key})
        if self.location == ParamLocation.QUERY:
            return AuthContribution(query=[(self.param_name, key)])
        return AuthContribution(cookies={self.param_name: key})


def default_auth_schemes() -> dict[str, AuthScheme]:
    """Security schemes declared by the lakeFS API."""
    return {
        "basic_auth": HttpBasicAuth(),
        "cookie_auth": ApiKeyAuth("cookie_auth", ParamLocation.COOKIE, "internal_auth_session"),
        "jwt_token": HttpBearerAuth(),
        "oidc_auth": ApiKeyAuth("oidc_auth", ParamLocation.COOKIE, "oidc_auth_session"),
    }


def apply_auth(
    auth_names: Sequence[str],
    schemes: Mapping[str, AuthScheme],
    store: CredentialStore,
) -> AuthContribution:
    """Collect the contributions of every listed scheme that has a credential.

    Raises:
        ValueError: If a listed scheme is not registered.
    """
    result = AuthContribution()
    for name in auth_names:
        scheme = schemes.get(name)
        if scheme is None:
            raise ValueError(f"Authentication undefined: {name}")
        contribution = scheme.contribute(store)
        if contribution is None:
            logger.debug("auth scheme %s has no credential, skipping", name)
            continue
        result.merge(contribution)
    return result
