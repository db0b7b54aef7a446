"""Session cookie capture and propagation for the auth callback.

The Supabase auth client persists sessions through a storage adapter. During
the callback that adapter is ``RequestCookieStorage``: reads come from the
inbound request cookies, writes and removals are recorded in a ``CookieJar``.
Whatever response the route finally returns gets the whole jar copied onto it
by ``propagate_cookies``.
"""

import base64
import json
import logging
from collections.abc import Mapping
from urllib.parse import urlparse

from starlette.responses import Response
from supabase_auth import SyncSupportedStorage

from src.listings.config import settings
from src.listings.features.auth_callback.models import CookieMutation

logger = logging.getLogger(__name__)

PROVIDER_STORAGE_KEY = "supabase.auth.token"
CODE_VERIFIER_SUFFIX = "-code-verifier"
# Appended by the browser client to verifiers of password recovery flows
PASSWORD_RECOVERY_MARKER = "/PASSWORD_RECOVERY"
BASE64_PREFIX = "base64-"
MAX_CHUNK_SIZE = 3180


def project_ref(supabase_url: str) -> str:
    """Project reference (first host label) of a Supabase URL."""
    host = urlparse(supabase_url).hostname or ""
    return host.split(".")[0] or "local"


def storage_key_to_cookie_name(key: str, supabase_url: str | None = None) -> str:
    """
    Map an auth storage key to the cookie name the browser client uses.

    ``supabase.auth.token`` becomes ``sb-<ref>-auth-token`` and
    ``supabase.auth.token-code-verifier`` becomes ``sb-<ref>-auth-token-code-verifier``.
    """
    cookie_base = f"sb-{project_ref(supabase_url or settings.supabase_url)}-auth-token"
    if key.startswith(PROVIDER_STORAGE_KEY):
        return cookie_base + key[len(PROVIDER_STORAGE_KEY) :]
    return key


def encode_cookie_value(value: str) -> str:
    return BASE64_PREFIX + base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cookie_value(value: str) -> str:
    if not value.startswith(BASE64_PREFIX):
        return value
    payload = value[len(BASE64_PREFIX) :]
    payload += "=" * (-len(payload) % 4)
    return base64.urlsafe_b64decode(payload.encode("ascii")).decode("utf-8")


def unwrap_json_string(value: str) -> str:
    """
    Undo ``JSON.stringify`` on plain string values.

    The browser client stores every value as JSON, so a code verifier arrives
    as ``"abc"`` with its quotes. Session objects and raw strings pass through.
    """
    try:
        decoded = json.loads(value)
    except ValueError:
        return value
    return decoded if isinstance(decoded, str) else value


class CookieJar:
    """Ordered record of every cookie mutation made while handling one request."""

    def __init__(
        self,
        secure: bool | None = None,
        domain: str | None = None,
    ) -> None:
        self.secure = settings.cookie_secure if secure is None else secure
        self.domain = domain if domain is not None else settings.auth_cookie_domain
        self._mutations: dict[str, CookieMutation] = {}

    def set(self, name: str, value: str, max_age: int | None = None) -> None:
        self._mutations[name] = CookieMutation(
            name=name,
            value=value,
            max_age=max_age,
            path="/",
            domain=self.domain,
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )

    def remove(self, name: str) -> None:
        self.set(name, "", max_age=0)

    @property
    def mutations(self) -> list[CookieMutation]:
        """Latest mutation per cookie name, in first-touched order."""
        return list(self._mutations.values())


class RequestCookieStorage(SyncSupportedStorage):
    """
    Auth client storage backed by request cookies and a ``CookieJar``.

    Values larger than a single cookie are split across ``<name>.0``,
    ``<name>.1``, ... chunks, the same layout the browser client reads.
    """

    def __init__(
        self,
        request_cookies: Mapping[str, str],
        jar: CookieJar,
        supabase_url: str | None = None,
    ) -> None:
        self.request_cookies = dict(request_cookies)
        self.jar = jar
        self.supabase_url = supabase_url
        # Values written during this request, visible to later reads
        self._written: dict[str, str | None] = {}
        # Cookies (whole or chunked) each name currently occupies in the jar
        self._live_cookies: dict[str, set[str]] = {}

    def _cookie_name(self, key: str) -> str:
        return storage_key_to_cookie_name(key, self.supabase_url)

    def _chunk_names(self, name: str) -> list[str]:
        names = []
        index = 0
        while f"{name}.{index}" in self.request_cookies:
            names.append(f"{name}.{index}")
            index += 1
        return names

    def _existing_cookies(self, name: str) -> set[str]:
        """Every cookie holding ``name``: from the request, or written earlier in it."""
        if name in self._live_cookies:
            return set(self._live_cookies[name])
        existing = set(self._chunk_names(name))
        if name in self.request_cookies:
            existing.add(name)
        return existing

    def get_item(self, key: str) -> str | None:
        name = self._cookie_name(key)
        if name in self._written:
            return self._written[name]

        raw = self.request_cookies.get(name)
        if raw is None:
            chunks = self._chunk_names(name)
            if not chunks:
                return None
            raw = "".join(self.request_cookies[chunk] for chunk in chunks)

        try:
            value = decode_cookie_value(raw)
        except (ValueError, UnicodeDecodeError):
            logger.warning(f"Ignoring undecodable auth cookie {name}", extra={"cookie": name})
            return None

        value = unwrap_json_string(value)
        if key.endswith(CODE_VERIFIER_SUFFIX):
            value = value.removesuffix(PASSWORD_RECOVERY_MARKER)
        return value

    def set_item(self, key: str, value: str) -> None:
        name = self._cookie_name(key)
        self._written[name] = value
        encoded = encode_cookie_value(value)

        if len(encoded) <= MAX_CHUNK_SIZE:
            written = {name}
            self.jar.set(name, encoded)
        else:
            written = set()
            for index in range(0, len(encoded), MAX_CHUNK_SIZE):
                chunk_name = f"{name}.{index // MAX_CHUNK_SIZE}"
                self.jar.set(chunk_name, encoded[index : index + MAX_CHUNK_SIZE])
                written.add(chunk_name)

        for stale_name in sorted(self._existing_cookies(name) - written):
            self.jar.remove(stale_name)
        self._live_cookies[name] = written

    def remove_item(self, key: str) -> None:
        name = self._cookie_name(key)
        self._written[name] = None
        for stale_name in sorted(self._existing_cookies(name) | {name}):
            self.jar.remove(stale_name)
        self._live_cookies[name] = set()


def propagate_cookies(response: Response, mutations: list[CookieMutation]) -> Response:
    """
    Copy every accumulated cookie mutation onto the outgoing response.

    This is the only place cookies are attached; every exit of the callback
    route goes through it.

    Args:
        response: Response about to be returned
        mutations: Cookie mutations accumulated during the request

    Returns:
        The same response, for chaining
    """
    for cookie in mutations:
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            domain=cookie.domain,
            secure=cookie.secure,
            httponly=cookie.httponly,
            samesite=cookie.samesite,
        )
    return response
