"""Tests for session cookie capture and propagation."""

import json

from starlette.responses import RedirectResponse

from src.listings.features.auth_callback.cookies import (
    MAX_CHUNK_SIZE,
    CookieJar,
    RequestCookieStorage,
    decode_cookie_value,
    encode_cookie_value,
    project_ref,
    propagate_cookies,
    storage_key_to_cookie_name,
)

SUPABASE_URL = "https://abcd1234.supabase.co"


def make_storage(request_cookies=None, jar=None) -> RequestCookieStorage:
    if jar is None:
        jar = CookieJar(secure=True)
    return RequestCookieStorage(request_cookies or {}, jar, SUPABASE_URL)


def test_project_ref_from_url():
    assert project_ref(SUPABASE_URL) == "abcd1234"


def test_storage_keys_map_to_browser_cookie_names():
    assert storage_key_to_cookie_name("supabase.auth.token", SUPABASE_URL) == "sb-abcd1234-auth-token"
    assert (
        storage_key_to_cookie_name("supabase.auth.token-code-verifier", SUPABASE_URL)
        == "sb-abcd1234-auth-token-code-verifier"
    )
    assert storage_key_to_cookie_name("custom", SUPABASE_URL) == "custom"


def test_encoded_values_decode_back():
    value = '{"access_token": "a.b.c", "refresh_token": "r"}'

    encoded = encode_cookie_value(value)

    assert encoded.startswith("base64-")
    assert decode_cookie_value(encoded) == value
    assert decode_cookie_value("plain-verifier") == "plain-verifier"


def test_reads_code_verifier_from_request_cookies():
    storage = make_storage(
        {"sb-abcd1234-auth-token-code-verifier": encode_cookie_value("verifier-123")}
    )

    assert storage.get_item("supabase.auth.token-code-verifier") == "verifier-123"
    assert storage.get_item("supabase.auth.token") is None


def test_browser_written_code_verifier_is_unwrapped():
    storage = make_storage(
        {"sb-abcd1234-auth-token-code-verifier": encode_cookie_value(json.dumps("verifier-123"))}
    )

    assert storage.get_item("supabase.auth.token-code-verifier") == "verifier-123"


def test_recovery_marker_is_stripped_from_code_verifier():
    storage = make_storage(
        {
            "sb-abcd1234-auth-token-code-verifier": encode_cookie_value(
                json.dumps("verifier-123/PASSWORD_RECOVERY")
            )
        }
    )

    assert storage.get_item("supabase.auth.token-code-verifier") == "verifier-123"


def test_session_json_is_returned_as_stored():
    session = json.dumps({"access_token": "abc", "refresh_token": "r"})
    storage = make_storage({"sb-abcd1234-auth-token": encode_cookie_value(session)})

    assert storage.get_item("supabase.auth.token") == session


def test_set_item_records_secure_cookie_and_is_readable():
    jar = CookieJar(secure=True)
    storage = make_storage(jar=jar)

    storage.set_item("supabase.auth.token", '{"access_token": "abc"}')

    assert storage.get_item("supabase.auth.token") == '{"access_token": "abc"}'
    [cookie] = jar.mutations
    assert cookie.name == "sb-abcd1234-auth-token"
    assert cookie.httponly is True
    assert cookie.secure is True
    assert cookie.samesite == "lax"
    assert cookie.path == "/"
    assert cookie.max_age is None


def test_remove_item_expires_cookie():
    jar = CookieJar(secure=False)
    storage = make_storage({"sb-abcd1234-auth-token-code-verifier": "v"}, jar)

    storage.remove_item("supabase.auth.token-code-verifier")

    [cookie] = jar.mutations
    assert cookie.name == "sb-abcd1234-auth-token-code-verifier"
    assert cookie.value == ""
    assert cookie.max_age == 0
    assert storage.get_item("supabase.auth.token-code-verifier") is None


def test_large_session_is_chunked_and_reassembled():
    jar = CookieJar(secure=True)
    storage = make_storage(jar=jar)
    value = "x" * (MAX_CHUNK_SIZE * 2)

    storage.set_item("supabase.auth.token", value)

    names = [cookie.name for cookie in jar.mutations]
    assert names[0] == "sb-abcd1234-auth-token.0"
    assert all(name.startswith("sb-abcd1234-auth-token.") for name in names)
    assert len(names) >= 2

    next_request = make_storage({cookie.name: cookie.value for cookie in jar.mutations})
    assert next_request.get_item("supabase.auth.token") == value


def test_small_session_clears_stale_chunks():
    jar = CookieJar(secure=True)
    storage = make_storage(
        {"sb-abcd1234-auth-token.0": "base64-", "sb-abcd1234-auth-token.1": "abc"}, jar
    )

    storage.set_item("supabase.auth.token", "small")

    mutations = {cookie.name: cookie for cookie in jar.mutations}
    assert mutations["sb-abcd1234-auth-token"].value == encode_cookie_value("small")
    assert mutations["sb-abcd1234-auth-token.0"].max_age == 0
    assert mutations["sb-abcd1234-auth-token.1"].max_age == 0


def test_small_write_after_chunked_write_clears_chunks():
    jar = CookieJar(secure=True)
    storage = make_storage(jar=jar)

    storage.set_item("supabase.auth.token", "x" * (MAX_CHUNK_SIZE * 2))
    storage.set_item("supabase.auth.token", "small")

    live = sorted(cookie.name for cookie in jar.mutations if cookie.max_age != 0)
    assert live == ["sb-abcd1234-auth-token"]
    expired = [cookie.name for cookie in jar.mutations if cookie.max_age == 0]
    assert "sb-abcd1234-auth-token.0" in expired


def test_chunked_write_after_small_write_expires_whole_cookie():
    jar = CookieJar(secure=True)
    storage = make_storage(jar=jar)

    storage.set_item("supabase.auth.token", "small")
    storage.set_item("supabase.auth.token", "x" * (MAX_CHUNK_SIZE * 2))

    mutations = {cookie.name: cookie for cookie in jar.mutations}
    assert mutations["sb-abcd1234-auth-token"].max_age == 0
    assert mutations["sb-abcd1234-auth-token.0"].max_age is None


def test_jar_keeps_latest_mutation_per_name():
    jar = CookieJar(secure=True)

    jar.set("a", "1")
    jar.set("b", "2")
    jar.remove("a")

    assert [(c.name, c.value, c.max_age) for c in jar.mutations] == [("a", "", 0), ("b", "2", None)]


def test_propagate_cookies_sets_every_mutation_on_response():
    jar = CookieJar(secure=True)
    jar.set("sb-abcd1234-auth-token", "base64-abc")
    jar.remove("sb-abcd1234-auth-token-code-verifier")
    response = RedirectResponse("https://example.com/interests")

    propagate_cookies(response, jar.mutations)

    headers = [value.decode() for key, value in response.raw_headers if key == b"set-cookie"]
    assert len(headers) == 2
    assert headers[0].startswith("sb-abcd1234-auth-token=base64-abc")
    assert "HttpOnly" in headers[0]
    assert "Secure" in headers[0]
    assert "samesite=lax" in headers[0].lower()
    assert headers[1].startswith("sb-abcd1234-auth-token-code-verifier=")
    assert "Max-Age=0" in headers[1]
