import pytest

from relay.networking.assembly import (
    CachePolicy,
    RequestDescriptor,
    assemble,
    merge_headers,
    resolve_url,
)
from relay.networking.config import ServerConfig
from relay.networking.errors import BadURL
from relay.networking.method import Method
from relay.networking.send import Send
from relay.networking.take import Take


V1 = "https://api.example.com/v1"
ESCAPED_SEARCH = "https://api.example.com/search%3Fx=1"


def _config(**kwargs):
    kwargs.setdefault("base", "https://api.example.com")
    return ServerConfig(**kwargs)


@pytest.mark.parametrize(
    ("base", "path", "expected"),
    [
        ("https://api.example.com", "", "https://api.example.com"),
        ("https://api.example.com/v1/", "", "https://api.example.com/v1/"),
        ("https://api.example.com", "/ping", "https://api.example.com/ping"),
        ("https://api.example.com/", "/ping", "https://api.example.com/ping"),
        ("https://api.example.com", "ping", "https://api.example.com/ping"),
        (V1, "ping", V1 + "/ping"),
        (V1 + "/", "ping", V1 + "/ping"),
        (V1, "/ping", V1 + "/ping"),
        (V1, "users/7/", V1 + "/users/7/"),
        ("https://api.example.com", "search?x=1", ESCAPED_SEARCH),
        (V1, "a b#c", V1 + "/a%20b%23c"),
        (V1, "100%", V1 + "/100%25"),
    ],
)
def test_resolve_url(base, path, expected):
    assert resolve_url(base, path).url == expected


def test_merge_headers_ignores_absent_values_and_empty_result():
    assert merge_headers({"A": "1"}, {"A": None}) == {"A": "1"}
    assert merge_headers(None, {}) is None
    assert merge_headers({"A": "1"}, {"A": "2", "B": None}) == {"A": "2"}
    assert merge_headers({"B": None}) is None


@pytest.mark.asyncio
async def test_assemble_post_ping():
    descriptor = await assemble(
        _config(), Method.POST, "/ping", send=Send.void(), take=Take.void()
    )

    assert isinstance(descriptor, RequestDescriptor)
    assert descriptor.method == "POST"
    assert descriptor.url == "https://api.example.com/ping"
    assert descriptor.headers == {"Accept": "*/*"}
    assert descriptor.body is None
    assert descriptor.timeout == 60.0
    assert descriptor.cache is CachePolicy.RELOAD_IGNORING_CACHE


@pytest.mark.asyncio
async def test_assemble_accepts_plain_method_string():
    descriptor = await assemble(
        _config(), "get", "/ping", send=Send.void(), take=Take.void()
    )

    assert descriptor.method == "GET"


@pytest.mark.asyncio
async def test_call_site_query_wins_and_empty_query_is_omitted():
    config = _config(query={"lang": "en", "v": "1"})

    descriptor = await assemble(
        config,
        Method.GET,
        "/items",
        query={"lang": "de"},
        send=Send.void(),
        take=Take.void(),
    )
    assert descriptor.url == "https://api.example.com/items?lang=de&v=1"

    bare = await assemble(
        _config(), Method.GET, "/items", send=Send.void(), take=Take.void()
    )
    assert "?" not in bare.url


@pytest.mark.asyncio
async def test_query_values_are_percent_encoded():
    descriptor = await assemble(
        _config(),
        Method.GET,
        "/search",
        query={"q": "a b&c"},
        send=Send.void(),
        take=Take.void(),
    )

    assert descriptor.url == "https://api.example.com/search?q=a+b%26c"


@pytest.mark.asyncio
async def test_query_marker_in_path_is_escaped_before_query():
    descriptor = await assemble(
        _config(),
        Method.GET,
        "search?x=1",
        query={"a": "b"},
        send=Send.void(),
        take=Take.void(),
    )

    assert descriptor.url == ESCAPED_SEARCH + "?a=b"


@pytest.mark.asyncio
async def test_header_precedence():
    config = _config(
        headers={
            "X-Trace": "config",
            "Content-Type": "text/plain",
            "Accept": "x",
        }
    )

    descriptor = await assemble(
        config,
        Method.POST,
        "/items",
        headers={"X-Trace": "call", "Content-Type": "text/csv"},
        send=Send.json({"a": 1}),
        take=Take.json(dict),
    )

    assert descriptor.headers == {
        "X-Trace": "call",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


@pytest.mark.asyncio
async def test_custom_take_without_mime_type_keeps_config_accept():
    config = _config(headers={"Accept": "text/html"})
    take = Take.custom(None, lambda config, data, response: data)

    descriptor = await assemble(
        config, Method.GET, "/page", send=Send.void(), take=take
    )

    assert descriptor.headers == {"Accept": "text/html"}


@pytest.mark.asyncio
async def test_header_map_omitted_when_empty():
    take = Take.custom(None, lambda config, data, response: data)

    descriptor = await assemble(
        _config(), Method.GET, "/page", send=Send.void(), take=take
    )

    assert descriptor.headers is None


@pytest.mark.asyncio
async def test_timeout_override_and_base_override():
    descriptor = await assemble(
        _config(timeout=30),
        Method.GET,
        "/status",
        base="https://other.example.org",
        timeout=2.5,
        send=Send.void(),
        take=Take.void(),
    )

    assert descriptor.url == "https://other.example.org/status"
    assert descriptor.timeout == 2.5


@pytest.mark.asyncio
async def test_customizer_runs_last():
    def customize(descriptor):
        descriptor.headers = {**(descriptor.headers or {}), "X-Signed": "yes"}
        descriptor.cache = CachePolicy.USE_PROTOCOL_CACHE

    descriptor = await assemble(
        _config(request=customize),
        Method.GET,
        "/ping",
        send=Send.void(),
        take=Take.void(),
    )

    assert descriptor.headers == {"Accept": "*/*", "X-Signed": "yes"}
    assert descriptor.cache.directive is None


@pytest.mark.asyncio
async def test_bad_base_override_raises_bad_url():
    with pytest.raises(BadURL):
        await assemble(
            _config(),
            Method.GET,
            "/ping",
            base="https://api.example.com:notaport",
            send=Send.void(),
            take=Take.void(),
        )


@pytest.mark.asyncio
async def test_relative_base_override_raises_bad_url():
    with pytest.raises(BadURL) as excinfo:
        await assemble(
            _config(),
            Method.GET,
            "ping",
            base="not-a-url",
            send=Send.void(),
            take=Take.void(),
        )

    assert excinfo.value.components["scheme"] is None
    assert excinfo.value.components["path"] == "/ping"


@pytest.mark.asyncio
async def test_encoding_failure_propagates_unchanged():
    class Boom(Exception):
        pass

    def explode(config):
        raise Boom("nope")

    with pytest.raises(Boom):
        await assemble(
            _config(),
            Method.POST,
            "/ping",
            send=Send.custom(explode),
            take=Take.void(),
        )
