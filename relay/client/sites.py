"""Address bar helpers and preset destinations."""

import math
from typing import NamedTuple, Optional
from urllib.parse import quote

HOME_URL = "https://www.google.com"
SEARCH_URL = "https://www.google.com/search?q="

# Characters encodeURIComponent leaves alone besides alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!*'()"


class Site(NamedTuple):
    name: str
    url: str


# Offered when the current destination keeps failing
ALTERNATIVE_SITES = (
    Site("DuckDuckGo", "https://duckduckgo.com"),
    Site("Bing", "https://www.bing.com"),
    Site("Yahoo", "https://search.yahoo.com"),
    Site("Baidu", "https://www.baidu.com"),
    Site("Yandex", "https://yandex.com"),
    Site("Ecosia", "https://www.ecosia.org"),
)

POPULAR_SITES = (
    Site("YouTube", "https://www.youtube.com"),
    Site("Wikipedia", "https://www.wikipedia.org"),
    Site("Reddit", "https://www.reddit.com"),
    Site("Twitter", "https://twitter.com"),
    Site("GitHub", "https://github.com"),
    Site("Stack Overflow", "https://stackoverflow.com"),
)


def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def resolve_input(text: str) -> Optional[str]:
    """Turn address bar input into a target URL.

    Input without a dot, or containing a space, becomes a web search.
    Anything else is treated as a URL and gets https:// when it has no
    http(s) scheme.

    Examples:
        >>> resolve_input("python asyncio")
        'https://www.google.com/search?q=python%20asyncio'
        >>> resolve_input("example.com")
        'https://example.com'
        >>> resolve_input("   ") is None
        True
    """
    text = text.strip()
    if not text:
        return None
    if "." not in text or " " in text:
        return SEARCH_URL + encode_component(text)
    if not text.startswith(("http://", "https://")):
        return f"https://{text}"
    return text


def build_proxy_url(target_url: str, proxy_path: str = "/api/proxy") -> str:
    """Gateway URL that loads ``target_url``."""
    return f"{proxy_path}?url={encode_component(target_url)}"


def format_countdown(seconds: float) -> str:
    """Format a retry countdown as whole seconds, rounded up."""
    return f"{max(0, math.ceil(seconds))}s"
