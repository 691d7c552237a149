"""
Per-request context threaded through the GraphQL pipeline.
"""

import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from storefront_shared.config import DEFAULT_FORWARDED_COOKIES

DEFAULT_LOCALE = "en"
DEFAULT_CURRENCY = "INR"


@dataclass
class RequestContext:
    """Inbound request data needed by outbound GraphQL calls.

    Created once per HTTP request; cookies only ever hold allow-listed names.
    """
    trace_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    locale: str = DEFAULT_LOCALE
    currency: str = DEFAULT_CURRENCY
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    response_cookies: List[str] = field(default_factory=list)

    @property
    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())

    def collect_response_cookies(self, set_cookie_values: Iterable[str]) -> None:
        """Keep Set-Cookie values from the API for the outbound HTTP response."""
        self.response_cookies.extend(v for v in set_cookie_values if v)


def parse_cookie_header(header: Optional[str], allowed: Iterable[str]) -> Dict[str, str]:
    """Parse a Cookie header keeping only allow-listed names."""
    allowed_names = set(allowed)
    cookies: Dict[str, str] = {}
    for part in (header or "").split(";"):
        name, sep, value = part.strip().partition("=")
        if name and name in allowed_names:
            cookies[name] = value if sep else ""
    return cookies


def build_request_context(headers: Mapping[str, str],
                          query_params: Optional[Mapping[str, str]] = None,
                          client_ip: Optional[str] = None,
                          allowed_cookies: Optional[Iterable[str]] = None) -> RequestContext:
    """Build the context for one inbound request."""
    query_params = query_params or {}
    header_map = {k.lower(): v for k, v in headers.items()}

    accept_language = header_map.get("accept-language")
    locale = query_params.get("locale") or (accept_language.split(",")[0].split(";")[0].strip() if accept_language else "")
    currency = query_params.get("currency") or DEFAULT_CURRENCY

    return RequestContext(
        trace_id=header_map.get("x-trace-id") or str(uuid.uuid4()),
        locale=(locale or DEFAULT_LOCALE).lower(),
        currency=currency.upper(),
        user_agent=header_map.get("user-agent"),
        ip=client_ip,
        cookies=parse_cookie_header(
            header_map.get("cookie"),
            DEFAULT_FORWARDED_COOKIES if allowed_cookies is None else allowed_cookies,
        ),
    )
