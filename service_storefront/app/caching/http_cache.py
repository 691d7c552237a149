"""
HTTP cache-control helpers for storefront responses.
"""

import hashlib
from typing import Optional

from fastapi import Response


class HttpCacheControl:
    """Build and apply Cache-Control / ETag headers."""

    @staticmethod
    def directives(max_age: int,
                   s_max_age: Optional[int] = None,
                   stale_while_revalidate: Optional[int] = None,
                   stale_if_error: Optional[int] = None,
                   must_revalidate: bool = False,
                   private: bool = False) -> str:
        """Cache-Control value for a cacheable response.

        stale-while-revalidate and stale-if-error default to 2x and 5x max_age.
        """
        if stale_while_revalidate is None:
            stale_while_revalidate = max_age * 2
        if stale_if_error is None:
            stale_if_error = max_age * 5

        parts = ["private" if private else "public"]
        if must_revalidate:
            parts.append("must-revalidate")
        parts.append(f"max-age={max_age}")
        if s_max_age:
            parts.append(f"s-maxage={s_max_age}")
        if stale_while_revalidate:
            parts.append(f"stale-while-revalidate={stale_while_revalidate}")
        if stale_if_error:
            parts.append(f"stale-if-error={stale_if_error}")
        return ", ".join(parts)

    @classmethod
    def set_headers(cls, response: Response, max_age: int, **options) -> None:
        response.headers["Cache-Control"] = cls.directives(max_age, **options)

    @staticmethod
    def set_no_cache(response: Response) -> None:
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"

    @staticmethod
    def set_etag(response: Response, content: bytes) -> str:
        etag = f'W/"{hashlib.md5(content, usedforsecurity=False).hexdigest()}"'
        response.headers["ETag"] = etag
        return etag
