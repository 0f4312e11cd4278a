from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_ASYNC_SCHEME = "postgresql+psycopg"
_TRUTHY_SSL = {"1", "true", "yes", "on"}
_PASSTHROUGH_SSLMODES = {"disable", "require", "verify-ca", "verify-full"}


def normalize_database_url(url: str) -> str:
    """Point plain/asyncpg Postgres URLs at the psycopg async driver and translate ``ssl=``."""
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+asyncpg"}:
        scheme = _ASYNC_SCHEME

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_value = None
    for key in list(query):
        if key.lower() == "ssl":
            ssl_value = query.pop(key).strip().lower()
    if ssl_value is not None and "sslmode" not in query:
        if ssl_value in _PASSTHROUGH_SSLMODES:
            query["sslmode"] = ssl_value
        elif ssl_value in _TRUTHY_SSL:
            query["sslmode"] = "require"
        else:
            query["sslmode"] = "disable"

    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
