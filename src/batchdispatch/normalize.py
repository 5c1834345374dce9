"""
Normalization of raw transport outcomes into ``ResponseRecord`` values.
"""

from __future__ import annotations

import typing as t
from collections.abc import Mapping

import httpx

from batchdispatch.models import ErrorInfo, ResponseRecord, TransportError


def normalize(raw: t.Any, *, url: str, args: dict[str, t.Any] | None = None) -> ResponseRecord:
    """
    Convert one transport outcome into a response record.

    Parameters
    ----------
    raw : typing.Any
        A ``TransportError`` value, an exception raised by the transport, or a
        successful payload (``httpx.Response`` or mapping).
    url : str
        Request URL.
    args : dict[str, typing.Any] | None, optional
        Request arguments echoed into the record.

    Returns
    -------
    ResponseRecord
        Normalized record. ``error`` is set for the two failure shapes.
    """
    args = dict(args or {})

    if isinstance(raw, TransportError):
        return ResponseRecord(
            url=url,
            body=raw.message,
            status=_status_from_code(code=raw.code),
            error=ErrorInfo(code=raw.code, message=raw.message),
            args=args,
        )

    if isinstance(raw, BaseException):
        code = _exception_code(error=raw)
        message = str(object=raw) or type(raw).__name__
        return ResponseRecord(
            url=url,
            body=message,
            status=code,
            error=ErrorInfo(code=f"http_request_failed_{code}", message=message),
            args=args,
        )

    return ResponseRecord(
        url=url,
        body=retrieve_body(raw=raw),
        status=retrieve_status(raw=raw) or 200,
        headers=retrieve_headers(raw=raw),
        cookies=retrieve_cookies(raw=raw),
        error=None,
        args=args,
    )


def _status_from_code(*, code: str) -> int:
    try:
        return int(code)
    except (TypeError, ValueError):
        return 0


def _exception_code(*, error: BaseException) -> int:
    """
    Pick a numeric code off an exception.

    ``httpx.HTTPStatusError`` carries the response status. Otherwise the first
    integer among ``code``, ``status_code`` and ``errno`` wins, then ``0``.
    """
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attribute in ("code", "status_code", "errno"):
        value = getattr(error, attribute, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


def retrieve_body(*, raw: t.Any) -> str:
    if isinstance(raw, httpx.Response):
        return raw.text
    if isinstance(raw, Mapping):
        body = raw.get("body", "")
        if isinstance(body, bytes):
            return body.decode(encoding="utf-8", errors="replace")
        return "" if body is None else str(object=body)
    return ""


def retrieve_status(*, raw: t.Any) -> int:
    if isinstance(raw, httpx.Response):
        return raw.status_code
    if isinstance(raw, Mapping):
        status = raw.get("status", raw.get("status_code"))
        try:
            return int(status or 0)
        except (TypeError, ValueError):
            return 0
    return 0


def retrieve_headers(*, raw: t.Any) -> dict[str, str]:
    if isinstance(raw, httpx.Response):
        return {key.lower(): value for key, value in raw.headers.items()}
    if isinstance(raw, Mapping):
        headers = raw.get("headers") or {}
        return {str(object=key).lower(): str(object=value) for key, value in headers.items()}
    return {}


def retrieve_cookies(*, raw: t.Any) -> dict[str, str]:
    if isinstance(raw, httpx.Response):
        # Cookie extraction needs the originating request; stubs may lack one.
        if getattr(raw, "_request", None) is None:
            return {}
        return dict(raw.cookies.items())
    if isinstance(raw, Mapping):
        cookies = raw.get("cookies") or {}
        return {str(object=key): str(object=value) for key, value in dict(cookies).items()}
    return {}
