import typing as t
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Outbound request captured at a unit's suspension point.

    Parameters
    ----------
    url : str
        Absolute request URL.
    method : str
        Upper-cased HTTP method.
    headers : dict[str, str]
        Lower-cased request headers.
    body : bytes | str | None
        Raw request body, if any.
    cookies : dict[str, str]
        Cookies to send with the request.
    args : dict[str, typing.Any]
        Caller-level request arguments, echoed back in the response record.

    Notes
    -----
    Freezing covers the fields only. Builders hand ``args`` its own copies of
    ``headers`` and ``cookies`` so the two never share a dict.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str | None = None
    cookies: dict[str, str] = field(default_factory=dict)
    args: dict[str, t.Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransportError:
    """
    Structured error value a transport may return in place of a response.

    Parameters
    ----------
    code : str
        Error code. Numeric codes become the record status.
    message : str
        Human readable message.
    """

    code: str
    message: str


class ErrorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ResponseRecord(BaseModel):
    """Canonical, transport-independent shape of one dispatched request."""

    model_config = ConfigDict(frozen=True)

    url: str
    body: str = ""
    status: int = 200
    headers: dict[str, str] = Field(default_factory=dict)
    cookies: dict[str, str] = Field(default_factory=dict)
    error: ErrorInfo | None = None
    args: dict[str, t.Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None
