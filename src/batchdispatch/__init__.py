from .api import aresolve as aresolve
from .api import get as get
from .api import post as post
from .api import request as request
from .api import resolve as resolve
from .config import DispatcherSettings as DispatcherSettings
from .dispatcher import Client as Client
from .dispatcher import Dispatcher as Dispatcher
from .exceptions import DispatchError as DispatchError
from .exceptions import NestedResolveError as NestedResolveError
from .exceptions import RequestFailed as RequestFailed
from .exceptions import TransportUnavailable as TransportUnavailable
from .models import ErrorInfo as ErrorInfo
from .models import RequestDescriptor as RequestDescriptor
from .models import ResponseRecord as ResponseRecord
from .models import TransportError as TransportError
from .transport import HttpxTransport as HttpxTransport

__all__ = [
    "Client",
    "DispatchError",
    "Dispatcher",
    "DispatcherSettings",
    "ErrorInfo",
    "HttpxTransport",
    "NestedResolveError",
    "RequestDescriptor",
    "RequestFailed",
    "ResponseRecord",
    "TransportError",
    "TransportUnavailable",
    "aresolve",
    "get",
    "post",
    "request",
    "resolve",
]
