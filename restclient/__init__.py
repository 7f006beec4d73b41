"""
basic-rest-client: a thin HTTP/REST client.

Verb methods (GET, POST, PUT, DELETE, HEAD) in blocking and asyncio
flavours, form parameter encoding, multipart file upload, basic
authentication, request logging and observer hooks, all running on a
pluggable request handler.
"""

from restclient.clients.base import Connection, ProtocolError, RequestHandler
from restclient.clients.events import RequestEvents
from restclient.clients.http1 import HttpRequestHandler
from restclient.clients.rest import RestClient
from restclient.errors import (
    InvalidHeaderError,
    InvalidUrlError,
    RestClientError,
    TransportError,
    UploadError,
)
from restclient.http.multipart import HttpFile, MultipartEncoder
from restclient.http.parameters import ParameterMap
from restclient.http.request import HttpDelete, HttpGet, HttpHead, HttpPost, HttpPut, HttpRequest
from restclient.http.response import STATUS_NO_RESPONSE, STATUS_TIMEOUT, HttpResponse
from restclient.utils.logging import ConsoleRequestLogger, RequestLogger, setup_logging

__version__ = '0.1.0'

__all__ = [
    'Connection',
    'ConsoleRequestLogger',
    'HttpDelete',
    'HttpFile',
    'HttpGet',
    'HttpHead',
    'HttpPost',
    'HttpPut',
    'HttpRequest',
    'HttpRequestHandler',
    'HttpResponse',
    'InvalidHeaderError',
    'InvalidUrlError',
    'MultipartEncoder',
    'ParameterMap',
    'ProtocolError',
    'RequestEvents',
    'RequestHandler',
    'RequestLogger',
    'RestClient',
    'RestClientError',
    'STATUS_NO_RESPONSE',
    'STATUS_TIMEOUT',
    'TransportError',
    'UploadError',
    'setup_logging',
]
