from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from PySide6 import QtCore, QtNetwork

from ..config import Settings
from ..errors import ApiError

__all__ = [
    "Transport",
    "QtHttpTransport",
]

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        """Send one request and return the decoded JSON body, raising ``ApiError`` on failure."""


class QtHttpTransport:
    """JSON over HTTP through ``QNetworkAccessManager``.

    Each call spins a local event loop until the reply finishes, so callers
    stay on the GUI thread and see one request at a time.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        manager: Optional[QtNetwork.QNetworkAccessManager] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._manager = manager or QtNetwork.QNetworkAccessManager()

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.settings.api_base_url.rstrip('/')}/{path.lstrip('/')}"

    def request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        method = method.upper()
        request = QtNetwork.QNetworkRequest(QtCore.QUrl(self.url_for(path)))
        request.setHeader(QtNetwork.QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json")
        request.setRawHeader(QtCore.QByteArray(b"Accept"), QtCore.QByteArray(b"application/json"))
        request.setTransferTimeout(self.settings.timeout_ms)

        logger.debug("%s %s", method, path)
        verb = QtCore.QByteArray(method.encode("ascii"))
        if payload is None:
            reply = self._manager.sendCustomRequest(request, verb)
        else:
            body = QtCore.QByteArray(json.dumps(payload).encode("utf-8"))
            reply = self._manager.sendCustomRequest(request, verb, body)

        loop = QtCore.QEventLoop()
        reply.finished.connect(loop.quit)
        if not reply.isFinished():
            loop.exec()

        try:
            status = reply.attribute(QtNetwork.QNetworkRequest.Attribute.HttpStatusCodeAttribute)
            raw = bytes(reply.readAll().data())
            network_error = reply.error()
            error_string = reply.errorString()
        finally:
            reply.deleteLater()

        body = _decode(raw)
        if status is None:
            if network_error != QtNetwork.QNetworkReply.NetworkError.NoError:
                raise ApiError(error_string or "Network request failed", method=method, path=path)
            return body
        status = int(status)
        if status >= 400:
            message = body.get("message") if isinstance(body, dict) else None
            raise ApiError(message or error_string or "Request failed", status=status, method=method, path=path)
        return body


def _decode(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Response body is not JSON (%d bytes)", len(raw))
        return None
