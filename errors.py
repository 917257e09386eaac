# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Error types shared by the clients, the shadow store and the sync engine
"""
from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by this project"""


class TransportError(SyncError):
    """Connection-level failure that survived every retry"""

    def __init__(self, message: str, method: Optional[str] = None, url: Optional[str] = None):
        super().__init__(message)
        self.method = method
        self.url = url


class HttpError(SyncError):
    """The remote system answered, but rejected the request"""

    def __init__(self, status: int, body: str = '', method: Optional[str] = None, url: Optional[str] = None):
        super().__init__(f"HTTP {status} for {method or '?'} {url or '?'}")
        self.status = status
        self.body = body
        self.method = method
        self.url = url

    @classmethod
    def for_status(cls, status: int, body: str = '', method: Optional[str] = None,
                   url: Optional[str] = None) -> 'HttpError':
        """Build the most specific error class for a status code"""
        if status == 404:
            return NotFoundOnRemote(status, body, method, url)
        if status == 401:
            return UnauthorizedAmbiguous(status, body, method, url)
        return cls(status, body, method, url)


class NotFoundOnRemote(HttpError):
    """404 - the object is already gone"""


class UnauthorizedAmbiguous(HttpError):
    """401 - either truly unauthorized or the object is already marked deleted"""


class StaleNotification(SyncError):
    """A change notification that has already been applied"""


class IgnoredNotification(SyncError):
    """A change notification outside what this service syncs"""


class ModelError(SyncError):
    """Malformed remote data (SIS id, semester string, payload shape)"""
