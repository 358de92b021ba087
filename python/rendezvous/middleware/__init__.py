"""HTTP middleware for the rendezvous API."""

from rendezvous.middleware.request_id import RequestIDMiddleware

__all__ = ["RequestIDMiddleware"]
