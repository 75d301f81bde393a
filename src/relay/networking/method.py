"""HTTP methods accepted by the request pipeline."""

from __future__ import annotations

from enum import Enum


class Method(str, Enum):
    DELETE = "DELETE"
    GET = "GET"
    PATCH = "PATCH"
    POST = "POST"
    PUT = "PUT"
