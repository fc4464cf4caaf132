from __future__ import annotations

from .body_limit import BodyLimitMiddleware

__all__ = ["BodyLimitMiddleware"]
