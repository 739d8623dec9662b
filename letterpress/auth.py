"""
Admin session handling.

There is exactly one credential: a statically configured password.  A
successful login sets ``session["logged_in"]``; everything under /admin
is gated on that flag.
"""

import secrets
from collections import defaultdict, deque
from functools import wraps
from time import time
from typing import DefaultDict

from flask import Response, redirect, request, session, url_for

ADMIN_PREFIX = "/admin"
DEFAULT_LANDING = "/admin/posts"


def is_authenticated() -> bool:
    return bool(session.get("logged_in"))


def is_protected(path: str) -> bool:
    return path == ADMIN_PREFIX or path.startswith(ADMIN_PREFIX + "/")


def requested_path() -> str:
    """Path + query string of the current request, without a dangling '?'."""
    return request.full_path.rstrip("?")


def gate():
    """
    Let authenticated sessions through (returns None); otherwise remember
    where the client wanted to go and bounce it to the login form.
    """
    if is_authenticated():
        return None
    session["return_to"] = requested_path()
    return redirect(url_for("login"))


def check_password(submitted: str | None, configured: str | None) -> bool:
    """Exact match against the configured secret; unset secret never matches."""
    if not submitted or not configured:
        return False
    return secrets.compare_digest(submitted.encode(), configured.encode())


def _is_local(path: str | None) -> bool:
    return bool(path) and path.startswith("/") and not path.startswith("//")


def start_session() -> str:
    """
    Mark the session authenticated and return the redirect target.

    The pending return-to path is consumed here, so a later login falls
    back to the admin landing page instead of replaying it.
    """
    return_to = session.pop("return_to", None)
    session.clear()
    session.permanent = True
    session["logged_in"] = True
    session["csrf"] = secrets.token_hex(16)
    return return_to if _is_local(return_to) else DEFAULT_LANDING


def csrf_token() -> str:
    """One token per login (rotates with the session)."""
    return session.get("csrf", "")


def rate_limit(max_requests: int, window: int = 60):
    """
    Allow *max_requests* per client IP in any *window* seconds, else 429.
    Clients idle for a whole window are forgotten, so the table only holds
    recently active IPs.  The table is exposed as ``view.hits``.
    """
    hits: DefaultDict[str, deque] = defaultdict(deque)

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            now = time()
            # left-most entry after ProxyFix = real client
            ip = (
                request.access_route[0] if request.access_route else request.remote_addr
            ) or "unknown"

            for stale in [k for k, d in hits.items() if not d or now - d[-1] > window]:
                del hits[stale]

            dq = hits[ip]
            while dq and now - dq[0] > window:
                dq.popleft()

            if len(dq) >= max_requests:
                retry_after = int(window - (now - dq[0]))
                return Response(
                    "Too many requests – try again later.",
                    status=429,
                    headers={"Retry-After": str(retry_after)},
                )

            dq.append(now)
            return view(*args, **kwargs)

        wrapped.hits = hits
        return wrapped

    return decorator
