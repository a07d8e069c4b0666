"""
Client metadata for session tracking.

Derives the device description, IP address and User-Agent recorded with a
session at login.
"""

import re
from typing import Optional

from fastapi import Request

from gurukul.auth.models import ClientInfo


_OS_PATTERNS = [
    (r"iPhone|iPad|iPod", "iOS"),
    (r"Android", "Android"),
    (r"Windows NT", "Windows"),
    (r"CrOS", "Chrome OS"),
    (r"Mac OS X", "macOS"),
    (r"Linux", "Linux"),
]

# Order matters: Edge and Opera also advertise Chrome, Chrome advertises Safari
_BROWSER_PATTERNS = [
    (r"Edg/", "Edge"),
    (r"OPR/|Opera", "Opera"),
    (r"Chrome/|CriOS/", "Chrome"),
    (r"Firefox/|FxiOS/", "Firefox"),
    (r"Safari/", "Safari"),
]


def _match(patterns: list[tuple[str, str]], user_agent: str) -> Optional[str]:
    for pattern, name in patterns:
        if re.search(pattern, user_agent, re.IGNORECASE):
            return name
    return None


def describe_device(user_agent: Optional[str]) -> Optional[str]:
    """
    Human readable device description, e.g. "Chrome on Windows".

    Returns:
        None when the User-Agent is empty or unrecognised
    """
    if not user_agent:
        return None

    browser = _match(_BROWSER_PATTERNS, user_agent)
    os_name = _match(_OS_PATTERNS, user_agent)

    if browser and os_name:
        return f"{browser} on {os_name}"
    return browser or os_name


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request) -> Optional[str]:
    """Extract User-Agent from request."""
    return request.headers.get("User-Agent") or None


def get_client_info(request: Request) -> ClientInfo:
    """
    Collect the session metadata for a login request.

    An explicit ``X-Device-Info`` header from the app wins over the
    description derived from the User-Agent.
    """
    user_agent = get_user_agent(request)
    return ClientInfo(
        deviceInfo=request.headers.get("X-Device-Info") or describe_device(user_agent),
        ipAddress=get_client_ip(request),
        userAgent=user_agent,
    )
