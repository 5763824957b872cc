"""
Role-gated navigation.

Decides whether the web client may render a page for the current session
or must be sent somewhere else. Pure decision logic, no I/O.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Union
from urllib.parse import quote

from schemas import Role

LOGIN_PATH = "/login"
HOME_PATH = "/"

ROLE_LOGIN_PATHS = {
    Role.ADMIN: ("/admin", "/admin/login"),
    Role.DRIVER: ("/driver", "/driver/login"),
}

# path -> roles allowed; an empty tuple means public
ROUTES: Dict[str, Sequence[Role]] = {
    "/": (),
    "/cars": (),
    "/about": (),
    "/contact": (),
    "/login": (),
    "/register": (),
    "/admin/login": (),
    "/driver/login": (),
    "/dashboard": (Role.CUSTOMER,),
    "/book/:car_id": (Role.CUSTOMER,),
    "/booking/:booking_id": (Role.CUSTOMER,),
    "/payment/:booking_id": (Role.CUSTOMER,),
    "/admin/dashboard": (Role.ADMIN,),
    "/admin/cars": (Role.ADMIN,),
    "/admin/drivers": (Role.ADMIN,),
    "/admin/bookings": (Role.ADMIN,),
    "/admin/payments": (Role.ADMIN,),
    "/driver/dashboard": (Role.DRIVER,),
    "/driver/rides": (Role.DRIVER,),
    "/driver/profile": (Role.DRIVER,),
}


@dataclass(frozen=True)
class Render:
    path: str


@dataclass(frozen=True)
class Redirect:
    target: str


Decision = Union[Render, Redirect]


def home_for(role: Role) -> str:
    role = Role(role)
    if role == Role.ADMIN:
        return "/admin/dashboard"
    if role == Role.DRIVER:
        return "/driver/dashboard"
    if role == Role.CUSTOMER:
        return "/dashboard"
    raise ValueError(f"Unknown role: {role}")


def _login_target(requested_path: str, allowed_roles: Sequence[Role]) -> str:
    for role, (namespace, login_path) in ROLE_LOGIN_PATHS.items():
        if role in allowed_roles and (requested_path == namespace or requested_path.startswith(namespace + "/")):
            return login_path
    return f"{LOGIN_PATH}?redirect={quote(requested_path, safe='')}"


def resolve(is_authenticated: bool, role: Optional[Role], requested_path: str, allowed_roles: Sequence[Role]) -> Decision:
    allowed_roles = [Role(r) for r in allowed_roles]
    if not allowed_roles:
        return Render(requested_path)
    if not is_authenticated:
        return Redirect(_login_target(requested_path, allowed_roles))
    if role is None or Role(role) not in allowed_roles:
        return Redirect(home_for(role or Role.CUSTOMER))
    return Render(requested_path)


def match_route(path: str) -> Optional[str]:
    path = path.split("?", 1)[0].rstrip("/") or "/"
    parts = path.strip("/").split("/") if path != "/" else []
    for pattern in ROUTES:
        pattern_parts = pattern.strip("/").split("/") if pattern != "/" else []
        if len(pattern_parts) != len(parts):
            continue
        if all(p.startswith(":") or p == s for p, s in zip(pattern_parts, parts)):
            return pattern
    return None


def resolve_path(is_authenticated: bool, role: Optional[Role], path: str) -> Decision:
    """Look the path up in the route table; unknown paths go home."""
    pattern = match_route(path)
    if pattern is None:
        return Redirect(HOME_PATH)
    return resolve(is_authenticated, role, path, ROUTES[pattern])


def landing_for(is_authenticated: bool, role: Optional[Role]) -> str:
    if is_authenticated and role is not None:
        return home_for(role)
    return HOME_PATH
