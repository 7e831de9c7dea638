"""
Route -> module mapping for callers that gate pages by URL.

The engine is path-agnostic. Route guards translate a path to a module key
here first, then ask the engine about that module. The table is plain
configuration supplied by the caller.
"""

from collections.abc import Mapping

from practice_rbac.modules import normalize_module

DEFAULT_ROUTE_MODULES: dict[str, str] = {
    "/": "dashboard",
    "/dashboard": "dashboard",
    "/cases": "cases",
    "/hearings": "hearings",
    "/tasks": "tasks",
    "/documents": "documents",
    "/clients": "clients",
    "/client-groups": "client_groups",
    "/contacts": "contacts",
    "/courts": "courts",
    "/legal-authorities": "courts",
    "/judges": "judges",
    "/employees": "employees",
    "/reports": "reports",
    "/compliance": "compliance",
    "/billing": "billing",
    "/settings": "settings",
    "/access-roles": "rbac",
}


def _clean_path(path: str) -> str:
    path = (path or "").split("?", 1)[0].split("#", 1)[0].strip()
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/")
    return path.lower()


class RouteModuleMap:
    """
    Exact and longest-prefix path lookup.

    Usage:
        routes = RouteModuleMap()
        routes.module_for("/cases/123/edit")  # -> "cases"
        routes.module_for("/client-groups")   # -> "client_groups"
    """

    def __init__(self, routes: Mapping[str, str] | None = None):
        source = DEFAULT_ROUTE_MODULES if routes is None else routes
        self._routes: dict[str, str] = {
            _clean_path(path): normalize_module(module) for path, module in source.items()
        }
        # Longest prefix first
        self._prefixes = sorted(self._routes, key=len, reverse=True)

    def module_for(self, path: str) -> str | None:
        """Module key for a path, or None if no route matches."""
        path = _clean_path(path)

        module = self._routes.get(path)
        if module is not None:
            return module

        for prefix in self._prefixes:
            if prefix == "/":
                continue
            if path.startswith(prefix + "/"):
                return self._routes[prefix]

        return None

    def routes(self) -> dict[str, str]:
        return dict(self._routes)
