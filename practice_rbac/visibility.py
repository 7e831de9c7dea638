"""Module visibility from a user's module access list."""

from collections.abc import Iterable

from practice_rbac.modules import display_name, normalize_module


class ModuleVisibilityResolver:
    """
    Decides whether a module is visible given a user's module_access list.

    Never consulted for unrestricted roles; the engine short-circuits first.
    """

    @staticmethod
    def is_module_visible(module_access: Iterable[str] | None, module: str) -> bool:
        """
        Empty access list: every module is visible (legacy default-allow).
        Otherwise the module is visible only if its key or display name is listed.
        """
        access = list(module_access or [])
        if not access:
            return True

        key = normalize_module(module)
        if not key:
            return False

        # Records written before canonicalization may hold either spelling
        allowed: set[str] = set()
        for item in access:
            if not item:
                continue
            allowed.add(normalize_module(item))
            allowed.add(item.strip().lower())

        return key in allowed or display_name(key).lower() in allowed
