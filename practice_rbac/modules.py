"""
Module registry for the legal practice application.

Every gated area of the application (cases, hearings, tasks, ...) has one
canonical key. Older employee records and route tables spell modules as
display names ("Case Management", "Task Mgmt") or singular aliases ("task"),
so every string that names a module goes through normalize_module() before it
reaches any permission logic.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ModuleDefinition:
    """A gated module of the application."""
    key: str
    display_name: str
    legacy_names: tuple[str, ...] = field(default_factory=tuple)
    aliases: tuple[str, ...] = field(default_factory=tuple)


MODULES: tuple[ModuleDefinition, ...] = (
    ModuleDefinition("dashboard", "Dashboard"),
    ModuleDefinition("cases", "Cases", legacy_names=("Case Management",), aliases=("case",)),
    ModuleDefinition("hearings", "Hearings", aliases=("hearing",)),
    ModuleDefinition("tasks", "Tasks", legacy_names=("Task Mgmt", "Task Management"), aliases=("task",)),
    ModuleDefinition("documents", "Documents", legacy_names=("DMS",), aliases=("document",)),
    ModuleDefinition("clients", "Clients", aliases=("client",)),
    ModuleDefinition("client_groups", "Client Groups", aliases=("client-groups", "client_group")),
    ModuleDefinition("contacts", "Contacts", aliases=("contact",)),
    ModuleDefinition("courts", "Legal Authorities", legacy_names=("Courts",), aliases=("court",)),
    ModuleDefinition("judges", "Judges", aliases=("judge",)),
    ModuleDefinition("employees", "Employees", aliases=("employee",)),
    ModuleDefinition("reports", "Reports", aliases=("report",)),
    ModuleDefinition("compliance", "Compliance Dashboard", legacy_names=("Compliance",)),
    ModuleDefinition("billing", "Billing"),
    ModuleDefinition("settings", "Settings", aliases=("setting",)),
    ModuleDefinition("rbac", "Access & Roles", legacy_names=("Access and Roles",)),
)

ALL_MODULE_KEYS: tuple[str, ...] = tuple(m.key for m in MODULES)

MODULE_DISPLAY_NAMES: dict[str, str] = {m.key: m.display_name for m in MODULES}


def _build_lookup() -> dict[str, str]:
    lookup: dict[str, str] = {}
    for module in MODULES:
        for spelling in (module.key, module.display_name, *module.legacy_names, *module.aliases):
            lookup[spelling.strip().lower()] = module.key
    return lookup


_LOOKUP = _build_lookup()


def normalize_module(value: str | None) -> str:
    """
    Collapse a module key, display name, legacy name or alias to its canonical key.

    Unknown names are returned trimmed and lower-cased so that permission keys
    for modules added later still line up with stored rows.
    """
    if not value:
        return ""
    cleaned = value.strip().lower()
    return _LOOKUP.get(cleaned, cleaned)


def display_name(module_key: str) -> str:
    """User-facing name for a module (falls back to the key itself)."""
    key = normalize_module(module_key)
    return MODULE_DISPLAY_NAMES.get(key, module_key)


def is_known_module(value: str) -> bool:
    """True if the value names a registered module in any spelling."""
    return bool(value) and value.strip().lower() in _LOOKUP
