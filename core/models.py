from collections.abc import Iterable

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Roles, highest privilege first. A domain rule -- not an API contract.
# All layers (api/, auth/, vault/, audit/, CLI) import these from here.
ULTRA_ADMIN = "ultra_admin"
SUPER_ADMIN = "super_admin"
ADMIN = "admin"
USER = "user"

# Roles with unrestricted access to every system category.
TOP_TIER_ROLES = frozenset({ULTRA_ADMIN, SUPER_ADMIN})

# Roles allowed to write system entries (still subject to category policy).
ADMIN_TIER_ROLES = frozenset({ULTRA_ADMIN, SUPER_ADMIN, ADMIN})

# Fixed set of system categories. Subcategories are free-form tags.
SYSTEM_CATEGORIES = ("web_software", "database", "network")


def filter_categories(categories: Iterable[str] | None) -> list[str]:
    """Keep only recognised categories, lowercased and de-duplicated.

    Unknown values are dropped silently rather than rejected, so
    ["network", "bogus_cat"] becomes ["network"]. Order of first appearance
    is preserved.
    """
    result: list[str] = []
    for cat in categories or ():
        if not isinstance(cat, str):
            continue
        normalized = cat.strip().lower()
        if normalized in SYSTEM_CATEGORIES and normalized not in result:
            result.append(normalized)
    return result
