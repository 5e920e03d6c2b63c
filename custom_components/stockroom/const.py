"""Constants for the Stockroom integration.

Defines the integration domain, storage key, collection names and config
option keys shared by all modules.
"""

from typing import Final

# Integration domain used across all modules
DOMAIN: str = "stockroom"

# Public integration version (kept in sync with manifest.json)
INTEGRATION_VERSION: str = "0.1.0"

# Storage key under which the whole database snapshot is persisted
STORAGE_KEY: Final[str] = "stockroom_db"
STORAGE_VERSION: Final[int] = 1

# Collections understood by the ledger and the record schemas
COLLECTION_LOCATIONS: Final[str] = "locations"
COLLECTION_ITEMS: Final[str] = "items"
COLLECTION_INVENTORY: Final[str] = "inventory"
COLLECTION_MOVEMENTS: Final[str] = "inventory_movements"
COLLECTION_UOMS: Final[str] = "uoms"
COLLECTION_UOM_CONVERSIONS: Final[str] = "uom_conversions"
COLLECTION_CATEGORIES: Final[str] = "categories"
COLLECTION_USERS: Final[str] = "users"

RECOGNIZED_COLLECTIONS: Final[tuple[str, ...]] = (
    COLLECTION_LOCATIONS,
    COLLECTION_ITEMS,
    COLLECTION_INVENTORY,
    COLLECTION_MOVEMENTS,
    COLLECTION_UOMS,
    COLLECTION_UOM_CONVERSIONS,
    COLLECTION_CATEGORIES,
    COLLECTION_USERS,
)

# Movements are an audit trail: only appends are allowed
APPEND_ONLY_COLLECTIONS: Final[frozenset[str]] = frozenset({COLLECTION_MOVEMENTS})

MOVEMENT_TYPE_ADJUSTMENT: Final[str] = "adjustment"
MOVEMENT_TYPES: Final[tuple[str, ...]] = (
    MOVEMENT_TYPE_ADJUSTMENT,
    "receipt",
    "issue",
    "count",
)

# Rows below this level are flagged when a variant has no reorder level
DEFAULT_REORDER_LEVEL: Final[int] = 5

# Config entry options
CONF_ALLOW_NEGATIVE_STOCK: Final[str] = "allow_negative_stock"
CONF_REPAIR_LEDGER_ON_STARTUP: Final[str] = "repair_ledger_on_startup"
DEFAULT_ALLOW_NEGATIVE_STOCK: Final[bool] = True
DEFAULT_REPAIR_LEDGER_ON_STARTUP: Final[bool] = False
