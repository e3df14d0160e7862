"""
vault/models.py -- Domain dataclass for stored system credentials.

These are pure data containers with zero logic. Encryption lives in
core/cipher.py, access rules in vault/policy.py, persistence in
vault/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class System:
    """A set of credentials for one external system.

    password holds plaintext only in memory and only on records returned by
    SystemStore.get_with_password(); every other read leaves it None. On disk
    it is always an "iv:ciphertext" envelope. After decryption None means
    "no secret stored or secret unavailable", never an empty string.

    created_by is the id of the user who created the record. It is kept for
    accountability and grants nothing.

    id is None before the record is written to the database.
    """

    name: str
    category: str  # "web_software" | "database" | "network"
    subcategory: Optional[str] = None  # free-form, e.g. "cms_platforms"
    description: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_by_email: Optional[str] = None  # joined from users on reads
    created_at: str = ""
    updated_at: str = ""
    id: Optional[int] = None
