"""
Loosely-typed wrapper around a RetailCRM order record.

The CRM field layout varies by account and API version, so the record is
kept as a plain mapping and read through alternate key paths.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from account_registry import Account

PathKey = Union[str, int]
Path = Tuple[PathKey, ...]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict, tuple)):
        return len(value) == 0
    return False


def get_path(data: Any, path: Union[Path, str]) -> Any:
    """Walk nested mappings/lists; missing steps yield None"""
    if isinstance(path, str):
        path = (path,)
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, (list, tuple)) or not -len(current) <= key < len(current):
                return None
            current = current[key]
        else:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def first_of(data: Any, paths: Sequence[Union[Path, str]], default: Any = None) -> Any:
    """Return the first non-empty value along the given paths"""
    for path in paths:
        value = get_path(data, path)
        if not is_empty(value):
            return value
    return default


class ResolvedOrder:
    """Authoritative order record plus the account that owns it"""

    def __init__(self, data: Mapping[str, Any], account: Optional[Account] = None, source: str = "api"):
        self.data: Dict[str, Any] = dict(data or {})
        self.account = account
        self.source = source

    @property
    def id(self) -> Optional[Any]:
        return self.data.get('id')

    @property
    def number(self) -> Optional[str]:
        number = self.data.get('number')
        return str(number) if not is_empty(number) else None

    @property
    def status(self) -> Optional[str]:
        for path in ('status', 'extendedStatus', ('status', 'code')):
            status = get_path(self.data, path)
            if not is_empty(status) and not isinstance(status, dict):
                return str(status)
        return None

    @property
    def scope(self) -> str:
        """Owning installation; ids and numbers are only unique within it"""
        return self.account.base_url if self.account else ""

    @property
    def key(self) -> Optional[str]:
        """Primary identity in the status map: account plus id, else number"""
        keys = self.dedup_keys
        return keys[0] if keys else None

    @property
    def dedup_keys(self) -> List[str]:
        """Every identity of this order known to the event, id first"""
        keys = []
        if not is_empty(self.id):
            keys.append(f"{self.scope}#id:{self.id}")
        if self.number:
            keys.append(f"{self.scope}#number:{self.number}")
        return keys

    @property
    def display_number(self) -> str:
        return self.number or (str(self.id) if not is_empty(self.id) else "?")

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def first(self, *paths: Union[Path, str], default: Any = None) -> Any:
        return first_of(self.data, paths, default)

    def __repr__(self) -> str:
        account = self.account.name if self.account else None
        return f"ResolvedOrder(id={self.id!r}, number={self.number!r}, status={self.status!r}, account={account!r})"
