"""Memory cells and associative tables of the alpha virtual machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

from .errors import AVMError


class CellType(IntEnum):
    """Type tag of a memory cell."""

    NUMBER = 0
    STRING = 1
    BOOL = 2
    TABLE = 3
    USERFUNC = 4
    LIBFUNC = 5
    NIL = 6
    UNDEF = 7

    @property
    def type_name(self) -> str:
        """The name the language uses for this type."""
        return self.name.lower()


@dataclass(eq=False)
class MemCell:
    """A mutable, tagged value slot: stack entry, register or table element."""

    type: CellType = CellType.UNDEF
    data: object = None

    @classmethod
    def number(cls, value: float) -> MemCell:
        return cls(CellType.NUMBER, float(value))

    @classmethod
    def string(cls, value: str) -> MemCell:
        return cls(CellType.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> MemCell:
        return cls(CellType.BOOL, bool(value))

    @classmethod
    def nil(cls) -> MemCell:
        return cls(CellType.NIL, None)

    @classmethod
    def table(cls, table: Table) -> MemCell:
        return cls(CellType.TABLE, table)

    @classmethod
    def userfunc(cls, address: int) -> MemCell:
        return cls(CellType.USERFUNC, int(address))

    @classmethod
    def libfunc(cls, name: str) -> MemCell:
        return cls(CellType.LIBFUNC, name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MemCell):
            return NotImplemented
        return self.type == other.type and self.data == other.data

    def to_string(self) -> str:
        """Render the value the way the print library function shows it."""
        kind = self.type
        if kind is CellType.NUMBER:
            return format(float(self.data), ".3g")
        if kind is CellType.STRING:
            return self.data
        if kind is CellType.BOOL:
            return "true" if self.data else "false"
        if kind is CellType.TABLE:
            return self.data.to_string()
        if kind is CellType.USERFUNC:
            return f"user function {self.data}"
        if kind is CellType.LIBFUNC:
            return f"library function {self.data}"
        if kind is CellType.NIL:
            return "nil"
        raise AVMError("tostring: cannot convert undefined value!")

    def to_bool(self) -> bool:
        """Truth value of the cell; undefined cells have none."""
        kind = self.type
        if kind is CellType.NUMBER:
            return self.data != 0
        if kind is CellType.STRING:
            return bool(self.data) and self.data[0] != "\0"
        if kind is CellType.BOOL:
            return bool(self.data)
        if kind in (CellType.TABLE, CellType.USERFUNC, CellType.LIBFUNC):
            return True
        if kind is CellType.NIL:
            return False
        raise AVMError("cannot convert undefined value to bool!")

    def clear(self) -> None:
        """Release the value and mark the cell undefined."""
        self.type = CellType.UNDEF
        self.data = None


def _key_of(cell: MemCell) -> tuple:
    return (cell.type, cell.data)


class Table:
    """Associative array keyed by memory cells; tables compare by identity."""

    def __init__(self) -> None:
        self._items: dict[tuple, tuple[MemCell, MemCell]] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[tuple[MemCell, MemCell]]:
        return iter(list(self._items.values()))

    def get(self, key: MemCell) -> MemCell | None:
        """Return the stored cell for ``key``, or None when absent."""
        entry = self._items.get(_key_of(key))
        return entry[1] if entry is not None else None

    def set(self, key: MemCell, value: MemCell) -> None:
        """Store a copy of ``value`` under ``key``; a nil value removes the key."""
        if key.type is CellType.UNDEF:
            raise AVMError("table key cannot be of type 'undef'")
        index = _key_of(key)
        if value.type is CellType.NIL:
            self._items.pop(index, None)
            return
        existing = self._items.get(index)
        stored_key = existing[0] if existing is not None else MemCell(key.type, key.data)
        self._items[index] = (stored_key, MemCell(value.type, value.data))

    def member_keys(self) -> Table:
        """A new table mapping 0, 1, ... to this table's keys."""
        keys = Table()
        for position, (key, _) in enumerate(self):
            keys.set(MemCell.number(position), key)
        return keys

    def total_members(self) -> int:
        return len(self._items)

    def copy(self) -> Table:
        """A shallow copy holding the same keys and values."""
        duplicate = Table()
        for key, value in self:
            duplicate.set(key, value)
        return duplicate

    def to_string(self) -> str:
        if not self._items:
            return "[ ]"
        text = "".join(
            f"[ {{ {key.to_string()} : {value.to_string()} }}, " for key, value in self
        )
        return text[:-2] + " ]"