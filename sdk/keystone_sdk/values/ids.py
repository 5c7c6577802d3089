"""Entity identifiers."""

from __future__ import annotations

from ..errors import ValidationError


class ID(str):
    """An entity id, optionally suffixed with ``-<child id>``.

    Example:
        >>> ID("abc-123").parent_id, ID("abc-123").child_id
        ('abc', '123')
    """

    @property
    def parent_id(self) -> str:
        return self.split("-", 1)[0]

    @property
    def child_id(self) -> str:
        parts = self.split("-", 1)
        return parts[1] if len(parts) > 1 else ""

    def matches(self, other: str) -> bool:
        return str(self) == other


def hash_id(raw: str, child_id: str = "") -> str:
    """Build the ``#raw#`` form that asks the server to derive the id.

    Raises:
        ValidationError: If raw contains '#'
    """
    if "#" in raw:
        raise ValidationError("hash id must not contain '#'", field_name="hash_id")
    if child_id:
        return f"#{raw}#-{child_id}"
    return f"#{raw}#"
