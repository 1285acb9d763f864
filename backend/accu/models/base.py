from __future__ import annotations


def in_clause(column: str, values: tuple[str, ...]) -> str:
    """SQL text for a CHECK constraint restricting a column to a closed set."""
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"
