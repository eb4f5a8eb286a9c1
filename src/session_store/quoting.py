from __future__ import annotations

import warnings
from typing import Optional

DEFAULT_TABLE_NAME = "session"

_LEGACY_SEPARATOR = '"."'


def escape_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def split_table_name(table_name: Optional[str] = None, schema_name: Optional[str] = None) -> tuple[Optional[str], str]:
    """Return ``(schema, table)``, unpacking the legacy ``schema"."table`` form."""
    table_name = table_name or DEFAULT_TABLE_NAME
    if not schema_name and _LEGACY_SEPARATOR in table_name:
        warnings.warn(
            'Passing a schema through table_name as \'schema"."table\' is deprecated; '
            "use schema_name instead",
            DeprecationWarning,
            stacklevel=3,
        )
        schema_name, table_name = table_name.split(_LEGACY_SEPARATOR, 1)
    return schema_name or None, table_name


def quote_table(table_name: Optional[str] = None, schema_name: Optional[str] = None) -> str:
    """Return the double-quoted, optionally schema-qualified table identifier."""
    schema_name, table_name = split_table_name(table_name, schema_name)
    quoted = escape_identifier(table_name)
    if schema_name:
        quoted = f"{escape_identifier(schema_name)}.{quoted}"
    return quoted


def escape_placeholders(sql_fragment: str) -> str:
    """Double ``%`` so the fragment survives ``%s`` parameter substitution."""
    return sql_fragment.replace("%", "%%")
