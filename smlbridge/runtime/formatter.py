from __future__ import annotations

import json

from smlbridge.protocol.obis import format_obis
from smlbridge.protocol.sml import ListEntry, TypedValue


def format_scaled(raw: int, scaler: int | None) -> str:
    """
    Applies the entry's decimal exponent and renders max(0, -scaler) digits,
    so the precision follows the scaler the meter declares.
    """
    exponent = int(scaler) if scaler is not None else 0
    precision = max(0, -exponent)
    value = float(raw) * pow(10, exponent)
    return f"{value:.{precision}f}"


class ValueFormatter:
    def render(self, value: TypedValue, scaler: int | None) -> str | None:
        if value.kind == "octet_string":
            return json.dumps(bytes(value.data).hex())
        if value.kind == "boolean":
            return json.dumps("true" if value.data else "false")
        if value.is_numeric():
            return format_scaled(int(value.data), scaler)
        return None

    def format(self, entry: ListEntry) -> tuple[str, str] | None:
        """Returns (key, rendered JSON value), or None for value kinds that are not emitted."""
        if entry.value is None:
            return None
        rendered = self.render(entry.value, entry.scaler)
        if rendered is None:
            return None
        return format_obis(entry.obj_name), rendered
