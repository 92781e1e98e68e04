"""Turn saved server query output (JSON or TSV) into findings."""
import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from dumpcheck.analyzer import FindingAggregator
from dumpcheck.constants import SYS_VARS_NEW_DEFAULTS_84
from dumpcheck.errors import ResultFormatError
from dumpcheck.rules import FixContext, Finding, get_rule

log = structlog.get_logger()

AUTH_CHECK_IDS = ("authMethodUsage", "deprecatedDefaultAuth", "pluginUsage")
SYSVAR_CHECK_IDS = ("sysVarsNewDefaults",)

_PLUGIN_RULES = {
    "mysql_native_password": "mysql_native_password",
    "sha256_password": "sha256_password",
    "authentication_fido": "authentication_fido",
    "authentication_fido_client": "authentication_fido",
}


@dataclass
class ServerQueryResult:
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, object]] = field(default_factory=list)


def _convert(cell: str) -> object:
    if cell == "NULL":
        return None
    try:
        return int(cell)
    except ValueError:
        pass
    try:
        return float(cell)
    except ValueError:
        return cell


def _parse_json(text: str) -> ServerQueryResult:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ResultFormatError(f"invalid JSON result: {exc}") from exc
    if isinstance(data, dict) and isinstance(data.get("rows"), list):
        columns = list(data.get("columns") or [])
        rows = []
        for row in data["rows"]:
            if isinstance(row, dict):
                rows.append(row)
            elif isinstance(row, list):
                rows.append(dict(zip(columns, row)))
            else:
                raise ResultFormatError("result rows must be objects or arrays")
        if not columns and rows:
            columns = list(rows[0])
        return ServerQueryResult(columns, rows)
    if isinstance(data, list) and all(isinstance(r, dict) for r in data):
        columns = list(data[0]) if data else []
        return ServerQueryResult(columns, list(data))
    raise ResultFormatError("JSON result must be {columns, rows} or a list of objects")


def _parse_tsv(text: str) -> ServerQueryResult:
    lines = [line for line in text.splitlines() if line.strip()]
    columns = [c.strip() for c in lines[0].split("\t")]
    rows = []
    for line in lines[1:]:
        cells = line.split("\t")
        rows.append({col: _convert(cells[i].strip()) if i < len(cells) else None
                     for i, col in enumerate(columns)})
    return ServerQueryResult(columns, rows)


def parse_server_result(text: str) -> ServerQueryResult:
    """Detect the result format and parse it."""
    stripped = text.strip()
    if not stripped:
        raise ResultFormatError("empty result")
    if stripped[0] in "{[":
        return _parse_json(stripped)
    return _parse_tsv(stripped)


def _value(row: Dict[str, object], *names: str) -> Optional[object]:
    lowered = {str(k).lower(): v for k, v in row.items()}
    for name in names:
        if name.lower() in lowered:
            return lowered[name.lower()]
    return None


def _same_value(current: object, default: object) -> bool:
    if current is None:
        return False
    return str(current).strip().lower() == str(default).strip().lower()


def analyze_server_result(check_id: str, result: ServerQueryResult) -> List[Finding]:
    """Findings for one server-side check; unknown check ids give none."""
    sink = FindingAggregator()
    source = f"server:{check_id}"
    if check_id in AUTH_CHECK_IDS:
        for row in result.rows:
            plugin = str(_value(row, "plugin") or "").lower()
            rule_id = _PLUGIN_RULES.get(plugin)
            if not rule_id:
                continue
            user = str(_value(row, "User", "user_name") or "")
            host = str(_value(row, "Host") or "%")
            account = f"'{user}'@'{host}'"
            sink.emit(get_rule(rule_id), f"{source} - User: {account}",
                      f"{account} plugin={plugin}", user_name=user,
                      fix_context=FixContext(user_name=user, host=host))
    elif check_id in SYSVAR_CHECK_IDS:
        for row in result.rows:
            name = str(_value(row, "VARIABLE_NAME", "Variable_name", "name") or "").lower()
            if name not in SYS_VARS_NEW_DEFAULTS_84:
                continue
            old, new, what = SYS_VARS_NEW_DEFAULTS_84[name]
            current = _value(row, "VARIABLE_VALUE", "Value", "value")
            if not _same_value(current, old):
                continue
            sink.emit(get_rule("sysvar_new_default"), source, f"{name} = {current}",
                      description=f"{name} ({what}) is {current}, the 8.0 default; "
                                  f"8.4 changes the default to {new}.")
    else:
        log.warning("server_check_unknown", check_id=check_id)
    return sink.ordered()
