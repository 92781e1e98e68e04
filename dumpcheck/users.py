"""CREATE USER / ALTER USER / GRANT / REVOKE parsing and account checks."""
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import structlog

from dumpcheck.constants import (
    AUTH_PLUGINS_DEPRECATED,
    AUTH_PLUGINS_DISABLED,
    AUTH_PLUGINS_REMOVED,
    CODE_SNIPPET_LIMIT,
)
from dumpcheck.rules import FixContext, get_rule
from dumpcheck.sqltext import leading_words, mask_literals, split_top_level, strip_comments

log = structlog.get_logger()

_QUOTED = r"'(?:[^'\\]|\\.|'')*'|\"(?:[^\"\\]|\\.|\"\")*\"|`(?:[^`]|``)*`"
_ACCOUNT = re.compile(
    rf"^\s*(?P<user>{_QUOTED}|[\w.$-]+)"
    rf"(?:\s*@\s*(?P<host>{_QUOTED}|[\w.%$:/-]+))?(?P<rest>.*)$",
    re.DOTALL)
_PLUGIN = re.compile(r"\bIDENTIFIED\s+WITH\s+['\"`]?(\w+)['\"`]?", re.IGNORECASE)
_ACCOUNT_TAIL = re.compile(
    r"\b(?:DEFAULT\s+ROLE|REQUIRE|PASSWORD\s+(?:EXPIRE|HISTORY|REUSE|REQUIRE)|"
    r"ACCOUNT\s+(?:LOCK|UNLOCK)|COMMENT|ATTRIBUTE|FAILED_LOGIN_ATTEMPTS|"
    r"PASSWORD_LOCK_TIME|WITH\s+(?:MAX_\w+|GRANT\s+OPTION|ADMIN\s+OPTION))\b|"
    r"\bAS\s+['\"`]?\w+['\"`]?\s*@",
    re.IGNORECASE)
_USER_PREFIX = re.compile(r"^\s*(CREATE|ALTER)\s+USER\s+(?:IF\s+(?:NOT\s+)?EXISTS\s+)?",
                          re.IGNORECASE)
_GRANT = re.compile(
    r"^\s*GRANT\s+(?P<privs>.+?)\s+ON\s+(?:(?:TABLE|FUNCTION|PROCEDURE)\s+)?"
    r"(?P<obj>\S+)\s+TO\s+(?P<accounts>.+)$", re.IGNORECASE | re.DOTALL)
_ROLE_GRANT = re.compile(r"^\s*GRANT\s+(?P<privs>.+?)\s+TO\s+(?P<accounts>.+)$",
                         re.IGNORECASE | re.DOTALL)
_REVOKE = re.compile(
    r"^\s*REVOKE\s+(?:IF\s+EXISTS\s+)?(?P<privs>.+?)\s+ON\s+(?:(?:TABLE|FUNCTION|PROCEDURE)\s+)?"
    r"(?P<obj>\S+)\s+FROM\s+(?P<accounts>.+)$", re.IGNORECASE | re.DOTALL)


def _unquote(part: Optional[str]) -> Optional[str]:
    if part is None:
        return None
    if len(part) >= 2 and part[0] == part[-1] and part[0] in "'\"`":
        q = part[0]
        return part[1:-1].replace(q + q, q).replace("\\" + q, q)
    return part


@dataclass
class Account:
    user: str
    host: str = "%"
    plugin: Optional[str] = None

    @property
    def quoted(self) -> str:
        return f"'{self.user}'@'{self.host}'"


@dataclass
class UserStatement:
    """One parsed account-management statement."""
    verb: str
    accounts: List[Account] = field(default_factory=list)
    privileges: List[str] = field(default_factory=list)
    on: Optional[str] = None
    with_grant_option: bool = False
    text: str = ""

    @property
    def is_role_grant(self) -> bool:
        return self.verb == "GRANT" and self.on is None


def parse_account(text: str) -> Optional[Account]:
    m = _ACCOUNT.match(text)
    if not m:
        return None
    user = _unquote(m.group("user"))
    host = _unquote(m.group("host")) or "%"
    plugin = _PLUGIN.search(m.group("rest"))
    return Account(user, host, plugin.group(1).lower() if plugin else None)


def parse_account_list(text: str) -> List[Account]:
    """Accounts in a comma list, ignoring trailing account options."""
    masked = mask_literals(text)
    tail = _ACCOUNT_TAIL.search(masked)
    if tail:
        text = text[:tail.start()]
    accounts = []
    for part in split_top_level(text):
        account = parse_account(part)
        if account is not None:
            accounts.append(account)
    return accounts


def parse_privileges(text: str) -> List[str]:
    privileges = []
    for part in split_top_level(text):
        name = re.sub(r"\s*\(.*\)\s*$", "", part, flags=re.DOTALL)
        name = " ".join(name.upper().split())
        if name == "ALL":
            name = "ALL PRIVILEGES"
        privileges.append(name)
    return privileges


def parse_user_statement(statement: str) -> Optional[UserStatement]:
    """Parse CREATE USER, ALTER USER, GRANT or REVOKE; anything else gives None."""
    sql = strip_comments(statement).strip().rstrip(";")
    m = _USER_PREFIX.match(sql)
    if m:
        return UserStatement(verb=f"{m.group(1).upper()} USER",
                             accounts=parse_account_list(sql[m.end():]), text=statement)
    m = _GRANT.match(sql)
    if m:
        accounts = m.group("accounts")
        grant_option = bool(re.search(r"\bWITH\s+GRANT\s+OPTION\b", accounts, re.IGNORECASE))
        return UserStatement(verb="GRANT", accounts=parse_account_list(accounts),
                             privileges=parse_privileges(m.group("privs")),
                             on=m.group("obj"), with_grant_option=grant_option,
                             text=statement)
    m = _ROLE_GRANT.match(sql)
    if m:
        return UserStatement(verb="GRANT", accounts=parse_account_list(m.group("accounts")),
                             privileges=[_unquote(r.strip()) for r in
                                         split_top_level(m.group("privs"))],
                             text=statement)
    m = _REVOKE.match(sql)
    if m:
        return UserStatement(verb="REVOKE", accounts=parse_account_list(m.group("accounts")),
                             privileges=parse_privileges(m.group("privs")),
                             on=m.group("obj"), text=statement)
    return None


def _plugin_rule(plugin: str) -> Optional[str]:
    if plugin in AUTH_PLUGINS_DISABLED:
        return "mysql_native_password"
    if plugin in AUTH_PLUGINS_DEPRECATED:
        return "sha256_password"
    if plugin in AUTH_PLUGINS_REMOVED:
        return "authentication_fido"
    return None


def account_findings(parsed: UserStatement) -> List[Tuple[str, Account]]:
    """(rule id, account) pairs raised by one parsed statement."""
    hits = []
    if parsed.verb in ("CREATE USER", "ALTER USER"):
        for account in parsed.accounts:
            rule_id = _plugin_rule(account.plugin) if account.plugin else None
            if rule_id:
                hits.append((rule_id, account))
    elif parsed.verb == "GRANT" and "SUPER" in parsed.privileges:
        for account in parsed.accounts:
            hits.append(("super_privilege", account))
    return hits


def analyze_user_statements(statements: Iterable[Tuple[str, int]], source: str, sink) -> int:
    """Emit account findings for every user statement; returns statements parsed."""
    parsed_count = 0
    for statement, line in statements:
        words = leading_words(statement, 2)
        if not words or words[0] not in ("CREATE", "ALTER", "GRANT", "REVOKE"):
            continue
        if words[0] in ("CREATE", "ALTER") and (len(words) < 2 or words[1] != "USER"):
            continue
        parsed = parse_user_statement(statement)
        if parsed is None:
            log.debug("user_statement_unparsed", file=source, line=line)
            continue
        parsed_count += 1
        code = statement[:CODE_SNIPPET_LIMIT]
        for rule_id, account in account_findings(parsed):
            sink.emit(
                get_rule(rule_id), f"{source} - User: {account.quoted}", code,
                user_name=account.user,
                fix_context=FixContext(code=code, statement=statement,
                                       user_name=account.user, host=account.host))
    return parsed_count
