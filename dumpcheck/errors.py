"""Exception types raised by dumpcheck."""


class DumpCheckError(Exception):
    """Base class for dumpcheck errors."""


class RuleCatalogError(DumpCheckError):
    """The rule catalog is inconsistent (duplicate id, bad pattern, missing detector)."""


class ResultFormatError(DumpCheckError):
    """A server query result file is neither JSON nor tab-separated text."""
