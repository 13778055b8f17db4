"""Exceptions raised by the indexing and query engine."""


class AilogSearchError(Exception):
    """Base class for all ailog-search errors."""


class MetadataCorrupt(AilogSearchError):
    """The persisted index metadata is missing or cannot be parsed."""


class IndexLocked(AilogSearchError):
    """Another process holds the index open for writing."""


class IndexNotFound(AilogSearchError):
    """No committed index exists at the requested location."""


class QueryError(AilogSearchError):
    """Invalid user input in a search request.

    Raised before the index is touched.
    """


class InvalidPattern(QueryError):
    """The regular expression does not compile."""


class InvalidDate(QueryError):
    """A date string is neither YYYY-MM-DD nor a relative <N>d/m/y form."""


class InvalidFilter(QueryError):
    """A filter value is outside its closed vocabulary."""


class InvalidQuery(QueryError):
    """Pagination, context or format arguments are out of range."""
