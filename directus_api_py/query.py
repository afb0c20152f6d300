from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import sqlparse
from sqlparse import tokens as T
from sqlparse.sql import Comparison, Identifier, Parenthesis, Token, Where

from directus_api_py.errors import QueryError


class Version(IntEnum):
    """Generation of the Directus query-parameter dialect."""
    V8 = 8
    V9 = 9

    @classmethod
    def parse(cls, value: Version | int | str) -> Version:
        """Accept `Version.V9`, `9` or `"v9"`."""
        if isinstance(value, str):
            value = value.strip().lower().lstrip("v")
            if not value.isdigit():
                raise ValueError(f"unknown Directus version: {value!r}")
        try:
            return cls(int(value))
        except ValueError:
            raise ValueError(f"unknown Directus version: {value!r}") from None


@dataclass
class DOp:
    EQUALS = "_eq"
    NOT_EQUALS = "_neq"
    LESS_THAN = "_lt"
    LESS_THAN_EQUAL = "_lte"
    GREATER_THAN = "_gt"
    GREATER_THAN_EQUAL = "_gte"
    IN = "_in"
    NOT_IN = "_nin"
    NULL = "_null"
    NOT_NULL = "_nnull"
    CONTAINS = "_contains"
    NOT_CONTAINS = "_ncontains"
    STARTS_WITH = "_starts_with"
    ENDS_WITH = "_ends_with"
    BETWEEN = "_between"
    NOT_BETWEEN = "_nbetween"
    EMPTY = "_empty"
    NOT_EMPTY = "_nempty"


LOGICAL_OPS = ("_and", "_or")


class Query:
    """
    Filter, sort and paging options for listing items.

    The filter is kept as a Directus filter tree, e.g.
    `{"_and": [{"status": {"_eq": "published"}}, {"author": {"name": {"_eq": "Ann"}}}]}`.

    Example:
        Query().field("status", DOp.EQUALS, "published").sort("-date_created").limit(10)
    """

    def __init__(self):
        self.filter: dict[str, Any] = {}
        self.sort_fields: list[str] = []
        self.limit_value: int | None = None
        self.offset_value: int | None = None
        self.page_value: int | None = None
        self.search_value: str | None = None

    def nested_condition(self, logic_op: str, conditions: list[dict[str, Any]]) -> Query:
        """
        Add nested logical conditions (_and/_or)
        Allows for complex nested conditions
        """
        if logic_op not in LOGICAL_OPS:
            raise QueryError(f"unknown logical operator: {logic_op}")
        if not conditions:
            return self

        if not self.filter:
            self.filter = {logic_op: list(conditions)}
        elif list(self.filter) == [logic_op]:
            self.filter[logic_op].extend(conditions)
        else:
            # Wrap what we have in the new logical operator
            self.filter = {logic_op: [self.filter, *conditions]}
        return self

    def or_condition(self, conditions: list[dict[str, Any]]) -> Query:
        """Add OR conditions"""
        return self.nested_condition("_or", conditions)

    def and_condition(self, conditions: list[dict[str, Any]]) -> Query:
        """Add AND conditions"""
        return self.nested_condition("_and", conditions)

    def field(self, field_name: str, operator: str, value: Any = True) -> Query:
        """Add a field filter condition, dotted names filter on related fields"""
        return self.and_condition([condition(field_name, operator, value)])

    def sort(self, *fields: str) -> Query:
        """
        Add sort conditions. Use '-' prefix for descending order.
        Example:
            .sort('name', '-date_created') # Sort by name ASC, date_created DESC
        """
        if not fields:
            return self

        self.sort_fields = list(fields)
        return self

    def limit(self, limit: int) -> Query:
        """
        Set the maximum number of items to return
        Use -1 for maximum allowed items
        """
        self.limit_value = limit
        return self

    def offset(self, offset: int) -> Query:
        """Set the number of items to skip"""
        self.offset_value = offset
        return self

    def page(self, page: int) -> Query:
        """Set the page number (1-indexed)"""
        self.page_value = page
        return self

    def search(self, text: str) -> Query:
        """Full text search over all text fields"""
        self.search_value = text
        return self

    def as_key_value(self, version: Version) -> dict[str, str]:
        return as_key_value(self, version)


def condition(field_name: str, operator: str, value: Any) -> dict[str, Any]:
    """Build a single filter condition, `a.b` becomes `{"a": {"b": {op: value}}}`"""
    node: dict[str, Any] = {operator: value}
    for part in reversed(field_name.split(".")):
        node = {part: node}
    return node


def as_key_value(query: Query, version: Version) -> dict[str, str]:
    """
    Translate `query` into query-string parameters for the given API version.

    Args:
        query (Query): The query to translate.
        version (Version): Dialect of the target server.

    Returns:
        dict: Parameter names mapped to string values.

    Raises:
        QueryError: The query can't be expressed in the v8 dialect.
    """
    version = Version.parse(version)
    params: dict[str, str] = {}

    if query.filter:
        if version is Version.V8:
            params.update(_v8_filter_params(query.filter))
        else:
            params["filter"] = json.dumps(query.filter, separators=(",", ":"), default=str)

    if query.sort_fields:
        params["sort"] = ",".join(query.sort_fields)
    if query.limit_value is not None:
        params["limit"] = str(query.limit_value)
    if query.offset_value is not None:
        params["offset"] = str(query.offset_value)
    if query.page_value is not None:
        params["page"] = str(query.page_value)
    if query.search_value:
        params["q" if version is Version.V8 else "search"] = query.search_value

    return params


def _v8_filter_params(node: dict[str, Any]) -> dict[str, str]:
    """
    Translate a filter tree to v8 `filter[field][op]` parameters.

    v8 filters are ANDed unless a field carries `[logical]=or`, so a
    top-level `_or` works as long as each member is a single condition.
    """
    node = _strip_single_groups(node)
    params: dict[str, str] = {}
    if list(node) == ["_or"]:
        for index, member in enumerate(node["_or"]):
            conditions = _flatten_v8(member, "")
            if len(conditions) != 1:
                raise QueryError("the v8 query dialect can only OR single conditions")
            path, op, value = conditions[0]
            _put(params, f"filter[{path}][{op.lstrip('_')}]", _v8_value(value))
            if index:
                _put(params, f"filter[{path}][logical]", "or")
        return params

    for path, op, value in _flatten_v8(node, ""):
        _put(params, f"filter[{path}][{op.lstrip('_')}]", _v8_value(value))
    return params


def _strip_single_groups(node: dict[str, Any]) -> dict[str, Any]:
    while len(node) == 1 and list(node)[0] in LOGICAL_OPS and len(node[list(node)[0]]) == 1:
        node = node[list(node)[0]][0]
    return node


def _put(params: dict[str, str], key: str, value: str) -> None:
    if key in params:
        raise QueryError(f"the v8 query dialect can't repeat {key}")
    params[key] = value


def _flatten_v8(node: dict[str, Any], prefix: str) -> list[tuple[str, str, Any]]:
    """Collect (field path, operator, value) from an ANDed filter tree"""
    conditions: list[tuple[str, str, Any]] = []
    for key, value in node.items():
        if key == "_or":
            raise QueryError("the v8 query dialect only supports _or at the top level of a filter")
        if key == "_and":
            for sub in value:
                conditions.extend(_flatten_v8(sub, prefix))
        elif key.startswith("_"):
            if not prefix:
                raise QueryError(f"operator {key} is not applied to a field")
            conditions.append((prefix, key, value))
        elif isinstance(value, dict):
            conditions.extend(_flatten_v8(value, f"{prefix}.{key}" if prefix else key))
        else:
            raise QueryError(f"filter on {key} has no operator")
    return conditions


def _v8_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set)):
        return ",".join(_v8_value(v) for v in value)
    return str(value)


class SQLToQueryConverter:
    """
    Convert a SQL SELECT statement into a `Query`.

    Only the WHERE, ORDER BY, LIMIT and OFFSET clauses are used, the
    selected columns and table come from the read model and collection.
    """

    def _format_sql(self, sql: str) -> str:
        """Format SQL query before parsing"""
        # Add spaces around parentheses
        sql = sql.replace("(", " ( ")
        sql = sql.replace(")", " ) ")
        # Remove multiple spaces
        sql = " ".join(sql.split())
        return sql

    def _get_next_value_after_keyword(self, tokens: list[Token], keyword: str) -> str | None:
        """Helper to get the next value after a keyword"""
        for i, token in enumerate(tokens):
            if token.is_keyword and token.normalized == keyword:
                # Look for the next non-whitespace token
                for next_token in tokens[i + 1:]:
                    if not next_token.is_whitespace:
                        return str(next_token)
        return None

    def _get_order_by_fields(self, tokens: list[Token]) -> list[str]:
        """
        Get the ORDER BY fields of the statement
        Descending fields are prefixed with '-'
        """
        order_fields: list[str] = []
        in_order_by = False
        current = ""
        descending = False

        for token in tokens:
            if token.is_whitespace:
                continue
            if token.is_keyword and token.normalized == "ORDER BY":
                in_order_by = True
                continue
            if not in_order_by:
                continue

            if token.is_keyword and token.normalized in ("LIMIT", "OFFSET"):
                break
            if token.match(T.Punctuation, (",", ";")):
                if current:
                    order_fields.append(f"-{current}" if descending else current)
                current, descending = "", False
                if token.value == ";":
                    break
            elif token.ttype in T.Keyword and token.normalized in ("ASC", "DESC"):
                descending = token.normalized == "DESC"
            else:
                current += token.value

        if current:
            order_fields.append(f"-{current}" if descending else current)
        return order_fields

    @staticmethod
    def _get_operator_mapping(sql_operator: str) -> str:
        """Map SQL operators to Directus operators"""
        mapping = {
            "=": DOp.EQUALS,
            "!=": DOp.NOT_EQUALS,
            "<>": DOp.NOT_EQUALS,
            "<": DOp.LESS_THAN,
            "<=": DOp.LESS_THAN_EQUAL,
            ">": DOp.GREATER_THAN,
            ">=": DOp.GREATER_THAN_EQUAL,
            "IN": DOp.IN,
            "NOT IN": DOp.NOT_IN,
            "IS NULL": DOp.NULL,
            "IS NOT NULL": DOp.NOT_NULL,
            "LIKE": DOp.CONTAINS,
            "NOT LIKE": DOp.NOT_CONTAINS,
        }
        operator = " ".join(sql_operator.upper().split())
        if operator not in mapping:
            raise QueryError(f"unsupported SQL operator: {sql_operator}")
        return mapping[operator]

    @staticmethod
    def _literal(token: Token) -> Any:
        """Python value of a literal token"""
        if token.ttype in T.String:
            return token.value[1:-1]
        if token.ttype in T.Number.Integer:
            return int(token.value)
        if token.ttype in T.Number:
            return float(token.value)
        if token.ttype in T.Keyword and token.normalized in ("TRUE", "FALSE"):
            return token.normalized == "TRUE"
        return str(token).strip()

    def _parse_comparison(self, comparison: Comparison) -> dict[str, Any]:
        """Parse a SQL comparison into a Directus filter condition"""
        left = str(comparison.left).strip()
        operator = None
        for token in comparison.tokens:
            if token.ttype in T.Operator.Comparison or (token.is_keyword and token.normalized in ("IN", "NOT IN")):
                operator = self._get_operator_mapping(token.value)
                break
        if operator is None:
            raise QueryError(f"can't parse comparison: {comparison}")
        return condition(left, operator, self._operand(comparison.right, operator))

    def _operand(self, token: Token, operator: str) -> Any:
        """Value on the right-hand side of a comparison"""
        if isinstance(token, Parenthesis):
            value = self._parse_values(token)
        elif token.ttype is not None:
            value = self._literal(token)
        else:
            value = str(token).strip()
        if operator in (DOp.CONTAINS, DOp.NOT_CONTAINS) and isinstance(value, str):
            value = value.strip("%")
        return value

    def _parse_values(self, parenthesis: Parenthesis) -> list[Any]:
        """Values of an IN list"""
        return [
            self._literal(token)
            for token in parenthesis.flatten()
            if token.ttype in T.String or token.ttype in T.Number or token.ttype in T.Name
        ]

    def _parse_conditions(self, tokens: list[Token]) -> dict[str, Any]:
        """
        Parse a list of WHERE tokens (conditions, groups, AND/OR keywords)
        Mixing AND and OR without parentheses is rejected
        """
        conditions: list[dict[str, Any]] = []
        logic_ops: set[str] = set()

        tokens = [token for token in tokens if not token.is_whitespace and token.ttype not in T.Comment]
        i = 0
        while i < len(tokens):
            token = tokens[i]

            if token.is_keyword and token.normalized in ("AND", "OR"):
                logic_ops.add(f"_{token.normalized.lower()}")
                i += 1
                continue

            if isinstance(token, Comparison):
                conditions.append(self._parse_comparison(token))
                i += 1
                continue

            if isinstance(token, Parenthesis):
                group = self._parse_conditions(token.tokens[1:-1])
                if group:
                    conditions.append(group)
                i += 1
                continue

            # columns named like keywords (views, owner) are not grouped by sqlparse
            if isinstance(token, Identifier) or token.ttype in T.Name or token.ttype in T.Keyword:
                consumed, cond = self._parse_keyword_condition(tokens[i:])
                conditions.append(cond)
                i += consumed
                continue

            if token.match(T.Punctuation, ";"):
                i += 1
                continue

            raise QueryError(f"unsupported token in WHERE clause: {token}")

        if len(logic_ops) > 1:
            raise QueryError("mixing AND and OR requires parentheses")
        if not conditions:
            return {}
        if len(conditions) == 1:
            return conditions[0]
        return {logic_ops.pop() if logic_ops else "_and": conditions}

    def _parse_keyword_condition(self, tokens: list[Token]) -> tuple[int, dict[str, Any]]:
        """
        Parse a condition sqlparse left ungrouped, returns tokens consumed and the condition

        Handles `x [NOT] IN (...)`, `x IS [NOT] NULL` and comparisons on
        columns named like SQL keywords (`views > 10`).
        """
        field_name = str(tokens[0]).strip()
        words: list[str] = []
        for i, token in enumerate(tokens[1:], start=1):
            # sqlparse may emit "NOT NULL" or "NOT IN" as a single token
            phrase = " ".join(words)
            if isinstance(token, Parenthesis):
                if phrase in ("IN", "NOT IN"):
                    operator = self._get_operator_mapping(phrase)
                    return i + 1, condition(field_name, operator, self._parse_values(token))
                break
            if token.ttype in T.Operator.Comparison and not words:
                if i + 1 >= len(tokens):
                    break
                operator = self._get_operator_mapping(token.value)
                return i + 2, condition(field_name, operator, self._operand(tokens[i + 1], operator))
            if not token.is_keyword:
                break
            words.extend(token.value.upper().split())
            phrase = " ".join(words)
            if phrase in ("IS NULL", "IS NOT NULL"):
                return i + 1, condition(field_name, self._get_operator_mapping(phrase), True)
        raise QueryError(f"can't parse condition on {field_name}")

    def convert(self, sql_query: str) -> Query:
        """Convert a SQL query to a Directus query"""
        # Format SQL before parsing
        sql_query = self._format_sql(sql_query)

        parsed = sqlparse.parse(sql_query)[0]
        tokens = list(parsed.flatten())

        query = Query()

        # Add WHERE conditions if present
        for token in parsed.tokens:
            if isinstance(token, Where):
                # drop the WHERE keyword itself
                filter_ = self._parse_conditions(token.tokens[1:])
                if filter_:
                    query.filter = filter_ if list(filter_)[0] in LOGICAL_OPS else {"_and": [filter_]}
                break

        # Add ORDER BY if present
        order_fields = self._get_order_by_fields(tokens)
        if order_fields:
            query.sort(*order_fields)

        # Get LIMIT and OFFSET values
        limit_str = self._get_next_value_after_keyword(tokens, "LIMIT")
        offset_str = self._get_next_value_after_keyword(tokens, "OFFSET")
        if limit_str and limit_str.lstrip("-").isdigit():
            query.limit(int(limit_str))
        if offset_str and offset_str.isdigit():
            query.offset(int(offset_str))

        return query


def query_from_sql(sql_query: str) -> Query:
    return SQLToQueryConverter().convert(sql_query)
