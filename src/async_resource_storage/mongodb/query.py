# src/async_resource_storage/mongodb/query.py
"""
Translation of framework queries into MongoDB filter, sort, projection and
window arguments.
"""
import inspect
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson.regex import Regex as BsonRegex
from pymongo import ASCENDING, DESCENDING

from async_resource_storage.base.context import OperationContext
from async_resource_storage.base.exceptions import NotImplementedException
from async_resource_storage.base.query import (NO_LIMIT, STAR_PROJECTION, And,
                                               ElemMatch, Equal, Exist,
                                               Expression, GreaterOrEqual,
                                               GreaterThan, In, LowerOrEqual,
                                               LowerThan, NotEqual, NotExist,
                                               NotIn, Or, Predicate, Query,
                                               Regex, Window)
from async_resource_storage.mongodb.codec import (APP_ID_FIELD, DB_ID_FIELD,
                                                  ETAG_FIELD, UPDATED_FIELD)

log = logging.getLogger(__name__)

SortSpec = List[Tuple[str, int]]

# Python flags with a MongoDB counterpart; re.UNICODE is implied for str patterns.
_REGEX_OPTIONS = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)


def get_field(name: str) -> str:
    """Translates a schema field name into its MongoDB name ("id" -> "_id")."""
    if name == APP_ID_FIELD:
        return DB_ID_FIELD
    return name


def regex_options(expression: Regex) -> str:
    """MongoDB regex options ("imsx") matching the flags of a compiled pattern."""
    if not isinstance(expression.value, re.Pattern):
        return ""
    return "".join(
        option for flag, option in _REGEX_OPTIONS if expression.value.flags & flag
    )


def get_query(query: Query) -> Dict[str, Any]:
    """Transforms the query predicate into a MongoDB filter document."""
    return translate_predicate(query.predicate)


def _to_predicate(expression: Union[Expression, Predicate]) -> Sequence[Expression]:
    if isinstance(expression, (list, tuple)):
        return expression
    return [expression]


def _translate_list(expressions: Sequence[Union[Expression, Predicate]]) -> List[Dict[str, Any]]:
    return [translate_predicate(_to_predicate(sub)) for sub in expressions]


def translate_predicate(predicate: Sequence[Expression]) -> Dict[str, Any]:
    """
    Translates a predicate (expressions implicitly AND-ed) into one filter document.

    Each expression contributes one key to the resulting document.

    Raises:
        NotImplementedException: If an expression kind has no MongoDB translation.
    """
    translated: Dict[str, Any] = {}
    for expression in predicate:
        if isinstance(expression, And):
            translated["$and"] = _translate_list(expression.expressions)
        elif isinstance(expression, Or):
            translated["$or"] = _translate_list(expression.expressions)
        elif isinstance(expression, ElemMatch):
            # Inner conditions all apply to the same array element
            element: Dict[str, Any] = {}
            for sub in _translate_list(expression.expressions):
                element.update(sub)
            translated[get_field(expression.field)] = {"$elemMatch": element}
        elif isinstance(expression, In):
            translated[get_field(expression.field)] = {"$in": list(expression.values)}
        elif isinstance(expression, NotIn):
            translated[get_field(expression.field)] = {"$nin": list(expression.values)}
        elif isinstance(expression, Exist):
            translated[get_field(expression.field)] = {"$exists": True}
        elif isinstance(expression, NotExist):
            translated[get_field(expression.field)] = {"$exists": False}
        elif isinstance(expression, Equal):
            translated[get_field(expression.field)] = expression.value
        elif isinstance(expression, NotEqual):
            translated[get_field(expression.field)] = {"$ne": expression.value}
        elif isinstance(expression, GreaterThan):
            translated[get_field(expression.field)] = {"$gt": expression.value}
        elif isinstance(expression, GreaterOrEqual):
            translated[get_field(expression.field)] = {"$gte": expression.value}
        elif isinstance(expression, LowerThan):
            translated[get_field(expression.field)] = {"$lt": expression.value}
        elif isinstance(expression, LowerOrEqual):
            translated[get_field(expression.field)] = {"$lte": expression.value}
        elif isinstance(expression, Regex):
            options = regex_options(expression)
            if expression.negated:
                translated[get_field(expression.field)] = {
                    "$not": BsonRegex(expression.pattern, options)
                }
            else:
                clause: Dict[str, Any] = {"$regex": expression.pattern}
                if options:
                    clause["$options"] = options
                translated[get_field(expression.field)] = clause
        else:
            log.error(
                f"Encountered unhandled expression during MongoDB translation: {expression!r}"
            )
            raise NotImplementedException(
                f"Unsupported query expression for MongoDB: {type(expression).__name__}"
            )
    return translated


def get_sort(query: Query) -> SortSpec:
    """
    Transforms the query sort list into a MongoDB sort specification.

    Falls back to `_id` when no sort is requested so pagination stays
    deterministic. Duplicate fields are removed keeping the last occurrence,
    as MongoDB rejects sort keys appearing twice.
    """
    if not query.sort:
        return [(DB_ID_FIELD, ASCENDING)]

    sort: SortSpec = [
        (get_field(s.name), DESCENDING if s.reversed else ASCENDING)
        for s in query.sort
    ]

    seen = set()
    deduplicated: SortSpec = []
    for key, direction in reversed(sort):
        if key in seen:
            continue
        seen.add(key)
        deduplicated.append((key, direction))
    deduplicated.reverse()
    return deduplicated


def has_star_projection(query: Query) -> bool:
    return STAR_PROJECTION in query.projection_names()


def get_projection(query: Query) -> Optional[Dict[str, int]]:
    """
    Transforms the query projection into a MongoDB projection document.

    Returns None when every field is wanted. System fields are always
    included so that an Item can be rebuilt from the document.
    """
    names = query.projection_names()
    if not names or has_star_projection(query):
        return None

    projection = {DB_ID_FIELD: 1, ETAG_FIELD: 1, UPDATED_FIELD: 1}
    for name in names:
        if name == APP_ID_FIELD:
            continue
        # MongoDB partial projections apply to the top level field only
        projection[get_field(name.split(".", 1)[0])] = 1
    return projection


def apply_window(find_kwargs: Dict[str, Any], window: Window) -> Dict[str, Any]:
    """
    Adds skip/limit to keyword arguments for `collection.find`.

    A zero limit is passed through; MongoDB reads it as "no limit", so callers
    must handle it before querying.
    """
    if window.offset > 0:
        find_kwargs["skip"] = window.offset
    if window.limit > NO_LIMIT:
        find_kwargs["limit"] = window.limit
    return find_kwargs


async def close_cursor(cursor: Any) -> None:
    close = getattr(cursor, "close", None)
    if close is None:
        return
    result = close()
    # mongomock based cursors close synchronously
    if inspect.isawaitable(result):
        await result


async def select_ids(ctx: OperationContext, cursor: Any) -> List[Any]:
    """Collects the `_id` of every document of an `_id`-projected cursor."""
    ids: List[Any] = []
    try:
        async for doc in cursor:
            ctx.raise_if_done()
            ids.append(doc[DB_ID_FIELD])
    finally:
        await close_cursor(cursor)
    return ids
