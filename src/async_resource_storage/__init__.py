# src/async_resource_storage/__init__.py

"""
Async Resource Storage Initialization.

This package provides a MongoDB storage handler for a REST resource framework:
items guarded by entity tags, a predicate AST compiled to MongoDB filters, and
per-call operation contexts carrying deadline, cancellation and logger.

It initializes a logger with a NullHandler and makes the core components
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface, Items and Context Exports
# --------------------------------------------------------------------------
from .base.interfaces import Storer, Reducer
from .base.item import Item, ItemList, UNKNOWN_TOTAL
from .base.context import OperationContext
from .base.exceptions import (
    ObjectNotFoundException,
    ConflictException,
    KeyAlreadyExistsException,
    NotImplementedException,
    ContextDoneException,
    OperationCancelledException,
    DeadlineExceededException,
    ClearIncompleteException,
)

# --------------------------------------------------------------------------
# Query Exports
# --------------------------------------------------------------------------
from .base.query import (
    Query,
    Window,
    SortField,
    ProjectionField,
    Expression,
    And,
    Or,
    ElemMatch,
    In,
    NotIn,
    Exist,
    NotExist,
    Equal,
    NotEqual,
    GreaterThan,
    GreaterOrEqual,
    LowerThan,
    LowerOrEqual,
    Regex,
)

# --------------------------------------------------------------------------
# Handler Implementation Exports
# --------------------------------------------------------------------------
from .mongodb.settings import MongoSettings
from .db_implementations.mongodb_handler import MongoDBHandler

__all__ = [
    # Core
    "Storer",
    "Reducer",
    "Item",
    "ItemList",
    "UNKNOWN_TOTAL",
    "OperationContext",
    # Exceptions
    "ObjectNotFoundException",
    "ConflictException",
    "KeyAlreadyExistsException",
    "NotImplementedException",
    "ContextDoneException",
    "OperationCancelledException",
    "DeadlineExceededException",
    "ClearIncompleteException",
    # Query
    "Query",
    "Window",
    "SortField",
    "ProjectionField",
    "Expression",
    "And",
    "Or",
    "ElemMatch",
    "In",
    "NotIn",
    "Exist",
    "NotExist",
    "Equal",
    "NotEqual",
    "GreaterThan",
    "GreaterOrEqual",
    "LowerThan",
    "LowerOrEqual",
    "Regex",
    # Implementations
    "MongoSettings",
    "MongoDBHandler",
    # Logging
    "logger",
]
