from dataclasses import is_dataclass, asdict
from typing import Any


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and containers to BSON-compatible values.

    It handles:
    - Pydantic BaseModel instances (dumped by alias, keeping native types such as datetime)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item). Tuples and sets become
      lists, as BSON stores every sequence as an array and reads it back as a list
    - Pydantic URL types (converting to strings)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    # Handle dataclasses
    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Handle Pydantic models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump(mode="python", by_alias=True))

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    # BSON has no tuple or set type
    if isinstance(data, (tuple, set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    # Handle Pydantic URL types and other special types
    if data.__class__.__module__.startswith("pydantic.networks") or (
        data.__class__.__module__.startswith("pydantic_core")
        and "Url" in data.__class__.__name__
    ):
        return str(data)

    return data
