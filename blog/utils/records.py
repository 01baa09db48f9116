from typing import Any


def to_native(value: Any) -> Any:
    """Convert neo4j temporal values (and lists of them) to Python types."""
    if isinstance(value, list):
        return [to_native(item) for item in value]
    if hasattr(value, "to_native"):
        return value.to_native()
    return value


def node_to_dict(node: Any) -> dict[str, Any]:
    """Copy a neo4j node or map into a plain dict that pydantic can parse.

    Null entries of map projections are dropped so that model defaults apply,
    matching how absent node properties behave.

    Args:
        node: A neo4j Node, or any mapping returned from a query

    Returns:
        Dict of the node's properties with temporal values made native
    """
    return {
        key: to_native(value) for key, value in dict(node).items() if value is not None
    }
