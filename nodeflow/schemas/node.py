"""Node-related Pydantic schemas."""

from pydantic import BaseModel, Field


class NodeTypeInfo(BaseModel):
    """Summary of a registered node type."""

    type: str
    display_name: str = Field(..., alias="displayName")
    description: str
    kind: str
    versions: list[int]
    group: list[str] | None = None
    input_count: int = Field(..., alias="inputCount")
    output_count: int = Field(..., alias="outputCount")

    model_config = {"populate_by_name": True}
