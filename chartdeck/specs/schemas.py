"""Chart specification tree schemas.

A VisualizationSpec node carries an optional data descriptor and up to
five composition slots. Everything else a chart grammar puts on a node
(mark, encoding, $schema, width, ...) is kept verbatim as extra fields,
so a spec survives parse -> walk -> dump without losing keys.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from chartdeck.errors import InvalidSpecError

# Fixed visiting order of composition slots
CHILD_SLOTS = ("layer", "concat", "hconcat", "vconcat", "spec")


class DataDescriptor(BaseModel):
    """The `data` field of a spec node.

    Exactly one kind may be present: inline `values`, a named dataset
    reference (`name`), or a remote `url`.
    """

    model_config = ConfigDict(extra="allow")

    values: Optional[Any] = Field(
        default=None,
        description="Inline payload: array of records or raw delimited text",
    )
    name: Optional[str] = Field(
        default=None,
        description="Reference to a stored dataset by its unique name",
    )
    url: Optional[str] = Field(default=None, description="Remote data location")
    format: Optional[Any] = Field(
        default=None,
        description="Format tag, usually {'type': 'csv'}",
    )

    @model_validator(mode="after")
    def _single_kind(self) -> "DataDescriptor":
        kinds = [k for k in ("values", "name", "url") if getattr(self, k) is not None]
        if len(kinds) > 1:
            raise ValueError(
                f"data may hold only one of values, name, url. Got: {', '.join(kinds)}"
            )
        return self

    @property
    def is_inline(self) -> bool:
        return isinstance(self.values, (list, str))

    @property
    def format_type(self) -> Optional[str]:
        if isinstance(self.format, dict):
            fmt = self.format.get("type")
            return fmt if isinstance(fmt, str) else None
        if isinstance(self.format, str):
            return self.format
        return None


class VisualizationSpec(BaseModel):
    """One node of a recursively composable chart specification."""

    model_config = ConfigDict(extra="allow")

    data: Optional[DataDescriptor] = None
    layer: Optional[list["VisualizationSpec"]] = None
    concat: Optional[list["VisualizationSpec"]] = None
    hconcat: Optional[list["VisualizationSpec"]] = None
    vconcat: Optional[list["VisualizationSpec"]] = None
    spec: Optional["VisualizationSpec"] = None

    def children(self) -> list["VisualizationSpec"]:
        """Direct child nodes in slot order."""
        found: list[VisualizationSpec] = []
        for slot in CHILD_SLOTS:
            value = getattr(self, slot)
            if value is None:
                continue
            if isinstance(value, list):
                found.extend(value)
            else:
                found.append(value)
        return found


VisualizationSpec.model_rebuild()


def parse_spec(tree: Any) -> VisualizationSpec:
    """Validate a JSON tree into a VisualizationSpec.

    Raises InvalidSpecError when the tree is not an object or a composition
    slot has the wrong shape.
    """
    if isinstance(tree, VisualizationSpec):
        return tree
    if not isinstance(tree, dict):
        raise InvalidSpecError(
            f"Spec must be a JSON object, got {type(tree).__name__}"
        )
    try:
        return VisualizationSpec.model_validate(tree)
    except ValidationError as e:
        raise InvalidSpecError(f"Invalid spec structure: {e}") from e


def dump_spec(spec: VisualizationSpec) -> dict[str, Any]:
    """Dump a spec back to a JSON tree, keeping only keys the input carried."""
    return spec.model_dump(exclude_unset=True)
