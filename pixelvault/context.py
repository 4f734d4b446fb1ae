"""Per-operation state shared with hooks, and the rendered image result."""

from dataclasses import dataclass, field
from typing import Any, Optional

from pixelvault.transformations.parser import TransformationDescriptor

# Operation names. Hooks subscribe to "<operation>PreExec"/"<operation>PostExec".
ADD_IMAGE = "addImage"
GET_IMAGE = "getImage"
DELETE_IMAGE = "deleteImage"
GET_METADATA = "getMetadata"
EDIT_METADATA = "editMetadata"
DELETE_METADATA = "deleteMetadata"

OPERATIONS = (ADD_IMAGE, GET_IMAGE, DELETE_IMAGE, GET_METADATA, EDIT_METADATA, DELETE_METADATA)


@dataclass(frozen=True)
class RenderedImage:
    """Encoded image bytes plus what a response formatter needs to serve them."""

    blob: bytes
    mime_type: str
    width: int
    height: int


@dataclass(slots=True)
class OperationContext:
    """State of one operation invocation.

    Hooks receive the same instance by reference and may read or change
    these fields. A pre-exec hook that sets ``result`` short-circuits the
    operation's own work; post-exec hooks see the final ``result``.
    """

    operation: str
    account_id: str
    image_identifier: Optional[str] = None
    transformations: list[TransformationDescriptor] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    annotations: dict[str, Any] = field(default_factory=dict)
