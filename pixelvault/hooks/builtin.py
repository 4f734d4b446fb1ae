"""Hooks shipped with the service."""

import logging

from pixelvault.context import GET_IMAGE, OperationContext
from pixelvault.errors import InvalidArgument

from .base import Hook, Phase, event_key

logger = logging.getLogger(__name__)


class TransformationLimitHook(Hook):
    """Reject image requests carrying too many transformations."""

    events = {event_key(GET_IMAGE, Phase.PRE_EXEC): 0}

    def __init__(self, max_transformations: int = 20):
        self.max_transformations = max_transformations

    def exec(self, context: OperationContext) -> None:
        count = len(context.transformations)
        if count > self.max_transformations:
            logger.warning(
                f"Rejected {count} transformations for "
                f"{context.account_id}/{context.image_identifier}"
            )
            raise InvalidArgument(
                f"Too many transformations: {count} (max {self.max_transformations})",
                details={"count": count, "max": self.max_transformations},
            )
