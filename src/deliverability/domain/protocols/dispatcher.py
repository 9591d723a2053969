"""
Dispatcher protocol for domain layer.
Abstracts the provider call (SMS gateway, email API) from the core.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..value_objects import Channel


class Dispatcher(ABC):
    """Outbound delivery capability."""

    @abstractmethod
    async def dispatch(
        self,
        recipient: str,
        channel: Channel,
        payload: Dict[str, Any],
    ) -> Optional[str]:
        """Hand a message to the provider.

        Returns the provider message id when one is issued.
        Raises DispatchFailure when the provider refuses or is unreachable.
        """
        pass
