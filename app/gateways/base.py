from abc import ABC, abstractmethod
from typing import Dict, Any


class BaseGateway(ABC):
    """Abstract base for payment gateway clients."""

    @abstractmethod
    async def create_refund(
        self, payment_id: str, amount_minor: int, notes: Dict[str, str]
    ) -> Dict[str, Any]:
        """
        Ask the gateway to refund a captured payment.
        amount_minor is in the gateway's integer subunit (paise, cents).
        Returns the gateway's refund entity; must contain its "id".
        Raises GatewayError when the gateway rejects the request.
        """
        pass

    @property
    @abstractmethod
    def gateway_name(self) -> str:
        pass
