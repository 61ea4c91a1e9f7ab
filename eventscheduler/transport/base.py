"""Base transport interface for talking to the scheduler service."""
from abc import ABC, abstractmethod
from pydantic import BaseModel, ConfigDict, Field


class TransportResponse(BaseModel):
    """Raw outcome of one request/response exchange."""
    model_config = ConfigDict(frozen=True)

    status_code: int
    content: bytes = b""
    headers: dict[str, str] = Field(default_factory=dict)


class Transport(ABC):
    """Abstract interface for request/response exchange implementations."""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        """
        Perform a single request.

        Args:
            method: HTTP method
            url: Absolute URL
            content: Encoded request body, if any
            headers: Extra request headers

        Returns:
            The response, whatever its status

        Raises:
            Exception: Any failure to obtain a response; the client
                normalizes it to TransportError
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
