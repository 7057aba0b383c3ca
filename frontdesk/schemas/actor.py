"""Actor context schemas."""

from pydantic import BaseModel, ConfigDict, Field


class ActorContext(BaseModel):
    """
    Who is looking at the queue, and from which campus.

    Every call to the appointment service is scoped by the actor's bearer
    token and current coordinates.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    @property
    def location(self) -> str:
        """Location key used to scope sessions."""
        return f"{self.latitude:.6f},{self.longitude:.6f}"

    def headers(self) -> dict[str, str]:
        """Headers the appointment service expects on every request."""
        return {
            "Authorization": f"Bearer {self.token}",
            "X-Latitude": str(self.latitude),
            "X-Longitude": str(self.longitude),
        }
