"""Identity of the virtual cluster a run connects to."""

from pydantic import BaseModel, ConfigDict, Field


class Target(BaseModel):
    """A virtual cluster instance and the local port its tunnel binds to."""

    model_config = ConfigDict(frozen=True)

    namespace: str | None = Field(
        None, description="Host namespace of the instance (CLI default when unset)"
    )
    name: str = Field(..., min_length=1, description="Virtual cluster name")
    local_port: int = Field(
        ..., ge=1, le=65535, description="Local port for the tunnel endpoint"
    )

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}@localhost:{self.local_port}"
        return f"{self.name}@localhost:{self.local_port}"
