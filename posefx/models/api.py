from pydantic import BaseModel, Field


class SessionActionResponse(BaseModel):
    ok: bool
    message: str


class EffectSetRequest(BaseModel):
    enabled: list[str] = Field(default_factory=list)


class PersonCountRequest(BaseModel):
    count: int = Field(ge=1)
