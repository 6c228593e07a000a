# Generator API - Password generation and strength scoring
#
# Stateless; needs the session token but not an unlocked vault.

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..vault import InvalidConfig, generate_password, score_password
from ..vault.generator import DEFAULT_LENGTH, MAX_LENGTH, GeneratorConfig
from .security import verify_session_token
from .services import vault_http_error

router = APIRouter(
    prefix="/api/generator",
    tags=["generator"],
    dependencies=[Depends(verify_session_token)],
)


class GenerateRequest(BaseModel):
    length: int = Field(DEFAULT_LENGTH, ge=1, le=MAX_LENGTH)
    include_uppercase: bool = True
    include_lowercase: bool = True
    include_numbers: bool = True
    include_symbols: bool = True


class StrengthRequest(BaseModel):
    password: str


@router.post("")
def generate(request: GenerateRequest):
    """Generate a password and score it."""
    try:
        password = generate_password(GeneratorConfig(**request.model_dump()))
    except InvalidConfig as e:
        raise vault_http_error(e)

    return {"password": password, "strength": score_password(password)._asdict()}


@router.post("/strength")
def strength(request: StrengthRequest):
    """Score a password: {score, label, color}."""
    return score_password(request.password)._asdict()
