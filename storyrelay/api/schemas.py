"""API request/response schemas."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# === Request Schemas ===


class StartGameRequest(_CamelModel):
    """새 게임 시작 요청"""

    theme: str = Field(..., description="장르 / 테마")
    character_name: str = Field(..., alias="characterName")
    character_gender: str = Field(..., alias="characterGender")
    character_image_url: Optional[str] = Field(None, alias="characterImageUrl")
    is_multiplayer: bool = Field(False, alias="isMultiplayer")
    max_players: Optional[int] = Field(None, alias="maxPlayers")


class JoinGameRequest(_CamelModel):
    """초대 코드로 참가 요청"""

    invite_code: str = Field(..., alias="inviteCode")
    character_name: str = Field(..., alias="characterName")
    character_gender: str = Field(..., alias="characterGender")
    character_image_url: Optional[str] = Field(None, alias="characterImageUrl")


class ActionRequest(_CamelModel):
    """플레이어 액션 요청"""

    session_id: str = Field(..., alias="sessionId")
    action: str
    turn_index: int = Field(
        ..., alias="turnIndex", description="Latest turn index the client has seen"
    )


class CharacterImageRequest(_CamelModel):
    theme: str
    character_name: str = Field(..., alias="characterName")
    character_gender: str = Field(..., alias="characterGender")
    character_description: Optional[str] = Field(None, alias="characterDescription")


# === Response Schemas ===


class ErrorResponse(BaseModel):
    """Structured error body"""

    error: str
    code: str
    retryable: bool = False
    details: Optional[dict[str, Any]] = None


class MessageResponse(BaseModel):
    message: str


class ImageResponse(_CamelModel):
    image_url: str = Field(..., serialization_alias="imageUrl")
