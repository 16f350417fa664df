"""Game API endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Request, status

from storyrelay.api.schemas import (
    ActionRequest,
    CharacterImageRequest,
    ErrorResponse,
    ImageResponse,
    JoinGameRequest,
    MessageResponse,
    StartGameRequest,
)
from storyrelay.core.errors import SessionPausedError
from storyrelay.core.logging import get_logger
from storyrelay.services.identity import IdentityResolver
from storyrelay.services.turn_coordinator import TurnCoordinator

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["game"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}

SKIP_MESSAGE = "Previous player disconnected, turn skipped."


def get_coordinator(request: Request) -> TurnCoordinator:
    """TurnCoordinator 인스턴스 반환 (의존성 주입)"""
    coordinator: TurnCoordinator = request.app.state.coordinator
    return coordinator


def get_identity_resolver(request: Request) -> IdentityResolver:
    """IdentityResolver 인스턴스 반환 (의존성 주입)"""
    resolver: IdentityResolver = request.app.state.identity
    return resolver


def get_current_user(
    authorization: Optional[str] = Header(None),
    identity: IdentityResolver = Depends(get_identity_resolver),
) -> str:
    """Bearer 토큰 → user id"""
    return identity.resolve_header(authorization)


# === 게임 ===


@router.post(
    "/game/start",
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 502: {"model": ErrorResponse}},
)
async def start_game(
    request: StartGameRequest,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """
    새 게임 시작

    오프닝 장면(turn 0)을 생성하고 세션을 만듭니다.
    멀티플레이어 세션은 초대 코드를 함께 반환합니다.
    """
    started = await coordinator.start_game(
        user_id=user_id,
        theme=request.theme,
        character_name=request.character_name,
        character_gender=request.character_gender,
        character_image_url=request.character_image_url,
        is_multiplayer=request.is_multiplayer,
        max_players=request.max_players,
    )
    return started.to_document()


@router.post("/game/join", responses=ERROR_RESPONSES)
async def join_game(
    request: JoinGameRequest,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """초대 코드로 세션 참가"""
    result = await coordinator.join_game(
        user_id=user_id,
        invite_code=request.invite_code,
        character_name=request.character_name,
        character_gender=request.character_gender,
        character_image_url=request.character_image_url,
    )
    return result.to_document()


@router.post(
    "/game/action",
    responses={
        **ERROR_RESPONSES,
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def submit_action(
    request: ActionRequest,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """
    플레이어 액션 제출

    - 정상 처리: 갱신된 전체 세션 상태
    - 현재 플레이어 접속 끊김: 턴 스킵 (새 턴 없음)
    - 접속 중인 플레이어 없음: 409 session_paused
    """
    outcome = await coordinator.submit_action(
        session_id=request.session_id,
        user_id=user_id,
        action=request.action,
        from_turn_index=request.turn_index,
    )
    if outcome.paused:
        raise SessionPausedError(
            "No active players available to take the turn.",
            {"currentPlayerIndex": outcome.state.current_player_index},
        )
    if outcome.skipped:
        return {
            "message": SKIP_MESSAGE,
            "turnSkipped": True,
            "updatedState": outcome.state.to_document(),
        }
    return outcome.state.to_document()


# === 기록 ===


@router.get("/games/history", responses=ERROR_RESPONSES)
async def list_history(
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    """참가한 세션 목록 (최근 갱신 순)"""
    return [s.to_document() for s in coordinator.list_history(user_id)]


@router.get("/games/history/{session_id}", responses=ERROR_RESPONSES)
async def get_session_state(
    session_id: str,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """전체 세션 상태. 재접속 후 놓친 갱신을 복구할 때 사용."""
    return coordinator.get_state_for_member(session_id, user_id).to_document()


@router.delete(
    "/games/history/{session_id}",
    response_model=MessageResponse,
    responses=ERROR_RESPONSES,
)
async def delete_session(
    session_id: str,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> MessageResponse:
    """세션 삭제 (생성자만)"""
    await coordinator.delete_game(user_id, session_id)
    return MessageResponse(message="Session deleted successfully.")


# === 초대 / 이미지 ===


@router.get("/invite/{invite_code}", responses=ERROR_RESPONSES)
async def get_invite_info(
    invite_code: str,
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """초대 화면용 공개 정보 (인증 불필요)"""
    return coordinator.invite_info(invite_code).to_document()


@router.post(
    "/images/generate/character",
    response_model=ImageResponse,
    responses=ERROR_RESPONSES,
)
async def generate_character_image(
    request: CharacterImageRequest,
    user_id: str = Depends(get_current_user),
    coordinator: TurnCoordinator = Depends(get_coordinator),
) -> ImageResponse:
    """캐릭터 초상화 생성. 실패 시 placeholder URL."""
    logger.info("User %s generating portrait for %s", user_id, request.character_name)
    image_url = await coordinator.generate_character_portrait(
        theme=request.theme,
        character_name=request.character_name,
        character_gender=request.character_gender,
        description=request.character_description,
    )
    return ImageResponse(image_url=image_url)
