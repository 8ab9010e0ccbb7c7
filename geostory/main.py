import os
import logging
import sqlite3
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .editor_steps import next_step
from .companion_prompt import generate_system_prompt
from .game_store import GameStore
from .gemini_service import generate_card_content
from .models import (
    AICompanionInput,
    CardCategory,
    CardInput,
    CharacterInput,
    GameStatus,
    GameVisibility,
    GeneralInfoInput,
    GenerateCardInput,
    GeneratedCard,
    LoginInput,
    POIInput,
)
from .publish_validator import ValidationResult, evaluate

# Configure logging to a file with rotation
log_file_path = os.getenv("GEOSTORY_LOG_PATH", os.path.join(os.path.dirname(__file__), "server.log"))

# Rotates daily (when='midnight'), keeps 7 backup files
file_handler = TimedRotatingFileHandler(log_file_path, when="midnight", interval=1, backupCount=7)
file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        file_handler,
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger(__name__)

logger.info("FastAPI application starting...")

app = FastAPI(
    title="GeoStory Studio",
    description="Authoring API for location-based storytelling games."
)

cors_origins = [origin.strip() for origin in os.getenv("GEOSTORY_CORS_ORIGINS", "*").split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

DEFAULT_AI_COMPANION = {
    "name": "Sage",
    "tone": "calm",
    "personality": "mentor",
    "relationship": "guide",
    "humor_level": 0,
    "formality": 1,
}

_game_store: Optional[GameStore] = None


def get_store() -> GameStore:
    global _game_store
    if _game_store is None:
        _game_store = GameStore()
    return _game_store


def get_current_user(authorization: Optional[str] = Header(None),
                     store: GameStore = Depends(get_store)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = store.get_user_id_for_token(authorization[len("Bearer "):].strip())
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _require_game(store: GameStore, game_id: str, user_id: str, status_code: int = 404):
    if not store.owns_game(game_id, user_id):
        raise HTTPException(status_code=status_code, detail="Game not found")


def _store_write(failure_message: str, operation: Callable, *args) -> Any:
    try:
        return operation(*args)
    except sqlite3.Error as e:
        logger.error(f"{failure_message}: {type(e).__name__}: {e}")
        raise HTTPException(status_code=500, detail=failure_message)


def _readiness(snapshot: Dict[str, Any]) -> ValidationResult:
    return evaluate(
        snapshot["game"],
        snapshot["characters"],
        snapshot["pois"],
        snapshot["cards"],
        snapshot["ai_config"],
    )


def _readiness_payload(result: ValidationResult) -> Dict[str, Any]:
    return {"ready": result.ready, "violations": result.violations}


# --- API Endpoints ---

@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/auth/login")
def login(login_input: LoginInput, store: GameStore = Depends(get_store)):
    logger.info(f"Sign-in request for {login_input.email}")
    return store.create_user_session(login_input.email)


@app.get("/editor/steps/{step}/next")
def get_next_step(step: str):
    return {"step": step, "next_step": next_step(step)}


# --- Games ---

@app.get("/games")
def list_games(user_id: str = Depends(get_current_user), store: GameStore = Depends(get_store)):
    games = []
    for game in store.list_games(user_id):
        snapshot = store.load_snapshot(game["game_id"], user_id)
        if not snapshot:
            # Gone since the list read
            continue
        games.append({**game, "readiness": _readiness_payload(_readiness(snapshot))})
    return {"games": games}


@app.post("/games")
def create_game(user_id: str = Depends(get_current_user), store: GameStore = Depends(get_store)):
    game_id = _store_write("Failed to create game", store.create_game, user_id)
    logger.info(f"Created draft game {game_id} for user {user_id}")
    return {"game_id": game_id, "next_step": "general"}


@app.get("/games/{game_id}")
def get_game(game_id: str, user_id: str = Depends(get_current_user), store: GameStore = Depends(get_store)):
    game = store.get_game(game_id, user_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


@app.put("/games/{game_id}/general")
def update_general_info(game_id: str, general_info: GeneralInfoInput,
                        user_id: str = Depends(get_current_user),
                        store: GameStore = Depends(get_store)):
    updated = _store_write("Failed to update information.", store.update_general_info,
                           game_id, user_id, general_info.model_dump(mode="json"))
    if not updated:
        raise HTTPException(status_code=404, detail="Game not found")
    return {"message": "General information updated!", "next_step": next_step("general")}


# --- Characters ---

@app.get("/games/{game_id}/characters")
def list_characters(game_id: str, user_id: str = Depends(get_current_user),
                    store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id)
    return {"characters": store.list_characters(game_id, user_id)}


@app.post("/games/{game_id}/characters")
def create_character(game_id: str, character: CharacterInput,
                     user_id: str = Depends(get_current_user),
                     store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = character.model_dump(mode="json")
    data["image_url"] = data.get("image_url") or None
    character_id = _store_write("Failed to create character", store.add_character, game_id, user_id, data)
    if character_id is None:
        raise HTTPException(status_code=403, detail="Game not found")
    return {"success": True, "id": character_id, "next_step": next_step("characters")}


@app.put("/games/{game_id}/characters/{character_id}")
def update_character(game_id: str, character_id: int, character: CharacterInput,
                     user_id: str = Depends(get_current_user),
                     store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = character.model_dump(mode="json")
    data["image_url"] = data.get("image_url") or None
    if not _store_write("Failed to update character", store.update_character, game_id, user_id, character_id, data):
        raise HTTPException(status_code=404, detail="Character not found")
    return {"success": True, "next_step": next_step("characters")}


@app.delete("/games/{game_id}/characters/{character_id}")
def delete_character(game_id: str, character_id: int,
                     user_id: str = Depends(get_current_user),
                     store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    if not _store_write("Failed to delete character", store.delete_character, game_id, user_id, character_id):
        raise HTTPException(status_code=404, detail="Character not found")
    return {"success": True}


# --- Points of interest ---

@app.get("/games/{game_id}/pois")
def list_pois(game_id: str, user_id: str = Depends(get_current_user),
              store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id)
    game = store.get_game(game_id, user_id)
    center = game["location"] if game and game["location"] else {"lat": 0, "lng": 0}
    return {"pois": store.list_pois(game_id, user_id), "center": center}


@app.post("/games/{game_id}/pois")
def create_poi(game_id: str, poi: POIInput,
               user_id: str = Depends(get_current_user),
               store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = poi.model_dump(mode="json")
    data["image_url"] = data.get("image_url") or None
    poi_id = _store_write("Failed to create POI", store.add_poi, game_id, user_id, data)
    if poi_id is None:
        raise HTTPException(status_code=403, detail="Game not found")
    return {"success": True, "id": poi_id, "next_step": next_step("pois")}


@app.put("/games/{game_id}/pois/{poi_id}")
def update_poi(game_id: str, poi_id: int, poi: POIInput,
               user_id: str = Depends(get_current_user),
               store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = poi.model_dump(mode="json")
    data["image_url"] = data.get("image_url") or None
    if not _store_write("Failed to update POI", store.update_poi, game_id, user_id, poi_id, data):
        raise HTTPException(status_code=404, detail="POI not found")
    return {"success": True, "next_step": next_step("pois")}


@app.delete("/games/{game_id}/pois/{poi_id}")
def delete_poi(game_id: str, poi_id: int,
               user_id: str = Depends(get_current_user),
               store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    if not _store_write("Failed to delete POI", store.delete_poi, game_id, user_id, poi_id):
        raise HTTPException(status_code=404, detail="POI not found")
    return {"success": True}


# --- Cards ---

def _card_data(card: CardInput, game_id: str, user_id: str, store: GameStore) -> Dict[str, Any]:
    data = card.model_dump(mode="json")
    if card.card_category == CardCategory.GENERAL:
        data["poi_id"] = None
    else:
        data["keywords"] = None
        if card.poi_id is not None and not store.poi_in_game(game_id, user_id, card.poi_id):
            raise HTTPException(status_code=400, detail="POI not found in this game")
    return data


@app.get("/games/{game_id}/cards")
def list_cards(game_id: str, user_id: str = Depends(get_current_user),
               store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id)
    pois = [{"id": poi["id"], "name": poi["name"]} for poi in store.list_pois(game_id, user_id)]
    pois.sort(key=lambda poi: poi["name"] or "")
    return {"cards": store.list_cards(game_id, user_id), "pois": pois}


@app.post("/games/{game_id}/cards")
def create_card(game_id: str, card: CardInput,
                user_id: str = Depends(get_current_user),
                store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = _card_data(card, game_id, user_id, store)
    card_id = _store_write("Failed to create card", store.add_card, game_id, user_id, data)
    if card_id is None:
        raise HTTPException(status_code=403, detail="Game not found")
    return {"success": True, "id": card_id, "next_step": next_step("cards")}


@app.put("/games/{game_id}/cards/{card_id}")
def update_card(game_id: str, card_id: int, card: CardInput,
                user_id: str = Depends(get_current_user),
                store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = _card_data(card, game_id, user_id, store)
    if not _store_write("Failed to update card", store.update_card, game_id, user_id, card_id, data):
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True, "next_step": next_step("cards")}


@app.delete("/games/{game_id}/cards/{card_id}")
def delete_card(game_id: str, card_id: int,
                user_id: str = Depends(get_current_user),
                store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    if not _store_write("Failed to delete card", store.delete_card, game_id, user_id, card_id):
        raise HTTPException(status_code=404, detail="Card not found")
    return {"success": True}


# --- AI companion ---

@app.get("/games/{game_id}/ai-companion")
def get_ai_companion(game_id: str, user_id: str = Depends(get_current_user),
                     store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id)
    config = store.get_ai_config(game_id, user_id)
    return {"ai_config": config, "form": config or DEFAULT_AI_COMPANION}


@app.put("/games/{game_id}/ai-companion")
def save_ai_companion(game_id: str, companion: AICompanionInput,
                      user_id: str = Depends(get_current_user),
                      store: GameStore = Depends(get_store)):
    _require_game(store, game_id, user_id, status_code=403)
    data = companion.model_dump(mode="json")
    data["system_prompt"] = generate_system_prompt(data)
    if not _store_write("Failed to save AI companion", store.save_ai_config, game_id, user_id, data):
        raise HTTPException(status_code=403, detail="Game not found")
    logger.info(f"Saved AI companion '{data['name']}' for game {game_id}")
    return {"success": True, "system_prompt": data["system_prompt"], "next_step": next_step("ai")}


# --- Review & publishing ---

@app.get("/games/{game_id}/review")
def review_game(game_id: str, user_id: str = Depends(get_current_user),
                store: GameStore = Depends(get_store)):
    snapshot = store.load_snapshot(game_id, user_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail="Game not found")
    return {**snapshot, "readiness": _readiness_payload(_readiness(snapshot))}


@app.post("/games/{game_id}/publish")
def publish_game(game_id: str, user_id: str = Depends(get_current_user),
                 store: GameStore = Depends(get_store)):
    snapshot = store.load_snapshot(game_id, user_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail="Game not found")

    result = _readiness(snapshot)
    if not result.ready:
        logger.info(f"Publish rejected for game {game_id}: {result.violations}")
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "validation_errors": result.violations}
        )

    published = _store_write("Failed to publish game", store.set_publication,
                             game_id, user_id, GameStatus.PUBLISHED.value, GameVisibility.PUBLIC.value)
    if not published:
        raise HTTPException(status_code=404, detail="Game not found")
    logger.info(f"Game {game_id} published")
    return {"game_id": game_id, "status": GameStatus.PUBLISHED.value, "visibility": GameVisibility.PUBLIC.value}


@app.post("/games/{game_id}/unpublish")
def unpublish_game(game_id: str, user_id: str = Depends(get_current_user),
                   store: GameStore = Depends(get_store)):
    unpublished = _store_write("Failed to unpublish game", store.set_publication,
                               game_id, user_id, GameStatus.DRAFT.value, GameVisibility.PRIVATE.value)
    if not unpublished:
        raise HTTPException(status_code=404, detail="Game not found")
    logger.info(f"Game {game_id} returned to draft")
    return {"game_id": game_id, "status": GameStatus.DRAFT.value, "visibility": GameVisibility.PRIVATE.value}


# --- AI card generation ---

@app.post("/api/generate-card", response_model=GeneratedCard)
async def generate_card(request: GenerateCardInput, user_id: str = Depends(get_current_user),
                        store: GameStore = Depends(get_store)):
    logger.info(f"Card generation request: {request.model_dump(mode='json')}")
    poi = None
    if request.card_category == CardCategory.POI_SPECIFIC and request.poi_id is not None:
        poi = await run_in_threadpool(store.get_poi_for_owner, request.poi_id, user_id)

    card = await generate_card_content(request, poi)
    if card is None:
        raise HTTPException(status_code=500, detail="Failed to generate content")
    return card
