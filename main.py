import hashlib
import logging
import re
from typing import Any, Dict, List

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
from audio_cache import COLLECTION as AUDIO_COLLECTION, AudioCache
from database import create_document, get_documents, to_public, utc_now_iso
from rewards import assign_reward_ids, resolve_claimed_reward
from schemas import (
    CompletionUpdate,
    Game as GameSchema,
    GameUpdate,
    GoogleUser as GoogleUserSchema,
    Notification as NotificationSchema,
    ReceiverAccountLink as ReceiverAccountLinkSchema,
    ReceiverData as ReceiverDataSchema,
    UserProfile as UserProfileSchema,
    UserProfileUpdate,
    ViewedRewards as ViewedRewardsSchema,
)

logger = logging.getLogger("dearly.api")

app = FastAPI(title="Dearly API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    # The web client reads `error` from failed responses.
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


def get_db():
    if database.db is None:
        raise HTTPException(500, "Database not configured")
    return database.db


# ----------------------
# Health
# ----------------------

@app.get("/")
def read_root():
    return {"message": "Dearly backend running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    db = database.db
    if db is None:
        return response
    try:
        response["collections"] = db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# ----------------------
# Viewed rewards
# ----------------------

@app.get("/api/games/{user_id}/viewed-rewards")
def get_viewed_rewards(user_id: str):
    db = get_db()
    doc = db["viewed_rewards"].find_one({"_id": user_id}) or {}
    return {"success": True, "viewedRewardIds": doc.get("viewedRewardIds", [])}


@app.put("/api/games/{user_id}/viewed-rewards")
def put_viewed_rewards(user_id: str, payload: ViewedRewardsSchema):
    db = get_db()
    # Whole-set overwrite; order kept, duplicates dropped.
    ids = list(dict.fromkeys(payload.viewed_reward_ids))
    db["viewed_rewards"].update_one(
        {"_id": user_id},
        {"$set": {"viewedRewardIds": ids, "updatedAt": utc_now_iso()}},
        upsert=True,
    )
    return {"success": True, "viewedRewardIds": ids}


# ----------------------
# Games
# ----------------------

def _find_game(user_id: str, game_id: str) -> Dict[str, Any]:
    game = get_db()["game"].find_one({"_id": game_id, "ownerId": user_id})
    if not game:
        raise HTTPException(404, "Game not found")
    return game


@app.get("/api/games/{user_id}")
def list_games(user_id: str):
    get_db()
    docs = get_documents("game", {"ownerId": user_id}, sort_field="createdAt")
    return {"success": True, "games": [to_public(d) for d in docs]}


@app.post("/api/games/{user_id}")
def create_game(user_id: str, payload: GameSchema):
    get_db()
    doc = payload.model_dump(by_alias=True, exclude_none=True)
    for key in ("_id", "id"):
        doc.pop(key, None)
    doc["rewards"] = assign_reward_ids(doc.get("rewards"))
    if payload.has_reward and not doc["rewards"]:
        raise HTTPException(400, f"A game with rewards needs exactly {config.REWARD_SLOTS} rewards")
    doc["hasReward"] = bool(doc["rewards"])
    doc.update({
        "ownerId": user_id,
        "isCompleted": False,
        "claimedRewardId": None,
        "rewardFulfilled": False,
        "completedAt": None,
    })
    game_id = create_document("game", doc)
    logger.info("Created %s game %s for %s", payload.type, game_id, user_id)
    return {"success": True, "game": to_public(_find_game(user_id, game_id))}


@app.put("/api/games/{user_id}/{game_id}")
def update_game(user_id: str, game_id: str, payload: GameUpdate):
    db = get_db()
    existing = _find_game(user_id, game_id)

    updates = payload.model_dump(by_alias=True, exclude_unset=True)
    if "rewards" in updates:
        updates["rewards"] = assign_reward_ids(updates["rewards"])
        updates["hasReward"] = bool(updates["rewards"])
    if "title" in updates and not (updates["title"] or "").strip():
        raise HTTPException(400, "Title is required")

    merged = {**existing, **updates}
    if merged.get("hasReward") and len(merged.get("rewards") or []) != config.REWARD_SLOTS:
        raise HTTPException(400, f"A game with rewards needs exactly {config.REWARD_SLOTS} rewards")
    updates["updatedAt"] = utc_now_iso()

    db["game"].update_one({"_id": game_id, "ownerId": user_id}, {"$set": updates})
    return {"success": True, "game": to_public(_find_game(user_id, game_id))}


@app.delete("/api/games/{user_id}/{game_id}")
def delete_game(user_id: str, game_id: str):
    db = get_db()
    _find_game(user_id, game_id)
    db["game"].delete_one({"_id": game_id, "ownerId": user_id})
    return {"success": True}


@app.get("/api/games/{user_id}/{game_id}/completion")
def get_completion(user_id: str, game_id: str):
    game = to_public(_find_game(user_id, game_id))
    return {
        "success": True,
        "isCompleted": bool(game.get("isCompleted")),
        "claimedRewardId": game.get("claimedRewardId"),
        "claimedReward": resolve_claimed_reward(game),
        "rewardFulfilled": bool(game.get("rewardFulfilled")),
        "completedAt": game.get("completedAt"),
        "score": game.get("score"),
    }


@app.put("/api/games/{user_id}/{game_id}/complete")
def complete_game(user_id: str, game_id: str, payload: CompletionUpdate):
    db = get_db()
    game = _find_game(user_id, game_id)
    updates: Dict[str, Any] = {}

    newly_completed = payload.is_completed is True and not game.get("isCompleted")
    if newly_completed:
        updates.update({"isCompleted": True, "completedAt": utc_now_iso()})
        if payload.score is not None:
            updates["score"] = payload.score
    if payload.claimed_reward_id is not None:
        if not game.get("hasReward"):
            raise HTTPException(400, "Game has no rewards to claim")
        updates["claimedRewardId"] = payload.claimed_reward_id
    if payload.reward_fulfilled is not None:
        updates["rewardFulfilled"] = payload.reward_fulfilled
        if payload.reward_fulfilled:
            updates["rewardFulfilledAt"] = utc_now_iso()
        if payload.email_message:
            updates["fulfillmentMessage"] = payload.email_message
        if payload.email_to_receiver:
            # Delivery is handled by the mail service reading fulfillmentMessage.
            logger.info("Reward fulfilment email queued for %s", payload.receiver_email or "receiver")

    if not updates:
        raise HTTPException(400, "Nothing to update")

    updates["updatedAt"] = utc_now_iso()
    db["game"].update_one({"_id": game_id, "ownerId": user_id}, {"$set": updates})

    if newly_completed:
        _notify(user_id, {
            "type": "game_completion",
            "gameId": game_id,
            "gameType": game.get("type"),
            "score": payload.score,
            "receiverName": payload.receiver_name,
        })
    return {"success": True, "game": to_public(_find_game(user_id, game_id))}


# ----------------------
# Receiver data
# ----------------------

def _valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


@app.get("/api/receiver-data/{user_id}")
def get_receiver_data(user_id: str):
    db = database.db
    if db is None:
        # Treated as a new user rather than an outage.
        return {"success": True, "data": None, "message": "No receiver data found (database connection issue)"}
    try:
        doc = db["receiver"].find_one({"_id": user_id})
    except Exception as e:
        logger.warning("Receiver data lookup failed for %s: %s", user_id, e)
        return {"success": True, "data": None, "message": "Database connection issue - treating as new user"}
    if not doc:
        return {"success": True, "data": None, "message": "No receiver data found"}
    return {"success": True, "data": {k: v for k, v in doc.items() if k != "_id"}}


@app.post("/api/receiver-data/{user_id}")
def save_receiver_data(user_id: str, payload: ReceiverDataSchema):
    if not payload.name or not payload.email:
        raise HTTPException(400, "Name and email are required")
    if not _valid_email(payload.email.strip()):
        raise HTTPException(400, "Invalid email format")
    db = get_db()

    now = utc_now_iso()
    data = {
        "name": payload.name.strip(),
        "email": payload.email.strip().lower(),
        "createdAt": now,
        "updatedAt": now,
    }
    db["receiver"].replace_one({"_id": user_id}, {"_id": user_id, **data}, upsert=True)
    return {"success": True, "data": data, "message": "Receiver data saved successfully"}


@app.put("/api/receiver-data/{user_id}")
def update_receiver_data(user_id: str, payload: ReceiverDataSchema):
    db = get_db()
    existing = db["receiver"].find_one({"_id": user_id})
    if not existing:
        raise HTTPException(404, "Receiver data not found. Use POST to create.")

    data = {k: v for k, v in existing.items() if k != "_id"}
    data["updatedAt"] = utc_now_iso()
    if payload.name:
        data["name"] = payload.name.strip()
    if payload.email:
        if not _valid_email(payload.email.strip()):
            raise HTTPException(400, "Invalid email format")
        data["email"] = payload.email.strip().lower()

    db["receiver"].update_one({"_id": user_id}, {"$set": data})
    return {"success": True, "data": data, "message": "Receiver data updated successfully"}


# ----------------------
# User profiles
# ----------------------

def _split_display_name(display_name: str):
    parts = (display_name or "").strip().split(" ", 1)
    return parts[0], parts[1] if len(parts) > 1 else ""


@app.get("/api/auth/user/{user_id}")
def get_user_profile(user_id: str):
    doc = get_db()["user"].find_one({"_id": user_id})
    if not doc:
        raise HTTPException(404, "User not found")
    return {"success": True, "data": to_public(doc)}


@app.post("/api/auth/user/{user_id}")
def save_user_profile(user_id: str, payload: UserProfileSchema):
    email = payload.email.strip().lower()
    if not _valid_email(email):
        raise HTTPException(400, "Invalid email format")
    db = get_db()

    existing = db["user"].find_one({"_id": user_id}) or {}
    now = utc_now_iso()
    first = (payload.first_name or "").strip()
    last = (payload.last_name or "").strip()
    data = {
        "email": email,
        "firstName": first,
        "lastName": last,
        "displayName": (payload.display_name or f"{first} {last}").strip(),
        "emailVerified": payload.email_verified,
        "provider": existing.get("provider", "password"),
        "createdAt": existing.get("createdAt", now),
        "updatedAt": now,
    }
    db["user"].replace_one({"_id": user_id}, {"_id": user_id, **data}, upsert=True)
    logger.info("Saved profile for %s", user_id)
    return {"success": True, "data": {**data, "id": user_id}}


@app.put("/api/auth/user/{user_id}")
def update_user_profile(user_id: str, payload: UserProfileUpdate):
    db = get_db()
    existing = db["user"].find_one({"_id": user_id})
    if not existing:
        raise HTTPException(404, "User not found")

    updates: Dict[str, Any] = {}
    if payload.first_name is not None:
        updates["firstName"] = payload.first_name.strip()
    if payload.last_name is not None:
        updates["lastName"] = payload.last_name.strip()
    if payload.email_verified is not None:
        updates["emailVerified"] = payload.email_verified
    if not updates:
        raise HTTPException(400, "Nothing to update")
    if "firstName" in updates or "lastName" in updates:
        first = updates.get("firstName", existing.get("firstName", ""))
        last = updates.get("lastName", existing.get("lastName", ""))
        updates["displayName"] = f"{first} {last}".strip()
    updates["updatedAt"] = utc_now_iso()

    db["user"].update_one({"_id": user_id}, {"$set": updates})
    return {"success": True, "data": to_public(db["user"].find_one({"_id": user_id}))}


@app.post("/api/auth/save-google-user")
def save_google_user(payload: GoogleUserSchema):
    email = payload.email.strip().lower()
    if not _valid_email(email):
        raise HTTPException(400, "Invalid email format")
    db = get_db()

    existing = db["user"].find_one({"_id": payload.user_id}) or {}
    first, last = _split_display_name(payload.display_name)
    now = utc_now_iso()
    data = {
        "email": email,
        # Names edited in the profile win over the Google display name.
        "firstName": existing.get("firstName") or first,
        "lastName": existing.get("lastName") or last,
        "displayName": (payload.display_name or "").strip() or existing.get("displayName", ""),
        "emailVerified": True,
        "provider": "google",
        "createdAt": existing.get("createdAt", now),
        "updatedAt": now,
    }
    db["user"].replace_one({"_id": payload.user_id}, {"_id": payload.user_id, **data}, upsert=True)
    logger.info("Saved Google user %s", payload.user_id)
    return {"success": True, "data": {**data, "id": payload.user_id}}


@app.get("/api/auth/check-verification/{user_id}")
def check_verification(user_id: str):
    doc = get_db()["user"].find_one({"_id": user_id})
    if not doc:
        raise HTTPException(404, "User not found")
    return {"success": True, "emailVerified": bool(doc.get("emailVerified"))}


# ----------------------
# Receiver accounts
# ----------------------

@app.post("/api/receiver-accounts/link")
def link_receiver_account(payload: ReceiverAccountLinkSchema):
    if not (payload.receiver_email and payload.letter_id and payload.sender_user_id and payload.token):
        raise HTTPException(400, "receiverEmail, letterId, senderUserId and token are required")
    email = payload.receiver_email.strip().lower()
    if not _valid_email(email):
        raise HTTPException(400, "Invalid email format")
    db = get_db()

    link_id = f"{payload.letter_id}:{email}"
    now = utc_now_iso()
    existing = db["receiver_account"].find_one({"_id": link_id}) or {}
    data = {
        "receiverEmail": email,
        "letterId": payload.letter_id,
        "senderUserId": payload.sender_user_id,
        "tokenHash": hashlib.sha256(payload.token.encode()).hexdigest(),
        "createdAt": existing.get("createdAt", now),
        "updatedAt": now,
    }
    db["receiver_account"].replace_one({"_id": link_id}, {"_id": link_id, **data}, upsert=True)
    logger.info("Linked %s to letter %s", email, payload.letter_id)
    public = {k: v for k, v in data.items() if k != "tokenHash"}
    return {"success": True, "data": {**public, "id": link_id}}


# ----------------------
# Notifications
# ----------------------

def _notify(user_id: str, fields: Dict[str, Any]) -> str:
    doc = {k: v for k, v in fields.items() if v is not None and k not in ("_id", "id")}
    doc.update({"ownerId": user_id, "read": False})
    return create_document("notification", doc)


def _public_notifications(user_id: str) -> List[Dict[str, Any]]:
    docs = get_documents("notification", {"ownerId": user_id}, sort_field="createdAt", descending=True)
    return [to_public(d) for d in docs]


@app.get("/api/notifications/{user_id}")
def list_notifications(user_id: str):
    get_db()
    notifications = _public_notifications(user_id)
    unread = sum(1 for n in notifications if n.get("read") is not True)
    return {"success": True, "notifications": notifications, "unreadCount": unread}


@app.post("/api/notifications/{user_id}")
def create_notification(user_id: str, payload: NotificationSchema):
    get_db()
    notification_id = _notify(user_id, payload.model_dump(by_alias=True))
    return {"success": True, "id": notification_id}


@app.put("/api/notifications/{user_id}/all/read")
def mark_all_notifications_read(user_id: str):
    db = get_db()
    result = db["notification"].update_many(
        {"ownerId": user_id, "read": {"$ne": True}},
        {"$set": {"read": True, "updatedAt": utc_now_iso()}},
    )
    return {"success": True, "updatedCount": result.modified_count}


@app.put("/api/notifications/{user_id}/{notification_id}/read")
def mark_notification_read(user_id: str, notification_id: str):
    db = get_db()
    result = db["notification"].update_one(
        {"_id": notification_id, "ownerId": user_id},
        {"$set": {"read": True, "updatedAt": utc_now_iso()}},
    )
    if result.matched_count == 0:
        raise HTTPException(404, "Notification not found")
    return {"success": True}


@app.delete("/api/notifications/{user_id}/all")
def clear_notifications(user_id: str):
    db = get_db()
    result = db["notification"].delete_many({"ownerId": user_id})
    return {"success": True, "deletedCount": result.deleted_count}


@app.delete("/api/notifications/{user_id}/{notification_id}")
def delete_notification(user_id: str, notification_id: str):
    db = get_db()
    result = db["notification"].delete_one({"_id": notification_id, "ownerId": user_id})
    if result.deleted_count == 0:
        raise HTTPException(404, "Notification not found")
    return {"success": True}


# ----------------------
# Audio proxy
# ----------------------

def fetch_audio(url: str) -> httpx.Response:
    with httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS, follow_redirects=True) as client:
        return client.get(url)


@app.get("/api/audio-proxy/{path:path}")
def audio_proxy(path: str):
    if not config.AUDIO_STORAGE_BASE_URL:
        raise HTTPException(503, "Audio storage not configured")
    url = f"{config.AUDIO_STORAGE_BASE_URL}/{path.lstrip('/')}"

    cache = AudioCache(database.db[AUDIO_COLLECTION]) if database.db is not None else None
    if cache is not None:
        entry = cache.get(url)
        if entry is not None:
            return Response(content=entry["content"], media_type=entry["contentType"],
                            headers={"X-Cache": "HIT"})

    try:
        upstream = fetch_audio(url)
    except httpx.HTTPError as e:
        logger.error("Audio fetch failed for %s: %s", url, e)
        raise HTTPException(502, "Failed to fetch audio")
    if upstream.status_code >= 400:
        raise HTTPException(upstream.status_code if upstream.status_code == 404 else 502,
                            "Failed to fetch audio")

    content_type = upstream.headers.get("content-type", "audio/mpeg")
    if cache is not None:
        cache.put(url, upstream.content, content_type)
    return Response(content=upstream.content, media_type=content_type, headers={"X-Cache": "MISS"})


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
