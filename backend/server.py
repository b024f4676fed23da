#!/usr/bin/env python3
"""
Watch Party Server

A FastAPI server for watching shows together:
- Serves the show catalog (movies, series, seasons, episodes)
- Manages parties, their members and invitations
- Persists each party's playback sync state (current_time, is_playing)
- Stores party chat messages
- Serves media files from media/

Viewers poll GET /api/parties/{id} and push their own play/pause/seek
with PUT /api/parties/{id}/state. Last write wins.

Usage (from project root):
    uvicorn backend.server:app --reload --port 8000
"""

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Header, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from . import catalog
from . import config
from . import database as db

# ============================================
# CONFIGURATION
# ============================================

# Project root is one level up from backend/
PROJECT_ROOT = Path(__file__).parent.parent
MEDIA_DIR = PROJECT_ROOT / "media"

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger(__name__)

# Server start time for health check
start_time = datetime.now()


def seed_catalog_if_empty():
    """Seed catalog.yaml into an empty database."""
    if db.get_catalog_counts()["shows"]:
        return

    entries = catalog.load_catalog()
    if entries:
        catalog.seed_catalog(entries, base_url=config.get("media", "base_url"))


# ============================================
# FASTAPI APPLICATION
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize server on startup."""
    logger.info("=" * 50)
    logger.info("Watch Party Server starting...")
    logger.info("=" * 50)
    config.load_app_config()
    db.init_db()
    seed_catalog_if_empty()
    logger.info("Server ready!")
    yield


app = FastAPI(
    title="Watch Party Server",
    description="Catalog, parties and playback sync for watching shows together",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json_safe(value):
    """Replace NaN/Infinity (accepted by the JSON parser) so the error body can be rendered."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_safe(v) for v in value]
    return value


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": _json_safe(jsonable_encoder(exc.errors()))}
    )


# ============================================
# PYDANTIC MODELS
# ============================================

class RegisterRequest(BaseModel):
    name: str
    username: str
    password: str
    avatar: Optional[str] = None


class LoginRequest(BaseModel):
    username: str
    password: str


class PartyCreateRequest(BaseModel):
    video_id: int


class PartyStateRequest(BaseModel):
    is_playing: bool
    current_time: float = Field(..., ge=0, allow_inf_nan=False)


class PartyVideoRequest(BaseModel):
    video_id: int


class InvitationSendRequest(BaseModel):
    recipient_id: int


class MessageRequest(BaseModel):
    text: str = Field(..., max_length=1000)


# ============================================
# AUTH HELPERS
# ============================================

def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Extract session token from Authorization header."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None


def require_token(authorization: Optional[str] = Header(None)) -> str:
    token = get_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return token


def require_user(token: str = Depends(require_token)) -> dict:
    """Dependency that requires a valid login session."""
    user = db.get_session_user(token)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def get_member_party(party_id: int, user: dict) -> dict:
    """Fetch a party the user belongs to (404 if missing, 403 if not a member)."""
    party = db.get_party_by_id(party_id)
    if not party:
        raise HTTPException(status_code=404, detail="Party not found")
    if not db.is_party_member(party_id, user["id"]):
        raise HTTPException(status_code=403, detail="Not a member of this party")
    return party


def session_response(user: dict) -> dict:
    token = db.create_session(user["id"], ttl_hours=config.get("sessions", "ttl_hours"))
    return {"token": token, "user": db.public_user(user)}


# ============================================
# SERIALIZATION
# ============================================

def invitation_detail(invitation: dict) -> dict:
    return {
        **invitation,
        "recipient": db.public_user(db.get_user_by_id(invitation["recipient_id"])),
        "sender": db.public_user(db.get_user_by_id(invitation["sender_id"])),
    }


def party_detail(party: dict) -> dict:
    """Party with its video (show + group), members and pending invitations."""
    video = db.get_video_by_id(party["video_id"])
    return {
        **party,
        "video": catalog.video_with_show(video) if video else None,
        "members": db.get_party_members(party["id"]),
        "invitations": [invitation_detail(i) for i in db.get_party_invitations(party["id"])],
    }


def party_summary(party: dict) -> dict:
    video = db.get_video_by_id(party["video_id"])
    video = catalog.video_with_show(video) if video else None
    return {
        "id": party["id"],
        "owner_id": party["owner_id"],
        "video_id": party["video_id"],
        "title": video["show"]["title"] if video else "",
        "details": catalog.video_details(video) if video else "",
        "preview_image": catalog.video_preview_image(video) if video else "",
    }


# ============================================
# AUTH ENDPOINTS
# ============================================

@app.post("/api/auth/register")
async def register(request: RegisterRequest):
    """Create an account and log it in."""
    username = request.username.strip()
    name = request.name.strip() or username
    if not username or not request.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    user_id = db.create_user(name, username, request.password, request.avatar or "")
    if user_id is None:
        raise HTTPException(status_code=409, detail="Username already taken")

    logger.info(f"New user #{user_id} ({username})")
    return session_response(db.get_user_by_id(user_id))


@app.post("/api/auth/login")
async def login(request: LoginRequest):
    """Login. Returns session token on success."""
    user = db.authenticate_user(request.username.strip(), request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    logger.info(f"User #{user['id']} logged in")
    return session_response(user)


@app.post("/api/auth/logout")
async def logout(token: str = Depends(require_token), user: dict = Depends(require_user)):
    """Logout. Invalidates session token."""
    db.delete_session(token)
    return {"message": "Logged out"}


@app.get("/api/auth/me")
async def me(user: dict = Depends(require_user)):
    return db.public_user(user)


# ============================================
# CATALOG ENDPOINTS
# ============================================

@app.get("/api/shows")
async def list_shows(search: Optional[str] = None, title_type: Optional[str] = None):
    """List shows, optionally filtered by title and type."""
    return {"shows": db.get_shows(search=search, title_type=title_type)}


@app.get("/api/shows/{show_id}")
async def get_show(show_id: int):
    """Get a show with its seasons and episodes."""
    show = db.get_show_by_id(show_id)
    if not show:
        raise HTTPException(status_code=404, detail="Show not found")
    return catalog.show_with_videos(show)


@app.get("/api/videos/{video_id}")
async def get_video(video_id: int):
    video = db.get_video_by_id(video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return catalog.video_with_show(video)


# ============================================
# PARTY ENDPOINTS
# ============================================

@app.post("/api/parties")
async def create_party(request: PartyCreateRequest, user: dict = Depends(require_user)):
    """Start a party on a video. The creator is its owner and first member."""
    if not db.get_video_by_id(request.video_id):
        raise HTTPException(status_code=404, detail="Video not found")

    party_id = db.create_party(user["id"], request.video_id)
    logger.info(f"Party #{party_id} created by user #{user['id']} (video #{request.video_id})")
    return party_detail(db.get_party_by_id(party_id))


@app.get("/api/parties")
async def list_parties(user: dict = Depends(require_user)):
    """Parties the current user belongs to."""
    return {"parties": [party_summary(p) for p in db.get_user_parties(user["id"])]}


@app.get("/api/parties/{party_id}")
async def get_party(party_id: int, user: dict = Depends(require_user)):
    """Get a party (polled by viewers to stay in sync)."""
    return party_detail(get_member_party(party_id, user))


@app.put("/api/parties/{party_id}/state")
async def update_party_state(
    party_id: int,
    request: PartyStateRequest,
    user: dict = Depends(require_user)
):
    """
    Persist a party's playback state.

    Called by a viewer after play/pause or seek. current_time is clamped to
    the video's duration.
    """
    party = get_member_party(party_id, user)

    current_time = request.current_time
    video = db.get_video_by_id(party["video_id"])
    if video and video["duration"] > 0:
        current_time = min(current_time, float(video["duration"]))

    db.update_party_state(party_id, request.is_playing, current_time)
    logger.debug(
        f"Party #{party_id} state: {'playing' if request.is_playing else 'paused'} "
        f"at {current_time:.1f}s (user #{user['id']})"
    )
    return party_detail(db.get_party_by_id(party_id))


@app.put("/api/parties/{party_id}/video")
async def change_party_video(
    party_id: int,
    request: PartyVideoRequest,
    user: dict = Depends(require_user)
):
    """Switch the party to another video (episode change). Playback restarts paused."""
    get_member_party(party_id, user)

    if not db.get_video_by_id(request.video_id):
        raise HTTPException(status_code=404, detail="Video not found")

    db.set_party_video(party_id, request.video_id)
    logger.info(f"Party #{party_id} switched to video #{request.video_id}")
    return party_detail(db.get_party_by_id(party_id))


@app.post("/api/parties/{party_id}/leave")
async def leave_party(party_id: int, user: dict = Depends(require_user)):
    """Leave a party. Ownership passes on; an empty party is deleted."""
    party = get_member_party(party_id, user)
    db.remove_party_member(party_id, user["id"])

    members = db.get_party_members(party_id)
    if not members:
        db.delete_party(party_id)
        logger.info(f"Party #{party_id} closed (no members left)")
        return {"message": "Left party", "deleted": True}

    if party["owner_id"] == user["id"]:
        db.set_party_owner(party_id, members[0]["id"])
        logger.info(f"Party #{party_id} ownership passed to user #{members[0]['id']}")

    return {"message": "Left party", "deleted": False}


# ============================================
# INVITATION ENDPOINTS
# ============================================

@app.get("/api/parties/{party_id}/invitations/search")
async def search_invitees(party_id: int, search: str = "", user: dict = Depends(require_user)):
    """Search users to invite to a party."""
    get_member_party(party_id, user)
    return db.search_users(search, exclude_user_id=user["id"], limit=config.get("search", "limit"))


@app.post("/api/parties/{party_id}/invitations/send")
async def send_invitation(
    party_id: int,
    request: InvitationSendRequest,
    user: dict = Depends(require_user)
):
    """Invite a user to a party."""
    get_member_party(party_id, user)

    if request.recipient_id == user["id"]:
        raise HTTPException(status_code=400, detail="You cannot invite yourself")

    if not db.get_user_by_id(request.recipient_id):
        raise HTTPException(status_code=404, detail="User not found")

    if db.is_party_member(party_id, request.recipient_id):
        raise HTTPException(status_code=409, detail="User is already a member")

    if db.get_pending_invitation(party_id, request.recipient_id):
        raise HTTPException(status_code=409, detail="User has already been invited")

    invitation_id = db.create_invitation(party_id, user["id"], request.recipient_id)
    logger.info(f"Invitation #{invitation_id}: party #{party_id} -> user #{request.recipient_id}")
    return invitation_detail(db.get_invitation_by_id(invitation_id))


def get_pending_invitation(invitation_id: int) -> dict:
    invitation = db.get_invitation_by_id(invitation_id)
    if not invitation:
        raise HTTPException(status_code=404, detail="Invitation not found")
    if invitation["status"] != "pending":
        raise HTTPException(status_code=409, detail=f"Invitation already {invitation['status']}")
    return invitation


@app.post("/api/invitations/{invitation_id}/cancel")
async def cancel_invitation(invitation_id: int, user: dict = Depends(require_user)):
    """Cancel a pending invitation (any party member)."""
    invitation = get_pending_invitation(invitation_id)
    get_member_party(invitation["party_id"], user)

    db.update_invitation_status(invitation_id, "cancelled")
    logger.info(f"Invitation #{invitation_id} cancelled by user #{user['id']}")
    return invitation_detail(db.get_invitation_by_id(invitation_id))


@app.post("/api/invitations/{invitation_id}/accept")
async def accept_invitation(invitation_id: int, user: dict = Depends(require_user)):
    """Accept an invitation and join the party."""
    invitation = get_pending_invitation(invitation_id)
    if invitation["recipient_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not your invitation")

    db.update_invitation_status(invitation_id, "accepted")
    db.add_party_member(invitation["party_id"], user["id"])
    logger.info(f"User #{user['id']} joined party #{invitation['party_id']}")
    return party_detail(db.get_party_by_id(invitation["party_id"]))


@app.post("/api/invitations/{invitation_id}/decline")
async def decline_invitation(invitation_id: int, user: dict = Depends(require_user)):
    invitation = get_pending_invitation(invitation_id)
    if invitation["recipient_id"] != user["id"]:
        raise HTTPException(status_code=403, detail="Not your invitation")

    db.update_invitation_status(invitation_id, "declined")
    logger.info(f"Invitation #{invitation_id} declined")
    return {"message": "Declined"}


@app.get("/api/invitations")
async def list_invitations(user: dict = Depends(require_user)):
    """Pending invitations received by the current user."""
    invitations = []
    for invitation in db.get_received_invitations(user["id"]):
        party = db.get_party_by_id(invitation["party_id"])
        invitations.append({
            **invitation_detail(invitation),
            "party": party_summary(party) if party else None,
        })
    return {"invitations": invitations}


# ============================================
# CHAT ENDPOINTS
# ============================================

@app.get("/api/parties/{party_id}/messages")
async def list_messages(party_id: int, since: int = 0, user: dict = Depends(require_user)):
    """
    Get chat messages.

    Args:
        since: Only return messages with an ID greater than this
    """
    get_member_party(party_id, user)
    return {"messages": db.get_messages(party_id, since=since)}


@app.post("/api/parties/{party_id}/messages")
async def post_message(party_id: int, request: MessageRequest, user: dict = Depends(require_user)):
    get_member_party(party_id, user)

    text = request.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    message_id = db.create_message(party_id, user["id"], text)
    messages = db.get_messages(party_id, since=message_id - 1)
    return messages[0]


# ============================================
# MISC ENDPOINTS
# ============================================

@app.get("/api/health")
async def health():
    """Health check endpoint."""
    uptime = (datetime.now() - start_time).total_seconds()
    counts = db.get_catalog_counts()

    return {
        "status": "ok",
        "uptime_seconds": int(uptime),
        "total_shows": counts["shows"],
        "total_videos": counts["videos"],
        "total_parties": counts["parties"]
    }


@app.get("/api/config")
async def get_config():
    """
    Get app configuration for clients.
    Note: only the public sections are returned.
    """
    return config.public_config()


@app.get("/api/faq")
async def get_faq():
    return {"faq": config.get("faq", default=[])}


# ============================================
# STATIC FILE SERVING
# ============================================

# Mount media directory (videos, subtitles, previews)
if MEDIA_DIR.exists():
    app.mount("/media", StaticFiles(directory=str(MEDIA_DIR)), name="media")


# ============================================
# MAIN ENTRY POINT
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
