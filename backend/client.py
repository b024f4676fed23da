"""
Python client for the Watch Party server.

PartyClient wraps the REST API. WatchSession and InviteSession drive the
playback and invite-search reducers the way the watch and invite screens
do: local state changes first, then the matching request.

Usage:
    client = PartyClient("http://localhost:8000")
    client.login("alice", "secret")
    party = client.create_party(video_id=1)

    watch = WatchSession(client, party)
    watch.play()        # PUT /api/parties/{id}/state {is_playing: true, ...}
    watch.poll()        # pick up other viewers' play/pause/seek
"""

import logging
from typing import Optional

import httpx

from . import invite_search
from . import playback

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response from the server, or status 0 when the request never got one."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class PartyClient:
    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None,
                 http: Optional[httpx.Client] = None, timeout: float = 10.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token
        self.user: Optional[dict] = None

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ApiError(0, str(e) or e.__class__.__name__) from e
        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiError(response.status_code, str(detail))
        return response.json()

    # Auth

    def _store_session(self, data: dict) -> dict:
        self.token = data["token"]
        self.user = data["user"]
        return data["user"]

    def register(self, name: str, username: str, password: str, avatar: str = "") -> dict:
        data = self._request("POST", "/api/auth/register", json={
            "name": name, "username": username, "password": password, "avatar": avatar
        })
        return self._store_session(data)

    def login(self, username: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        return self._store_session(data)

    def logout(self):
        self._request("POST", "/api/auth/logout")
        self.token = None
        self.user = None

    # Catalog

    def shows(self, search: Optional[str] = None, title_type: Optional[str] = None) -> list[dict]:
        params = {k: v for k, v in (("search", search), ("title_type", title_type)) if v}
        return self._request("GET", "/api/shows", params=params)["shows"]

    def show(self, show_id: int) -> dict:
        return self._request("GET", f"/api/shows/{show_id}")

    def video(self, video_id: int) -> dict:
        return self._request("GET", f"/api/videos/{video_id}")

    # Parties

    def create_party(self, video_id: int) -> dict:
        return self._request("POST", "/api/parties", json={"video_id": video_id})

    def parties(self) -> list[dict]:
        return self._request("GET", "/api/parties")["parties"]

    def party(self, party_id: int) -> dict:
        return self._request("GET", f"/api/parties/{party_id}")

    def update_state(self, party_id: int, is_playing: bool, current_time: float) -> dict:
        return self._request("PUT", f"/api/parties/{party_id}/state", json={
            "is_playing": is_playing, "current_time": current_time
        })

    def change_video(self, party_id: int, video_id: int) -> dict:
        return self._request("PUT", f"/api/parties/{party_id}/video", json={"video_id": video_id})

    def leave(self, party_id: int) -> dict:
        return self._request("POST", f"/api/parties/{party_id}/leave")

    # Invitations

    def search_invitees(self, party_id: int, search: str) -> list[dict]:
        return self._request("GET", f"/api/parties/{party_id}/invitations/search", params={"search": search})

    def send_invitation(self, party_id: int, recipient_id: int) -> dict:
        return self._request("POST", f"/api/parties/{party_id}/invitations/send",
                             json={"recipient_id": recipient_id})

    def cancel_invitation(self, invitation_id: int) -> dict:
        return self._request("POST", f"/api/invitations/{invitation_id}/cancel")

    def accept_invitation(self, invitation_id: int) -> dict:
        return self._request("POST", f"/api/invitations/{invitation_id}/accept")

    def decline_invitation(self, invitation_id: int) -> dict:
        return self._request("POST", f"/api/invitations/{invitation_id}/decline")

    def invitations(self) -> list[dict]:
        return self._request("GET", "/api/invitations")["invitations"]

    # Chat

    def messages(self, party_id: int, since: int = 0) -> list[dict]:
        return self._request("GET", f"/api/parties/{party_id}/messages", params={"since": since})["messages"]

    def post_message(self, party_id: int, text: str) -> dict:
        return self._request("POST", f"/api/parties/{party_id}/messages", json={"text": text})


def _sync_fields(party: dict) -> tuple:
    return (float(party["current_time"]), bool(party["is_playing"]), party["video_id"])


class WatchSession:
    """
    One viewer's watch screen.

    Player events go through the playback reducer; play/pause and seeks are
    pushed to the server, and poll() pulls in everyone else's.
    """

    def __init__(self, client: PartyClient, party: dict, seek_step: float = playback.DEFAULT_SEEK_STEP):
        self.client = client
        self.party = party
        self.seek_step = seek_step
        self.state = playback.initial_state(party)

    def dispatch(self, action_type: str, **payload) -> playback.PlayerState:
        self.state = playback.reduce(self.state, {"type": action_type, "payload": payload})
        return self.state

    @property
    def duration(self) -> float:
        video = self.party.get("video") or {}
        return float(video.get("duration") or 0)

    def _push(self, is_playing: bool, current_time: float) -> Optional[dict]:
        try:
            party = self.client.update_state(self.party["id"], is_playing, current_time)
        except ApiError as e:
            logger.warning(f"Failed to sync party #{self.party['id']}: {e}")
            return None
        self.party = party
        return party

    # Controls

    def play(self) -> Optional[dict]:
        """Toggle play/pause and push the new state."""
        self.dispatch("controls:play")
        return self._push(self.state.is_playing, self.state.time)

    def seek(self, time: float) -> Optional[dict]:
        self.dispatch("controls:seek", time=time)
        return self._push(self.state.is_playing, time)

    def forward(self) -> Optional[dict]:
        return self.seek(playback.seek_forward(self.state.time, self.duration, self.seek_step))

    def backward(self) -> Optional[dict]:
        return self.seek(playback.seek_backward(self.state.time, self.seek_step))

    def open_controls(self):
        self.dispatch("controls:open")

    def close_controls(self):
        self.dispatch("controls:close")

    def open_season_selection(self):
        self.dispatch("season-selection:toggle", is_season_selection_open=True)

    def close_season_selection(self):
        self.dispatch("season-selection:toggle", is_season_selection_open=False)

    # Player events

    def loaded(self):
        if not self.state.is_initialized:
            self.dispatch("init")

    def time_update(self, time: float):
        self.dispatch("time-update", time=time)

    def ended(self):
        self.dispatch("video-complete")

    def buffer_start(self):
        self.dispatch("buffer", is_buffering=True)

    def buffer_end(self):
        self.dispatch("buffer", is_buffering=False)

    # Sync

    def apply_party(self, party: dict) -> bool:
        """
        Adopt a fresh copy of the party. Returns True if playback changed.

        A new video resets the player before the sync is applied.
        """
        previous = _sync_fields(self.party)
        self.party = party
        current = _sync_fields(party)
        if current == previous:
            return False

        if current[2] != previous[2]:
            self.dispatch("change-video")

        self.dispatch("sync", time=party["current_time"], is_playing=party["is_playing"])
        return True

    def poll(self) -> bool:
        try:
            party = self.client.party(self.party["id"])
        except ApiError as e:
            logger.warning(f"Failed to poll party #{self.party['id']}: {e}")
            return False
        return self.apply_party(party)

    def change_video(self, video_id: int) -> Optional[dict]:
        """Pick another episode for the whole party."""
        self.close_season_selection()
        self.close_controls()
        try:
            party = self.client.change_video(self.party["id"], video_id)
        except ApiError as e:
            logger.warning(f"Failed to change video of party #{self.party['id']}: {e}")
            return None
        self.apply_party(party)
        return party

    def readable_time(self) -> str:
        return playback.to_readable_time(self.state.time, "hh" if self.duration > 3600 else "mm")


class InviteSession:
    """One viewer's invite screen: friend search plus invite/cancel buttons."""

    def __init__(self, client: PartyClient, party: dict):
        self.client = client
        self.party = party
        self.state = invite_search.InviteState()

    def dispatch(self, action_type: str, **payload) -> invite_search.InviteState:
        self.state = invite_search.reduce(self.state, {"type": action_type, "payload": payload})
        return self.state

    def set_input(self, text: str):
        self.dispatch("input", input=text)

    def search(self) -> Optional[list]:
        """Run the search for the current input. Blank input sends nothing."""
        if not self.state.input:
            return None

        self.dispatch("request:init")
        try:
            data = self.client.search_invitees(self.party["id"], self.state.input)
        except ApiError as e:
            logger.warning(f"Invite search failed: {e}")
            self.dispatch("request:error")
            return None

        self.dispatch("request:success", data=data)
        return data

    def invite(self, user_id: int) -> Optional[dict]:
        if self.state.is_sending_invitation.get(user_id):
            return None

        self.dispatch("invitation.send:init", id=user_id)
        try:
            invitation = self.client.send_invitation(self.party["id"], user_id)
        except ApiError as e:
            logger.warning(f"Failed to invite user #{user_id}: {e}")
            self.dispatch("invitation.send:error", id=user_id)
            return None

        self.dispatch("invitation.send:success", id=user_id)
        self.party = {**self.party, "invitations": [*self.party.get("invitations", []), invitation]}
        return invitation

    def cancel(self, invitation: dict) -> Optional[dict]:
        recipient_id = invitation["recipient"]["id"]
        if self.state.is_cancelling_invitation.get(recipient_id):
            return None

        self.dispatch("invitation.cancel:init", id=recipient_id)
        try:
            cancelled = self.client.cancel_invitation(invitation["id"])
        except ApiError as e:
            logger.warning(f"Failed to cancel invitation #{invitation['id']}: {e}")
            self.dispatch("invitation.cancel:error", id=recipient_id)
            return None

        self.dispatch("invitation.cancel:success", id=recipient_id)
        self.party = {
            **self.party,
            "invitations": [i for i in self.party.get("invitations", []) if i["id"] != invitation["id"]],
        }
        return cancelled

    def items(self) -> list[dict]:
        return invite_search.user_items(self.state, self.party)
