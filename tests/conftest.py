import os
import tempfile

import pytest

# Keep the import-time database and config away from the project's data/
_TMP_DIR = tempfile.mkdtemp(prefix="watchparty-tests-")
os.environ["WATCHPARTY_DATABASE"] = os.path.join(_TMP_DIR, "import.db")
os.environ["WATCHPARTY_CONFIG"] = os.path.join(_TMP_DIR, "config.yaml")

from fastapi.testclient import TestClient  # noqa: E402

from backend import catalog, config, server  # noqa: E402
from backend import database as db  # noqa: E402

SAMPLE_CATALOG = [
    {
        "title": "Bumblebee",
        "title_type": "movie",
        "language": "English",
        "air_start": 2018,
        "extension": "mp4",
        "duration": "1:53:52",
    },
    {
        "title": "White Chicks",
        "title_type": "movie",
        "synopsis": "Two disgraced FBI agents go way undercover.",
        "air_start": 2004,
        "subtitle_language": "en",
        "extension": "mp4",
        "duration": "1:48:44",
    },
    {
        "title": "Golden Kamuy",
        "title_type": "series",
        "air_start": "2018-04-09",
        "air_end": "2018-06-25",
        "age_rating": "R-17+",
        "seasons": [
            {"title": "Season 1", "episodes": 3, "extension": "mp4",
             "subtitle_language": "en", "duration": "23:40"},
            {"title": "Season 2", "episodes": 2, "extension": "mkv", "duration": "24:00"},
        ],
    },
]


@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    """Every test gets an empty database and default config."""
    monkeypatch.setattr(db, "DATABASE_FILE", tmp_path / "test.db")
    monkeypatch.setattr(db, "PASSWORD_ITERATIONS", 1000)
    monkeypatch.setattr(catalog, "CATALOG_FILE", tmp_path / "catalog.yaml")
    monkeypatch.setattr(config, "CONFIG_FILE", tmp_path / "config.yaml")
    db.init_db()
    config.load_app_config()
    yield


@pytest.fixture
def seeded():
    catalog.seed_catalog(SAMPLE_CATALOG)
    return {
        "movie": db.get_show_videos(db.get_shows(search="Bumblebee")[0]["id"])[0],
        "series": db.get_shows(search="Golden Kamuy")[0],
    }


@pytest.fixture
def client():
    with TestClient(server.app) as c:
        yield c


@pytest.fixture
def make_user(client):
    """Register a user and return (headers, user)."""
    def _make(username, name=None, password="secret"):
        response = client.post("/api/auth/register", json={
            "name": name or username.title(),
            "username": username,
            "password": password,
        })
        assert response.status_code == 200, response.text
        data = response.json()
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]
    return _make


@pytest.fixture
def party(client, make_user, seeded):
    """A party on the sample movie, owned by alice."""
    headers, user = make_user("alice")
    response = client.post("/api/parties", json={"video_id": seeded["movie"]["id"]}, headers=headers)
    assert response.status_code == 200, response.text
    return {"headers": headers, "user": user, "party": response.json()}
