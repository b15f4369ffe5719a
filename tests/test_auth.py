from fastapi import status

from trackconn import auth, users
from trackconn.auth import create_access_token, get_password_hash, verify_password

from conftest import login


def test_password_hashing_roundtrip():
    password = "secret123"
    hashed = get_password_hash(password)
    assert hashed != password
    assert verify_password(password, hashed)


def test_signup_creates_user(client):
    response = client.post(
        "/auth/signup",
        json={"email": "Signup@Example.com", "name": "Sam", "password": "secret123"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["email"] == "signup@example.com"
    assert "hashed_password" not in data

    duplicate = client.post(
        "/auth/signup",
        json={"email": "signup@example.com", "name": "Sam", "password": "secret123"},
    )
    assert duplicate.status_code == status.HTTP_409_CONFLICT


def test_login_and_token_pair(client, user):
    response = client.post(
        "/auth/login",
        data={"username": user.email, "password": "secret123"},
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert "access_token" in data and "refresh_token" in data

    me_resp = client.get(
        "/users/me",
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    assert me_resp.status_code == status.HTTP_200_OK
    assert me_resp.json()["email"] == user.email


def test_login_rejects_wrong_password(client, user):
    response = client.post(
        "/auth/login",
        data={"username": user.email, "password": "wrong-password"},
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_refresh_token_returns_new_access(client, user):
    login_resp = client.post(
        "/auth/login",
        data={"username": user.email, "password": "secret123"},
        headers={"content-type": "application/x-www-form-urlencoded"},
    ).json()
    refresh_resp = client.post(
        "/auth/refresh",
        json={"refresh_token": login_resp["refresh_token"]},
    )
    assert refresh_resp.status_code == status.HTTP_200_OK
    tokens = refresh_resp.json()
    assert tokens["access_token"] != ""


def test_refresh_rejects_access_token(client, user):
    access = login(client, user.email)
    response = client.post("/auth/refresh", json={"refresh_token": access})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_protected_route_requires_valid_token(client):
    assert client.get("/log-entries/").status_code == status.HTTP_401_UNAUTHORIZED

    ghost = create_access_token({"sub": "nobody@example.com"})
    response = client.get(
        "/log-entries/", headers={"Authorization": f"Bearer {ghost}"}
    )
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_update_profile_name(client, auth_headers):
    response = client.patch(
        "/users/me", json={"name": "Renamed"}, headers=auth_headers
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["name"] == "Renamed"

    me = client.get("/users/me", headers=auth_headers).json()
    assert me["name"] == "Renamed"


def recording_threadpool(module, monkeypatch):
    calls = []
    real = module.run_in_threadpool

    async def record(func, *args, **kwargs):
        calls.append(func.__name__)
        return await real(func, *args, **kwargs)

    monkeypatch.setattr(module, "run_in_threadpool", record)
    return calls


def test_profile_update_runs_off_event_loop(client, auth_headers, monkeypatch):
    calls = recording_threadpool(users, monkeypatch)

    response = client.patch(
        "/users/me", json={"name": "Threaded"}, headers=auth_headers
    )

    assert response.json()["name"] == "Threaded"
    assert calls == ["update_user"]


def test_login_checks_password_off_event_loop(client, user, monkeypatch):
    calls = recording_threadpool(auth, monkeypatch)

    login(client, user.email)

    assert calls == ["authenticate_user"]


def test_authenticate_user(db_session, user):
    assert auth.authenticate_user(db_session, user.email, "secret123").id == user.id
    assert auth.authenticate_user(db_session, user.email, "wrong") is None
    assert auth.authenticate_user(db_session, "nobody@example.com", "x") is None
