import uuid

from fastapi_users.jwt import generate_jwt
from fastapi_users.password import PasswordHelper

from core.config import settings


async def _register(client, email, password="s3cret-pass", token=None):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return await client.post(
        "/auth/register", json={"email": email, "password": password, "name": "Owner"}, headers=headers
    )


async def _login(client, email, password="s3cret-pass"):
    return await client.post("/auth/jwt/login", data={"username": email, "password": password})


def test_password_hashing():
    helper = PasswordHelper()
    hashed = helper.hash("hunter22")
    assert hashed != "hunter22"
    verified, _ = helper.verify_and_update("hunter22", hashed)
    assert verified
    verified, _ = helper.verify_and_update("hunter23", hashed)
    assert not verified


async def test_first_account_becomes_superadmin(anon_client):
    assert (await anon_client.get("/auth/check-superadmin")).json() == {"exists": False}

    resp = await _register(anon_client, "Owner@Netyark.com")

    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "owner@netyark.com"
    assert body["name"] == "Owner"
    assert body["is_superuser"] is True
    assert (await anon_client.get("/auth/check-superadmin")).json() == {"exists": True}


async def test_login_and_me(anon_client):
    await _register(anon_client, "owner@netyark.com")

    resp = await _login(anon_client, "owner@netyark.com")
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    assert resp.json()["token_type"] == "bearer"

    me = await anon_client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "owner@netyark.com"


async def test_bad_credentials(anon_client):
    await _register(anon_client, "owner@netyark.com")
    resp = await _login(anon_client, "owner@netyark.com", password="wrong-password")
    assert resp.status_code == 400
    assert resp.json()["message"] == "LOGIN_BAD_CREDENTIALS"


async def test_staff_accounts_need_superadmin(anon_client):
    await _register(anon_client, "owner@netyark.com")
    owner_token = (await _login(anon_client, "owner@netyark.com")).json()["access_token"]

    assert (await _register(anon_client, "staff@netyark.com")).status_code == 401

    resp = await _register(anon_client, "staff@netyark.com", token=owner_token)
    assert resp.status_code == 201
    assert resp.json()["is_superuser"] is False

    staff_token = (await _login(anon_client, "staff@netyark.com")).json()["access_token"]
    assert (await _register(anon_client, "intern@netyark.com", token=staff_token)).status_code == 403

    resp = await _register(anon_client, "staff@netyark.com", token=owner_token)
    assert resp.status_code == 400
    assert resp.json()["message"] == "REGISTER_USER_ALREADY_EXISTS"


async def test_staff_cannot_delete(anon_client, category):
    await _register(anon_client, "owner@netyark.com")
    owner_token = (await _login(anon_client, "owner@netyark.com")).json()["access_token"]
    await _register(anon_client, "staff@netyark.com", token=owner_token)
    staff = {"Authorization": f"Bearer {(await _login(anon_client, 'staff@netyark.com')).json()['access_token']}"}

    resp = await anon_client.post(
        "/products",
        json={"name": "Fan", "description": "Desk fan", "price": 10, "category": str(category.id), "stock": 1},
        headers=staff,
    )
    assert resp.status_code == 201

    resp = await anon_client.delete(f"/products/{resp.json()['data']['id']}", headers=staff)
    assert resp.status_code == 403
    assert resp.json()["success"] is False


async def test_short_password_rejected(anon_client):
    resp = await _register(anon_client, "owner@netyark.com", password="short")
    assert resp.status_code == 400
    assert (await anon_client.get("/auth/check-superadmin")).json() == {"exists": False}


async def test_expired_token_is_unauthorized(anon_client):
    user_id = (await _register(anon_client, "owner@netyark.com")).json()["id"]
    expired = generate_jwt(
        {"sub": user_id, "aud": "fastapi-users:auth"},
        settings.jwt_secret,
        lifetime_seconds=-60,
    )

    resp = await anon_client.get("/users/me", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401
    assert resp.json()["success"] is False


async def test_admin_listing_and_toggle(anon_client):
    owner_id = (await _register(anon_client, "owner@netyark.com")).json()["id"]
    owner_token = (await _login(anon_client, "owner@netyark.com")).json()["access_token"]
    owner = {"Authorization": f"Bearer {owner_token}"}
    staff_id = (await _register(anon_client, "staff@netyark.com", token=owner_token)).json()["id"]
    staff = {"Authorization": f"Bearer {(await _login(anon_client, 'staff@netyark.com')).json()['access_token']}"}

    listing = (await anon_client.get("/auth/admins", headers=owner)).json()
    assert listing["count"] == 2
    assert [a["email"] for a in listing["data"]] == ["staff@netyark.com", "owner@netyark.com"]
    assert (await anon_client.get("/auth/admins", headers=staff)).status_code == 403

    resp = await anon_client.put(f"/auth/admins/{owner_id}/toggle-status", headers=owner)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot deactivate your own account"

    resp = await anon_client.put(f"/auth/admins/{staff_id}/toggle-status", headers=owner)
    assert resp.json()["message"] == "Admin deactivated successfully"
    assert resp.json()["data"]["is_active"] is False
    assert (await _login(anon_client, "staff@netyark.com")).status_code == 400
    assert (await anon_client.get("/users/me", headers=staff)).status_code == 401

    resp = await anon_client.put(f"/auth/admins/{staff_id}/toggle-status", headers=owner)
    assert resp.json()["message"] == "Admin activated successfully"

    resp = await anon_client.put(f"/auth/admins/{uuid.uuid4()}/toggle-status", headers=owner)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Admin not found"
