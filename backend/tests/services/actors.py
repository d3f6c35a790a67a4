"""Actor helpers — sign up users through the public API and build auth headers."""

PASSWORD = "correct-horse-battery"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup(client, email: str, full_name: str | None = None) -> dict:
    res = await client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": PASSWORD, "full_name": full_name},
    )
    assert res.status_code == 201, res.text
    body = res.json()
    return {
        "email": email,
        "user_id": body["user"]["id"],
        "headers": auth_headers(body["access_token"]),
    }
