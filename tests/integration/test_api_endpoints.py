from src.infrastructure.api.rate_limiter import SlidingWindowRateLimiter, get_login_limiter
from src.infrastructure.database.repositories import profile_repository

STRONG_PASSWORD = "Abcdef1!"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def login(client, email, password=STRONG_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "OK"
    assert data["service"] == "LinkUp Backend API"
    assert "timestamp" in data


def test_unknown_route(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Route not found", "path": "/api/nope"}


# -- registration and login -------------------------------------------------


def test_register_new_email(client):
    r = client.post(
        "/api/auth/register",
        json={"email": "A@B.com", "password": STRONG_PASSWORD, "firstName": "Ana", "age": "21"},
    )
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["success"] is True
    assert data["token"]
    user = data["user"]
    assert user["email"] == "a@b.com"
    assert user["providers"] == ["manual"]
    assert user["firstName"] == "Ana"
    assert user["age"] == 21
    assert user["emailVerified"] is False


def test_register_twice_is_refused(client, register):
    register("a@b.com")
    r = client.post("/api/auth/register", json={"email": "a@b.com", "password": STRONG_PASSWORD})
    assert r.status_code == 400
    assert r.json() == {"success": False, "error": "User already registered with this email"}


def test_register_reports_every_broken_rule(client):
    r = client.post("/api/auth/register", json={"email": "a@b.com", "password": "short", "age": 10})
    assert r.status_code == 400
    error = r.json()["error"]
    assert "age must be at least 13" in error
    assert "password must be at least 8 characters long" in error
    assert "password must contain a digit" in error


def test_register_requires_email_and_password(client):
    r = client.post("/api/auth/register", json={"email": "a@b.com"})
    assert r.status_code == 400
    assert r.json()["error"] == "Email and password are required"


def test_login_rejects_malformed_email(client):
    r = login(client, "not-an-email")
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_login_success_returns_working_token(client, register):
    uid, _ = register("a@b.com", firstName="Ana")
    r = login(client, "A@B.com")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["user"]["uid"] == uid
    assert data["user"]["firstName"] == "Ana"

    r2 = client.get(f"/api/users/{uid}", headers={"Authorization": f"Bearer {data['token']}"})
    assert r2.status_code == 200


def test_login_failures_share_one_message(client, register):
    register("a@b.com")
    wrong_password = login(client, "a@b.com", "Wrong1!pass")
    unknown_email = login(client, "ghost@b.com")
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {"success": False, "error": "Invalid credentials"}


def test_login_on_oauth_only_account(client, provider_token):
    token = provider_token("google", email="g@b.com")
    r = client.post("/api/oauth/google", json={"token": token, "userProfile": {"email": "g@b.com", "name": "Gi"}})
    assert r.status_code == 200
    r2 = login(client, "g@b.com")
    assert r2.status_code == 401
    assert "google" in r2.json()["error"]


# -- oauth reconciliation ---------------------------------------------------


def test_google_merges_into_manual_account(client, register, provider_token):
    uid, _ = register("a@b.com", firstName="Ana")
    body = {
        "token": provider_token("google", email="a@b.com"),
        "userProfile": {"email": "a@b.com", "given_name": "", "picture": "https://p/a.png"},
    }

    r = client.post("/api/oauth/google", json=body)
    assert r.status_code == 200, r.text
    user = r.json()["user"]
    assert user["uid"] == uid
    assert user["firstName"] == "Ana"
    assert user["photoURL"] == "https://p/a.png"
    assert user["providers"] == ["manual", "google"]

    again = client.post("/api/oauth/google", json=body).json()["user"]
    assert again["providers"] == ["manual", "google"]
    assert again["uid"] == uid

    # the password still works after the merge
    assert login(client, "a@b.com").status_code == 200


def test_registration_after_oauth_adds_manual(client, provider_token):
    client.post(
        "/api/oauth/facebook",
        json={"token": provider_token("facebook", email="f@b.com"), "userProfile": {"email": "f@b.com", "name": "Flo Ruiz"}},
    )
    r = client.post("/api/auth/register", json={"email": "f@b.com", "password": STRONG_PASSWORD})
    assert r.status_code == 201, r.text
    user = r.json()["user"]
    assert user["providers"] == ["facebook", "manual"]
    assert user["firstName"] == "Flo Ruiz"
    assert login(client, "f@b.com").status_code == 200


def test_github_is_matched_by_user_id(client, provider_token):
    token = provider_token("github", uid="77")
    first = client.post(
        "/api/oauth/github", json={"token": token, "userProfile": {"uid": 77, "login": "octo"}}
    ).json()["user"]
    assert first["email"] == "77@users.noreply.github.com"
    second = client.post(
        "/api/oauth/github", json={"token": token, "userProfile": {"uid": "77", "name": "Octo Cat"}}
    ).json()["user"]
    assert second["uid"] == first["uid"]
    assert second["firstName"] == "Octo Cat"


def test_oauth_input_errors(client):
    r = client.post("/api/oauth/google", json={"token": "t"})
    assert r.status_code == 400
    assert r.json()["error"] == "userProfile is required"

    r = client.post("/api/oauth/twitter", json={"userProfile": {"email": "a@b.com"}})
    assert r.status_code == 400
    assert "Unsupported OAuth provider" in r.json()["error"]

    r = client.post("/api/oauth/google", json={"userProfile": {"name": "No Mail"}})
    assert r.status_code == 400
    assert r.json()["error"] == "userProfile.email is required"


def test_oauth_profile_is_type_and_format_checked(client):
    r = client.post("/api/oauth/google", json={"token": "t", "userProfile": {"email": "not an email"}})
    assert r.status_code == 400
    assert r.json()["error"] == "email must be a valid email address"

    r = client.post("/api/oauth/google", json={"token": "t", "userProfile": {"email": 12345}})
    assert r.status_code == 400
    assert r.json()["error"] == "userProfile.email must be a string"

    r = client.post("/api/oauth/github", json={"token": "t", "userProfile": {"uid": {"id": 1}}})
    assert r.status_code == 400
    assert r.json()["error"] == "userProfile.uid must be a string or an integer"


def test_oauth_requires_a_verified_provider_token(client, provider_token):
    profile = {"email": "a@b.com"}

    r = client.post("/api/oauth/google", json={"userProfile": profile})
    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Provider token is required"}

    r = client.post("/api/oauth/google", json={"token": "made-up", "userProfile": profile})
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid or expired provider token"

    # a token is only good for the provider that issued it
    r = client.post(
        "/api/oauth/google", json={"token": provider_token("facebook", email="a@b.com"), "userProfile": profile}
    )
    assert r.status_code == 401
    assert r.json()["error"] == "Invalid or expired provider token"
    assert profile_repository._MEM_PROFILES == {}


def test_oauth_cannot_take_over_another_account(client, register, provider_token):
    victim_uid, _ = register("victim@b.com")
    own_token = provider_token("google", email="mallory@b.com")

    r = client.post("/api/oauth/google", json={"token": own_token, "userProfile": {"email": "victim@b.com"}})
    assert r.status_code == 401
    assert r.json()["error"] == "Provider token does not match userProfile"

    r = client.post(
        "/api/oauth/github",
        json={"token": provider_token("github", uid="9", email="mallory@b.com"), "userProfile": {"uid": 9, "email": "victim@b.com"}},
    )
    assert r.status_code == 401

    r = client.post("/api/oauth/github", json={"token": provider_token("github", uid="9"), "userProfile": {"uid": 10}})
    assert r.status_code == 401

    victim = profile_repository._MEM_PROFILES[victim_uid]
    assert victim.providers == ("manual",)


# -- login rate limit -------------------------------------------------------


def test_sixth_login_attempt_is_rate_limited(client, register):
    register("a@b.com")
    for _ in range(5):
        assert login(client, "a@b.com", "Wrong1!pass").status_code == 401
    r = login(client, "a@b.com")
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1
    assert r.json()["success"] is False
    assert r.json()["retryAfter"] == int(r.headers["Retry-After"])


def test_rate_limit_frees_up_after_the_window(client, register):
    register("a@b.com")
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(limit=5, window=300, clock=clock)
    client.app.dependency_overrides[get_login_limiter] = lambda: limiter
    try:
        for _ in range(5):
            login(client, "a@b.com", "Wrong1!pass")
        assert login(client, "a@b.com").status_code == 429
        clock.now += 301
        assert login(client, "a@b.com").status_code == 200
    finally:
        client.app.dependency_overrides.pop(get_login_limiter, None)


# -- request gate -----------------------------------------------------------


def test_missing_empty_and_invalid_tokens(client, register):
    uid, _ = register("a@b.com")
    for headers, message in (
        ({}, None),
        ({"Authorization": "Basic abc"}, None),
        ({"Authorization": "Bearer"}, "Token is required"),
        ({"Authorization": "Bearer not-a-real-token"}, "Invalid or expired token"),
    ):
        r = client.get(f"/api/users/{uid}", headers=headers)
        assert r.status_code == 401
        assert r.json()["success"] is False
        if message:
            assert r.json()["error"] == message


# -- users ------------------------------------------------------------------


def test_user_reads_own_profile_only(client, register):
    uid, header = register("a@b.com")
    other_uid, _ = register("c@d.com")

    r = client.get(f"/api/users/{uid}", headers=header)
    assert r.status_code == 200
    assert r.json()["user"]["email"] == "a@b.com"

    for method in ("get", "put", "delete"):
        kwargs = {"json": {"firstName": "X"}} if method == "put" else {}
        r = getattr(client, method)(f"/api/users/{other_uid}", headers=header, **kwargs)
        assert r.status_code == 403
        assert r.json() == {"success": False, "error": "Access denied"}


def test_update_reports_written_fields(client, register):
    uid, header = register("a@b.com")
    r = client.put(
        f"/api/users/{uid}",
        headers=header,
        json={"firstName": " Bea ", "age": 30, "providers": ["github"], "role": "admin"},
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["updatedFields"] == ["age", "firstName"]
    assert data["user"]["firstName"] == "Bea"
    assert data["user"]["age"] == 30
    assert data["user"]["providers"] == ["manual"]


def test_update_without_valid_fields(client, register):
    uid, header = register("a@b.com")
    r = client.put(f"/api/users/{uid}", headers=header, json={"nickname": "x", "lastName": "  "})
    assert r.status_code == 400
    assert r.json()["error"] == "No valid fields to update"


def test_email_change_moves_login_and_unverifies(client, register):
    uid, header = register("a@b.com")
    register("taken@b.com")

    r = client.put(f"/api/users/{uid}", headers=header, json={"email": "taken@b.com"})
    assert r.status_code == 400

    r = client.put(f"/api/users/{uid}", headers=header, json={"email": "New@B.com"})
    assert r.status_code == 200, r.text
    assert r.json()["user"]["email"] == "new@b.com"
    assert r.json()["user"]["emailVerified"] is False
    assert login(client, "new@b.com").status_code == 200
    assert login(client, "a@b.com").status_code == 401


def test_missing_profile_is_not_found(client, register):
    uid, header = register("a@b.com")
    profile_repository._MEM_PROFILES.pop(uid)
    r = client.get(f"/api/users/{uid}", headers=header)
    assert r.status_code == 404
    assert r.json()["error"] == "User not found"


def test_delete_removes_account(client, register):
    uid, header = register("a@b.com")
    r = client.delete(f"/api/users/{uid}", headers=header)
    assert r.status_code == 200
    assert r.json()["success"] is True

    # the session died with the account
    assert client.get(f"/api/users/{uid}", headers=header).status_code == 401
    assert login(client, "a@b.com").status_code == 401
    register("a@b.com")


# -- meetings ---------------------------------------------------------------


def test_create_and_list_meetings(client, register):
    uid, header = register("owner@b.com")
    r = client.post("/api/meetings", headers=header, json={})
    assert r.status_code == 201, r.text
    meeting = r.json()["meeting"]
    assert meeting["ownerUid"] == uid
    assert meeting["title"] == "Untitled Meeting"
    assert meeting["status"] == "scheduled"
    assert meeting["isPublic"] is False
    assert meeting["participants"] == [uid]

    client.post("/api/meetings", headers=header, json={"title": "Second"})
    listed = client.get("/api/meetings", headers=header).json()
    assert listed["count"] == 2
    assert {m["title"] for m in listed["meetings"]} == {"Untitled Meeting", "Second"}


def test_public_meeting_read_joins_once(client, register):
    owner_uid, owner = register("owner@b.com")
    guest_uid, guest = register("guest@b.com")
    meeting_id = client.post(
        "/api/meetings", headers=owner, json={"title": "Open", "isPublic": True}
    ).json()["meeting"]["id"]

    first = client.get(f"/api/meetings/{meeting_id}", headers=guest)
    assert first.status_code == 200
    assert first.json()["meeting"]["participants"] == [owner_uid, guest_uid]

    second = client.get(f"/api/meetings/{meeting_id}", headers=guest)
    assert second.json()["meeting"]["participants"] == [owner_uid, guest_uid]

    # joining does not grant ownership
    assert client.put(f"/api/meetings/{meeting_id}", headers=guest, json={"title": "Mine"}).status_code == 403
    assert client.delete(f"/api/meetings/{meeting_id}", headers=guest).status_code == 403


def test_private_meeting_is_forbidden_to_others(client, register):
    _, owner = register("owner@b.com")
    _, guest = register("guest@b.com")
    meeting_id = client.post("/api/meetings", headers=owner, json={"title": "Private"}).json()["meeting"]["id"]

    r = client.get(f"/api/meetings/{meeting_id}", headers=guest)
    assert r.status_code == 403
    assert r.json() == {"success": False, "error": "Access denied"}


def test_owner_updates_and_deletes_meeting(client, register):
    uid, owner = register("owner@b.com")
    meeting_id = client.post("/api/meetings", headers=owner, json={"title": "Plan"}).json()["meeting"]["id"]

    r = client.put(
        f"/api/meetings/{meeting_id}",
        headers=owner,
        json={"status": "completed", "isPublic": True, "ownerUid": "someone-else"},
    )
    assert r.status_code == 200, r.text
    meeting = r.json()["meeting"]
    assert meeting["status"] == "completed"
    assert meeting["isPublic"] is True
    assert meeting["title"] == "Plan"
    assert meeting["ownerUid"] == uid

    assert client.delete(f"/api/meetings/{meeting_id}", headers=owner).status_code == 200
    r = client.get(f"/api/meetings/{meeting_id}", headers=owner)
    assert r.status_code == 404
    assert r.json()["error"] == "Meeting not found"


def test_unknown_meeting_is_not_found_for_anyone(client, register):
    _, header = register("someone@b.com")
    for method in ("get", "put", "delete"):
        kwargs = {"json": {"title": "x"}} if method == "put" else {}
        r = getattr(client, method)("/api/meetings/does-not-exist", headers=header, **kwargs)
        assert r.status_code == 404
