import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, make_image
from secureblog.main import create_app


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin(client):
    response = login(client)
    assert response.status_code == 200
    return client


@pytest.fixture
def visitor(app):
    """A second browser with its own cookie jar."""
    return TestClient(app)


def csrf(client, form):
    response = client.get("/auth/csrf-token", params={"form": form})
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrf_token"]}


def login(client, username=ADMIN_USERNAME, password=ADMIN_PASSWORD):
    return client.post(
        "/auth/login",
        json={"username": username, "password": password},
        headers=csrf(client, "login_form"),
    )


def create_post(client, **fields):
    payload = {"title": "Hello World", "content": "<p>Body</p>", "status": "published", **fields}
    response = client.post("/posts", json=payload, headers=csrf(client, "post_form"))
    assert response.status_code == 201, response.text
    return response.json()["post"]


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/").json()["status"] == "running"


def test_security_headers_and_session_cookie(client):
    response = client.get("/auth/csrf-token")

    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]
    assert response.headers["Cache-Control"].startswith("no-store")
    assert "Strict-Transport-Security" not in response.headers

    cookie = response.headers["set-cookie"]
    assert cookie.startswith("SECURE_CMS_SESSION=")
    assert "HttpOnly" in cookie
    assert "samesite=strict" in cookie.lower()


def test_hsts_behind_https_proxy(client):
    response = client.get("/health", headers={"X-Forwarded-Proto": "https"})
    assert "max-age=31536000" in response.headers["Strict-Transport-Security"]


def test_login_and_me(client):
    response = login(client)

    assert response.status_code == 200
    assert response.json() == {"success": True, "user": {"username": ADMIN_USERNAME, "role": "admin"}}
    assert client.get("/auth/me").json() == {"username": ADMIN_USERNAME, "role": "admin"}


def test_login_without_csrf_token_is_forbidden(client):
    response = client.post("/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})

    assert response.status_code == 403
    assert response.json()["success"] is False
    assert client.get("/auth/me").status_code == 401


def test_login_token_is_single_use(client):
    headers = csrf(client, "login_form")
    body = {"username": ADMIN_USERNAME, "password": "not-the-password"}

    assert client.post("/auth/login", json=body, headers=headers).status_code == 401
    assert client.post("/auth/login", json=body, headers=headers).status_code == 403


def test_wrong_password(client):
    response = login(client, password="not-the-password")

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Invalid credentials"}


def test_login_rate_limit(settings, clock):
    limited = settings.model_copy(update={"login_rate_limit": (2, 600)})
    with TestClient(create_app(limited, clock=clock)) as client:
        body = {"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}
        codes = [client.post("/auth/login", json=body).status_code for _ in range(3)]

    assert codes == [403, 403, 429]


def test_login_rate_limit_ignores_forwarded_ip(settings, clock):
    limited = settings.model_copy(update={"login_rate_limit": (2, 600)})
    with TestClient(create_app(limited, clock=clock)) as client:
        body = {"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}
        codes = [
            client.post("/auth/login", json=body, headers={"CF-Connecting-IP": f"198.51.100.{i}"}).status_code
            for i in range(4)
        ]

    assert codes == [403, 403, 429, 429]


def test_logout(admin):
    response = admin.post("/auth/logout", headers=csrf(admin, "logout"))

    assert response.json() == {"success": True}
    assert admin.get("/auth/me").status_code == 401


def test_post_endpoints_require_login(client):
    assert client.get("/posts").status_code == 401
    response = client.post("/posts", json={"title": "x", "content": "y"}, headers=csrf(client, "post_form"))
    assert response.status_code == 401


def test_post_crud(admin):
    post = create_post(admin, post_password="ignored")
    assert post["slug"] == "hello-world"
    assert post["author"] == ADMIN_USERNAME
    assert "post_password" not in post

    updated = admin.put(
        f"/posts/{post['id']}",
        json={"title": "Renamed"},
        headers=csrf(admin, "post_form"),
    ).json()["post"]
    assert updated["title"] == "Renamed"
    assert updated["content"] == post["content"]

    listing = admin.get("/posts", params={"status": "published"}).json()
    assert listing["total"] == 1

    assert admin.delete(f"/posts/{post['id']}", headers=csrf(admin, "post_form")).json() == {"success": True}
    missing = admin.get(f"/posts/{post['id']}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Post not found"}


def test_post_validation_error(admin):
    response = admin.post(
        "/posts",
        json={"title": "x" * 500, "content": "Body"},
        headers=csrf(admin, "post_form"),
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Title too long"}


def test_views_counted_only_for_anonymous_readers(admin, visitor):
    post = create_post(admin)

    assert admin.get(f"/blog/posts/{post['slug']}").status_code == 200
    assert admin.get(f"/posts/{post['id']}").json()["views"] == 0

    visitor.get(f"/blog/posts/{post['slug']}")
    visitor.get(f"/blog/posts/{post['slug']}")
    assert admin.get(f"/posts/{post['id']}").json()["views"] == 2


def test_public_listing_hides_drafts(admin, visitor):
    create_post(admin, title="Live")
    draft = create_post(admin, title="Draft", status="draft")

    listing = visitor.get("/blog/posts").json()
    assert [p["title"] for p in listing["posts"]] == ["Live"]
    assert listing["pagination"]["total_posts"] == 1
    assert visitor.get(f"/blog/posts/{draft['slug']}").status_code == 404
    assert [p["title"] for p in visitor.get("/blog/search", params={"q": "live"}).json()["posts"]] == ["Live"]


def test_protected_post_unlock(admin, visitor):
    post = create_post(admin, password_protected=True, post_password="open sesame")

    locked = visitor.get(f"/blog/posts/{post['slug']}").json()
    assert locked["locked"] is True
    assert locked["content"] is None

    wrong = visitor.post(f"/blog/posts/{post['slug']}/unlock", json={"password": "guess"})
    assert wrong.status_code == 401

    unlocked = visitor.post(f"/blog/posts/{post['slug']}/unlock", json={"password": "open sesame"})
    assert unlocked.json()["content"] == "<p>Body</p>"
    assert visitor.get(f"/blog/posts/{post['slug']}").json()["locked"] is False


def test_login_required_for_posts(settings, clock):
    private = settings.model_copy(update={"require_login_for_posts": True})
    with TestClient(create_app(private, clock=clock)) as client:
        assert client.get("/blog/posts").status_code == 401
        login(client)
        assert client.get("/blog/posts").status_code == 200


def test_taxonomy_endpoints(admin):
    response = admin.post("/categories", json={"name": "News"}, headers=csrf(admin, "taxonomy_form"))
    assert response.status_code == 201

    duplicate = admin.post("/categories", json={"name": "news"}, headers=csrf(admin, "taxonomy_form"))
    assert duplicate.status_code == 400

    create_post(admin, tags="Python")
    assert admin.get("/categories").json() == {"categories": [{"slug": "news", "name": "News"}]}
    assert admin.get("/tags").json() == {"tags": [{"slug": "python", "name": "Python"}]}


def test_upload_and_serve_image(admin):
    headers = csrf(admin, "image_upload")
    png = make_image("PNG")

    first = admin.post("/upload-image", files={"file": ("a.png", png, "image/png")}, headers=headers)
    second = admin.post("/upload-image", files={"file": ("b.png", png, "image/png")}, headers=headers)

    assert first.status_code == 200, first.text
    assert second.status_code == 200
    filename = first.json()["filename"]

    served = admin.get(f"/images/{filename}")
    assert served.status_code == 200
    assert served.headers["content-type"] == "image/png"
    assert served.content == png

    assert admin.get("/images").json()["total"] == 2


def test_malicious_upload_rejected(admin):
    payload = make_image("PNG") + b"<?php system($_GET['c']); ?>"
    response = admin.post(
        "/upload-image",
        files={"file": ("evil.png", payload, "image/png")},
        headers=csrf(admin, "image_upload"),
    )

    assert response.status_code == 400
    assert response.json()["error"].startswith("Security violation detected")
    assert admin.get("/images").json()["total"] == 0


def test_upload_requires_login(client):
    response = client.post(
        "/upload-image",
        files={"file": ("a.png", make_image("PNG"), "image/png")},
        headers=csrf(client, "image_upload"),
    )
    assert response.status_code == 401


def test_serve_rejects_unknown_names(client):
    assert client.get("/images/..%5C..%5Cetc").status_code == 400
    assert client.get("/images/" + "a" * 32 + ".png").status_code == 404


def test_admin_backup_and_restore(admin, clock):
    create_post(admin, title="Keep")
    clock.advance(1)
    backup = admin.post("/admin/backup", headers=csrf(admin, "backup_form")).json()["filename"]
    clock.advance(1)
    create_post(admin, title="Discard")

    assert backup in [b["filename"] for b in admin.get("/admin/backups").json()["backups"]]

    restored = admin.post(
        "/admin/restore",
        json={"backup_file": backup},
        headers=csrf(admin, "backup_form"),
    )
    assert restored.json() == {"success": True, "restored": 1}
    assert [p["title"] for p in admin.get("/posts").json()["posts"]] == ["Keep"]

    missing = admin.post(
        "/admin/restore",
        json={"backup_file": "../posts/x.json"},
        headers=csrf(admin, "backup_form"),
    )
    assert missing.status_code == 404


def test_admin_user_management(admin, visitor):
    created = admin.post(
        "/admin/users",
        json={"username": "writer", "password": "writer-password-1", "role": "author"},
        headers=csrf(admin, "user_form"),
    )
    assert created.status_code == 201
    assert created.json()["user"]["username"] == "writer"

    assert [u["username"] for u in admin.get("/admin/users").json()["users"]] == ["writer"]
    assert admin.get("/admin/statistics").json()["total_users"] == 1

    # Authors can log in but cannot reach admin endpoints
    assert login(visitor, "writer", "writer-password-1").status_code == 200
    assert visitor.get("/admin/users").status_code == 403

    deleted = admin.delete("/admin/users/writer", headers=csrf(admin, "user_form"))
    assert deleted.json() == {"success": True}

    protected = admin.delete(f"/admin/users/{ADMIN_USERNAME}", headers=csrf(admin, "user_form"))
    assert protected.status_code == 400
