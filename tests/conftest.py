"""Shared fixtures: temporary data directory, controllable clock, cheap hashing."""

import io
import time

import pytest
from PIL import Image

from secureblog.config import Settings
from secureblog.dependencies import build_services
from secureblog.passwords import PasswordVault
from secureblog.sessions import RequestContext

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct-horse-battery"

# Low-cost parameters keep hashing fast in tests
CHEAP_HASHING = {"argon2_memory_cost": 1024, "argon2_time_cost": 1, "bcrypt_rounds": 4}


class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start=None):
        self.now = time.time() if start is None else start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vault():
    return PasswordVault(memory_cost=1024, time_cost=1, bcrypt_rounds=4)


@pytest.fixture
def settings(tmp_path, vault):
    return Settings(
        data_dir=tmp_path / "data",
        admin_username=ADMIN_USERNAME,
        admin_password_hash=vault.hash(ADMIN_PASSWORD),
        **CHEAP_HASHING,
    )


@pytest.fixture
def make_services(clock):
    """Build services for customised settings, with directories provisioned."""
    def _make(settings):
        services = build_services(settings, clock=clock)
        services.posts.initialize_directories()
        services.uploads.initialize_directory()
        return services

    return _make


@pytest.fixture
def services(settings, make_services):
    services = make_services(settings)
    yield services
    services.security_log.close()


@pytest.fixture
def context():
    return RequestContext(
        client_ip="203.0.113.9",
        user_agent="Mozilla/5.0 (pytest)",
        accept_language="en-US",
    )


def make_image(fmt="PNG", size=(8, 8), color=(200, 30, 30), **save_options):
    """Encode a solid-colour image in memory."""
    image = Image.new("RGB", size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **save_options)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_image("PNG")


@pytest.fixture
def jpeg_bytes():
    return make_image("JPEG")
