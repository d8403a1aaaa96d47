"""
Test configuration and fixtures.
The app is driven through httpx's ASGITransport and Cloudinary is replaced
by an httpx MockTransport that records every request it receives.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("LOGFIRE_WRITE_TOKEN", None)

import httpx
import pytest
from typing import AsyncGenerator, Callable

from httpx import AsyncClient, ASGITransport

from main import app
from controllers.cloudinary import UploadConfiguration
from controllers.file_upload import CloudinaryUploadClient
from routers.upload import get_upload_configuration, get_upload_client
from schema.security import TokenData
from security.helpers import get_current_user


COMPLETE_SETTINGS = {
    "STORE_NAME": "demo-cloud",
    "STORE_API_KEY": "123456789012345",
    "STORE_API_SECRET": "not-a-real-secret",
}


class FakeStore:
    """Stands in for the Cloudinary upload endpoint."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200,
            json={
                "secure_url": "https://res.cloudinary.com/demo-cloud/image/upload/v1/chat-app/abc.jpg",
                "public_id": "chat-app/abc",
            },
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def store_settings() -> dict:
    return dict(COMPLETE_SETTINGS)


@pytest.fixture
def upload_configuration(store_settings: dict) -> UploadConfiguration:
    return UploadConfiguration(environ=store_settings)


@pytest.fixture
def upload_client(upload_configuration: UploadConfiguration, fake_store: FakeStore) -> CloudinaryUploadClient:
    return CloudinaryUploadClient(upload_configuration, transport=fake_store.transport())


@pytest.fixture
async def client(
    upload_configuration: UploadConfiguration, upload_client: CloudinaryUploadClient
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client with the store replaced by the fake."""

    async def override_get_current_user():
        return TokenData(username="tester@example.com", scopes=["me"])

    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_upload_configuration] = lambda: upload_configuration
    app.dependency_overrides[get_upload_client] = lambda: upload_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client(
    upload_configuration: UploadConfiguration, upload_client: CloudinaryUploadClient
) -> AsyncGenerator[AsyncClient, None]:
    """Client without authentication overrides."""
    app.dependency_overrides[get_upload_configuration] = lambda: upload_configuration
    app.dependency_overrides[get_upload_client] = lambda: upload_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

