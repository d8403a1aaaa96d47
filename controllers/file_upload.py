"""
    Controller to handle image intake and uploads to Cloudinary's API
"""
import io

import cloudinary
import cloudinary.utils
import logfire

from datetime import datetime

from fastapi import status, Request
from starlette.datastructures import UploadFile
from httpx import (
    AsyncBaseTransport,
    AsyncClient,
    HTTPError,
    NetworkError,
    StreamError,
    TimeoutException,
    Limits,
)
from pydantic import ValidationError
from starlette.formparsers import MultiPartParser, MultiPartException

from controllers.cloudinary import UploadConfiguration
from models.helpers import UploadErrorKind
from schema.file_upload import CloudinaryImageUploadResponse, IncomingFile, UploadedAsset
from utils.exceptions import UploadError

from typing import AsyncGenerator, Optional

ALLOWED_IMAGE_TYPE_PREFIX = "image/"
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5 MB
# Room for the multipart boundaries and part headers around the file
MULTIPART_OVERHEAD = 64 * 1024
MAX_BODY_SIZE = MAX_FILE_SIZE + MULTIPART_OVERHEAD
IMAGE_FIELD = "image"

UPLOAD_BASE_URL = "https://api.cloudinary.com/v1_1"
DEFAULT_FOLDER = "chat-app"
MAX_IMAGE_WIDTH = 1000
MAX_IMAGE_HEIGHT = 1000

# Downscale only, aspect ratio preserved
LIMIT_TRANSFORMATION = f"c_limit,h_{MAX_IMAGE_HEIGHT},w_{MAX_IMAGE_WIDTH}"

NO_URL_RETURNED = "Failed to upload image to Cloudinary. The upload completed but no URL was returned."
NO_PUBLIC_ID_RETURNED = "Failed to upload image to Cloudinary. The upload completed but no public ID was returned."


def file_greater_than_max_size(size: int | None) -> bool:
    """
    Check if an upload exceeds the maximum allowed size.

    Args:
        size (int | None): Size of the upload in bytes, None when unknown.

    Returns:
        bool: True if the file is larger than the maximum size, False otherwise.
    """
    return size is not None and size > MAX_FILE_SIZE


async def read_image_upload(image: UploadFile | None) -> IncomingFile:
    """Validate a multipart image upload and buffer it in memory.

    At most `MAX_FILE_SIZE + 1` bytes are read so an oversized body is
    detected even when the client did not declare its size.

    Args:
        image (UploadFile | None): The `image` field of the multipart body.

    Raises:
        UploadError: MISSING_FILE, UNSUPPORTED_MEDIA_TYPE, PAYLOAD_TOO_LARGE or EMPTY_FILE.

    Returns:
        IncomingFile: The validated upload.
    """
    if image is None:
        raise UploadError(UploadErrorKind.MISSING_FILE, "No file uploaded")

    content_type = (image.content_type or "").lower()

    if not content_type.startswith(ALLOWED_IMAGE_TYPE_PREFIX):
        logfire.info(f"Rejected upload {image.filename} with content type {content_type!r}")
        raise UploadError(UploadErrorKind.UNSUPPORTED_MEDIA_TYPE, "Only image files are allowed")

    if file_greater_than_max_size(image.size):
        logfire.info(f"Rejected upload {image.filename}: declared size {image.size} exceeds limit")
        raise _too_large()

    buffer = await image.read(MAX_FILE_SIZE + 1)

    if file_greater_than_max_size(len(buffer)):
        logfire.info(f"Rejected upload {image.filename}: body exceeds limit")
        raise _too_large()

    if not buffer:
        raise UploadError(UploadErrorKind.EMPTY_FILE, "Uploaded file is empty")

    return IncomingFile(
        buffer=buffer,
        mime_type=content_type,
        declared_size=image.size if image.size is not None else len(buffer),
        filename=image.filename,
    )


def _too_large() -> UploadError:
    return UploadError(UploadErrorKind.PAYLOAD_TOO_LARGE, "File size too large. Maximum size is 5MB.")


class InMemoryMultiPartParser(MultiPartParser):
    """Multipart parser whose file parts never roll over to a temporary file."""

    # A part can never be larger than the capped body
    spool_max_size = MAX_BODY_SIZE


async def read_capped_body(request: Request) -> bytes:
    """Read the request body, giving up as soon as it passes `MAX_BODY_SIZE`.

    A declared `Content-Length` over the cap is rejected before anything is
    read; chunked bodies are counted while they stream in.

    Raises:
        UploadError: PAYLOAD_TOO_LARGE.
    """
    declared = request.headers.get("content-length")

    if declared and declared.isdigit() and int(declared) > MAX_BODY_SIZE:
        logfire.info(f"Rejected upload body: declared length {declared} exceeds limit")
        raise _too_large()

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > MAX_BODY_SIZE:
            logfire.info(f"Rejected upload body: more than {MAX_BODY_SIZE} bytes streamed")
            raise _too_large()

    return bytes(body)


async def _replay(body: bytes) -> AsyncGenerator[bytes, None]:
    yield body


async def parse_image_form(request: Request) -> UploadFile | None:
    """Parse the capped body and return its `image` file field, if any.

    Raises:
        UploadError: PAYLOAD_TOO_LARGE or MALFORMED_UPLOAD.
    """
    body = await read_capped_body(request)

    if not request.headers.get("content-type", "").lower().startswith("multipart/form-data"):
        return None

    parser = InMemoryMultiPartParser(request.headers, _replay(body), max_files=1)

    try:
        form = await parser.parse()
    except (MultiPartException, ValueError) as e:
        message = getattr(e, "message", None) or str(e) or "Malformed multipart body"
        raise UploadError(UploadErrorKind.MALFORMED_UPLOAD, message) from e

    image = form.get(IMAGE_FIELD)
    return image if isinstance(image, UploadFile) else None


async def image_upload(request: Request) -> IncomingFile:
    """Dependency producing the validated in-memory upload for a request."""
    return await read_image_upload(await parse_image_form(request))


def _store_error_message(response) -> str:
    """Extract the message Cloudinary puts in `{"error": {"message": ...}}`, else the raw body."""
    try:
        body = response.json()
    except ValueError:
        return response.text

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str):
            return error
    return response.text


class CloudinaryUploadClient:
    """Sends image buffers to Cloudinary, one request per call.

    Args:
        configuration (UploadConfiguration): Source of the upload credentials.
        transport (AsyncBaseTransport | None): Custom httpx transport, mainly for tests.
        timeout (float): Request timeout in seconds.
    """

    def __init__(
        self,
        configuration: UploadConfiguration,
        transport: Optional[AsyncBaseTransport] = None,
        timeout: float = 30,
    ):
        self.configuration = configuration
        self.transport = transport
        self.timeout = timeout

    def _build_client(self) -> AsyncClient:
        connection_limits = Limits(max_keepalive_connections=20, max_connections=20)
        return AsyncClient(timeout=self.timeout, limits=connection_limits, transport=self.transport)

    async def upload(
        self, buffer: bytes | None, folder: str = DEFAULT_FOLDER, mime_type: str | None = None
    ) -> UploadedAsset:
        """Uploads an image buffer to Cloudinary.

        Args:
            buffer (bytes | None): Raw image bytes.
            folder (str): Cloudinary folder to store the image under.
            mime_type (str | None): Content type sent along with the bytes.

        Raises:
            UploadError: NOT_CONFIGURED or EMPTY_BUFFER before any network call,
                STORE_ERROR or INTEGRITY after it.

        Returns:
            UploadedAsset: Secure URL and public ID of the stored image.
        """
        credentials = self.configuration.require_credentials()

        if not buffer:
            raise UploadError(UploadErrorKind.EMPTY_BUFFER, "Empty buffer provided for upload")

        self.configuration.configure_store_client_once(credentials)
        # Signed with the SDK configuration set up above
        sdk_config = cloudinary.config()

        timestamp = str(int(datetime.now().timestamp()))
        params_to_sign = {
            "folder": folder,
            "timestamp": timestamp,
            "transformation": LIMIT_TRANSFORMATION,
        }
        payload = {
            **params_to_sign,
            "api_key": sdk_config.api_key,
            "signature": cloudinary.utils.api_sign_request(params_to_sign, sdk_config.api_secret),
        }
        url = f"{UPLOAD_BASE_URL}/{sdk_config.cloud_name}/image/upload"
        files = {"file": ("upload", io.BytesIO(buffer), mime_type or "application/octet-stream")}

        logfire.info(f"Uploading {len(buffer)} bytes to Cloudinary folder {folder}")

        try:
            async with self._build_client() as client:
                response = await client.post(url, data=payload, files=files)
        except TimeoutException as e:
            logfire.error(f"Request timed out while uploading image to Cloudinary: {e}")
            raise UploadError(UploadErrorKind.STORE_ERROR, f"Upload to Cloudinary timed out: {e}") from e
        except NetworkError as e:
            logfire.error(f"Network error occurred while uploading image to Cloudinary: {e}")
            raise UploadError(UploadErrorKind.STORE_ERROR, f"Network error while uploading to Cloudinary: {e}") from e
        except (HTTPError, StreamError) as e:
            logfire.error(f"Upload stream error while uploading image to Cloudinary: {e}")
            raise UploadError(UploadErrorKind.STORE_ERROR, str(e) or None) from e

        if response.status_code != status.HTTP_200_OK:
            message = _store_error_message(response)
            logfire.error(f"Failed to upload image to Cloudinary ({response.status_code}): {message}")
            raise UploadError(UploadErrorKind.STORE_ERROR, message, code=response.status_code)

        try:
            result = CloudinaryImageUploadResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logfire.error(f"Cloudinary returned an unreadable response: {response.text}")
            raise UploadError(UploadErrorKind.STORE_ERROR, "Cloudinary returned an invalid response") from e

        if not result.secure_url:
            logfire.error(f"Cloudinary upload failed: no URL in response {response.text}")
            raise UploadError(UploadErrorKind.INTEGRITY, NO_URL_RETURNED)

        if not result.public_id:
            logfire.error(f"Cloudinary upload failed: no public ID in response {response.text}")
            raise UploadError(UploadErrorKind.INTEGRITY, NO_PUBLIC_ID_RETURNED)

        logfire.info(f"Image uploaded successfully to Cloudinary: {result.public_id}")
        return UploadedAsset(secure_url=result.secure_url, public_id=result.public_id)
