"""Upload router for handling image uploads."""

import logfire

from fastapi import (
    APIRouter,
    status,
    Depends,
    Security,
)

from controllers.cloudinary import UploadConfiguration, upload_configuration
from controllers.file_upload import (
    CloudinaryUploadClient,
    image_upload,
    DEFAULT_FOLDER,
)

from schema.file_upload import IncomingFile, UploadResponse, UploadData
from schema.security import TokenData
from security.helpers import get_current_user
from utils.exceptions import UploadError, error_envelope, GENERIC_UPLOAD_FAILURE

from typing import Annotated

router = APIRouter(
    prefix="/api/upload",
    tags=["Uploads"],
)


def get_upload_configuration() -> UploadConfiguration:
    return upload_configuration


def get_upload_client(
    configuration: Annotated[UploadConfiguration, Depends(get_upload_configuration)],
) -> CloudinaryUploadClient:
    return CloudinaryUploadClient(configuration)


@router.post(
    "/image",
    response_model=UploadResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": UploadResponse, "description": "Missing, empty, oversized, malformed or non-image file"},
        500: {"model": UploadResponse, "description": "Cloudinary is not configured or the upload failed"},
    },
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "properties": {"image": {"type": "string", "format": "binary"}},
                        "required": ["image"],
                    }
                }
            },
        }
    },
)
async def upload_image(
    current_user: Annotated[TokenData, Security(get_current_user)],
    configuration: Annotated[UploadConfiguration, Depends(get_upload_configuration)],
    incoming: Annotated[IncomingFile, Depends(image_upload)],
    upload_client: Annotated[CloudinaryUploadClient, Depends(get_upload_client)],
):
    """
    Upload a single image to Cloudinary and return where it is stored.

    The multipart body is read into memory and capped at 5 MB plus room for
    the multipart framing; the `image` field carries the file.

    The image is resized on Cloudinary's side to fit within 1000x1000 pixels;
    smaller images are left as they are.

    ## Possible Errors
    - 400 Bad Request: No file, an empty file, a non-image file, a malformed body or a file larger than 5 MB.
    - 401 Unauthorized: Missing or invalid access token.
    - 500 Internal Server Error: Cloudinary is not configured or rejected the upload.

    ## Error response structure
    ```json
    {
        "success": false,
        "message": "No file uploaded"
    }
    ```

    ## Success response structure
    ```json
    {
        "success": true,
        "data": {
            "url": "https://res.cloudinary.com/.../chat-app/abc.jpg",
            "publicId": "chat-app/abc"
        }
    }
    ```
    """
    with logfire.span(f"Uploading image for user: {current_user.username}"):
        try:
            configuration.require_credentials()

            asset = await upload_client.upload(
                incoming.buffer, folder=DEFAULT_FOLDER, mime_type=incoming.mime_type
            )
        except UploadError:
            # Rendered by the application wide UploadError handler
            raise
        except Exception as e:
            logfire.exception(f"Unexpected error uploading image for {current_user.username}: {e}")
            return error_envelope(
                status.HTTP_500_INTERNAL_SERVER_ERROR, str(e) or GENERIC_UPLOAD_FAILURE
            )

        logfire.info(f"Image uploaded for {current_user.username}: {asset.public_id}")

        return UploadResponse(
            success=True,
            data=UploadData(url=asset.secure_url, public_id=asset.public_id),
        )
