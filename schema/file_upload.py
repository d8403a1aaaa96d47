from typing import List, Annotated, Optional
from pydantic import BaseModel, ConfigDict, Field


class UploadCredentials(BaseModel):
    """Credentials required to talk to the Cloudinary upload API."""

    model_config = ConfigDict(frozen=True)

    cloud_name: Annotated[str, Field(min_length=1, description="Cloud name of the Cloudinary account")]
    api_key: Annotated[str, Field(min_length=1, description="API key used for signed uploads")]
    api_secret: Annotated[str, Field(min_length=1, description="API secret used to sign upload requests")]


class IncompleteCredentials(BaseModel):
    """Returned instead of credentials when one or more settings are missing."""

    model_config = ConfigDict(frozen=True)

    missing: Annotated[List[str], Field(description="Names of the environment variables that are not set")]


class IncomingFile(BaseModel):
    """An uploaded image held entirely in memory."""

    buffer: Annotated[bytes, Field(min_length=1, description="Raw bytes of the uploaded image")]
    mime_type: Annotated[str, Field(pattern=r"^image/", description="Content type declared by the client")]
    declared_size: Annotated[int, Field(ge=0, description="Size of the upload in bytes")]
    filename: Annotated[Optional[str], Field(default=None, description="Original file name, if sent")]


class UploadedAsset(BaseModel):
    """Durable reference to an image stored on Cloudinary."""

    secure_url: Annotated[str, Field(min_length=1, description="HTTPS URL of the stored image")]
    public_id: Annotated[str, Field(min_length=1, description="Public ID of the stored image")]


class CloudinaryImageUploadResponse(BaseModel):
    """Response model for Cloudinary image upload.

    Every field is optional so that a partial response can still be parsed
    and checked instead of failing validation.
    """

    model_config = ConfigDict(extra="ignore")

    asset_id: Annotated[Optional[str], Field(description="Unique identifier for the asset in Cloudinary", default=None)]
    asset_folder: Annotated[Optional[str], Field(description="Folder in Cloudinary where the asset is stored", default=None)]
    bytes: Annotated[Optional[int], Field(description="Size of the stored asset in bytes", default=None)]
    created_at: Annotated[Optional[str], Field(description="Timestamp when the asset was created", default=None)]
    format: Annotated[Optional[str], Field(description="File format of the stored asset", default=None)]
    height: Annotated[Optional[int], Field(description="Height of the stored image in pixels", default=None)]
    width: Annotated[Optional[int], Field(description="Width of the stored image in pixels", default=None)]
    public_id: Annotated[Optional[str], Field(description="Public ID of the uploaded asset", default=None)]
    resource_type: Annotated[Optional[str], Field(description="Resource type of the uploaded asset", default=None)]
    secure_url: Annotated[Optional[str], Field(description="Secure URL of the uploaded asset", default=None)]
    url: Annotated[Optional[str], Field(description="URL of the uploaded asset", default=None)]
    version: Annotated[Optional[int], Field(description="Version of the uploaded asset", default=None)]


class UploadData(BaseModel):
    url: str
    public_id: Annotated[str, Field(serialization_alias="publicId")]


class UploadResponse(BaseModel):
    """Envelope returned by every upload endpoint response."""

    success: bool
    data: Optional[UploadData] = None
    message: Optional[str] = None
