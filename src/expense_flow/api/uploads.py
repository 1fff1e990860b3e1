"""Receipt upload client for the external file storage service."""

from __future__ import annotations

import httpx
import structlog

from expense_flow.domain.validation import ValidationResult, validate_receipt_file
from expense_flow.errors import UploadError
from expense_flow.models import BusinessRules, ReceiptRef, ReceiptUpload, UploadConfig

logger = structlog.get_logger()


class FileStorageClient:
    """Uploads receipt files and returns where they were stored.

    The storage service answers ``{"originalname", "filename", "location"}``;
    ``location`` is the public URL of the stored file.
    """

    def __init__(
        self,
        config: UploadConfig | None = None,
        rules: BusinessRules | None = None,
    ) -> None:
        self.config = config or UploadConfig()
        self.rules = rules or BusinessRules()
        self._http = httpx.AsyncClient(timeout=self.config.timeout)

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> FileStorageClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def validate_file(self, size: int, mime_type: str) -> ValidationResult:
        return validate_receipt_file(size, mime_type, self.rules)

    async def upload_receipt(self, data: bytes, mime_type: str, filename: str) -> ReceiptRef:
        """Upload a receipt file.

        Args:
            data: Raw file content.
            mime_type: MIME type of the file, e.g. "application/pdf".
            filename: Original file name, used as the multipart file name.

        Returns:
            Reference to the stored file.

        Raises:
            UploadError: If the file is rejected locally, or the service
                fails or answers with a non-2xx status.
        """
        check = self.validate_file(len(data), mime_type)
        if not check.valid:
            raise UploadError(check.field_errors["receipt"])

        logger.info("uploading_receipt", filename=filename, size=len(data), mime_type=mime_type)

        try:
            response = await self._http.post(
                self.config.url,
                files={"file": (filename, data, mime_type)},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Upload failed: {e}") from e

        if response.is_error:
            raise UploadError(f"Upload failed: {response.status_code} {response.reason_phrase}")

        try:
            result = response.json()
            ref = ReceiptRef(url=result["location"], filename=result["filename"])
        except (ValueError, KeyError, TypeError) as e:
            raise UploadError("Upload failed: unexpected response from storage service") from e

        logger.info("receipt_uploaded", filename=ref.filename)
        return ref

    async def upload_to_state(self, data: bytes, mime_type: str, filename: str) -> ReceiptUpload:
        """Upload and report the outcome as draft state instead of raising.

        A failed upload leaves the claim submittable without a receipt; the
        returned state carries the error for display.
        """
        try:
            ref = await self.upload_receipt(data, mime_type, filename)
        except UploadError as e:
            logger.warning("receipt_upload_failed", filename=filename, error=e.message)
            return ReceiptUpload(filename=filename, error=e.message)
        return ReceiptUpload(url=ref.url, filename=ref.filename)
