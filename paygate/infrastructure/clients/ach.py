"""ACH file service HTTP client for submitting and validating files"""

import httpx
from typing import Any, Dict
from paygate.domain.ach import ACHFile
from paygate.domain.exceptions import ACHServiceError
from paygate.config import settings


class ACHClient:
    """Client for the external ACH file service"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.ach_endpoint
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, f"{self.base_url}{path}", **kwargs)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                raise ACHServiceError(f"ACH service timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ACHServiceError(f"ACH service error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ACHServiceError(f"ACH service unreachable: {e}") from e
            except ValueError as e:
                raise ACHServiceError(f"Invalid response from ACH service: {e}") from e

    async def create_file(self, idempotency_key: str, file: ACHFile) -> str:
        """
        Submit a file. Retried submissions with the same idempotency key are not processed twice.

        Returns:
            The file ID assigned by the ACH service

        Raises:
            ACHServiceError: On transport failures or when the service rejects the file
        """
        data = await self._request(
            "POST",
            "/files/create",
            json=file.to_json(),
            headers={"X-Idempotency-Key": idempotency_key},
        )
        if data.get("error"):
            raise ACHServiceError(f"ACH service rejected file: {data['error']}")
        file_id = data.get("id")
        if not file_id:
            raise ACHServiceError("ACH service returned no file ID")
        return file_id

    async def validate_file(self, file_id: str) -> None:
        """Ask the ACH service to validate a stored file (checksums, record counts)"""
        data = await self._request("GET", f"/files/{file_id}/validate")
        if data.get("error"):
            raise ACHServiceError(f"ACH file {file_id} invalid: {data['error']}")

    async def get_file(self, file_id: str) -> ACHFile:
        """Read a stored file back"""
        data = await self._request("GET", f"/files/{file_id}")
        try:
            return ACHFile.model_validate(data)
        except ValueError as e:
            raise ACHServiceError(f"Invalid ACH file {file_id} from service: {e}") from e
