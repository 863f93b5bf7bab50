"""Sensitive data inspection and redaction backed by Google Cloud DLP."""
import logging
from typing import List, Optional, Sequence

from google.cloud import dlp_v2

from config import GOOGLE_CLOUD_PROJECT_ID, DLP_INFO_TYPES, DLP_MIN_LIKELIHOOD

logger = logging.getLogger(__name__)


class SensitiveDataServiceError(Exception):
    """Raised when the DLP service cannot be reached or rejects the call."""


class SensitiveDataClient:
    """Thin async wrapper around the DLP inspect and de-identify endpoints."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        info_types: Optional[Sequence[str]] = None,
        min_likelihood: str = DLP_MIN_LIKELIHOOD,
        client: Optional[dlp_v2.DlpServiceAsyncClient] = None
    ):
        self.project_id = project_id or GOOGLE_CLOUD_PROJECT_ID
        if not self.project_id:
            raise ValueError("GOOGLE_CLOUD_PROJECT_ID must be provided or set in environment")

        self.info_types = [name.strip() for name in (info_types or DLP_INFO_TYPES) if name.strip()]
        self.min_likelihood = min_likelihood
        self.client = client or dlp_v2.DlpServiceAsyncClient()
        logger.info(f"SensitiveDataClient initialized with {len(self.info_types)} info types")

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}/locations/global"

    def _inspect_config(self) -> dict:
        return {
            "info_types": [{"name": name} for name in self.info_types],
            "min_likelihood": self.min_likelihood,
            "include_quote": False,
        }

    async def inspect(self, text: str) -> List[str]:
        """
        Return the distinct info type names found in ``text``.

        Raises:
            SensitiveDataServiceError: if the DLP call fails for any reason
        """
        try:
            response = await self.client.inspect_content(
                request={
                    "parent": self.parent,
                    "inspect_config": self._inspect_config(),
                    "item": {"value": text},
                }
            )
        except Exception as e:
            raise SensitiveDataServiceError(f"DLP inspection failed: {e}") from e

        labels: List[str] = []
        for finding in response.result.findings:
            name = finding.info_type.name
            if name not in labels:
                labels.append(name)
        return labels

    async def redact(self, text: str) -> str:
        """
        Return ``text`` with every finding replaced by its info type name,
        e.g. ``My SSN is [US_SOCIAL_SECURITY_NUMBER]``.

        Raises:
            SensitiveDataServiceError: if the DLP call fails for any reason
        """
        try:
            response = await self.client.deidentify_content(
                request={
                    "parent": self.parent,
                    "deidentify_config": {
                        "info_type_transformations": {
                            "transformations": [
                                {"primitive_transformation": {"replace_with_info_type_config": {}}}
                            ]
                        }
                    },
                    "inspect_config": self._inspect_config(),
                    "item": {"value": text},
                }
            )
        except Exception as e:
            raise SensitiveDataServiceError(f"DLP redaction failed: {e}") from e

        return response.item.value
