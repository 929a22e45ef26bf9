"""
User Profile Reader

Reads the academic track from the Supabase ``user_profiles`` table. The
profile itself is managed by the mobile client; this service only reads.
"""

import asyncio
import logging
from typing import Optional

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from tafawoq.domain.content import AcademicTrack
from tafawoq.infrastructure.exceptions import ConfigurationError, DatabaseError


logger = logging.getLogger(__name__)


class SupabaseProfileService:
    """Profile lookups through the Supabase PostgREST API."""

    TABLE = "user_profiles"

    def __init__(
        self,
        supabase_url: Optional[str],
        service_role_key: Optional[str],
        client: Optional[Client] = None,
    ):
        self._supabase_url = supabase_url
        self._service_role_key = service_role_key
        self._client = client

    def _initialize_client(self) -> None:
        if not self._supabase_url or not self._service_role_key:
            raise ConfigurationError(
                "Missing Supabase configuration",
                missing_keys=["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"]
            )

        options = ClientOptions(postgrest_client_timeout=10)
        self._client = create_client(self._supabase_url, self._service_role_key, options)

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        if self._client is None:
            self._initialize_client()
        return self._client

    async def get_academic_track(self, user_id: str) -> Optional[AcademicTrack]:
        """
        Get the user's academic track.

        Returns:
            The stored track, or None if there is no profile or no valid track

        Raises:
            DatabaseError: If the lookup fails
        """
        try:
            result = await asyncio.to_thread(
                lambda: self.client.table(self.TABLE)
                .select("academic_track")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise DatabaseError(
                f"Failed to read profile for user {user_id}",
                operation="get_academic_track",
                table=self.TABLE,
                original_error=e,
            ) from e

        rows = result.data or []
        if not rows or not rows[0].get("academic_track"):
            return None

        try:
            return AcademicTrack(rows[0]["academic_track"])
        except ValueError:
            logger.warning(f"Unknown academic track for user {user_id}: {rows[0]['academic_track']}")
            return None
