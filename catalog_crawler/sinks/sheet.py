"""Crawl log rows appended to a Google Sheet."""

import logging
from typing import Optional

import httpx

from catalog_crawler.config import settings

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"


class SheetLogger:
    """Appends one row per crawl run to a sheet tab."""

    def __init__(
        self,
        sheet_id: str | None = None,
        tab: str = "crawl-log",
        access_token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.sheet_id = sheet_id if sheet_id is not None else settings.log_sheet_id
        self.tab = tab
        self.access_token = access_token if access_token is not None else settings.google_access_token
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.sheet_id and self.access_token)

    async def append_row(self, row: dict, header: Optional[list[str]] = None) -> bool:
        """
        Append ``row`` with values ordered by ``header`` (row key order by default).

        Returns:
            True when the row was written; failures are logged
        """
        if not self.enabled:
            logger.debug("Sheet logging disabled, skipping row")
            return False

        columns = header or list(row.keys())
        values = [["" if row.get(c) is None else row.get(c) for c in columns]]

        url = f"{SHEETS_API}/{self.sheet_id}/values/{self.tab}:append"
        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            resp = await client.post(
                url,
                params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
                headers={"Authorization": f"Bearer {self.access_token}"},
                json={"values": values},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to append crawl log row to {self.tab}: {e}")
            return False
        finally:
            if self._client is None:
                await client.aclose()

        logger.info(f"Appended crawl log row to {self.tab}")
        return True
