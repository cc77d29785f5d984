# app/integrations/sync/google_sheets.py
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

from ..base import SyncResult, iso, utc_now_iso, yes_no
from .oauth import OAuthSyncAdapter, TokenRefreshFailed, error_message

log = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEET_TITLE = "Leads"

HEADERS = [
    "ID", "Prospect Name", "Phone", "Email", "Company", "Region",
    "Conversation Date", "Start Time (IST)", "End Time (IST)", "Duration (min)",
    "Total Messages", "User Messages", "Assistant Messages", "Lead Score",
    "Intent Level", "Buyer Stage", "Urgency", "Hot Lead", "Sentiment",
    "Emotional Intensity", "Trust Level", "Primary Topic", "Secondary Topics",
    "Use Case", "Need Summary", "Conversation Summary", "Next Action",
    "Recommended Routing", "Needs Immediate Followup", "Key Questions",
    "Main Objections", "Competitors Mentioned", "Budget Bucket (INR)",
    "Estimated Scale", "Is Enterprise", "Is Partner", "Has Phone", "Has Email",
    "Has Company", "Completeness %", "Source", "Channel", "Status", "Created At", "Session ID",
]

_UPDATED_ROW_RE = re.compile(r"!A(\d+):")


def column_letter(index: int) -> str:
    """1-based column index -> A1 letters (1 -> A, 27 -> AA)."""
    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters or "A"


LAST_COLUMN = column_letter(len(HEADERS))


def lead_to_row(lead: Any) -> list[str]:
    def s(name: str) -> str:
        v = getattr(lead, name, None)
        if v is None:
            return ""
        return str(getattr(v, "value", v))

    def n(name: str) -> str:
        return str(getattr(lead, name, 0) or 0)

    def joined(name: str, sep: str) -> str:
        v = getattr(lead, name, None) or ()
        return sep.join(str(x) for x in v)

    return [
        s("id"),
        s("prospect_name"),
        s("phone"),
        s("email"),
        s("company_name"),
        s("region"),
        s("conversation_date"),
        s("start_time_ist"),
        s("end_time_ist"),
        n("duration_minutes"),
        n("total_messages"),
        n("user_messages"),
        n("assistant_messages"),
        n("lead_score"),
        s("intent_level"),
        s("buyer_stage"),
        s("urgency"),
        yes_no(getattr(lead, "is_hot_lead", False)),
        s("sentiment_overall"),
        s("emotional_intensity"),
        s("trust_level"),
        s("primary_topic"),
        joined("secondary_topics", ", "),
        s("use_case_category"),
        s("need_summary"),
        s("conversation_summary"),
        s("next_action"),
        s("recommended_routing"),
        yes_no(getattr(lead, "needs_immediate_followup", False)),
        joined("key_questions", "; "),
        joined("main_objections", "; "),
        joined("competitors_mentioned", ", "),
        s("budget_bucket_inr"),
        s("estimated_scale"),
        yes_no(getattr(lead, "is_enterprise", False)),
        yes_no(getattr(lead, "is_partner", False)),
        yes_no(getattr(lead, "has_phone", False)),
        yes_no(getattr(lead, "has_email", False)),
        yes_no(getattr(lead, "has_company", False)),
        n("completeness"),
        s("source"),
        s("channel"),
        s("status"),
        iso(getattr(lead, "created_at", None)),
        s("session_id"),
    ]


def _row_fill(row_index: int, rgb: dict[str, float], *, header: bool = False) -> dict[str, Any]:
    fmt: dict[str, Any] = {"backgroundColor": rgb}
    fields = "userEnteredFormat.backgroundColor"
    if header:
        fmt["textFormat"] = {"bold": True, "foregroundColor": {"red": 1, "green": 1, "blue": 1}}
        fmt["horizontalAlignment"] = "CENTER"
        fields = "userEnteredFormat(backgroundColor,textFormat,horizontalAlignment)"
    return {
        "repeatCell": {
            "range": {"sheetId": 0, "startRowIndex": row_index, "endRowIndex": row_index + 1},
            "cell": {"userEnteredFormat": fmt},
            "fields": fields,
        }
    }


class GoogleSheetsSync(OAuthSyncAdapter):
    name = "google_sheets"

    def __init__(self, config: dict[str, Any], *, today: date | None = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.today = today

    def token_url(self) -> str:
        return TOKEN_URL

    async def _create_spreadsheet(self) -> dict[str, str] | None:
        title = f"ChatLead Leads - {(self.today or date.today()).strftime('%d %b %Y')}"
        r = await self.send(
            "POST",
            SHEETS_API,
            json={
                "properties": {"title": title},
                "sheets": [{"properties": {"title": SHEET_TITLE, "gridProperties": {"frozenRowCount": 1}}}],
            },
        )
        if r.status_code >= 400:
            return None

        sheet_id = r.json().get("spreadsheetId")
        if not sheet_id:
            return None

        await self.send(
            "PUT",
            f"{SHEETS_API}/{sheet_id}/values/{SHEET_TITLE}!A1:{LAST_COLUMN}1",
            params={"valueInputOption": "RAW"},
            json={"values": [HEADERS]},
        )
        await self.send(
            "POST",
            f"{SHEETS_API}/{sheet_id}:batchUpdate",
            json={"requests": [_row_fill(0, {"red": 0.2, "green": 0.4, "blue": 0.9}, header=True)]},
        )
        return {
            "spreadsheet_id": sheet_id,
            "spreadsheet_name": title,
            "spreadsheet_url": f"https://docs.google.com/spreadsheets/d/{sheet_id}/edit",
        }

    async def _existing_ids(self, sheet_id: str) -> set[str]:
        r = await self.send("GET", f"{SHEETS_API}/{sheet_id}/values/{SHEET_TITLE}!A:A")
        if r.status_code >= 400:
            return set()
        values = r.json().get("values") or []
        # row 0 is the header
        return {str(row[0]).strip() for row in values[1:] if row and str(row[0]).strip()}

    async def _append(self, sheet_id: str, row: list[str]):
        return await self.send(
            "POST",
            f"{SHEETS_API}/{sheet_id}/values/{SHEET_TITLE}!A:{LAST_COLUMN}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    async def _highlight(self, sheet_id: str, updated_range: str | None) -> None:
        m = _UPDATED_ROW_RE.search(updated_range or "")
        if not m:
            return
        row_index = int(m.group(1)) - 1
        await self.send(
            "POST",
            f"{SHEETS_API}/{sheet_id}:batchUpdate",
            json={"requests": [_row_fill(row_index, {"red": 1, "green": 0.9, "blue": 0.8})]},
        )

    async def sync(self, lead: Any) -> SyncResult:
        if not self.is_connected():
            return SyncResult(success=False, error="Google Sheets not connected")

        try:
            sheet_id = self.config.get("spreadsheet_id")
            if not sheet_id:
                log.info("google_sheets: no spreadsheet configured, creating one")
                sheet = await self._create_spreadsheet()
                if sheet is None and not self._refreshed:
                    await self.refresh_access_token()
                    sheet = await self._create_spreadsheet()
                if sheet is None:
                    return SyncResult(success=False, error="Failed to create spreadsheet", updates=self.updates)
                self.updates.update(sheet)
                sheet_id = sheet["spreadsheet_id"]

            existing = await self._existing_ids(sheet_id)
            if str(lead.id) in existing:
                log.info("google_sheets: lead %s already in sheet, skipping", lead.id)
                self.updates.update(last_sync=utc_now_iso(), leads_exported=len(existing))
                return SyncResult(success=True, skipped=True, updates=self.updates)

            row = lead_to_row(lead)
            r = await self._append(sheet_id, row)
            if r.status_code >= 400 and not self._refreshed:
                await self.refresh_access_token()
                r = await self._append(sheet_id, row)
            if r.status_code >= 400:
                return SyncResult(success=False, error=error_message(r, "Failed to append"), updates=self.updates)

            if getattr(lead, "is_hot_lead", False):
                await self._highlight(sheet_id, (r.json().get("updates") or {}).get("updatedRange"))

        except TokenRefreshFailed as e:
            return SyncResult(success=False, error=str(e), updates=self.updates)

        self.updates.update(last_sync=utc_now_iso(), leads_exported=len(existing) + 1)
        log.info("google_sheets: synced lead %s", lead.id)
        return SyncResult(success=True, updates=self.updates)
