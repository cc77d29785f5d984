# app/adapters/repos/leads.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...domain.assembly import LeadDraft
from ...domain.errors import DuplicateConversation
from ...domain.fingerprint import conversation_fingerprint
from ...models import Lead, LeadStatus


class LeadRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_fingerprint(self, fingerprint: str) -> Optional[Lead]:
        q = select(Lead).where(Lead.conversation_fingerprint == fingerprint)
        return (await self.session.execute(q)).scalars().first()

    async def is_duplicate(self, conversation_text: str) -> bool:
        q = select(Lead.id).where(
            Lead.conversation_fingerprint == conversation_fingerprint(conversation_text)
        )
        return (await self.session.execute(q)).first() is not None

    async def insert(self, draft: LeadDraft, *, key: str = "") -> Lead:
        """
        Insert-only. Leads are never updated by the pipeline.

        Commits. A fingerprint collision with a concurrent writer surfaces as
        DuplicateConversation (after rollback).
        """
        row = draft.to_row()
        row["status"] = LeadStatus(row["status"])
        lead = Lead(**row)
        self.session.add(lead)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            if "conversation_fingerprint" in str(e.orig) or "uq_lead_conversation_fingerprint" in str(e.orig):
                raise DuplicateConversation(key or draft.session_id) from e
            raise
        return lead

    async def get(self, lead_id: str) -> Optional[Lead]:
        return await self.session.get(Lead, lead_id)
