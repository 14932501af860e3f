"""
ChittyDNA pattern repository.
"""

import logging
from typing import Optional

from chittycontext.db.repositories.base import PATTERN_TTL, BaseRepository
from chittycontext.lifecycle import C, utc_now
from chittycontext.models.context import DNAPattern

logger = logging.getLogger(__name__)


def pattern_key(context_id: str) -> str:
    return f"pattern:{context_id}"


class PatternRepository(BaseRepository[DNAPattern]):
    """Stores the DNA pattern linked to a context.

    The link is weak: the context keeps only the pattern id as its
    ``dna_fingerprint``.
    """

    async def link(self, ctx: C, pattern: DNAPattern) -> C:
        """
        Store ``pattern`` for ``ctx`` and return the context pointing at it.

        The returned context is not saved; persist it with
        ContextRepository.save().
        """
        await self._write(pattern_key(ctx.id), pattern, PATTERN_TTL)
        logger.debug(f"Linked pattern {pattern.id} to context {ctx.id}")
        return ctx.model_copy(
            update={
                "dna_fingerprint": pattern.id,
                "updated_at": max(utc_now(), ctx.updated_at),
            }
        )

    async def get(self, context_id: str) -> Optional[DNAPattern]:
        return await self._read(pattern_key(context_id), DNAPattern)
