"""Duplicate site reconciliation.

Two tracked URLs can resolve to the same API endpoint (an http/https pair,
a moved host). The earliest created record is kept.
"""

import logging

from wikikeeper.models import Wiki
from wikikeeper.repositories.protocols import WikiRepository

logger = logging.getLogger(__name__)


class Reconciler:
    """Removes sites that share a resolved API URL with an older site."""

    def __init__(self, wikis: WikiRepository):
        self.wikis = wikis

    async def resolve_duplicate(self, wiki: Wiki, new_api_url: str) -> bool:
        """Delete whichever of the sites sharing new_api_url was created later.

        Equal created_at keeps the current site.

        Returns:
            True if the current site was the duplicate and has been deleted.
        """
        matches = await self.wikis.list_by_api_url(new_api_url)

        for other in matches:
            if other.id == wiki.id:
                continue

            if wiki.created_at > other.created_at:
                logger.info(
                    f"[Reconciler] Removing duplicate {wiki.url} ({wiki.id}): "
                    f"{other.url} ({other.id}) already tracks {new_api_url}"
                )
                await self.wikis.delete(wiki.id)
                return True

            logger.info(
                f"[Reconciler] Removing duplicate {other.url} ({other.id}): "
                f"{wiki.url} ({wiki.id}) is older and resolves to {new_api_url}"
            )
            await self.wikis.delete(other.id)

        return False
