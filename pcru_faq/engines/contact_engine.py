from typing import List

from pydantic import ValidationError

from pcru_faq.exceptions import StoreUnavailable
from pcru_faq.schemas import Contact
from pcru_faq.utils.logging_utils import get_logger

logger = get_logger()


class ContactDirectory:
    """Default officer contacts attached to every answered response."""

    def __init__(self, store):
        self.store = store

    async def get_contacts(self) -> List[Contact]:
        # Contacts are decoration; a lookup failure never fails the answer.
        try:
            return list(await self.store.get_default_contacts())
        except (StoreUnavailable, ValidationError) as e:
            logger.warning(f"[Contacts] Failed to load contacts: {e}")
            return []
