"""Pack catalogue lookups."""
from typing import Dict, Iterable, List, Optional

from ..models import Pack
from ..utils.logger import logger


class PackCatalog:
    """Read-only pack catalogue with a default tier."""

    def __init__(self, packs: Iterable[Pack], default_pack_id: str):
        """Initialize the catalogue.

        Args:
            packs: Known packs
            default_pack_id: Pack used for sessions without (or with an unknown) pack id

        Raises:
            ValueError: If the catalogue is empty or the default id is not part of it
        """
        self._packs: Dict[str, Pack] = {pack.id: pack for pack in packs}
        if not self._packs:
            raise ValueError("Pack catalogue is empty")
        if default_pack_id not in self._packs:
            raise ValueError(f"Default pack {default_pack_id} is not in the catalogue")
        self.default_pack_id = default_pack_id

    @property
    def default(self) -> Pack:
        return self._packs[self.default_pack_id]

    def lookup(self, pack_id: Optional[str]) -> Optional[Pack]:
        """Return the pack with this id, or None."""
        if not pack_id:
            return None
        return self._packs.get(pack_id)

    def resolve(self, pack_id: Optional[str]) -> Pack:
        """Return the pack with this id, falling back to the default tier."""
        pack = self.lookup(pack_id)
        if pack is None:
            if pack_id:
                logger.warning(f"Unknown pack {pack_id}, using default pack {self.default_pack_id}")
            return self.default
        return pack

    def all(self) -> List[Pack]:
        return list(self._packs.values())
