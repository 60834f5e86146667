"""
Prompt pack catalog.
Loads every ``*.json`` pack file in a directory. One bad file never prevents
the others from loading.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError

from .errors import PackDecodeError
from .models import FAVORITES_PACK_ID, Prompt, PromptPack, all_prompts

log = logging.getLogger(__name__)


class PackCatalog:
    def __init__(self, questpacks_dir: Path):
        self.questpacks_dir = Path(questpacks_dir)
        self._packs: List[PromptPack] = []

    @property
    def packs(self) -> List[PromptPack]:
        return list(self._packs)

    def load_packs(self) -> List[PromptPack]:
        """(Re)loads all packs, sorted by file name, skipping malformed files."""
        if not self.questpacks_dir.is_dir():
            log.error(f"Error loading quest packs directory: {self.questpacks_dir} does not exist")
            self._packs = []
            return []

        packs: List[PromptPack] = []
        seen_ids = set()
        for path in sorted(self.questpacks_dir.glob("*.json")):
            try:
                pack = self.decode_pack(path)
            except PackDecodeError as e:
                log.warning(str(e))
                continue
            if pack.id in seen_ids:
                log.warning(f"Skipping {path.name}: duplicate pack id {pack.id}")
                continue
            seen_ids.add(pack.id)
            packs.append(pack)

        log.info(f"Loaded {len(packs)} pack(s) with {len(all_prompts(packs))} prompt(s) from {self.questpacks_dir}")
        self._packs = packs
        return self.packs

    @staticmethod
    def decode_pack(path: Path) -> PromptPack:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            pack = PromptPack.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise PackDecodeError(path, str(e)) from e
        if pack.id == FAVORITES_PACK_ID:
            raise PackDecodeError(path, "pack id is reserved for Favorites")
        return pack

    # --------------- lookups ----------------------------------------------
    def get_pack(self, pack_id: UUID) -> Optional[PromptPack]:
        return next((p for p in self._packs if p.id == pack_id), None)

    def prompts_by_id(self) -> Dict[UUID, Prompt]:
        return {p.id: p for p in all_prompts(self._packs)}

    def get_prompt(self, prompt_id: UUID) -> Optional[Prompt]:
        return self.prompts_by_id().get(prompt_id)
