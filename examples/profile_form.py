"""
Profile form autosave against an in-memory fake API.

Run with ``python examples/profile_form.py`` after installing the package.
The fake API fails its first call to show the retry path, stores tags
through a separate endpoint, and expects snake_case nested keys.
"""

import asyncio
import datetime
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from autosave import (
    ArrayFieldHandler,
    AutosaveOrchestrator,
    FormState,
    KeyEvent,
    RetryConfig,
    as_transport,
    create_config,
    model_validator,
)

logger = logging.getLogger(__name__)


class Profile(BaseModel):
    """Server-side shape of the record (all fields, form naming)."""
    displayName: str = Field(min_length=1)
    email: str
    birthday: Optional[datetime.date] = None
    tags: List[Dict[str, Any]] = Field(default_factory=list)


class FakeProfileApi:
    def __init__(self):
        self.stored: Dict[str, Any] = {}
        self.tags: Dict[int, str] = {}
        self._calls = 0

    async def update_profile(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._calls += 1
        if self._calls == 1:
            raise ConnectionError("service unavailable")
        self.stored.update(payload)
        return {"version": self._calls}

    async def add_tags(self, items: List[Dict[str, Any]]) -> None:
        for item in items:
            self.tags[item["id"]] = item["label"]

    async def remove_tags(self, items: List[Dict[str, Any]]) -> None:
        for item in items:
            self.tags.pop(item["id"], None)


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")

    api = FakeProfileApi()
    form = FormState({"displayName": "Jane", "email": "jane@example.com", "birthday": None, "tags": []})

    autosave = AutosaveOrchestrator(
        form,
        as_transport(api.update_profile),
        create_config(debounce_ms=200, debug=True, undo={"capture_in_inputs": False}),
        validator=model_validator(Profile, partial=True),
        key_map={"displayName": "profile.display_name", "birthday": "profile.birthday"},
        array_handlers={
            "tags": ArrayFieldHandler(identity_key="id", on_add=api.add_tags, on_remove=api.remove_tags),
        },
        retry_config=RetryConfig(max_retries=2, base_delay_ms=100, max_delay_ms=400),
        on_saved=lambda result: logger.info(f"on_saved ok={result.ok} error={result.error}"),
        name="profile",
    )

    form.set_value("displayName", "Jane D.")
    form.set_value("birthday", datetime.date(1990, 5, 17))
    form.set_value("tags", [{"id": 1, "label": "admin"}])
    await asyncio.sleep(0.5)

    logger.info(f"stored={api.stored} tags={api.tags} baseline=v{autosave.baseline.version}")

    autosave.handle_key_event(KeyEvent(key="z", ctrl=True))
    result = await autosave.flush()
    logger.info(f"after undo: ok={result.ok} stored={api.stored} can_redo={autosave.can_redo}")

    autosave.close()


if __name__ == "__main__":
    asyncio.run(main())
