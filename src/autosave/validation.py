"""
Payload validation before the transport is called.

A validator is any callable taking the data to check and returning a bool
(or an awaitable bool). It may also raise ValidationError to report which
fields failed. model_validator() builds one from a pydantic model.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from autosave.cache import ValidationCache, stable_signature
from autosave.errors import ValidationError
from nestedpath.paths import join_path

logger = logging.getLogger(__name__)

Validator = Callable[[Dict[str, Any]], Union[bool, Awaitable[bool]]]


def model_validator(model_cls: Type[BaseModel], partial: bool = False) -> Validator:
    """Validator backed by ``model_cls.model_validate``.

    Args:
        model_cls: Pydantic model describing the full record
        partial: Ignore "missing" errors, for validating changed-fields-only
            payloads against a model of the whole record
    """

    def validate(data: Dict[str, Any]) -> bool:
        try:
            model_cls.model_validate(data)
        except PydanticValidationError as e:
            errors = [err for err in e.errors() if not (partial and err.get("type") == "missing")]
            if not errors:
                return True
            failed = [join_path(list(err["loc"])) for err in errors]
            raise ValidationError(
                f"{len(failed)} field(s) failed validation: {', '.join(failed)}",
                failed_fields=failed,
                original_error=e,
            )
        return True

    return validate


class PayloadValidator:
    """Runs a validator with verdicts cached by payload signature.

    Only plain True/False verdicts are cached; a raised ValidationError is
    re-evaluated next time so its field details stay current.
    """

    def __init__(self, validator: Validator, cache: Optional[ValidationCache] = None):
        self._validator = validator
        self._cache = cache if cache is not None else ValidationCache()

    async def validate(self, data: Dict[str, Any]) -> Optional[ValidationError]:
        """Returns None when data is valid, else the ValidationError to report."""
        signature = stable_signature(data)
        cached = self._cache.get(signature)
        if cached is True:
            return None
        if cached is False:
            return ValidationError("Validation failed (cached)")

        try:
            verdict = self._validator(data)
            if inspect.isawaitable(verdict):
                verdict = await verdict
        except ValidationError as e:
            logger.debug(f"Validation failed: {e.failed_fields}")
            return e
        except Exception as e:
            logger.warning(f"Validator raised: {e!r}")
            return ValidationError(f"Validator raised: {e}", original_error=e)

        valid = bool(verdict)
        self._cache.put(signature, valid)
        return None if valid else ValidationError("Validation failed")

    def clear_cache(self) -> None:
        self._cache.clear()
