"""
Grafotest API — Result Validator
=================================

What:  Optional hardening layer that checks an extracted value against the
       Pydantic model of the operation's report.
When:  Only when STRICT_RESULT_VALIDATION is enabled. By default the service
       trusts the model to follow the schema given in the prompt.
How:   model_validate() on the raw value. On success the ORIGINAL value is
       returned, so the client receives exactly what Gemini produced
       (extra keys and key order preserved).
"""

from typing import Any, Type

import pydantic
from pydantic import BaseModel

from grafotest.exceptions import ResultValidationError


def validate_result(value: Any, model: Type[BaseModel]) -> Any:
    """
    Raise ResultValidationError unless `value` conforms to `model`.

    Returns:
        `value`, unchanged.
    """
    try:
        model.model_validate(value)
    except pydantic.ValidationError as e:
        raise ResultValidationError(
            schema=model.__name__,
            errors=e.errors(include_url=False, include_input=False),
        ) from e
    return value
