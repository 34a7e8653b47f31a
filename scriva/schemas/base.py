"""
Base model for every persisted Scriva entity.

Files under ``.scriva/`` are shared with other tools reading the repository
directly, so the wire format is camelCase with a ``_override`` lock flag.
Python code uses snake_case attributes; aliases bridge the two.
"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from scriva.errors import MalformedUpdateError


class ScrivaModel(BaseModel):
    """
    Lenient model used for reading and writing persisted state.

    Unknown keys are kept (``extra="allow"``) so a round-trip through the
    engine never drops fields written by a newer client or by hand.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump with wire-format aliases, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def proposal_fields(cls) -> Dict[str, str]:
        """Map attribute name -> wire name for the full field set.

        Fields defaulting to ``None`` (``payoffChapter``, ``_override``, ...)
        are optional; everything else must be present in an AI proposal.
        """
        required = {}
        for name, field in cls.model_fields.items():
            if field.default is None and field.default_factory is None:
                continue
            required[name] = field.alias or to_camel(name)
        return required

    @classmethod
    def validate_proposal(cls, data: Any):
        """Strictly validate an AI-proposed entity.

        Rejects anything that is not an object, lacks one of
        :meth:`proposal_fields`, or fails type validation. Replacement during
        merge is whole-entity, so a partially shaped proposal would silently
        blank out fields the author curated.
        """
        if not isinstance(data, dict):
            raise MalformedUpdateError(
                f"{cls.__name__}: expected an object, got {type(data).__name__}"
            )

        missing = [
            wire for name, wire in cls.proposal_fields().items()
            if wire not in data and name not in data
        ]
        if missing:
            raise MalformedUpdateError(
                f"{cls.__name__} {data.get('id', '?')!r}: missing fields {missing}"
            )

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise MalformedUpdateError(
                f"{cls.__name__}: {exc.error_count()} validation error(s): {exc.errors()}"
            ) from exc
