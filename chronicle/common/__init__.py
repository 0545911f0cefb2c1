from __future__ import annotations

import typing as t

import orjson
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Portable models dump with camelCase keys and accept either spelling on input"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def model_dump(self, *args, **kwargs) -> t.Dict[str, t.Any]:
        kwargs.setdefault("by_alias", True)
        return super().model_dump(*args, **kwargs)

    def model_dump_json(self, *args, **kwargs) -> str:
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(*args, **kwargs)

    def dump_bytes(self, beautify: bool = False) -> bytes:
        option = orjson.OPT_INDENT_2 if beautify else None
        return orjson.dumps(self.model_dump(mode="json"), option=option)

    @classmethod
    def load_bytes(cls, raw: bytes | str) -> t.Self:
        return cls.model_validate(orjson.loads(raw))
