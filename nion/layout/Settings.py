"""
Settings shared by the renderer and the data sources it creates.
"""

from __future__ import annotations

# standard libraries
import dataclasses
import json
import logging
import pathlib
import typing

# third party libraries
# None

# local libraries
# None


@dataclasses.dataclass
class RenderSettings:
    """Settings for a layout renderer.

    `base_url` is joined to relative remote endpoints. `headers` are sent with every remote request and are
    overridden by headers declared on the node. `selection_method` is the parent capability a cascade asks for
    when the parent event payload does not carry the key field.
    """
    base_url: typing.Optional[str] = None
    headers: typing.Dict[str, str] = dataclasses.field(default_factory=dict)
    timeout: float = 30.0
    selection_method: str = "getSelectedRowsData"
    placeholder_quote: bool = True

    @classmethod
    def from_dict(cls, d: typing.Mapping[str, typing.Any]) -> RenderSettings:
        field_names = {field.name for field in dataclasses.fields(cls)}
        kwargs: typing.Dict[str, typing.Any] = dict()
        for k, v in d.items():
            if k in field_names:
                kwargs[k] = v
            else:
                logging.warning("Unknown render setting '%s' ignored.", k)
        if "headers" in kwargs:
            kwargs["headers"] = {str(hk): str(hv) for hk, hv in dict(kwargs["headers"]).items()}
        if "timeout" in kwargs:
            kwargs["timeout"] = float(kwargs["timeout"])
        return cls(**kwargs)

    @classmethod
    def read_file(cls, path: typing.Union[str, pathlib.Path]) -> RenderSettings:
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def resolve_url(self, endpoint: str) -> str:
        if self.base_url and "://" not in endpoint:
            return self.base_url.rstrip("/") + "/" + endpoint.lstrip("/")
        return endpoint
