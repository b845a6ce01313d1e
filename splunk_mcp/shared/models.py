from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class AdapterBaseModel(BaseModel):
    model_config = ConfigDict(
        protected_namespaces=(),
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump with upstream field names, dropping unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)
