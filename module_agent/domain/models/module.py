from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


NUMERIC_FIELD_TYPES = frozenset({"number", "currency"})


class FieldDefinition(BaseModel):
    """A single typed field within a schema"""
    model_config = ConfigDict(extra="allow")

    type: str = Field(default="text", description="Field type, e.g. text, number, currency, enum")
    label: Optional[str] = None
    required: bool = False
    options: Optional[List[Any]] = None
    constraints: Optional[Dict[str, Any]] = None

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_FIELD_TYPES


class SchemaDefinition(BaseModel):
    """Named field set within a module, optionally carrying effect rules"""
    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None
    version: int = 1
    fields: Dict[str, FieldDefinition] = Field(default_factory=dict)
    effects: List[Dict[str, Any]] = Field(default_factory=list, description="Raw effect rule documents")

    @field_validator("fields", mode="before")
    @classmethod
    def _fields_default(cls, value: Any) -> Any:
        return value or {}

    @field_validator("effects", mode="before")
    @classmethod
    def _effects_default(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [rule for rule in value if isinstance(rule, dict)]

    def required_fields(self) -> List[str]:
        return [key for key, field in self.fields.items() if field.required]

    def missing_required(self, data: Dict[str, Any]) -> List[str]:
        return [key for key in self.required_fields() if data.get(key) is None]

    def unknown_fields(self, data: Dict[str, Any]) -> List[str]:
        return [key for key in data if key not in self.fields]


class ModuleDefinition(BaseModel):
    """User-defined data collection grouping one or more schemas"""
    id: str
    name: str = ""
    description: Optional[str] = None
    schemas: Dict[str, SchemaDefinition] = Field(default_factory=dict)
    settings: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, module_id: str, data: Dict[str, Any]) -> "ModuleDefinition":
        return cls(
            id=module_id,
            name=data.get("name") or "",
            description=data.get("description"),
            schemas=data.get("schemas") or {},
            settings=data.get("settings") or {},
        )

    def get_schema(self, schema_key: str) -> Optional[SchemaDefinition]:
        return self.schemas.get(schema_key)

    @property
    def schema_keys(self) -> List[str]:
        return list(self.schemas.keys())
