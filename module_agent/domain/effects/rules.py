from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
import structlog

logger = structlog.get_logger(__name__)


class AdjustReferenceRule(BaseModel):
    """Add or subtract a numeric delta on a field of the referenced record"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["adjust_reference"]
    reference_field: str = Field(alias="referenceField", min_length=1)
    target_field: str = Field(alias="targetField", min_length=1)
    operation: Literal["add", "subtract"]
    amount: Optional[Any] = None
    amount_field: Optional[str] = Field(None, alias="amountField")


class SetReferenceRule(BaseModel):
    """Overwrite a field on the referenced record with a literal or copied value"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["set_reference"]
    reference_field: str = Field(alias="referenceField", min_length=1)
    target_field: str = Field(alias="targetField", min_length=1)
    value: Optional[Any] = None
    source_field: Optional[str] = Field(None, alias="sourceField")


EffectRule = Annotated[
    Union[AdjustReferenceRule, SetReferenceRule],
    Field(discriminator="type"),
]

_rule_adapter: TypeAdapter = TypeAdapter(EffectRule)


def parse_effect_rules(raw_rules: List[Dict[str, Any]]) -> List[Union[AdjustReferenceRule, SetReferenceRule]]:
    """Parse schema effect documents, dropping any that are malformed or of unknown type"""

    rules = []
    for raw in raw_rules:
        try:
            rules.append(_rule_adapter.validate_python(raw))
        except ValidationError as e:
            logger.debug("Skipping unusable effect rule", rule=raw, error=str(e))
    return rules
