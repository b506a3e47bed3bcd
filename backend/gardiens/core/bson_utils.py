# backend/gardiens/core/bson_utils.py
# Type ObjectId compatible Pydantic v2, base model Mongo et helpers de conversion d'identifiants.
from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic.json_schema import GetJsonSchemaHandler, JsonSchemaValue
from pydantic_core import core_schema


class PyObjectId(ObjectId):
    """ObjectId accepté en entrée sous forme de chaîne hex et sérialisé en chaîne.

    Description:
        Les identifiants de joueurs, soumissions et images transitent en JSON
        sous forme de chaîne de 24 caractères ; côté Python ils restent des
        `bson.ObjectId` pour les requêtes motor.
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.no_info_plain_validator_function(cls._validate),
            python_schema=core_schema.no_info_plain_validator_function(cls._validate),
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_obj: core_schema.CoreSchema, handler: GetJsonSchemaHandler) -> JsonSchemaValue:
        return {
            "type": "string",
            "format": "objectid",
            "pattern": "^[a-fA-F0-9]{24}$",
            "examples": ["507f1f77bcf86cd799439011"],
        }

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


class MongoBaseModel(BaseModel):
    """BaseModel Pydantic pour documents Mongo.

    Description:
        - Champ `_id` exposé via l'alias `id` (type `PyObjectId`)
        - `populate_by_name` pour construire depuis un document brut ou depuis le code
    """
    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
    )


def to_object_id(value: str | ObjectId) -> ObjectId:
    """Convertit une chaîne en ObjectId.

    Args:
        value (str | ObjectId): Identifiant brut (chaîne hex 24 ou ObjectId).

    Returns:
        ObjectId: Identifiant typé.

    Raises:
        ValueError: Si la chaîne n'est pas un ObjectId valide.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise ValueError(f"Invalid ObjectId: {value!r}") from e

