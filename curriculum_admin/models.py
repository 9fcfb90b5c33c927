"""Data model: uploaded documents, extraction outcomes and managed entities"""
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .errors import ValidationError


@dataclass(frozen=True)
class Document:
    """An uploaded file handed to the extraction pipeline"""
    filename: str
    content_type: str
    data: bytes

    @classmethod
    def from_path(cls, path: Path) -> "Document":
        content_type, _ = mimetypes.guess_type(path.name)
        with open(path, 'rb') as f:
            data = f.read()
        return cls(filename=path.name, content_type=content_type or "application/octet-stream", data=data)


class CandidateRecord(BaseModel):
    """One unreviewed curriculum skill returned by the structured extractor.

    Accepts both the English keys and the Portuguese BNCC column names.
    """
    model_config = ConfigDict(extra="ignore")

    code: str = Field(validation_alias=AliasChoices("code", "codigo_alfanumerico"))
    component: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("component", "componente_curricular"))
    description: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("description", "descricao_habilidade"))
    grade: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("grade", "ano_serie"))
    thematic_unit: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("thematic_unit", "unidade_tematica"))

    def to_fields(self) -> Dict[str, str]:
        """Fields for creating a ``bncc_item`` from this candidate"""
        return {
            "code": self.code,
            "component": self.component or "",
            "description": self.description or "",
            "grade": self.grade or "",
            "thematic_unit": self.thematic_unit or "",
        }


class StructuredExtraction(BaseModel):
    """Raw response of the structured extractor"""
    model_config = ConfigDict(extra="ignore")

    is_in_domain: bool = Field(
        validation_alias=AliasChoices("is_in_domain", "isInDomain", "hasBNCCContent"))
    candidates: List[CandidateRecord] = Field(
        default_factory=list, validation_alias=AliasChoices("candidates", "bnccs"))
    message: Optional[str] = None


# =============================================================================
# Extraction outcome (tagged variant)
# =============================================================================


@dataclass(frozen=True)
class InProgress:
    """Extraction has started and not yet finished"""


@dataclass(frozen=True)
class Failed:
    """Extraction stopped; reason is shown verbatim"""
    reason: str


@dataclass(frozen=True)
class Classified:
    """Extraction finished with an in-domain judgment"""
    is_in_domain: bool
    candidates: Tuple[CandidateRecord, ...] = ()
    message: Optional[str] = None


ExtractionOutcome = Union[InProgress, Failed, Classified]


# =============================================================================
# Managed entities
# =============================================================================


@dataclass
class ManagedEntity:
    """A persisted administrative record under soft-delete management"""
    id: str
    kind: str
    fields: Dict[str, Any]
    deleted: bool = False

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.fields, "deleted": self.deleted}


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass(frozen=True)
class EntityKind:
    """Field rules for one kind of managed entity"""
    name: str
    required: Tuple[str, ...]
    optional: Dict[str, Any] = field(default_factory=dict)  # field -> default
    unique: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ()
    normalizers: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return self.required + tuple(self.optional)

    @property
    def label_field(self) -> str:
        """Field used to name a record in prompts and messages"""
        return self.required[0]

    def clean(self, fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """
        Validate and normalize submitted fields

        Args:
            fields: Submitted field values
            partial: True for updates, where absent fields keep their value

        Returns:
            Cleaned field dictionary (defaults filled in when not partial)
        """
        unknown = sorted(set(fields) - set(self.field_names))
        if unknown:
            raise ValidationError(
                f"Unknown field(s) for {self.name}: {', '.join(unknown)}",
                {"kind": self.name, "fields": unknown},
            )

        cleaned = {}
        for name, value in fields.items():
            normalize = self.normalizers.get(name, _strip)
            cleaned[name] = normalize(value)

        missing = []
        for name in self.required:
            if name not in cleaned and partial:
                continue
            value = cleaned.get(name)
            if value is None or (isinstance(value, str) and not value):
                missing.append(name)
        if missing:
            raise ValidationError(
                f"Required field(s) missing for {self.name}: {', '.join(missing)}",
                {"kind": self.name, "fields": missing},
            )

        if not partial:
            for name, default in self.optional.items():
                cleaned.setdefault(name, default)
        return cleaned


BNCC_ITEM = EntityKind(
    name="bncc_item",
    required=("code", "component"),
    optional={"description": "", "grade": "", "thematic_unit": ""},
    search_fields=("code", "description"),
    normalizers={"code": _upper},
)

INSTITUTION_TYPE = EntityKind(
    name="institution_type",
    required=("name",),
    unique=("name",),
    search_fields=("name",),
)

USER_RULE = EntityKind(
    name="user_rule",
    required=("rule_name",),
    optional={"description": "", "enabled": True},
    unique=("rule_name",),
    search_fields=("rule_name", "description"),
    normalizers={"enabled": _flag},
)

INSTITUTION = EntityKind(
    name="institution",
    required=("name",),
    optional={
        "type_id": None,
        "address_line_1": "",
        "city": "",
        "state_province": "",
        "postal_code": "",
        "country": "",
    },
    search_fields=("name", "city"),
)

KINDS: Dict[str, EntityKind] = {
    kind.name: kind for kind in (BNCC_ITEM, INSTITUTION_TYPE, USER_RULE, INSTITUTION)
}
