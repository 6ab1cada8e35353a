from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from decimal import Decimal
from typing import Any

CHARACTER_ID_RE = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class MemberRef:
    name: str
    realm_slug: str
    character_id: str | None = None  # present in the roster payload, not required


@dataclass
class CharacterRecord:
    id: str
    name: str = ""
    realm: str = ""
    realm_name: str = ""
    realm_id: float = 0
    gender_type: str = ""
    gender_name: str = ""
    faction_type: str = ""
    faction_name: str = ""
    race_id: float = 0
    race_name: str = ""
    character_class_id: float = 0
    character_class_name: str = ""
    active_spec_id: float = 0
    active_spec_name: str = ""
    guild_name: str = ""
    guild_id: float = 0
    guild_realm_name: str = ""
    guild_realm_id: float = 0
    guild_realm_slug: str = ""
    level: float = 0
    experience: float = 0
    achievement_points: float = 0
    last_login_timestamp: float = 0
    average_item_level: float = 0
    equipped_item_level: float = 0
    active_title_id: float = 0
    active_title_name: str = ""
    active_title_display_string: str = ""

    def __post_init__(self) -> None:
        if not CHARACTER_ID_RE.match(self.id):
            raise ValueError(f"Invalid character id {self.id!r}: must be numeric.")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Every settable column except the key, in declaration order.
CHARACTER_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(CharacterRecord) if f.name != "id")
NUMBER_FIELDS: frozenset[str] = frozenset(
    f.name for f in fields(CharacterRecord) if f.name != "id" and f.type == "float"
)


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: str
    new: str


def normalize_value(value: Any) -> str:
    """Comparable string form of a stored or fetched value.

    Integral floats collapse to their integer form (5.0 -> "5"), other floats
    use their shortest exact decimal form without exponent (5.5 -> "5.5").
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    return str(value)


def diff_records(stored: CharacterRecord | None, candidate: CharacterRecord) -> list[FieldChange]:
    """Fields whose normalized value differs. A missing record differs in every field."""
    changes: list[FieldChange] = []
    for name in CHARACTER_FIELDS:
        new = normalize_value(getattr(candidate, name))
        old = "" if stored is None else normalize_value(getattr(stored, name))
        if stored is None or old != new:
            changes.append(FieldChange(field=name, old=old, new=new))
    return changes


def _get(data: dict[str, Any] | None, *path: str, default: Any = None) -> Any:
    cur: Any = data
    for key in path:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(key)
    if cur is None:
        return default
    # Without a locale, names come back as {"en_US": ..., "de_DE": ...}.
    if isinstance(cur, dict) and not isinstance(default, dict):
        return next(iter(cur.values()), default)
    return cur


def record_from_profile(profile: dict[str, Any]) -> CharacterRecord:
    """Map a character profile summary payload onto the flat record."""
    return CharacterRecord(
        id=str(profile["id"]),
        name=_get(profile, "name", default=""),
        realm=_get(profile, "realm", "slug", default=""),
        realm_name=_get(profile, "realm", "name", default=""),
        realm_id=_get(profile, "realm", "id", default=0),
        gender_type=_get(profile, "gender", "type", default=""),
        gender_name=_get(profile, "gender", "name", default=""),
        faction_type=_get(profile, "faction", "type", default=""),
        faction_name=_get(profile, "faction", "name", default=""),
        race_id=_get(profile, "race", "id", default=0),
        race_name=_get(profile, "race", "name", default=""),
        character_class_id=_get(profile, "character_class", "id", default=0),
        character_class_name=_get(profile, "character_class", "name", default=""),
        active_spec_id=_get(profile, "active_spec", "id", default=0),
        active_spec_name=_get(profile, "active_spec", "name", default=""),
        guild_name=_get(profile, "guild", "name", default=""),
        guild_id=_get(profile, "guild", "id", default=0),
        guild_realm_name=_get(profile, "guild", "realm", "name", default=""),
        guild_realm_id=_get(profile, "guild", "realm", "id", default=0),
        guild_realm_slug=_get(profile, "guild", "realm", "slug", default=""),
        level=_get(profile, "level", default=0),
        experience=_get(profile, "experience", default=0),
        achievement_points=_get(profile, "achievement_points", default=0),
        last_login_timestamp=_get(profile, "last_login_timestamp", default=0),
        average_item_level=_get(profile, "average_item_level", default=0),
        equipped_item_level=_get(profile, "equipped_item_level", default=0),
        active_title_id=_get(profile, "active_title", "id", default=0),
        active_title_name=_get(profile, "active_title", "name", default=""),
        active_title_display_string=_get(profile, "active_title", "display_string", default=""),
    )


@dataclass(frozen=True)
class ImageRef:
    registry: str
    repository: str
    tag: str = "latest"

    @classmethod
    def parse(cls, ref: str) -> "ImageRef":
        """Parse ``registry/repo/path[:tag]``. The first path segment must be a host."""
        name, tag = ref, "latest"
        last = ref.rsplit("/", 1)[-1]
        if ":" in last:
            name, tag = ref.rsplit(":", 1)
        if "/" not in name:
            raise ValueError(f"Image reference {ref!r} must include a registry host.")
        registry, repository = name.split("/", 1)
        if not registry or not repository or not tag:
            raise ValueError(f"Invalid image reference {ref!r}.")
        return cls(registry=registry, repository=repository, tag=tag)

    @property
    def name(self) -> str:
        return f"{self.registry}/{self.repository}"

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.tag}"

    def __str__(self) -> str:
        return self.reference
