from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Any, Iterable, Mapping

from geoclone.util.errors import ConfigError

RATINGS = frozenset(range(6))
DEFAULT_QUALITY = 95

RESIZE_REGEX = re.compile(r"^(?P<val>\d+(?:\.\d+)?)\s*(?P<postfix>%|m|mp)$")
QUALITY_REGEX = re.compile(r"^(?P<val>\d+)\s*%?$")


class TargetFormat(str, Enum):
    JPEG = "jpeg"
    HEIC = "heic"
    PRESERVE = "preserve"


@dataclass(frozen=True)
class Resize:
    kind: str = "PRESERVE"  # PRESERVE|PERCENT|MEGAPIXELS
    value: float = 0.0

    @classmethod
    def preserve(cls) -> "Resize":
        return cls()

    @classmethod
    def percent(cls, value: float) -> "Resize":
        return cls(kind="PERCENT", value=float(value))

    @classmethod
    def megapixels(cls, value: float) -> "Resize":
        return cls(kind="MEGAPIXELS", value=float(value))

    def is_preserve(self) -> bool:
        return self.kind == "PRESERVE"

    def __str__(self) -> str:
        if self.kind == "PERCENT":
            return f"{self.value:g}%"
        if self.kind == "MEGAPIXELS":
            return f"{self.value:g}m"
        return "preserve"


@dataclass(frozen=True)
class PolicyRule:
    """Transformation applied to photos whose rating is in `ratings`.

    preserve_original=True copies the file as-is; resize/quality/format are
    ignored in that case.
    """
    ratings: frozenset[int]
    resize: Resize = field(default_factory=Resize.preserve)
    quality: int | None = None
    format: TargetFormat = TargetFormat.PRESERVE
    preserve_original: bool = False

    def describe(self) -> str:
        rates = ",".join(str(r) for r in sorted(self.ratings))
        if self.preserve_original:
            return f"rate [{rates}]: preserve original"
        quality = "default" if self.quality is None else f"{self.quality}%"
        return f"rate [{rates}]: resize={self.resize}, quality={quality}, format={self.format.value}"


class PolicyTable:
    """Validated, ordered rules. Build with `validate()`; immutable afterwards."""

    def __init__(self, rules: Iterable[PolicyRule]) -> None:
        self._rules: tuple[PolicyRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[PolicyRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def resolve(self, rating: int) -> PolicyRule:
        """Return the first rule (in configured order) matching `rating`."""
        if rating not in RATINGS:
            raise ConfigError(f"Rating {rating!r} is outside 0-5.")
        for rule in self._rules:
            if rating in rule.ratings:
                return rule
        # validate() guarantees coverage
        raise ConfigError(f"No policy rule matches rating {rating}.")


def validate(rules: Iterable[PolicyRule], allow_overlap: bool = False) -> PolicyTable:
    """Check coverage and consistency of `rules` and freeze them into a table.

    Raises ConfigError on the first problem found:
      - a rule with no ratings, or with a rating outside 0-5
      - a rating covered by more than one rule (unless allow_overlap)
      - a rating in 0-5 matched by no rule
      - resize percent outside (0, 100], non-positive megapixels
      - quality outside 1-100
    """
    rules = list(rules)
    if not rules:
        raise ConfigError("Policy table is empty.")

    seen: dict[int, int] = {}
    for idx, rule in enumerate(rules, start=1):
        if not rule.ratings:
            raise ConfigError(f"Policy #{idx} has no ratings.")
        bad = sorted(r for r in rule.ratings if r not in RATINGS)
        if bad:
            raise ConfigError(f"Policy #{idx} has ratings outside 0-5: {bad}")
        for r in sorted(rule.ratings):
            if r in seen and not allow_overlap:
                raise ConfigError(f"Rating {r} is matched by policies #{seen[r]} and #{idx}.")
            seen.setdefault(r, idx)
        _check_rule(idx, rule)

    missing = sorted(RATINGS - set(seen))
    if missing:
        raise ConfigError(f"No policy for rating(s): {', '.join(str(r) for r in missing)}")

    return PolicyTable(rules)


def _check_rule(idx: int, rule: PolicyRule) -> None:
    if rule.preserve_original:
        return
    resize = rule.resize
    if resize.kind == "PERCENT" and not (0 < resize.value <= 100):
        raise ConfigError(f"Policy #{idx}: resize percent must be in (0, 100], got {resize.value:g}.")
    if resize.kind == "MEGAPIXELS" and resize.value <= 0:
        raise ConfigError(f"Policy #{idx}: resize megapixels must be positive, got {resize.value:g}.")
    if resize.kind not in ("PRESERVE", "PERCENT", "MEGAPIXELS"):
        raise ConfigError(f"Policy #{idx}: unknown resize kind {resize.kind!r}.")
    if rule.quality is not None and not (1 <= rule.quality <= 100):
        raise ConfigError(f"Policy #{idx}: quality must be in 1-100, got {rule.quality}.")


def parse_rule(raw: Mapping[str, Any]) -> PolicyRule:
    """Build a PolicyRule from one config entry.

    Entry shape:
        rate: [0, 1, 2]
        commands:
          resize: 36m        # N% | Nm | preserve
          quality: 92%
          format: heic       # heic | jpg | jpeg | preserve

    No commands (or all preserve) means the original file is kept as-is.
    """
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Policy entry must be a mapping, got {type(raw).__name__}.")

    ratings = _parse_ratings(raw.get("rate", raw.get("rating")))
    commands = raw.get("commands", raw.get("command")) or {}
    if not isinstance(commands, Mapping):
        raise ConfigError("Policy 'commands' must be a mapping.")
    commands = {str(k).strip().lower(): v for k, v in commands.items()}

    unknown = sorted(set(commands) - {"resize", "quality", "format"})
    if unknown:
        raise ConfigError(f"Unknown policy command(s): {', '.join(unknown)}")

    resize = _parse_resize(commands["resize"]) if "resize" in commands else Resize.preserve()
    fmt = _parse_format(commands["format"]) if "format" in commands else TargetFormat.PRESERVE
    quality = _parse_quality(commands["quality"]) if "quality" in commands else None

    if resize.is_preserve() and fmt == TargetFormat.PRESERVE and quality is None:
        return PolicyRule(ratings=ratings, preserve_original=True)

    return PolicyRule(
        ratings=ratings,
        resize=resize,
        quality=quality,
        format=fmt,
    )


def parse_rules(raw_rules: Any) -> list[PolicyRule]:
    if not isinstance(raw_rules, list):
        raise ConfigError("'policies' must be a list.")
    return [parse_rule(r) for r in raw_rules]


def load_policy_table(raw_rules: Any, allow_overlap: bool = False) -> PolicyTable:
    """Parse and validate the raw `policies` list from the config file."""
    return validate(parse_rules(raw_rules), allow_overlap=allow_overlap)


def _parse_ratings(value: Any) -> frozenset[int]:
    if value is None:
        raise ConfigError("Policy entry is missing 'rate'.")
    items = value if isinstance(value, (list, tuple, set)) else [value]
    out: set[int] = set()
    for v in items:
        if isinstance(v, bool):
            raise ConfigError(f"Invalid rating {v!r}.")
        try:
            out.add(int(v))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid rating {v!r}.") from e
    return frozenset(out)


def _parse_resize(value: Any) -> Resize:
    opt = str(value).strip().lower()
    if opt == "preserve":
        return Resize.preserve()
    m = RESIZE_REGEX.match(opt)
    if not m:
        raise ConfigError(f"Invalid resize option from '{value}'")
    val = float(m.group("val"))
    if m.group("postfix") == "%":
        return Resize.percent(val)
    return Resize.megapixels(val)


def _parse_format(value: Any) -> TargetFormat:
    opt = str(value).strip().lower()
    if opt == "heic":
        return TargetFormat.HEIC
    if opt in ("jpg", "jpeg"):
        return TargetFormat.JPEG
    if opt == "preserve":
        return TargetFormat.PRESERVE
    raise ConfigError(f"Invalid format option from '{value}'")


def _parse_quality(value: Any) -> int | None:
    opt = str(value).strip().lower()
    if opt == "preserve":
        return None
    m = QUALITY_REGEX.match(opt)
    if not m:
        raise ConfigError(f"Invalid quality option from '{value}'")
    return int(m.group("val"))
