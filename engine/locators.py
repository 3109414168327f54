"""Typed locator strategies and ordered locator specs."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SUMMARY_LENGTH = 100


class _StrategyBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    native: ClassVar[bool] = True

    def describe(self) -> str:
        raise NotImplementedError


class Structural(_StrategyBase):
    """Plain structural (CSS) query against the document."""

    kind: Literal["structural"] = "structural"
    selector: str

    def describe(self) -> str:
        return f"css({self.selector})"

    def playwright_selector(self) -> str:
        return self.selector


class ShadowPiercing(_StrategyBase):
    """Structural query that descends into open shadow roots."""

    kind: Literal["shadow"] = "shadow"
    selector: str

    def describe(self) -> str:
        return f"pierce({self.selector})"

    def playwright_selector(self) -> str:
        # Playwright's css engine pierces open shadow roots on its own.
        return f"css={self.selector}"


class AccessibilityLabel(_StrategyBase):
    native: ClassVar[bool] = False

    kind: Literal["aria"] = "aria"
    text: str

    def describe(self) -> str:
        return f"aria({self.text})"


class TextContent(_StrategyBase):
    native: ClassVar[bool] = False

    kind: Literal["text"] = "text"
    text: str

    def describe(self) -> str:
        return f"text({self.text})"


class PathExpression(_StrategyBase):
    native: ClassVar[bool] = False

    kind: Literal["xpath"] = "xpath"
    expr: str

    def describe(self) -> str:
        return f"xpath({self.expr})"


LocatorStrategy = Annotated[
    Union[Structural, ShadowPiercing, AccessibilityLabel, TextContent, PathExpression],
    Field(discriminator="kind"),
]

_PREFIXES = {
    "aria/": lambda v: AccessibilityLabel(text=v),
    "text/": lambda v: TextContent(text=v),
    "xpath/": lambda v: PathExpression(expr=v),
    "pierce/": lambda v: ShadowPiercing(selector=v),
}


def parse_strategy(raw: str) -> _StrategyBase:
    """Parse the compact recorder notation (``aria/Sign in``, ``xpath//html/...``)."""

    value = raw.strip()
    for prefix, factory in _PREFIXES.items():
        if value.startswith(prefix):
            return factory(value[len(prefix):])
    return Structural(selector=value)


class LocatorSpec(BaseModel):
    """Ordered list of strategies for a single logical element."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    strategies: List[LocatorStrategy]
    name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            value = {"strategies": list(value)}
        if isinstance(value, dict) and "strategies" in value:
            value = dict(value)
            value["strategies"] = [
                parse_strategy(item) if isinstance(item, str) else item
                for item in value["strategies"]
            ]
        return value

    @field_validator("strategies")
    @classmethod
    def _not_empty(cls, value: List[Any]) -> List[Any]:
        if not value:
            raise ValueError("a locator spec needs at least one strategy")
        return value

    @classmethod
    def of(cls, *raw: str, name: Optional[str] = None) -> "LocatorSpec":
        return cls(strategies=[parse_strategy(item) for item in raw], name=name)

    def native(self) -> List[_StrategyBase]:
        return [s for s in self.strategies if s.native]

    def synthesized(self) -> List[_StrategyBase]:
        return [s for s in self.strategies if not s.native]

    def ladder(self) -> List[_StrategyBase]:
        """Native strategies first, then synthesized, each tier in declared order."""

        return self.native() + self.synthesized()

    def describe(self) -> str:
        if self.name:
            return self.name
        return summarize(" | ".join(s.describe() for s in self.strategies))


def summarize(text: str, limit: int = SUMMARY_LENGTH) -> str:
    text = text or "unknown"
    return text if len(text) <= limit else text[:limit]


def spec_from(value: Union[LocatorSpec, Sequence[str], str]) -> LocatorSpec:
    if isinstance(value, LocatorSpec):
        return value
    if isinstance(value, str):
        return LocatorSpec.of(value)
    return LocatorSpec.of(*value)
