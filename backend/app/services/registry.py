from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import json
import logging
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import Field, ValidationError

from app.schemas.portfolio import FrozenBundle, SchemeConfigOut, WireModel
from app.services.frozen_archive import ArchiveError, FrozenArchive


logger = logging.getLogger("navboard.registry")


class RegistryError(Exception):
    """The scheme registry configuration is invalid."""


class UnknownSchemeError(LookupError):
    pass


# ── configuration file shape ──


class _SchemeEntryBase(WireModel):
    name: str
    is_active: bool = True


class FrozenSchemeEntry(_SchemeEntryBase):
    kind: Literal["frozen"]
    archive: str


class LiveSchemeEntry(_SchemeEntryBase):
    kind: Literal["live"]
    system_tag: str
    start_date: date | None = None


class CompositeSchemeEntry(_SchemeEntryBase):
    kind: Literal["composite"]
    components: list[str] = Field(min_length=1)


SchemeEntry = Annotated[
    Union[FrozenSchemeEntry, LiveSchemeEntry, CompositeSchemeEntry],
    Field(discriminator="kind"),
]


class AccountEntry(WireModel):
    qcode: str | None = None
    schemes: list[SchemeEntry]


class RegistryFile(WireModel):
    accounts: dict[str, AccountEntry]


# ── resolved scheme kinds ──


@dataclass(frozen=True)
class FrozenScheme:
    archive_key: str
    bundle: FrozenBundle
    kind: Literal["frozen"] = "frozen"


@dataclass(frozen=True)
class LiveScheme:
    system_tag: str
    start_date: date | None = None
    qcode: str | None = None
    kind: Literal["live"] = "live"


@dataclass(frozen=True)
class CompositeScheme:
    components: tuple[SchemeConfig, ...]
    kind: Literal["composite"] = "composite"


SchemeKind = Union[FrozenScheme, LiveScheme, CompositeScheme]


@dataclass(frozen=True)
class SchemeConfig:
    display_name: str
    is_active: bool
    source: SchemeKind

    @property
    def system_tag(self) -> str | None:
        if isinstance(self.source, LiveScheme):
            return self.source.system_tag
        return None

    def describe(self) -> SchemeConfigOut:
        source = self.source
        return SchemeConfigOut(
            name=self.display_name,
            kind=source.kind,
            is_active=self.is_active,
            system_tag=source.system_tag if isinstance(source, LiveScheme) else None,
            start_date=(
                source.start_date.isoformat()
                if isinstance(source, LiveScheme) and source.start_date is not None
                else None
            ),
            components=(
                [component.display_name for component in source.components]
                if isinstance(source, CompositeScheme)
                else []
            ),
        )


class SchemeRegistry:
    def __init__(self, accounts: dict[str, list[SchemeConfig]]) -> None:
        self._accounts = {code: list(schemes) for code, schemes in accounts.items()}

    def accounts(self) -> list[str]:
        return list(self._accounts)

    def schemes_for(self, account_code: str) -> list[SchemeConfig]:
        try:
            return list(self._accounts[account_code])
        except KeyError:
            raise UnknownSchemeError(f"Unknown account {account_code!r}.") from None

    def scheme(self, account_code: str, name: str) -> SchemeConfig:
        for config in self.schemes_for(account_code):
            if config.display_name == name:
                return config
        raise UnknownSchemeError(f"Unknown scheme {name!r} for account {account_code!r}.")


def _resolve_account(
    account_code: str,
    account: AccountEntry,
    archive: FrozenArchive,
) -> list[SchemeConfig]:
    entries = {entry.name: entry for entry in account.schemes}
    if len(entries) != len(account.schemes):
        raise RegistryError(f"Account {account_code!r} lists a scheme name twice.")

    resolved: dict[str, SchemeConfig] = {}

    def resolve(name: str, trail: tuple[str, ...]) -> SchemeConfig:
        if name in resolved:
            return resolved[name]
        if name in trail:
            raise RegistryError(
                f"Composite scheme cycle in {account_code!r}: {' -> '.join(trail + (name,))}."
            )
        entry = entries.get(name)
        if entry is None:
            raise RegistryError(f"Account {account_code!r} references unknown scheme {name!r}.")

        source: SchemeKind
        if isinstance(entry, FrozenSchemeEntry):
            try:
                source = FrozenScheme(archive_key=entry.archive, bundle=archive.get(entry.archive))
            except ArchiveError as exc:
                raise RegistryError(str(exc)) from exc
        elif isinstance(entry, LiveSchemeEntry):
            source = LiveScheme(system_tag=entry.system_tag, start_date=entry.start_date, qcode=account.qcode)
        else:
            source = CompositeScheme(
                components=tuple(resolve(component, trail + (name,)) for component in entry.components)
            )
        config = SchemeConfig(display_name=entry.name, is_active=entry.is_active, source=source)
        resolved[name] = config
        return config

    return [resolve(entry.name, ()) for entry in account.schemes]


def build_registry(payload: dict, archive: FrozenArchive) -> SchemeRegistry:
    try:
        parsed = RegistryFile.model_validate(payload)
    except ValidationError as exc:
        raise RegistryError(f"Invalid scheme registry: {exc}") from exc
    return SchemeRegistry(
        {code: _resolve_account(code, account, archive) for code, account in parsed.accounts.items()}
    )


def load_registry(path: str | Path, archive: FrozenArchive) -> SchemeRegistry:
    registry_path = Path(path)
    try:
        payload = json.loads(registry_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise RegistryError(f"Cannot read scheme registry {registry_path}: {exc}") from exc
    registry = build_registry(payload, archive)
    logger.info("Loaded scheme registry with accounts: %s", ", ".join(registry.accounts()))
    return registry
