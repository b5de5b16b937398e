from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, List, Mapping

from solders.pubkey import Pubkey

from nft_api.common.errors import ProgramNotFound

MPL_CORE = "mplCore"
SPL_SYSTEM = "splSystem"

MPL_CORE_PROGRAM_ID = Pubkey.from_string("CoREENxT6tW1HoK8ypY1SxRMZTcVPm7R94rH4PZNhX7d")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")


@dataclass(frozen=True)
class Program:
    name: str
    public_key: Pubkey
    deployed_slot: int = 0


class ProgramRegistry:
    """Read-only lookup of the on-chain programs this service invokes."""

    def __init__(self, programs: Iterable[Program]) -> None:
        self._programs: Mapping[str, Program] = MappingProxyType({p.name: p for p in programs})

    def get(self, name: str) -> Program:
        try:
            return self._programs[name]
        except KeyError:
            raise ProgramNotFound(f"Program {name} not found", error="Program not found") from None

    def get_public_key(self, name: str) -> Pubkey:
        return self.get(name).public_key

    def all(self) -> List[Program]:
        return list(self._programs.values())


def default_registry() -> ProgramRegistry:
    return ProgramRegistry(
        [
            Program(name=MPL_CORE, public_key=MPL_CORE_PROGRAM_ID),
            Program(name=SPL_SYSTEM, public_key=SYSTEM_PROGRAM_ID),
        ]
    )
