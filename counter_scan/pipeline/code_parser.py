# pipeline/code_parser.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .errors import CodeFormatError

log = logging.getLogger(__name__)

# "Location, changer X, Y = $Z"
MACHINE_CODE_RE = re.compile(r"^(.+),\s*changer\s+(\d+),\s*(\d+)\s*=\s*\$(\d+)$", re.IGNORECASE)

DEFAULT_LOCATIONS: tuple[str, ...] = ("peacock", "dover", "massillon")


@dataclass(frozen=True)
class MachineCode:
    location: str
    location_name: str
    changer: int
    counter_value: int
    dollar_amount: int
    machine_id: str
    raw_data: str

    def display_text(self) -> str:
        return (
            f"{self.location_name}, Changer {self.changer}, "
            f"Counter: {self.counter_value}, Amount: ${self.dollar_amount}"
        )

    def machine_display_name(self) -> str:
        return f"Changer {self.changer} - Hopper A"


def make_machine_id(location: str, changer: int) -> str:
    return f"{location.upper()}_CH{changer}_HA"


def parse_machine_code(data: str, supported_locations: tuple[str, ...] = DEFAULT_LOCATIONS) -> MachineCode:
    m = MACHINE_CODE_RE.match(data.strip())
    if not m:
        raise CodeFormatError(data, 'invalid machine code, expected "Location, changer X, Y = $Z"')

    location_name, changer, counter, dollars = m.groups()
    location = location_name.strip().lower()
    if location not in supported_locations:
        raise CodeFormatError(data, f"unsupported location: {location_name.strip()}")

    code = MachineCode(
        location=location,
        location_name=location_name.strip(),
        changer=int(changer),
        counter_value=int(counter),
        dollar_amount=int(dollars),
        machine_id=make_machine_id(location, int(changer)),
        raw_data=data,
    )
    log.debug(f"parsed machine code: {code}")
    return code
