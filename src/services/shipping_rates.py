"""India Post shipping rate engine.

Classifies a destination pincode into a rate zone relative to the sender's
location and prices the parcel by weight. The engine is pure: all rates,
prefix sets and delivery estimates come from an immutable `RateTable`
handed in at construction, and destinations from a `PincodeDirectory`.
"""

import json
import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

from src.api.middleware.error_handler import NotFoundError, ValidationError
from src.core.config import get_settings

logger = logging.getLogger(__name__)

BUNDLED_PINCODE_DATA = Path(__file__).resolve().parent.parent / "data" / "pincodes.json"

DEFAULT_ITEM_WEIGHT_KG = 0.5

_PINCODE_PATTERN = re.compile(r"^[0-9]{6}$")
_DAYS_PATTERN = re.compile(r"\d+")


class Zone(str, Enum):
    """Shipping rate zones, listed in classification precedence order."""

    LOCAL = "local"
    NCR = "ncr"
    METRO = "metro"
    WITHIN_STATE = "withinState"
    NEIGHBOURING_STATE = "neighbouringState"
    OTHER_STATES = "otherStates"


@dataclass(frozen=True)
class ZoneRate:
    """Rate record for one zone.

    base covers the first 2 kg. per_kg_band1 is charged per started kg
    between 2 and 5 kg, per_kg_band2 per started kg above 5 kg.
    """

    base: float
    per_kg_band1: float
    per_kg_band2: float


@dataclass(frozen=True)
class RateTable:
    """Immutable shipping configuration."""

    rates: Mapping[Zone, ZoneRate]
    delivery_estimates: Mapping[Zone, str]
    ncr_prefixes: frozenset[str]
    metro_prefixes: frozenset[str]
    neighbouring_states: frozenset[str]
    base_weight_kg: float = 2.0
    band1_limit_kg: float = 5.0
    fallback_estimate: str = "5-7 Days"

    def __post_init__(self) -> None:
        missing = [zone.value for zone in Zone if zone not in self.rates]
        if missing:
            raise ValueError(f"Rate table missing zones: {', '.join(missing)}")
        object.__setattr__(self, "rates", MappingProxyType(dict(self.rates)))
        object.__setattr__(self, "delivery_estimates", MappingProxyType(dict(self.delivery_estimates)))
        object.__setattr__(
            self,
            "neighbouring_states",
            frozenset(state.strip().upper() for state in self.neighbouring_states),
        )


DEFAULT_RATE_TABLE = RateTable(
    rates={
        Zone.LOCAL: ZoneRate(base=45, per_kg_band1=12, per_kg_band2=14),
        Zone.NCR: ZoneRate(base=70, per_kg_band1=15, per_kg_band2=18),
        Zone.METRO: ZoneRate(base=105, per_kg_band1=25, per_kg_band2=28),
        Zone.WITHIN_STATE: ZoneRate(base=80, per_kg_band1=20, per_kg_band2=22),
        Zone.NEIGHBOURING_STATE: ZoneRate(base=100, per_kg_band1=25, per_kg_band2=28),
        Zone.OTHER_STATES: ZoneRate(base=115, per_kg_band1=30, per_kg_band2=32),
    },
    delivery_estimates={
        Zone.LOCAL: "3 Days",
        Zone.NCR: "3-4 Days",
        Zone.METRO: "4-5 Days",
        Zone.WITHIN_STATE: "3-6 Days",
        Zone.NEIGHBOURING_STATE: "4-6 Days",
        Zone.OTHER_STATES: "6-7 Days",
    },
    ncr_prefixes=frozenset({"110", "201", "122"}),
    metro_prefixes=frozenset({"400", "700", "560", "600", "500", "380"}),
    neighbouring_states=frozenset(
        {
            "BIHAR",
            "JHARKHAND",
            "CHHATTISGARH",
            "MADHYA PRADESH",
            "RAJASTHAN",
            "HARYANA",
            "DELHI",
            "UTTARAKHAND",
            "HIMACHAL PRADESH",
        }
    ),
)


@dataclass(frozen=True)
class SenderLocation:
    """District and state parcels are shipped from."""

    district: str
    state: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "district", self.district.strip().upper())
        object.__setattr__(self, "state", self.state.strip().upper())


DEFAULT_SENDER = SenderLocation(district="GORAKHPUR", state="UTTAR PRADESH")


@dataclass(frozen=True)
class PincodeRecord:
    """Post office entry from the pincode directory."""

    pincode: str
    district: str
    state: str
    office_type: str = ""
    office_name: str = ""
    delivery_status: str = ""

    @property
    def is_branch_office(self) -> bool:
        """Branch offices (B.O) take a day longer to deliver."""
        return self.office_type.strip().upper().rstrip(".") == "B.O"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PincodeRecord":
        """Build a record from an India Post directory row."""
        return cls(
            pincode=str(row["pincode"]).strip(),
            district=str(row.get("Districtname", "")).strip().upper(),
            state=str(row.get("statename", "")).strip().upper(),
            office_type=str(row.get("officeType", "")).strip(),
            office_name=str(row.get("officename", "")).strip(),
            delivery_status=str(row.get("Deliverystatus", "")).strip(),
        )


class PincodeDirectory:
    """Static pincode -> district/state lookup table.

    When a pincode has several post offices the first row wins.
    """

    def __init__(self, records: Iterable[PincodeRecord]) -> None:
        self._records: dict[str, PincodeRecord] = {}
        for record in records:
            self._records.setdefault(record.pincode, record)

    @classmethod
    def from_json(cls, path: str | Path) -> "PincodeDirectory":
        """Load a directory from a JSON array of India Post rows.

        Args:
            path: File containing the rows.

        Returns:
            PincodeDirectory: Loaded directory.
        """
        with open(path, encoding="utf-8") as fh:
            rows = json.load(fh)
        directory = cls(PincodeRecord.from_row(row) for row in rows)
        logger.info("Loaded %d pincodes from %s", len(directory), path)
        return directory

    def lookup(self, pincode: str) -> PincodeRecord | None:
        return self._records.get(str(pincode).strip())

    def __contains__(self, pincode: object) -> bool:
        return str(pincode).strip() in self._records

    def __len__(self) -> int:
        return len(self._records)


@dataclass(frozen=True)
class ShippingQuote:
    """Result of a shipping computation."""

    cost: float
    delivery_estimate: str
    zone: Zone
    destination: PincodeRecord
    surcharge: float = 0

    @property
    def is_local(self) -> bool:
        return self.zone == Zone.LOCAL

    @property
    def is_ncr(self) -> bool:
        return self.zone == Zone.NCR

    @property
    def is_metro(self) -> bool:
        return self.zone == Zone.METRO


def validate_pincode(pincode: Any) -> str:
    """Return the pincode as a string or raise ValidationError."""
    value = str(pincode).strip() if pincode is not None else ""
    if not _PINCODE_PATTERN.match(value):
        raise ValidationError(
            "Invalid pincode - must be 6 digits",
            details=[{"loc": ["pincode"], "msg": "Must be exactly 6 digits", "type": "pincode"}],
        )
    return value


def validate_weight(weight: Any) -> float:
    """Return the weight as a float or raise ValidationError."""
    try:
        if isinstance(weight, bool):
            raise TypeError("boolean weight")
        value = float(weight)
    except (TypeError, ValueError):
        value = math.nan
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(
            "Invalid weight - must be positive number",
            details=[{"loc": ["weightKg"], "msg": "Must be a positive number", "type": "weight"}],
        )
    return value


def _as_number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) and number > 0 else default


def calculate_total_weight(items: Iterable[Mapping[str, Any]]) -> float:
    """Sum weight x quantity over cart items.

    Items without a usable weight count as 0.5 kg, without a quantity as 1.
    """
    if isinstance(items, (str, bytes)) or not isinstance(items, Iterable):
        raise ValidationError("Items must be an array")
    return sum(
        _as_number(item.get("weight"), DEFAULT_ITEM_WEIGHT_KG) * _as_number(item.get("quantity"), 1)
        for item in items
    )


def apply_free_shipping(cost: float, subtotal: float, threshold: float) -> float:
    """Orders whose subtotal exceeds the threshold ship for free."""
    return 0 if subtotal > threshold else cost


class ShippingRateEngine:
    """Computes India Post shipping cost and delivery estimate."""

    def __init__(
        self,
        directory: PincodeDirectory,
        rate_table: RateTable = DEFAULT_RATE_TABLE,
        sender: SenderLocation = DEFAULT_SENDER,
    ) -> None:
        self.directory = directory
        self.rate_table = rate_table
        self.sender = sender

    def classify_zone(self, pincode: str, destination: PincodeRecord) -> Zone:
        """Pick the zone for a destination. First matching rule wins."""
        table = self.rate_table
        prefix = pincode[:3]

        if destination.district == self.sender.district and destination.state == self.sender.state:
            return Zone.LOCAL
        if prefix in table.ncr_prefixes:
            return Zone.NCR
        if prefix in table.metro_prefixes:
            return Zone.METRO
        if destination.state == self.sender.state:
            return Zone.WITHIN_STATE
        if destination.state in table.neighbouring_states:
            return Zone.NEIGHBOURING_STATE
        return Zone.OTHER_STATES

    def weight_surcharge(self, rate: ZoneRate, weight_kg: float) -> float:
        """Per-kg charge for the weight above the base allowance."""
        base_limit = self.rate_table.base_weight_kg
        band1_limit = self.rate_table.band1_limit_kg

        if weight_kg <= base_limit:
            return 0
        if weight_kg <= band1_limit:
            return math.ceil(weight_kg - base_limit) * rate.per_kg_band1

        band1_kg = math.ceil(band1_limit - base_limit)
        return band1_kg * rate.per_kg_band1 + math.ceil(weight_kg - band1_limit) * rate.per_kg_band2

    def delivery_estimate(self, zone: Zone, destination: PincodeRecord) -> str:
        """Zone estimate, shifted by a day for branch offices."""
        estimate = self.rate_table.delivery_estimates.get(zone, self.rate_table.fallback_estimate)
        if destination.is_branch_office:
            estimate = _DAYS_PATTERN.sub(lambda m: str(int(m.group()) + 1), estimate, count=1)
        return estimate

    def compute_shipping(self, pincode: Any, total_weight_kg: Any) -> ShippingQuote:
        """Compute shipping for a parcel.

        Args:
            pincode: 6-digit destination pincode.
            total_weight_kg: Parcel weight in kilograms, must be positive.

        Returns:
            ShippingQuote: Cost, delivery estimate, zone and destination.

        Raises:
            ValidationError: If the pincode or weight is malformed.
            NotFoundError: If the pincode is not in the directory.
        """
        pincode = validate_pincode(pincode)
        weight = validate_weight(total_weight_kg)

        destination = self.directory.lookup(pincode)
        if destination is None:
            raise NotFoundError(
                "Pincode not found in our database",
                details=[{"loc": ["pincode"], "msg": pincode, "type": "not_found"}],
            )

        zone = self.classify_zone(pincode, destination)
        rate = self.rate_table.rates[zone]
        surcharge = self.weight_surcharge(rate, weight)

        return ShippingQuote(
            cost=rate.base + surcharge,
            delivery_estimate=self.delivery_estimate(zone, destination),
            zone=zone,
            destination=destination,
            surcharge=surcharge,
        )


@lru_cache
def get_shipping_rate_engine() -> ShippingRateEngine:
    """Get the engine configured from settings.

    Returns:
        ShippingRateEngine: Engine using the configured sender and pincode data.
    """
    settings = get_settings()
    directory = PincodeDirectory.from_json(settings.pincode_data_path or BUNDLED_PINCODE_DATA)
    return ShippingRateEngine(
        directory=directory,
        sender=SenderLocation(district=settings.sender_district, state=settings.sender_state),
    )
